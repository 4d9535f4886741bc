"""Market error taxonomy.

Every failure aborts its enclosing transaction with no partial effect.
Nothing here is retried internally — the caller decides whether to
resubmit.

Kinds:
- PhaseViolation: operation attempted in the wrong lifecycle phase or
  outside its deadline window.
- AuthorizationError: caller is not the stored authority.
- IntegrityError: commitment/record consistency failures.
- ValidationError: malformed input.
- ResourceError: arithmetic limits, empty participant sets, funds.
"""

from __future__ import annotations


class MarketError(Exception):
    """Base class for all market errors.

    ``code`` is stable and machine-readable; ``str(err)`` is the
    human message.
    """

    code = "market_error"
    message = "Market operation failed"

    def __init__(self, detail: str | None = None) -> None:
        text = self.message if detail is None else f"{self.message}: {detail}"
        super().__init__(text)
        self.detail = detail


class PhaseViolation(MarketError):
    code = "phase_violation"


class AuthorizationError(MarketError):
    code = "authorization"


class IntegrityError(MarketError):
    code = "integrity"


class ValidationError(MarketError):
    code = "validation"


class ResourceError(MarketError):
    code = "resource"


# --- Phase violations ---

class CommitPhaseEnded(PhaseViolation):
    code = "commit_phase_ended"
    message = "Commit phase has ended"


class CommitPhaseNotEnded(PhaseViolation):
    code = "commit_phase_not_ended"
    message = "Commit phase has not ended yet"


class RevealPhaseEnded(PhaseViolation):
    code = "reveal_phase_ended"
    message = "Reveal phase has ended"


class RevealPhaseNotEnded(PhaseViolation):
    code = "reveal_phase_not_ended"
    message = "Reveal phase has not ended yet"


class InvalidTopicState(PhaseViolation):
    code = "invalid_topic_state"
    message = "Topic is not in the correct state for this operation"


class AlreadyFinalized(PhaseViolation):
    code = "already_finalized"
    message = "Topic has already been finalized"


class AlreadySettled(PhaseViolation):
    code = "already_settled"
    message = "Topic has already been settled"


# --- Authorization ---

class UnauthorizedOracle(AuthorizationError):
    code = "unauthorized_oracle"
    message = "Unauthorized: only the oracle authority can call this"


class UnauthorizedAuthority(AuthorizationError):
    code = "unauthorized_authority"
    message = "Unauthorized: only the topic authority can call this"


# --- Integrity ---

class HashMismatch(IntegrityError):
    code = "hash_mismatch"
    message = "Commitment hash does not match the revealed values"


class AlreadyRevealed(IntegrityError):
    code = "already_revealed"
    message = "Commitment has already been revealed"


class NotRevealed(IntegrityError):
    code = "not_revealed"
    message = "Commitment has not been revealed"


class DuplicateCommitment(IntegrityError):
    code = "duplicate_commitment"
    message = "Participant has already committed to this topic"


class TopicExists(IntegrityError):
    code = "topic_exists"
    message = "Topic ID already exists"


class UnknownTopic(IntegrityError):
    code = "unknown_topic"
    message = "Unknown topic"


class UnknownCommitment(IntegrityError):
    code = "unknown_commitment"
    message = "No commitment for this participant"


# --- Validation ---

class ZeroStake(ValidationError):
    code = "zero_stake"
    message = "Stake amount must be greater than zero"


class StakeTooLow(ValidationError):
    code = "stake_too_low"
    message = "Stake amount is below the minimum required"


class DescriptionTooLong(ValidationError):
    code = "description_too_long"
    message = "Description too long (max 256 bytes)"


class SymbolTooLong(ValidationError):
    code = "symbol_too_long"
    message = "Symbol too long (max 32 bytes)"


class InvalidDeadlines(ValidationError):
    code = "invalid_deadlines"
    message = "Invalid deadline configuration"


class InvalidSalt(ValidationError):
    code = "invalid_salt"
    message = "Salt and commitment hash must be exactly 32 bytes"


# --- Resource ---

class ArithmeticOverflow(ResourceError):
    code = "arithmetic_overflow"
    message = "Arithmetic overflow in reward calculation"


class NoRevealedCommitments(ResourceError):
    code = "no_revealed_commitments"
    message = "No revealed commitments to settle"


class InsufficientFunds(ResourceError):
    code = "insufficient_funds"
    message = "Value transfer failed: insufficient funds"
