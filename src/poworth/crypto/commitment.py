"""Commit-reveal hiding commitments.

    commitment = keccak256(prediction_i64_le || salt[32] || participant)

The prediction is packed as an 8-byte little-endian signed integer and
the participant identity as its UTF-8 bytes. Binding the participant
into the preimage stops one participant's revealed preimage from being
replayed by another. The random salt stops brute-forcing a small
prediction domain.

Keccak-256 (not NIST SHA3-256) is used so commitments produced by
existing Ethereum-style clients verify unchanged.
"""

from __future__ import annotations

import hmac
import secrets
import struct

from eth_utils import keccak

from poworth.errors import ArithmeticOverflow, HashMismatch, InvalidSalt
from poworth.fixed_point import I64_MAX, I64_MIN
from poworth.models.topic import HASH_BYTES, SALT_BYTES


def generate_salt() -> bytes:
    """Return 32 bytes of cryptographic randomness for a new commitment."""
    return secrets.token_bytes(SALT_BYTES)


def _preimage(prediction: int, salt: bytes, participant: str) -> bytes:
    if not I64_MIN <= prediction <= I64_MAX:
        raise ArithmeticOverflow(f"prediction does not fit in i64: {prediction}")
    if len(salt) != SALT_BYTES:
        raise InvalidSalt(f"salt is {len(salt)} bytes")
    return struct.pack("<q", prediction) + bytes(salt) + participant.encode("utf-8")


def compute_commitment(prediction: int, salt: bytes, participant: str) -> bytes:
    """Compute the 32-byte commitment hash for (prediction, salt, participant)."""
    return keccak(_preimage(prediction, salt, participant))


def verify_commitment(
    commitment_hash: bytes,
    prediction: int,
    salt: bytes,
    participant: str,
) -> None:
    """Raise HashMismatch unless the revealed values reproduce commitment_hash."""
    if len(commitment_hash) != HASH_BYTES:
        raise InvalidSalt(f"commitment hash is {len(commitment_hash)} bytes")
    computed = compute_commitment(prediction, salt, participant)
    if not hmac.compare_digest(computed, bytes(commitment_hash)):
        raise HashMismatch(f"participant {participant}")


def matches_commitment(
    commitment_hash: bytes,
    prediction: int,
    salt: bytes,
    participant: str,
) -> bool:
    """Boolean form of verify_commitment."""
    try:
        verify_commitment(commitment_hash, prediction, salt, participant)
    except HashMismatch:
        return False
    return True
