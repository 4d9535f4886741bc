"""Payout distributor — turns scores into vault transfers.

Payout rules (loser_pool = Σ stake of unrevealed commitments):
    revealed, total_score > 0   → stake + floor(loser_pool × score / total_score)
    revealed, total_score == 0  → stake (refund, no bonus, no penalty)
    unrevealed                  → 0 (stake forfeited)

Shortfall handling:
    distributable = vault_balance − reserve
    if Σ payout > distributable, every payout is scaled by
    distributable / Σ payout (floor) — a proportional haircut, never
    first-come-first-served.

After all participants are paid, whatever remains above the reserve is
swept to the topic authority as the protocol fee.

plan() is pure. execute() moves value through a TransferBatch so a
failed transfer reverses everything already sent.
"""

from __future__ import annotations

import logging
from typing import Optional

from poworth.fixed_point import checked_u128, checked_u64
from poworth.ledger.transfer import TransferBatch, ValueTransfer
from poworth.models.settlement import (
    ConsensusResult,
    PayoutInstruction,
    ScoringResult,
    SettlementPlan,
    SettlementReport,
)


logger = logging.getLogger("poworth.settlement.distributor")


class PayoutDistributor:
    """Computes and executes settlement payouts.

    Usage:
        plan = PayoutDistributor.plan(topic_id, truth, consensus, scoring,
                                      vault_balance=35, reserve=0)
        report = PayoutDistributor.execute(plan, ledger, "vault:1", "alice")
    """

    @staticmethod
    def gross_payout(stake: int, score: int, revealed: bool, loser_pool: int, total_score: int) -> int:
        if not revealed:
            return 0
        if total_score == 0:
            return stake
        bonus = checked_u128(loser_pool * score) // total_score
        return checked_u64(stake + bonus)

    @staticmethod
    def plan(
        topic_id: int,
        truth_value: int,
        consensus: ConsensusResult,
        scoring: ScoringResult,
        vault_balance: int,
        reserve: int,
    ) -> SettlementPlan:
        loser_pool = consensus.unrevealed_stake
        total_score = scoring.total_score

        gross: list[int] = []
        total_gross = 0
        for s in scoring.scores:
            amount = PayoutDistributor.gross_payout(
                s.stake, s.score, s.revealed, loser_pool, total_score,
            )
            total_gross = checked_u64(total_gross + amount)
            gross.append(amount)

        distributable = max(0, vault_balance - reserve)
        scaled = total_gross > distributable and total_gross > 0
        if scaled:
            logger.warning(
                "Topic %s payouts %s exceed distributable %s; scaling proportionally",
                topic_id, total_gross, distributable,
            )

        instructions: list[PayoutInstruction] = []
        for s, amount in zip(scoring.scores, gross):
            if scaled:
                payout = checked_u128(amount * distributable) // total_gross
            else:
                payout = amount
            instructions.append(PayoutInstruction(
                participant=s.participant,
                stake=s.stake,
                score=s.score,
                gross_payout=amount,
                payout=payout,
            ))

        return SettlementPlan(
            topic_id=topic_id,
            truth_value=truth_value,
            consensus=consensus.consensus,
            truth_edge_pct=scoring.truth_edge_pct,
            total_score=total_score,
            loser_pool=loser_pool,
            vault_balance=vault_balance,
            reserve=reserve,
            distributable=distributable,
            total_gross_payout=total_gross,
            scaled=scaled,
            instructions=instructions,
        )

    @staticmethod
    def execute(
        plan: SettlementPlan,
        ledger: ValueTransfer,
        vault: str,
        fee_recipient: str,
        batch: Optional[TransferBatch] = None,
    ) -> SettlementReport:
        """Send every payout, then sweep the remainder above the reserve.

        Each transfer is capped by the live vault balance above the
        reserve. On any failure the batch reverses what was sent and the
        error propagates.
        """
        own_batch = batch is None
        if batch is None:
            batch = TransferBatch(ledger)

        payouts: dict[str, int] = {}
        try:
            for instruction in plan.instructions:
                sent = 0
                if instruction.payout > 0:
                    available = max(0, ledger.balance(vault) - plan.reserve)
                    sent = min(instruction.payout, available)
                    if sent > 0:
                        batch.send(vault, instruction.participant, sent)
                payouts[instruction.participant] = sent

            fee = max(0, ledger.balance(vault) - plan.reserve)
            if fee > 0:
                batch.send(vault, fee_recipient, fee)
        except Exception:
            if own_batch:
                batch.rollback()
            raise

        return SettlementReport(
            topic_id=plan.topic_id,
            consensus=plan.consensus,
            truth_value=plan.truth_value,
            loser_pool=plan.loser_pool,
            reserve=plan.reserve,
            scaled=plan.scaled,
            payouts=payouts,
            protocol_fee=fee,
            fee_recipient=fee_recipient,
        )
