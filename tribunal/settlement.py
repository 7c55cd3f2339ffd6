"""
Payout computation for finalization.

Everything here is pure integer arithmetic over base units. A PayoutPlan is
computed in full before any balance moves; the ledger executes it only if
it sums exactly to what the dispute has in escrow.

Resolution -> payout (distributable = total pool - platform fee):

    FAVOR_CLAIMANT     claimant gets all of distributable
    FAVOR_RESPONDENT   respondent gets all of distributable
    SPLIT              claimant floor(distributable / 2), respondent the rest
    DISMISSED          each party gets its stake back minus half the fee;
                       the claimant bears floor(fee / 2), the respondent the rest
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple

from tribunal.currencies import BPS_DENOMINATOR
from tribunal.errors import InvalidResolution
from tribunal.types import Dispute, Resolution

DEFAULT_APPEAL_STAKE_BPS = 1_000


class TransferReason(Enum):
    CLAIMANT_PAYOUT = "claimant_payout"
    RESPONDENT_PAYOUT = "respondent_payout"
    PLATFORM_FEE = "platform_fee"
    APPEAL_STAKE = "appeal_stake"
    REFUND = "refund"


@dataclass(frozen=True)
class Transfer:
    recipient: str
    amount: int
    reason: TransferReason

    def to_dict(self) -> Dict[str, Any]:
        return {"recipient": self.recipient, "amount": self.amount, "reason": self.reason.value}


@dataclass(frozen=True)
class PayoutPlan:
    """Immutable list of releases that together empty a dispute's escrow."""
    dispute_id: int
    asset: str
    resolution: Resolution
    total_pool: int
    platform_fee: int
    claimant: str
    claimant_payout: int
    respondent: str
    respondent_payout: int
    treasury: str
    appeal_stake: int = 0

    @property
    def distributable(self) -> int:
        return self.total_pool - self.platform_fee

    @property
    def transfers(self) -> Tuple[Transfer, ...]:
        items = [
            Transfer(self.claimant, self.claimant_payout, TransferReason.CLAIMANT_PAYOUT),
            Transfer(self.respondent, self.respondent_payout, TransferReason.RESPONDENT_PAYOUT),
            Transfer(self.treasury, self.platform_fee, TransferReason.PLATFORM_FEE),
        ]
        if self.appeal_stake:
            items.append(Transfer(self.treasury, self.appeal_stake, TransferReason.APPEAL_STAKE))
        return tuple(t for t in items if t.amount > 0)

    @property
    def total(self) -> int:
        return self.claimant_payout + self.respondent_payout + self.platform_fee + self.appeal_stake

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dispute_id": self.dispute_id,
            "asset": self.asset,
            "resolution": self.resolution.value,
            "total_pool": self.total_pool,
            "platform_fee": self.platform_fee,
            "distributable": self.distributable,
            "claimant": self.claimant,
            "claimant_payout": self.claimant_payout,
            "respondent": self.respondent,
            "respondent_payout": self.respondent_payout,
            "treasury": self.treasury,
            "appeal_stake": self.appeal_stake,
            "transfers": [t.to_dict() for t in self.transfers],
        }


def platform_fee(total_pool: int, fee_bps: int) -> int:
    return total_pool * fee_bps // BPS_DENOMINATOR


def required_appeal_stake(total_pool: int, appeal_stake_bps: int = DEFAULT_APPEAL_STAKE_BPS) -> int:
    """Minimum appeal tender: ``appeal_stake_bps`` of the total pool."""
    return total_pool * appeal_stake_bps // BPS_DENOMINATOR


def party_payouts(resolution: Resolution, stake_amount: int, fee: int) -> Tuple[int, int]:
    """Return (claimant, respondent) payouts for a decided resolution."""
    distributable = 2 * stake_amount - fee
    if resolution is Resolution.FAVOR_CLAIMANT:
        return distributable, 0
    if resolution is Resolution.FAVOR_RESPONDENT:
        return 0, distributable
    if resolution is Resolution.SPLIT:
        half = distributable // 2
        return half, distributable - half
    if resolution is Resolution.DISMISSED:
        claimant_share = fee // 2
        return stake_amount - claimant_share, stake_amount - (fee - claimant_share)
    raise InvalidResolution(resolution)


def compute_payout_plan(dispute: Dispute, treasury: str) -> PayoutPlan:
    """Compute the full finalization plan for a dispute with a verdict.

    An appeal stake, if any, is forfeited to the treasury whatever the outcome.
    """
    if not dispute.resolution.is_decided:
        raise InvalidResolution(dispute.resolution)

    total_pool = dispute.total_pool
    fee = platform_fee(total_pool, dispute.fee_bps)
    claimant_payout, respondent_payout = party_payouts(dispute.resolution, dispute.stake_amount, fee)

    appeal_amount = dispute.appeal.amount if dispute.appeal is not None else 0

    return PayoutPlan(
        dispute_id=dispute.dispute_id,
        asset=dispute.stake_asset,
        resolution=dispute.resolution,
        total_pool=total_pool,
        platform_fee=fee,
        claimant=dispute.claimant,
        claimant_payout=claimant_payout,
        respondent=dispute.respondent,
        respondent_payout=respondent_payout,
        treasury=treasury,
        appeal_stake=appeal_amount,
    )
