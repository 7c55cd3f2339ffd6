"""
Read models re-derived from dispute events.

These never look at engine state; given the same event history they
always produce the same view, so they can be rebuilt from an EventStore
at any time and compared against the engine.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set

from tribunal.events import (
    DisputeAccepted,
    DisputeAppealed,
    DisputeCancelled,
    DisputeCreated,
    DisputeResolved,
    Event,
    EvidenceSubmitted,
    OracleRequestExpired,
    OracleRequestFailed,
    Projection,
    VerdictReceived,
    VerdictRequested,
)
from tribunal.types import DisputeStatus, Resolution

SECONDS_PER_DAY = 86_400


def _amounts() -> Dict[str, int]:
    return defaultdict(int)


@dataclass
class DailyStats:
    date: int
    disputes_created: int = 0
    disputes_resolved: int = 0
    disputes_cancelled: int = 0
    evidence_submitted: int = 0
    verdicts_delivered: int = 0
    appeals: int = 0
    volume_created: Dict[str, int] = field(default_factory=_amounts)
    volume_resolved: Dict[str, int] = field(default_factory=_amounts)
    platform_fees: Dict[str, int] = field(default_factory=_amounts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "disputes_created": self.disputes_created,
            "disputes_resolved": self.disputes_resolved,
            "disputes_cancelled": self.disputes_cancelled,
            "evidence_submitted": self.evidence_submitted,
            "verdicts_delivered": self.verdicts_delivered,
            "appeals": self.appeals,
            "volume_created": dict(self.volume_created),
            "volume_resolved": dict(self.volume_resolved),
            "platform_fees": dict(self.platform_fees),
        }


@dataclass
class CategoryStats:
    category: str
    created: int = 0
    resolved: int = 0
    claimant_wins: int = 0
    respondent_wins: int = 0
    splits: int = 0
    dismissed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class PartyStats:
    identity: str
    total_disputes: int = 0
    disputes_won: int = 0
    disputes_lost: int = 0
    value_disputed: Dict[str, int] = field(default_factory=_amounts)
    value_won: Dict[str, int] = field(default_factory=_amounts)
    value_lost: Dict[str, int] = field(default_factory=_amounts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": self.identity,
            "total_disputes": self.total_disputes,
            "disputes_won": self.disputes_won,
            "disputes_lost": self.disputes_lost,
            "value_disputed": dict(self.value_disputed),
            "value_won": dict(self.value_won),
            "value_lost": dict(self.value_lost),
        }


@dataclass
class _DisputeSummary:
    claimant: str
    respondent: str
    category: str
    asset: str
    stake_amount: int
    locked: int


class ProtocolStatsProjection(Projection):
    """Platform totals, per-day buckets, per-category and per-party stats."""

    def __init__(self):
        super().__init__()
        self.reset()

    def reset(self) -> None:
        self.disputes_created = 0
        self.active_disputes = 0
        self.resolved_disputes = 0
        self.cancelled_disputes = 0
        self.evidence_submitted = 0
        self.verdicts_delivered = 0
        self.appeals = 0
        self.failed_requests = 0
        self.expired_requests = 0
        self.value_locked: Dict[str, int] = _amounts()
        self.volume_processed: Dict[str, int] = _amounts()
        self.platform_fees: Dict[str, int] = _amounts()
        self.appeal_stakes_forfeited: Dict[str, int] = _amounts()
        self.daily: Dict[int, DailyStats] = {}
        self.categories: Dict[str, CategoryStats] = {}
        self.parties: Dict[str, PartyStats] = {}
        self._disputes: Dict[int, _DisputeSummary] = {}

    def _day(self, event: Event) -> DailyStats:
        day = event.occurred_at // SECONDS_PER_DAY * SECONDS_PER_DAY
        if day not in self.daily:
            self.daily[day] = DailyStats(date=day)
        return self.daily[day]

    def _party(self, identity: str) -> PartyStats:
        if identity not in self.parties:
            self.parties[identity] = PartyStats(identity=identity)
        return self.parties[identity]

    def _category(self, category: str) -> CategoryStats:
        if category not in self.categories:
            self.categories[category] = CategoryStats(category=category)
        return self.categories[category]

    def handle_event(self, event: Event) -> None:
        if isinstance(event, DisputeCreated):
            self._on_created(event)
        elif isinstance(event, DisputeAccepted):
            summary = self._disputes.get(event.dispute_id)
            if summary:
                summary.locked += event.stake_amount
                self.value_locked[summary.asset] += event.stake_amount
                self._party(summary.respondent).value_disputed[summary.asset] += event.stake_amount
        elif isinstance(event, EvidenceSubmitted):
            self.evidence_submitted += 1
            self._day(event).evidence_submitted += 1
        elif isinstance(event, VerdictReceived):
            self.verdicts_delivered += 1
            self._day(event).verdicts_delivered += 1
        elif isinstance(event, DisputeAppealed):
            self.appeals += 1
            self._day(event).appeals += 1
            summary = self._disputes.get(event.dispute_id)
            if summary:
                summary.locked += event.appeal_stake
                self.value_locked[summary.asset] += event.appeal_stake
        elif isinstance(event, OracleRequestFailed):
            self.failed_requests += 1
        elif isinstance(event, OracleRequestExpired):
            self.expired_requests += 1
        elif isinstance(event, DisputeResolved):
            self._on_resolved(event)
        elif isinstance(event, DisputeCancelled):
            self.cancelled_disputes += 1
            self.active_disputes -= 1
            self._day(event).disputes_cancelled += 1
            summary = self._disputes.get(event.dispute_id)
            if summary:
                self.value_locked[summary.asset] -= summary.locked
                summary.locked = 0

    def _on_created(self, event: DisputeCreated) -> None:
        asset = event.stake_asset
        self._disputes[event.dispute_id] = _DisputeSummary(
            claimant=event.claimant,
            respondent=event.respondent,
            category=event.category,
            asset=asset,
            stake_amount=event.stake_amount,
            locked=event.stake_amount,
        )
        self.disputes_created += 1
        self.active_disputes += 1
        self.value_locked[asset] += event.stake_amount
        day = self._day(event)
        day.disputes_created += 1
        day.volume_created[asset] += event.stake_amount
        self._category(event.category).created += 1
        claimant = self._party(event.claimant)
        claimant.total_disputes += 1
        claimant.value_disputed[asset] += event.stake_amount
        self._party(event.respondent).total_disputes += 1

    def _on_resolved(self, event: DisputeResolved) -> None:
        asset = event.stake_asset
        self.resolved_disputes += 1
        self.active_disputes -= 1
        self.volume_processed[asset] += event.total_pool
        self.platform_fees[asset] += event.platform_fee
        day = self._day(event)
        day.disputes_resolved += 1
        day.volume_resolved[asset] += event.total_pool
        day.platform_fees[asset] += event.platform_fee

        summary = self._disputes.get(event.dispute_id)
        if summary is None:
            return
        self.value_locked[asset] -= summary.locked
        summary.locked = 0
        if event.appeal_stake:
            self.appeal_stakes_forfeited[asset] += event.appeal_stake

        category = self._category(summary.category)
        category.resolved += 1
        claimant = self._party(summary.claimant)
        respondent = self._party(summary.respondent)
        if event.resolution == Resolution.FAVOR_CLAIMANT.value:
            category.claimant_wins += 1
            claimant.disputes_won += 1
            claimant.value_won[asset] += event.claimant_payout
            respondent.disputes_lost += 1
            respondent.value_lost[asset] += summary.stake_amount
        elif event.resolution == Resolution.FAVOR_RESPONDENT.value:
            category.respondent_wins += 1
            respondent.disputes_won += 1
            respondent.value_won[asset] += event.respondent_payout
            claimant.disputes_lost += 1
            claimant.value_lost[asset] += summary.stake_amount
        elif event.resolution == Resolution.SPLIT.value:
            category.splits += 1
        elif event.resolution == Resolution.DISMISSED.value:
            category.dismissed += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "disputes_created": self.disputes_created,
            "active_disputes": self.active_disputes,
            "resolved_disputes": self.resolved_disputes,
            "cancelled_disputes": self.cancelled_disputes,
            "evidence_submitted": self.evidence_submitted,
            "verdicts_delivered": self.verdicts_delivered,
            "appeals": self.appeals,
            "failed_requests": self.failed_requests,
            "expired_requests": self.expired_requests,
            "value_locked": {k: v for k, v in self.value_locked.items() if v},
            "volume_processed": dict(self.volume_processed),
            "platform_fees": dict(self.platform_fees),
            "appeal_stakes_forfeited": dict(self.appeal_stakes_forfeited),
            "daily": [self.daily[d].to_dict() for d in sorted(self.daily)],
            "categories": {k: v.to_dict() for k, v in sorted(self.categories.items())},
        }


class DisputeIndexProjection(Projection):
    """Status per dispute and dispute ids per party, from events alone."""

    def __init__(self):
        super().__init__()
        self.reset()

    def reset(self) -> None:
        self.status: Dict[int, DisputeStatus] = {}
        self.by_party: Dict[str, List[int]] = defaultdict(list)
        self.evidence_count: Dict[int, int] = defaultdict(int)
        self.open_requests: Dict[int, Set[str]] = defaultdict(set)

    def handle_event(self, event: Event) -> None:
        if isinstance(event, DisputeCreated):
            self.status[event.dispute_id] = DisputeStatus.CREATED
            self.by_party[event.claimant].append(event.dispute_id)
            self.by_party[event.respondent].append(event.dispute_id)
        elif isinstance(event, DisputeAccepted):
            self.status[event.dispute_id] = DisputeStatus.EVIDENCE_SUBMISSION
        elif isinstance(event, EvidenceSubmitted):
            self.evidence_count[event.dispute_id] += 1
        elif isinstance(event, VerdictRequested):
            self.open_requests[event.dispute_id].add(event.request_id)
            self.status[event.dispute_id] = DisputeStatus.AWAITING_VERDICT
        elif isinstance(event, VerdictReceived):
            self.open_requests[event.dispute_id].discard(event.request_id)
            self.status[event.dispute_id] = DisputeStatus.VERDICT_DELIVERED
        elif isinstance(event, (OracleRequestFailed, OracleRequestExpired)):
            self.open_requests[event.dispute_id].discard(event.request_id)
        elif isinstance(event, DisputeAppealed):
            self.status[event.dispute_id] = DisputeStatus.APPEAL_PERIOD
        elif isinstance(event, DisputeResolved):
            self.status[event.dispute_id] = DisputeStatus.RESOLVED
            self.open_requests.pop(event.dispute_id, None)
        elif isinstance(event, DisputeCancelled):
            self.status[event.dispute_id] = DisputeStatus.CANCELLED

    def disputes_of(self, identity: str) -> List[int]:
        return list(self.by_party.get(identity, []))
