"""Data types for the dispute protocol.

Enums follow the on-chain ordering used by indexers so that
indices (``DisputeStatus.AWAITING_VERDICT.index == 2``) stay comparable
with indexer output. Records are plain dataclasses; the dispute engine is
their only writer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from tribunal.errors import InvalidCategory, InvalidEvidenceType, InvalidResolution


class _IndexedEnum(Enum):
    """Enum whose members also have a stable positional index."""

    @property
    def index(self) -> int:
        return list(type(self)).index(self)

    @classmethod
    def parse(cls, value: Any):
        """Accept a member, its value, its name, or its index."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            members = list(cls)
            if 0 <= value < len(members):
                return members[value]
            raise ValueError(value)
        if isinstance(value, str):
            key = value.strip()
            for member in cls:
                if key == member.value or key.upper() == member.name:
                    return member
            normalized = key.replace("-", "_").replace(" ", "_").lower()
            for member in cls:
                if normalized == member.value or normalized == member.name.lower().replace("_", ""):
                    return member
        raise ValueError(value)


class DisputeStatus(_IndexedEnum):
    """Lifecycle states. RESOLVED and CANCELLED are terminal."""
    CREATED = "created"
    EVIDENCE_SUBMISSION = "evidence_submission"
    AWAITING_VERDICT = "awaiting_verdict"
    VERDICT_DELIVERED = "verdict_delivered"
    APPEAL_PERIOD = "appeal_period"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"

    def is_terminal(self) -> bool:
        return self in (DisputeStatus.RESOLVED, DisputeStatus.CANCELLED)

    def accepts_evidence(self) -> bool:
        return self in (DisputeStatus.CREATED, DisputeStatus.EVIDENCE_SUBMISSION)


VALID_TRANSITIONS = {
    DisputeStatus.CREATED: {DisputeStatus.EVIDENCE_SUBMISSION, DisputeStatus.CANCELLED},
    DisputeStatus.EVIDENCE_SUBMISSION: {DisputeStatus.AWAITING_VERDICT},
    DisputeStatus.AWAITING_VERDICT: {DisputeStatus.VERDICT_DELIVERED},
    DisputeStatus.VERDICT_DELIVERED: {DisputeStatus.APPEAL_PERIOD, DisputeStatus.RESOLVED},
    DisputeStatus.APPEAL_PERIOD: {DisputeStatus.RESOLVED},
    DisputeStatus.RESOLVED: set(),
    DisputeStatus.CANCELLED: set(),
}


class Resolution(_IndexedEnum):
    NONE = "none"
    FAVOR_CLAIMANT = "favor_claimant"
    FAVOR_RESPONDENT = "favor_respondent"
    SPLIT = "split"
    DISMISSED = "dismissed"

    @property
    def is_decided(self) -> bool:
        return self is not Resolution.NONE

    @classmethod
    def decided(cls, value: Any) -> "Resolution":
        """Parse a verdict outcome; NONE and unknown values are rejected."""
        try:
            resolution = cls.parse(value)
        except ValueError:
            raise InvalidResolution(value) from None
        if not resolution.is_decided:
            raise InvalidResolution(value)
        return resolution


class DisputeCategory(_IndexedEnum):
    CONTRACT_BREACH = "contract_breach"
    SERVICE_QUALITY = "service_quality"
    PAYMENT_DISPUTE = "payment_dispute"
    INTELLECTUAL_PROPERTY = "intellectual_property"
    FRAUD_CLAIM = "fraud_claim"
    OTHER = "other"

    @classmethod
    def checked(cls, value: Any) -> "DisputeCategory":
        try:
            return cls.parse(value)
        except ValueError:
            raise InvalidCategory(value) from None


class EvidenceType(_IndexedEnum):
    DOCUMENT = "document"
    IMAGE = "image"
    VIDEO = "video"
    CONTRACT = "contract"
    COMMUNICATION = "communication"
    TRANSACTION = "transaction"
    OTHER = "other"

    @classmethod
    def checked(cls, value: Any) -> "EvidenceType":
        try:
            return cls.parse(value)
        except ValueError:
            raise InvalidEvidenceType(value) from None


class RequestStatus(_IndexedEnum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    FAILED = "failed"
    EXPIRED = "expired"

    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


# =============================================================================
# RECORDS
# =============================================================================

@dataclass
class AppealStake:
    """Escrowed appeal bond, held apart from the principal stakes."""
    dispute_id: int
    appellant: str
    amount: int
    lodged_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dispute_id": self.dispute_id,
            "appellant": self.appellant,
            "amount": self.amount,
            "lodged_at": self.lodged_at,
        }


@dataclass
class Verdict:
    """An oracle verdict as applied to a dispute."""
    dispute_id: int
    request_id: str
    resolution: Resolution
    confidence: int
    reasoning_ref: str
    delivered_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dispute_id": self.dispute_id,
            "request_id": self.request_id,
            "resolution": self.resolution.value,
            "confidence": self.confidence,
            "reasoning_ref": self.reasoning_ref,
            "delivered_at": self.delivered_at,
        }


@dataclass
class Dispute:
    """The central entity. Parties and economic terms never change after creation."""
    dispute_id: int
    claimant: str
    respondent: str
    category: DisputeCategory
    description_ref: str
    stake_asset: str
    stake_amount: int
    fee_bps: int
    created_at: int
    evidence_deadline: int
    status: DisputeStatus = DisputeStatus.CREATED
    appeal_deadline: int = 0
    resolution: Resolution = Resolution.NONE
    confidence_score: Optional[int] = None
    appealed: bool = False
    appeal: Optional[AppealStake] = None
    verdict: Optional[Verdict] = None
    respondent_funded: bool = False
    request_ids: List[str] = field(default_factory=list)
    closed_at: Optional[int] = None

    def is_party(self, identity: str) -> bool:
        return identity in (self.claimant, self.respondent)

    @property
    def total_pool(self) -> int:
        return 2 * self.stake_amount

    @property
    def current_request_id(self) -> Optional[str]:
        return self.request_ids[-1] if self.request_ids else None

    def to_dict(self, currency: Any = None) -> Dict[str, Any]:
        """Serialize; with the stake currency, amounts also get decimal strings."""
        data = {
            "id": self.dispute_id,
            "claimant": self.claimant,
            "respondent": self.respondent,
            "category": self.category.value,
            "description_ref": self.description_ref,
            "stake_asset": self.stake_asset,
            "stake_amount": self.stake_amount,
            "fee_bps": self.fee_bps,
            "created_at": self.created_at,
            "evidence_deadline": self.evidence_deadline,
            "appeal_deadline": self.appeal_deadline,
            "status": self.status.value,
            "resolution": self.resolution.value,
            "confidence_score": self.confidence_score,
            "appealed": self.appealed,
            "appeal": self.appeal.to_dict() if self.appeal else None,
            "respondent_funded": self.respondent_funded,
            "request_ids": list(self.request_ids),
            "closed_at": self.closed_at,
        }
        if currency is not None:
            data["display"] = {
                "stake_amount": currency.format(self.stake_amount),
                "total_pool": currency.format(self.total_pool),
                "appeal_stake": currency.format(self.appeal.amount) if self.appeal else None,
            }
        return data


@dataclass(frozen=True)
class Evidence:
    """One submitted content reference. Never mutated or deleted."""
    evidence_id: int
    dispute_id: int
    submitter: str
    content_ref: str
    type_tag: EvidenceType
    submitted_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evidence_id": self.evidence_id,
            "dispute_id": self.dispute_id,
            "submitter": self.submitter,
            "content_ref": self.content_ref,
            "type_tag": self.type_tag.value,
            "submitted_at": self.submitted_at,
        }


@dataclass
class OracleRequest:
    """Bridges a dispute to one attempt at the external verdict process."""
    request_id: str
    dispute_id: int
    created_at: int
    expires_at: int
    status: RequestStatus = RequestStatus.PENDING
    terminated_at: Optional[int] = None
    failure_reason: Optional[str] = None

    def is_expired_at(self, now: int) -> bool:
        # Deliverable up to and including expires_at.
        return now > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "dispute_id": self.dispute_id,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "status": self.status.value,
            "terminated_at": self.terminated_at,
            "failure_reason": self.failure_reason,
        }
