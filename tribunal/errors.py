"""
Tribunal Error Taxonomy

Every failure raised by the protocol is a TribunalError carrying:

    kind      One of ErrorKind (validation, state, timing, integrity,
              authorization). Callers branch on the kind to decide whether
              a retry with corrected input can succeed.
    code      Stable snake_case identifier of the violated guard.
    details   The minimal data explaining the failure (required vs given
              amount, expected vs actual status, ...).

Guards fail fast and before any mutation, so catching one of these leaves
the platform exactly as it was before the call. Integrity errors indicate
a bug rather than a usage error; they are raised before balances move.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Discriminable failure families."""
    VALIDATION = "validation"
    STATE = "state"
    TIMING = "timing"
    INTEGRITY = "integrity"
    AUTHORIZATION = "authorization"


class TribunalError(Exception):
    """Base class for all protocol failures."""

    kind: ErrorKind = ErrorKind.VALIDATION
    code: str = "tribunal_error"

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details: Dict[str, Any] = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "details": {k: str(v) if not isinstance(v, (int, str, bool, type(None))) else v
                        for k, v in self.details.items()},
        }


class ValidationError(TribunalError):
    """Caller supplied bad input; retrying with corrected input can succeed."""
    kind = ErrorKind.VALIDATION
    code = "validation_error"


class StateError(TribunalError):
    """Action attempted in the wrong lifecycle state."""
    kind = ErrorKind.STATE
    code = "state_error"


class TimingError(TribunalError):
    """A deadline has passed, or has not passed yet."""
    kind = ErrorKind.TIMING
    code = "timing_error"


class IntegrityError(TribunalError):
    """An internal invariant would be broken. Indicates a bug."""
    kind = ErrorKind.INTEGRITY
    code = "integrity_error"


class AuthorizationError(TribunalError):
    """Caller lacks the role or capability the action requires."""
    kind = ErrorKind.AUTHORIZATION
    code = "authorization_error"


# =============================================================================
# VALIDATION
# =============================================================================

class DisputeNotFound(ValidationError):
    code = "dispute_not_found"

    def __init__(self, dispute_id: int):
        super().__init__(f"Dispute {dispute_id} does not exist", dispute_id=dispute_id)


class RequestNotFound(ValidationError):
    code = "request_not_found"

    def __init__(self, request_id: str):
        super().__init__(f"Oracle request {request_id} does not exist", request_id=request_id)


class AmountOutOfBounds(ValidationError):
    code = "amount_out_of_bounds"

    def __init__(self, amount: int, minimum: int, maximum: int):
        direction = "too low" if amount < minimum else "too high"
        super().__init__(
            f"Amount {direction}: {amount} not within [{minimum}, {maximum}]",
            amount=amount, minimum=minimum, maximum=maximum,
        )


class InvalidRespondent(ValidationError):
    code = "invalid_respondent"

    def __init__(self, respondent: str, reason: str):
        super().__init__(f"Invalid respondent {respondent!r}: {reason}", respondent=respondent, reason=reason)


class InvalidIdentity(ValidationError):
    code = "invalid_identity"

    def __init__(self, role: str, identity: Any):
        super().__init__(f"{role} must not be the null identity", role=role, identity=identity)


class InsufficientFunds(ValidationError):
    """Tendered amount does not exactly equal the required amount."""
    code = "insufficient_funds"

    def __init__(self, required: int, given: int):
        super().__init__(f"Must tender exactly {required}, got {given}", required=required, given=given)


class InsufficientAppealStake(ValidationError):
    code = "insufficient_appeal_stake"

    def __init__(self, required: int, given: int):
        super().__init__(f"Appeal stake must be at least {required}, got {given}", required=required, given=given)


class DuplicateContent(ValidationError):
    code = "duplicate_content"

    def __init__(self, content_ref: str):
        super().__init__(f"Evidence content already submitted: {content_ref}", content_ref=content_ref)


class CapacityExceeded(ValidationError):
    code = "capacity_exceeded"

    def __init__(self, dispute_id: int, cap: int):
        super().__init__(f"Dispute {dispute_id} already holds the maximum of {cap} evidence items",
                         dispute_id=dispute_id, cap=cap)


class UnsupportedCurrency(ValidationError):
    code = "unsupported_currency"

    def __init__(self, asset: str):
        super().__init__(f"Currency not supported: {asset}", asset=asset)


class InvalidCurrencyConfig(ValidationError):
    code = "invalid_currency_config"

    def __init__(self, asset: str, reason: str):
        super().__init__(f"Invalid configuration for {asset}: {reason}", asset=asset, reason=reason)


class InvalidResolution(ValidationError):
    code = "invalid_resolution"

    def __init__(self, resolution: Any):
        super().__init__(f"Resolution must be a decided outcome, got {resolution!r}", resolution=resolution)


class InvalidConfidence(ValidationError):
    code = "invalid_confidence"

    def __init__(self, confidence: Any):
        super().__init__(f"Confidence must be an integer in [0, 100], got {confidence!r}", confidence=confidence)


class InvalidCategory(ValidationError):
    code = "invalid_category"

    def __init__(self, category: Any):
        super().__init__(f"Unknown dispute category: {category!r}", category=category)


class InvalidEvidenceType(ValidationError):
    code = "invalid_evidence_type"

    def __init__(self, type_tag: Any):
        super().__init__(f"Unknown evidence type: {type_tag!r}", type_tag=type_tag)


class InvalidContentRef(ValidationError):
    code = "invalid_content_ref"

    def __init__(self, content_ref: Any):
        super().__init__(f"Content reference must be a non-empty string, got {content_ref!r}",
                         content_ref=content_ref)


# =============================================================================
# STATE
# =============================================================================

class PlatformPaused(StateError):
    code = "platform_paused"

    def __init__(self):
        super().__init__("Dispute creation is paused")


class _StatusGuard(StateError):
    """A guard that names the action and the status it found."""

    def __init__(self, message: str, dispute_id: int, status: Any):
        status_name = getattr(status, "name", status)
        super().__init__(f"{message} (dispute {dispute_id} is {status_name})",
                         dispute_id=dispute_id, status=status_name)


class NotAwaitingAcceptance(_StatusGuard):
    code = "not_awaiting_acceptance"

    def __init__(self, dispute_id: int, status: Any):
        super().__init__("Dispute can no longer be accepted", dispute_id, status)


class CannotCancel(_StatusGuard):
    code = "cannot_cancel"

    def __init__(self, dispute_id: int, status: Any):
        super().__init__("Only a dispute that was never accepted can be cancelled", dispute_id, status)


class EvidenceStageOver(_StatusGuard):
    code = "evidence_stage_over"

    def __init__(self, dispute_id: int, status: Any):
        super().__init__("Dispute no longer accepts evidence", dispute_id, status)


class VerdictNotRequestable(_StatusGuard):
    code = "verdict_not_requestable"

    def __init__(self, dispute_id: int, status: Any):
        super().__init__("A verdict can only be requested during evidence submission", dispute_id, status)


class NotAwaitingVerdict(_StatusGuard):
    code = "not_awaiting_verdict"

    def __init__(self, dispute_id: int, status: Any):
        super().__init__("Dispute is not waiting for this verdict", dispute_id, status)


class VerdictRequestPending(StateError):
    code = "verdict_request_pending"

    def __init__(self, dispute_id: int, request_id: str):
        super().__init__(f"Dispute {dispute_id} already has a pending oracle request {request_id}",
                         dispute_id=dispute_id, request_id=request_id)


class RequestAlreadyTerminal(StateError):
    code = "request_already_terminal"

    def __init__(self, request_id: str, status: Any):
        status_name = getattr(status, "name", status)
        super().__init__(f"Oracle request {request_id} is already {status_name}",
                         request_id=request_id, status=status_name)


class NotAppealable(_StatusGuard):
    code = "not_appealable"

    def __init__(self, dispute_id: int, status: Any):
        super().__init__("Only a delivered verdict can be appealed", dispute_id, status)


class AlreadyAppealed(StateError):
    code = "already_appealed"

    def __init__(self, dispute_id: int):
        super().__init__(f"Dispute {dispute_id} has already been appealed", dispute_id=dispute_id)


class NotFinalizable(_StatusGuard):
    code = "not_finalizable"

    def __init__(self, dispute_id: int, status: Any):
        super().__init__("Dispute has no verdict to finalize", dispute_id, status)


# =============================================================================
# TIMING
# =============================================================================

class WindowClosed(TimingError):
    code = "window_closed"

    def __init__(self, dispute_id: int, deadline: int, now: int):
        super().__init__(f"Evidence deadline passed for dispute {dispute_id}",
                         dispute_id=dispute_id, deadline=deadline, now=now)


class EvidenceWindowActive(TimingError):
    code = "evidence_window_active"

    def __init__(self, dispute_id: int, deadline: int, now: int, evidence_count: int):
        super().__init__(
            f"Evidence window for dispute {dispute_id} still open and only {evidence_count} item(s) submitted",
            dispute_id=dispute_id, deadline=deadline, now=now, evidence_count=evidence_count,
        )


class AppealWindowClosed(TimingError):
    code = "appeal_window_closed"

    def __init__(self, dispute_id: int, deadline: int, now: int):
        super().__init__(f"Appeal period ended for dispute {dispute_id}",
                         dispute_id=dispute_id, deadline=deadline, now=now)


class AppealWindowActive(TimingError):
    code = "appeal_window_active"

    def __init__(self, dispute_id: int, deadline: int, now: int):
        super().__init__(f"Appeal period active for dispute {dispute_id}",
                         dispute_id=dispute_id, deadline=deadline, now=now)


class RequestExpired(TimingError):
    code = "request_expired"

    def __init__(self, request_id: str, expires_at: int, now: int):
        super().__init__(f"Oracle request {request_id} timed out", request_id=request_id,
                         expires_at=expires_at, now=now)


class RequestNotExpired(TimingError):
    code = "request_not_expired"

    def __init__(self, request_id: str, expires_at: int, now: int):
        super().__init__(f"Oracle request {request_id} has not timed out yet", request_id=request_id,
                         expires_at=expires_at, now=now)


# =============================================================================
# INTEGRITY
# =============================================================================

class LedgerUnderflow(IntegrityError):
    code = "ledger_underflow"

    def __init__(self, dispute_id: int, requested: int, available: int):
        super().__init__(f"Release of {requested} exceeds {available} escrowed for dispute {dispute_id}",
                         dispute_id=dispute_id, requested=requested, available=available)


class PayoutPlanMismatch(IntegrityError):
    code = "payout_plan_mismatch"

    def __init__(self, dispute_id: int, planned: int, escrowed: int):
        super().__init__(f"Payout plan for dispute {dispute_id} moves {planned} but {escrowed} is escrowed",
                         dispute_id=dispute_id, planned=planned, escrowed=escrowed)


class CurrencyMismatch(IntegrityError):
    code = "currency_mismatch"

    def __init__(self, dispute_id: int, expected: str, actual: str):
        super().__init__(f"Dispute {dispute_id} escrows {expected}, not {actual}",
                         dispute_id=dispute_id, expected=expected, actual=actual)


class InvariantViolation(IntegrityError):
    code = "invariant_violation"


class ClockRegression(IntegrityError):
    code = "clock_regression"

    def __init__(self, last: int, now: int):
        super().__init__(f"Clock moved backwards from {last} to {now}", last=last, now=now)


# =============================================================================
# AUTHORIZATION
# =============================================================================

class Unauthorized(AuthorizationError):
    code = "unauthorized"

    def __init__(self, identity: str, capability: str, reason: Optional[str] = None):
        message = f"{identity} lacks capability {capability}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, identity=identity, capability=capability)


class InvalidSignature(Unauthorized):
    code = "invalid_signature"

    def __init__(self, identity: str, reason: str):
        super().__init__(identity, "relayer", reason)


class NotAParty(AuthorizationError):
    code = "not_a_party"

    def __init__(self, dispute_id: int, identity: str):
        super().__init__(f"{identity} is not a party to dispute {dispute_id}",
                         dispute_id=dispute_id, identity=identity)


class NotClaimant(AuthorizationError):
    code = "not_claimant"

    def __init__(self, dispute_id: int, identity: str):
        super().__init__(f"Only the claimant of dispute {dispute_id} may do this",
                         dispute_id=dispute_id, identity=identity)


class NotRespondent(AuthorizationError):
    code = "not_respondent"

    def __init__(self, dispute_id: int, identity: str):
        super().__init__(f"Only the respondent of dispute {dispute_id} may do this",
                         dispute_id=dispute_id, identity=identity)
