"""
Dispute Resolution Engine

The lifecycle controller. Every write operation:

    1. samples the injected clock once (never backwards),
    2. runs all of its guards, failing fast with a specific TribunalError,
    3. commits the new state (dispute record, ledger, registers),
    4. publishes the transition's event.

Operations hold one re-entrant lock for their whole duration, so they are
atomic and totally ordered; a failed guard leaves every component as it
was. Deadlines are evaluated lazily against the operation's clock sample;
nothing happens in the background.

State machine (terminal: RESOLVED, CANCELLED):

    CREATED ──accept──▶ EVIDENCE_SUBMISSION ──request_verdict──▶ AWAITING_VERDICT
       │                                                            │
     cancel                                                  deliver_verdict
       ▼                                                            ▼
    CANCELLED            RESOLVED ◀──finalize── VERDICT_DELIVERED ──appeal──▶ APPEAL_PERIOD
                            ▲                                                    │
                            └────────────────────finalize────────────────────────┘
"""

from __future__ import annotations

import copy
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from tribunal.authorization import AuthorizationPolicy, Capability, is_null_identity
from tribunal.config import ConfigManager, TribunalConfig, get_config, get_config_manager
from tribunal.currencies import Currency, CurrencyRegistry
from tribunal.errors import (
    AlreadyAppealed,
    AppealWindowActive,
    AppealWindowClosed,
    CannotCancel,
    DisputeNotFound,
    EvidenceWindowActive,
    InsufficientAppealStake,
    InvalidConfidence,
    InvalidIdentity,
    InvalidContentRef,
    NotAppealable,
    NotAwaitingAcceptance,
    NotAwaitingVerdict,
    NotFinalizable,
    PlatformPaused,
    VerdictNotRequestable,
    VerdictRequestPending,
)
from tribunal.events import (
    DisputeAccepted,
    DisputeAppealed,
    DisputeCancelled,
    DisputeCreated,
    DisputeResolved,
    Event,
    EventBus,
    EvidenceSubmitted,
    OracleRequestExpired,
    OracleRequestFailed,
    PlatformSettingChanged,
    VerdictReceived,
    VerdictRequested,
)
from tribunal.evidence import EvidenceRegister
from tribunal.hardening import (
    Clock,
    IdGenerator,
    InvariantChecker,
    MonotonicGuard,
    SequentialIdGenerator,
    SystemClock,
)
from tribunal.ledger import EscrowLedger
from tribunal.observability import (
    AuditLogger,
    TribunalLayer,
    get_correlation_id,
    get_logger,
    timed_operation,
)
from tribunal.oracle import OracleBridge, verdict_message
from tribunal.settlement import (
    PayoutPlan,
    TransferReason,
    compute_payout_plan,
    required_appeal_stake,
)
from tribunal.types import (
    VALID_TRANSITIONS,
    AppealStake,
    Dispute,
    DisputeCategory,
    DisputeStatus,
    Evidence,
    OracleRequest,
    RequestStatus,
    Resolution,
    Verdict,
)

logger = get_logger("dispute_resolution", TribunalLayer.ENGINE)
admin_logger = get_logger("dispute_resolution", TribunalLayer.ADMIN)


class DisputeResolution:
    """Escrowed two-party disputes settled by an oracle verdict."""

    def __init__(
        self,
        admin: str,
        treasury: str,
        *,
        clock: Optional[Clock] = None,
        config: Optional[TribunalConfig] = None,
        currencies: Optional[CurrencyRegistry] = None,
        bus: Optional[EventBus] = None,
        dispute_ids: Optional[IdGenerator] = None,
        oracle: Optional[OracleBridge] = None,
    ):
        config = config or get_config()
        if is_null_identity(treasury):
            raise InvalidIdentity("treasury", treasury)
        protocol = config.protocol

        self.evidence_window = protocol.evidence_window_seconds.get()
        self.appeal_window = protocol.appeal_window_seconds.get()
        self.min_evidence_for_early_verdict = protocol.min_evidence_for_early_verdict.get()
        self.appeal_stake_bps = protocol.appeal_stake_bps.get()

        if currencies is None:
            currencies = CurrencyRegistry(max_fee_bps=protocol.max_fee_bps.get())
            native = config.native
            currencies.configure(Currency.from_human(
                native.asset.get(),
                native.decimals.get(),
                native.min_amount.get(),
                native.max_amount.get(),
                native.fee_bps.get(),
                native=True,
            ))
        self.currencies = currencies

        self.auth = AuthorizationPolicy(admin)
        self.ledger = EscrowLedger()
        self.evidence = EvidenceRegister(cap=protocol.evidence_cap.get())
        self.oracle = oracle or OracleBridge(timeout_seconds=protocol.oracle_timeout_seconds.get())
        self.bus = bus or EventBus()
        self.audit = AuditLogger(admin_logger)
        self._audit_enabled = config.observability.audit_enabled.get()

        self._clock = MonotonicGuard(clock or SystemClock())
        self._ids = dispute_ids or SequentialIdGenerator(start=1)
        self._disputes: Dict[int, Dispute] = {}
        self._by_party: Dict[str, List[int]] = {}
        self._treasury = treasury
        self._paused = False
        self._fees_collected: Dict[str, int] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_config(
        cls,
        admin: str,
        treasury: str,
        manager: Optional[ConfigManager] = None,
        **kwargs: Any,
    ) -> "DisputeResolution":
        """Build an engine from a ConfigManager, registering declared currencies."""
        manager = manager or get_config_manager()
        engine = cls(admin, treasury, config=manager.config, **kwargs)
        for entry in manager.currencies:
            engine.currencies.configure(Currency.from_human(
                entry["asset"], entry["decimals"], entry["min_amount"], entry["max_amount"], entry["fee_bps"],
            ))
        return engine

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _now(self) -> int:
        return self._clock.sample()

    def _get(self, dispute_id: int) -> Dispute:
        dispute = self._disputes.get(dispute_id)
        if dispute is None:
            raise DisputeNotFound(dispute_id)
        return dispute

    @staticmethod
    def _transition(dispute: Dispute, target: DisputeStatus) -> None:
        InvariantChecker.check_state_transition(dispute.status, target, VALID_TRANSITIONS)
        dispute.status = target

    def _publish(self, events: Sequence[Event]) -> None:
        correlation_id = get_correlation_id()
        for event in events:
            event.correlation_id = correlation_id
            self.bus.publish(event)

    def _audit(self, actor: str, action: str, resource_type: str, resource_id: str, **details: Any) -> None:
        if self._audit_enabled:
            self.audit.log(actor, action, resource_type, resource_id, "success", **details)

    # ------------------------------------------------------------------
    # dispute lifecycle
    # ------------------------------------------------------------------

    @timed_operation(logger, "create_dispute")
    def create_dispute(
        self,
        caller: str,
        respondent: str,
        category: Any,
        description_ref: str,
        amount: int,
        asset: Optional[str] = None,
    ) -> Dispute:
        """Open a dispute, escrowing the claimant's ``amount``."""
        with self._lock:
            now = self._now()
            if self._paused:
                raise PlatformPaused()
            AuthorizationPolicy.check_counterparty(caller, respondent)
            category = DisputeCategory.checked(category)
            if not isinstance(description_ref, str):
                raise InvalidContentRef(description_ref)
            currency = self.currencies.require(asset) if asset else self.currencies.native
            currency.check_bounds(amount)

            dispute_id = self._ids.next_id()
            dispute = Dispute(
                dispute_id=dispute_id,
                claimant=caller,
                respondent=respondent,
                category=category,
                description_ref=description_ref,
                stake_asset=currency.asset,
                stake_amount=amount,
                fee_bps=currency.fee_bps,
                created_at=now,
                evidence_deadline=now + self.evidence_window,
            )
            self.ledger.deposit(dispute_id, caller, currency.asset, amount, amount, now, "claimant_stake")
            self._disputes[dispute_id] = dispute
            self._by_party.setdefault(caller, []).append(dispute_id)
            self._by_party.setdefault(respondent, []).append(dispute_id)

            self._publish([DisputeCreated(
                occurred_at=now,
                dispute_id=dispute_id,
                claimant=caller,
                respondent=respondent,
                category=category.value,
                description_ref=description_ref,
                stake_asset=currency.asset,
                stake_amount=amount,
                evidence_deadline=dispute.evidence_deadline,
            )])
            return copy.deepcopy(dispute)

    @timed_operation(logger, "accept_dispute")
    def accept_dispute(self, caller: str, dispute_id: int, tendered: int) -> Dispute:
        """Respondent matches the stake; the evidence window restarts."""
        with self._lock:
            now = self._now()
            dispute = self._get(dispute_id)
            if dispute.status is not DisputeStatus.CREATED:
                raise NotAwaitingAcceptance(dispute_id, dispute.status)
            AuthorizationPolicy.require_respondent(dispute, caller)

            self.ledger.deposit(dispute_id, caller, dispute.stake_asset, dispute.stake_amount, tendered,
                                now, "respondent_stake")
            self._transition(dispute, DisputeStatus.EVIDENCE_SUBMISSION)
            dispute.respondent_funded = True
            dispute.evidence_deadline = now + self.evidence_window

            self._publish([DisputeAccepted(
                occurred_at=now,
                dispute_id=dispute_id,
                respondent=caller,
                stake_amount=dispute.stake_amount,
                evidence_deadline=dispute.evidence_deadline,
            )])
            return copy.deepcopy(dispute)

    @timed_operation(logger, "cancel_dispute")
    def cancel_dispute(self, caller: str, dispute_id: int) -> Dispute:
        """Claimant withdraws a dispute nobody accepted; full refund."""
        with self._lock:
            now = self._now()
            dispute = self._get(dispute_id)
            AuthorizationPolicy.require_claimant(dispute, caller)
            if dispute.status is not DisputeStatus.CREATED:
                raise CannotCancel(dispute_id, dispute.status)

            refund = self.ledger.escrowed(dispute_id)
            self.ledger.release(dispute_id, dispute.claimant, refund, now, TransferReason.REFUND.value)
            self._transition(dispute, DisputeStatus.CANCELLED)
            dispute.closed_at = now

            self._publish([DisputeCancelled(
                occurred_at=now,
                dispute_id=dispute_id,
                claimant=dispute.claimant,
                refund=refund,
                stake_asset=dispute.stake_asset,
            )])
            return copy.deepcopy(dispute)

    @timed_operation(logger, "submit_evidence")
    def submit_evidence(self, caller: str, dispute_id: int, content_ref: str, type_tag: Any) -> Evidence:
        with self._lock:
            now = self._now()
            dispute = self._get(dispute_id)
            evidence = self.evidence.submit(dispute, caller, content_ref, type_tag, now)
            self._publish([self._evidence_event(evidence)])
            return evidence

    @timed_operation(logger, "submit_evidence_batch")
    def submit_evidence_batch(
        self,
        caller: str,
        dispute_id: int,
        items: Sequence[Tuple[str, Any]],
    ) -> List[Evidence]:
        """Submit several items at once; one bad item rejects the whole batch."""
        with self._lock:
            now = self._now()
            dispute = self._get(dispute_id)
            records = self.evidence.submit_batch(dispute, caller, items, now)
            self._publish([self._evidence_event(e) for e in records])
            return records

    @staticmethod
    def _evidence_event(evidence: Evidence) -> EvidenceSubmitted:
        return EvidenceSubmitted(
            occurred_at=evidence.submitted_at,
            dispute_id=evidence.dispute_id,
            evidence_id=evidence.evidence_id,
            submitter=evidence.submitter,
            content_ref=evidence.content_ref,
            type_tag=evidence.type_tag.value,
        )

    @timed_operation(logger, "request_verdict")
    def request_verdict(self, caller: str, dispute_id: int) -> OracleRequest:
        """Close the evidence stage and ask the oracle for a verdict.

        Allowed once the evidence deadline has passed, or earlier when at
        least ``min_evidence_for_early_verdict`` items were submitted.
        """
        with self._lock:
            now = self._now()
            dispute = self._get(dispute_id)
            AuthorizationPolicy.require_party(dispute, caller)
            if dispute.status is not DisputeStatus.EVIDENCE_SUBMISSION:
                raise VerdictNotRequestable(dispute_id, dispute.status)
            count = self.evidence.count_for(dispute_id)
            if now < dispute.evidence_deadline and count < self.min_evidence_for_early_verdict:
                raise EvidenceWindowActive(dispute_id, dispute.evidence_deadline, now, count)

            request = self.oracle.create_request(dispute_id, now)
            self._transition(dispute, DisputeStatus.AWAITING_VERDICT)
            dispute.request_ids.append(request.request_id)

            self._publish([self._requested_event(request, caller)])
            return copy.deepcopy(request)

    @timed_operation(logger, "retry_verdict")
    def retry_verdict(self, caller: str, dispute_id: int) -> OracleRequest:
        """Open a fresh oracle round after the current one expired or failed."""
        with self._lock:
            now = self._now()
            dispute = self._get(dispute_id)
            AuthorizationPolicy.require_party(dispute, caller)
            if dispute.status is not DisputeStatus.AWAITING_VERDICT:
                raise NotAwaitingVerdict(dispute_id, dispute.status)
            current = self.oracle.get_request(dispute.current_request_id)
            if current.status is RequestStatus.PENDING:
                raise VerdictRequestPending(dispute_id, current.request_id)

            request = self.oracle.create_request(dispute_id, now)
            dispute.request_ids.append(request.request_id)

            self._publish([self._requested_event(request, caller)])
            return copy.deepcopy(request)

    @staticmethod
    def _requested_event(request: OracleRequest, caller: str) -> VerdictRequested:
        return VerdictRequested(
            occurred_at=request.created_at,
            dispute_id=request.dispute_id,
            request_id=request.request_id,
            requested_by=caller,
            expires_at=request.expires_at,
        )

    @timed_operation(logger, "deliver_verdict")
    def deliver_verdict(
        self,
        caller: str,
        request_id: str,
        resolution: Any,
        confidence: int,
        reasoning_ref: str,
        signature: Optional[bytes] = None,
    ) -> Dispute:
        """Relayer callback applying an oracle verdict to its dispute."""
        with self._lock:
            now = self._now()
            self.auth.require(caller, Capability.RELAYER)
            request = self.oracle.check_deliverable(request_id, now)
            resolution = Resolution.decided(resolution)
            if isinstance(confidence, bool) or not isinstance(confidence, int) or not 0 <= confidence <= 100:
                raise InvalidConfidence(confidence)
            if not isinstance(reasoning_ref, str):
                raise InvalidContentRef(reasoning_ref)
            self.auth.verify_relayer_signature(
                caller, verdict_message(request_id, resolution, confidence, reasoning_ref), signature,
            )

            dispute = self._get(request.dispute_id)
            if dispute.current_request_id != request_id or dispute.status is not DisputeStatus.AWAITING_VERDICT:
                raise NotAwaitingVerdict(dispute.dispute_id, dispute.status)

            verdict = Verdict(
                dispute_id=dispute.dispute_id,
                request_id=request_id,
                resolution=resolution,
                confidence=confidence,
                reasoning_ref=reasoning_ref,
                delivered_at=now,
            )
            self.oracle.deliver(request_id, now)
            dispute.verdict = verdict
            dispute.resolution = resolution
            dispute.confidence_score = confidence
            dispute.appeal_deadline = now + self.appeal_window
            self._transition(dispute, DisputeStatus.VERDICT_DELIVERED)

            self._publish([VerdictReceived(
                occurred_at=now,
                dispute_id=dispute.dispute_id,
                request_id=request_id,
                resolution=resolution.value,
                confidence=confidence,
                reasoning_ref=reasoning_ref,
                appeal_deadline=dispute.appeal_deadline,
            )])
            return copy.deepcopy(dispute)

    @timed_operation(logger, "fail_request")
    def fail_request(self, caller: str, request_id: str, reason: str = "") -> OracleRequest:
        """Relayer reports that an oracle round died. The dispute is unchanged."""
        with self._lock:
            now = self._now()
            self.auth.require(caller, Capability.RELAYER)
            request = self.oracle.fail(request_id, reason, now)
            self._publish([OracleRequestFailed(
                occurred_at=now,
                dispute_id=request.dispute_id,
                request_id=request_id,
                reason=request.failure_reason or "",
            )])
            return copy.deepcopy(request)

    @timed_operation(logger, "handle_expired_request")
    def handle_expired_request(self, caller: str, request_id: str) -> OracleRequest:
        """Permissionless timeout sweep. Use ``retry_verdict`` to continue the dispute."""
        with self._lock:
            now = self._now()
            request = self.oracle.expire(request_id, now)
            self._publish([OracleRequestExpired(
                occurred_at=now,
                dispute_id=request.dispute_id,
                request_id=request_id,
                swept_by=caller,
            )])
            return copy.deepcopy(request)

    @timed_operation(logger, "appeal")
    def appeal(self, caller: str, dispute_id: int, tendered: int) -> Dispute:
        """Lodge the single appeal a dispute allows, escrowing the appeal stake."""
        with self._lock:
            now = self._now()
            dispute = self._get(dispute_id)
            AuthorizationPolicy.require_party(dispute, caller)
            if dispute.appealed:
                raise AlreadyAppealed(dispute_id)
            if dispute.status is not DisputeStatus.VERDICT_DELIVERED:
                raise NotAppealable(dispute_id, dispute.status)
            if now > dispute.appeal_deadline:
                raise AppealWindowClosed(dispute_id, dispute.appeal_deadline, now)
            required = required_appeal_stake(dispute.total_pool, self.appeal_stake_bps)
            if tendered < required:
                raise InsufficientAppealStake(required, tendered)

            self.ledger.deposit(dispute_id, caller, dispute.stake_asset, tendered, tendered, now,
                                TransferReason.APPEAL_STAKE.value)
            self._transition(dispute, DisputeStatus.APPEAL_PERIOD)
            dispute.appealed = True
            dispute.appeal = AppealStake(dispute_id, caller, tendered, now)

            self._publish([DisputeAppealed(
                occurred_at=now,
                dispute_id=dispute_id,
                appellant=caller,
                appeal_stake=tendered,
                appeal_deadline=dispute.appeal_deadline,
            )])
            return copy.deepcopy(dispute)

    @timed_operation(logger, "finalize")
    def finalize(self, caller: str, dispute_id: int) -> PayoutPlan:
        """Pay out the pool once the appeal window has closed. Permissionless."""
        with self._lock:
            now = self._now()
            dispute = self._get(dispute_id)
            if dispute.status not in (DisputeStatus.VERDICT_DELIVERED, DisputeStatus.APPEAL_PERIOD):
                raise NotFinalizable(dispute_id, dispute.status)
            if now <= dispute.appeal_deadline:
                raise AppealWindowActive(dispute_id, dispute.appeal_deadline, now)

            plan = compute_payout_plan(dispute, self._treasury)
            self.ledger.execute_plan(plan, now)
            self._transition(dispute, DisputeStatus.RESOLVED)
            dispute.closed_at = now
            self._fees_collected[plan.asset] = self._fees_collected.get(plan.asset, 0) + plan.platform_fee

            self._publish([DisputeResolved(
                occurred_at=now,
                dispute_id=dispute_id,
                resolution=plan.resolution.value,
                stake_asset=plan.asset,
                total_pool=plan.total_pool,
                claimant_payout=plan.claimant_payout,
                respondent_payout=plan.respondent_payout,
                platform_fee=plan.platform_fee,
                appeal_stake=plan.appeal_stake,
                finalized_by=caller,
            )])
            return plan

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get_dispute(self, dispute_id: int) -> Dispute:
        with self._lock:
            return copy.deepcopy(self._get(dispute_id))

    def get_evidence(self, dispute_id: int) -> List[Evidence]:
        with self._lock:
            self._get(dispute_id)
            return self.evidence.list_for(dispute_id)

    def get_verdict(self, dispute_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            dispute = self._get(dispute_id)
            return dispute.verdict.to_dict() if dispute.verdict else None

    def get_request(self, request_id: str) -> OracleRequest:
        with self._lock:
            return copy.deepcopy(self.oracle.get_request(request_id))

    def get_disputes_by_party(self, identity: str) -> List[int]:
        with self._lock:
            return list(self._by_party.get(identity, []))

    def get_dispute_count(self) -> int:
        with self._lock:
            return len(self._disputes)

    def escrowed(self, dispute_id: int) -> int:
        with self._lock:
            self._get(dispute_id)
            return self.ledger.escrowed(dispute_id)

    def required_appeal_stake(self, dispute_id: int) -> int:
        """Minimum appeal stake for a dispute, in its currency's base units."""
        with self._lock:
            return required_appeal_stake(self._get(dispute_id).total_pool, self.appeal_stake_bps)

    def preview_payout(self, dispute_id: int) -> PayoutPlan:
        """The plan ``finalize`` would execute right now, without executing it."""
        with self._lock:
            dispute = self._get(dispute_id)
            if dispute.status not in (DisputeStatus.VERDICT_DELIVERED, DisputeStatus.APPEAL_PERIOD):
                raise NotFinalizable(dispute_id, dispute.status)
            return compute_payout_plan(dispute, self._treasury)

    def get_platform_stats(self) -> Dict[str, Any]:
        with self._lock:
            by_status: Dict[str, int] = {s.value: 0 for s in DisputeStatus}
            for dispute in self._disputes.values():
                by_status[dispute.status.value] += 1
            assets = {c.asset for c in self.currencies.all()} | set(self._fees_collected)
            return {
                "dispute_count": len(self._disputes),
                "by_status": by_status,
                "evidence_count": self.evidence.total,
                "oracle_requests": len(self.oracle),
                "pending_requests": self.oracle.pending_count(),
                "total_escrowed": {a: self.ledger.total_escrowed(a) for a in sorted(assets)},
                "fees_collected": dict(self._fees_collected),
                "paused": self._paused,
                "treasury": self._treasury,
                "relayer": self.auth.relayer,
            }

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def treasury(self) -> str:
        return self._treasury

    # ------------------------------------------------------------------
    # administration
    # ------------------------------------------------------------------

    def _admin_change(self, caller: str, setting: str, value: Any, now: int) -> None:
        self._audit(caller, f"set_{setting}", "platform", setting, value=value)
        self._publish([PlatformSettingChanged(occurred_at=now, setting=setting, value=value, actor=caller)])

    @timed_operation(admin_logger, "pause")
    def pause(self, caller: str) -> None:
        """Block new disputes. Everything else keeps working so funds never freeze."""
        with self._lock:
            now = self._now()
            self.auth.require(caller, Capability.ADMIN)
            self._paused = True
            self._admin_change(caller, "paused", True, now)

    @timed_operation(admin_logger, "unpause")
    def unpause(self, caller: str) -> None:
        with self._lock:
            now = self._now()
            self.auth.require(caller, Capability.ADMIN)
            self._paused = False
            self._admin_change(caller, "paused", False, now)

    @timed_operation(admin_logger, "set_treasury")
    def set_treasury(self, caller: str, treasury: str) -> None:
        with self._lock:
            now = self._now()
            self.auth.require(caller, Capability.ADMIN)
            if is_null_identity(treasury):
                raise InvalidIdentity("treasury", treasury)
            self._treasury = treasury
            self._admin_change(caller, "treasury", treasury, now)

    @timed_operation(admin_logger, "set_relayer")
    def set_relayer(self, caller: str, relayer: str, public_key: Optional[Ed25519PublicKey] = None) -> None:
        """Replace the single authorized relayer, optionally binding its signing key."""
        with self._lock:
            now = self._now()
            self.auth.require(caller, Capability.ADMIN)
            self.auth.set_relayer(relayer, public_key)
            self._admin_change(caller, "relayer", relayer, now)

    @timed_operation(admin_logger, "grant_capability")
    def grant_capability(self, caller: str, identity: str, capability: Any) -> None:
        with self._lock:
            now = self._now()
            self.auth.require(caller, Capability.ADMIN)
            capability = Capability(capability)
            self.auth.grant(identity, capability)
            self._admin_change(caller, f"grant_{capability.value}", identity, now)

    @timed_operation(admin_logger, "revoke_capability")
    def revoke_capability(self, caller: str, identity: str, capability: Any) -> None:
        with self._lock:
            now = self._now()
            self.auth.require(caller, Capability.ADMIN)
            capability = Capability(capability)
            self.auth.revoke(identity, capability)
            self._admin_change(caller, f"revoke_{capability.value}", identity, now)

    @timed_operation(admin_logger, "configure_currency")
    def configure_currency(
        self,
        caller: str,
        asset: str,
        decimals: int,
        min_amount: Any,
        max_amount: Any,
        fee_bps: int,
    ) -> Currency:
        """Add or update a stake currency. Bounds are decimal amounts ("0.001").

        Disputes already open keep the fee rate they were created with.
        """
        with self._lock:
            now = self._now()
            self.auth.require(caller, Capability.ADMIN)
            existing = self.currencies.get(asset)
            currency = Currency.from_human(asset, decimals, min_amount, max_amount, fee_bps,
                                           native=bool(existing and existing.native))
            self.currencies.configure(currency)
            self._admin_change(caller, "currency", currency.to_dict(), now)
            return currency

    @timed_operation(admin_logger, "remove_currency")
    def remove_currency(self, caller: str, asset: str) -> None:
        """Stop accepting ``asset`` for new disputes; open disputes are unaffected."""
        with self._lock:
            now = self._now()
            self.auth.require(caller, Capability.ADMIN)
            self.currencies.remove(asset)
            self._admin_change(caller, "currency_removed", asset, now)
