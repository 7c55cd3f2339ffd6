"""Guard failures, administration and atomicity of DisputeResolution."""

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from tribunal.authorization import ZERO_IDENTITY
from tribunal.config import TribunalConfig
from tribunal.engine import DisputeResolution
from tribunal.errors import (
    AlreadyAppealed,
    AmountOutOfBounds,
    AppealWindowClosed,
    CannotCancel,
    ClockRegression,
    DisputeNotFound,
    ErrorKind,
    EvidenceWindowActive,
    InsufficientAppealStake,
    InsufficientFunds,
    InvalidCategory,
    InvalidConfidence,
    InvalidContentRef,
    InvalidIdentity,
    InvalidRespondent,
    InvalidResolution,
    InvalidSignature,
    NotAParty,
    NotAppealable,
    NotAwaitingAcceptance,
    NotClaimant,
    NotFinalizable,
    NotRespondent,
    PlatformPaused,
    RequestExpired,
    RequestNotFound,
    Unauthorized,
    UnsupportedCurrency,
    VerdictNotRequestable,
)
from tribunal.events import EventBus
from tribunal.oracle import sign_verdict
from tribunal.types import DisputeStatus, RequestStatus

from conftest import ADMIN, ALICE, BOB, CAROL, DAY, ETH, RELAYER, TREASURY, Driver


class TestCreateGuards:

    @pytest.mark.parametrize("kwargs,error", [
        ({"respondent": ALICE}, InvalidRespondent),
        ({"respondent": ZERO_IDENTITY}, InvalidRespondent),
        ({"category": "gossip"}, InvalidCategory),
        ({"category": 17}, InvalidCategory),
        ({"description_ref": None}, InvalidContentRef),
        ({"asset": "DOGE"}, UnsupportedCurrency),
        ({"amount": 10 ** 15 - 1}, AmountOutOfBounds),
        ({"amount": 1000 * ETH + 1}, AmountOutOfBounds),
    ])
    def test_rejected_without_side_effects(self, engine, store, kwargs, error):
        params = dict(respondent=BOB, category="fraud_claim", description_ref="ipfs://d", amount=ETH)
        params.update(kwargs)
        with pytest.raises(error):
            engine.create_dispute(ALICE, **params)
        assert engine.get_dispute_count() == 0
        assert engine.ledger.total_escrowed() == 0
        assert [r.stream_id for r in store.read_all()] == ["platform"]

    def test_bounds_are_inclusive(self, engine):
        engine.create_dispute(ALICE, BOB, "other", "ipfs://min", 10 ** 15)
        engine.create_dispute(ALICE, BOB, "other", "ipfs://max", 1000 * ETH)
        assert engine.get_dispute_count() == 2

    def test_error_details(self, engine):
        with pytest.raises(AmountOutOfBounds) as exc:
            engine.create_dispute(ALICE, BOB, "other", "ipfs://d", 1)
        assert exc.value.kind is ErrorKind.VALIDATION
        assert exc.value.to_dict()["details"] == {"amount": 1, "minimum": 10 ** 15, "maximum": 1000 * ETH}

    def test_unknown_dispute(self, engine):
        with pytest.raises(DisputeNotFound):
            engine.get_dispute(99)
        with pytest.raises(DisputeNotFound):
            engine.accept_dispute(BOB, 99, ETH)

    def test_null_treasury_rejected(self):
        with pytest.raises(InvalidIdentity):
            DisputeResolution(ADMIN, ZERO_IDENTITY, config=TribunalConfig())


class TestAcceptAndCancel:

    def test_only_respondent_accepts(self, engine, driver):
        dispute_id = driver.create()
        with pytest.raises(NotRespondent):
            engine.accept_dispute(CAROL, dispute_id, ETH)

    @pytest.mark.parametrize("tendered", [ETH - 1, ETH + 1, 0])
    def test_exact_tender(self, engine, driver, tendered):
        dispute_id = driver.create()
        with pytest.raises(InsufficientFunds) as exc:
            engine.accept_dispute(BOB, dispute_id, tendered)
        assert exc.value.details == {"required": ETH, "given": tendered}
        assert engine.get_dispute(dispute_id).status is DisputeStatus.CREATED
        assert engine.escrowed(dispute_id) == ETH

    def test_accept_twice(self, engine, driver):
        dispute_id = driver.accepted()
        with pytest.raises(NotAwaitingAcceptance) as exc:
            engine.accept_dispute(BOB, dispute_id, ETH)
        assert exc.value.kind is ErrorKind.STATE

    def test_cancel_rules(self, engine, driver):
        dispute_id = driver.create()
        with pytest.raises(NotClaimant):
            engine.cancel_dispute(BOB, dispute_id)
        engine.accept_dispute(BOB, dispute_id, ETH)
        with pytest.raises(CannotCancel):
            engine.cancel_dispute(ALICE, dispute_id)
        assert engine.escrowed(dispute_id) == 2 * ETH


class TestVerdictGuards:

    def test_early_request_needs_evidence(self, engine, clock, driver):
        dispute_id = driver.accepted()
        engine.submit_evidence(ALICE, dispute_id, "ipfs://one", "document")
        with pytest.raises(EvidenceWindowActive):
            engine.request_verdict(ALICE, dispute_id)
        clock.advance(3 * DAY - 1)
        with pytest.raises(EvidenceWindowActive):
            engine.request_verdict(BOB, dispute_id)
        clock.advance(1)
        engine.request_verdict(BOB, dispute_id)

    def test_request_rules(self, engine, driver):
        created = driver.create()
        with pytest.raises(VerdictNotRequestable):
            engine.request_verdict(ALICE, created)
        awaiting = driver.awaiting_verdict()
        with pytest.raises(NotAParty):
            engine.request_verdict(CAROL, awaiting)
        with pytest.raises(VerdictNotRequestable):
            engine.request_verdict(ALICE, awaiting)

    def test_only_relayer_delivers(self, engine, driver):
        dispute_id = driver.awaiting_verdict()
        request_id = engine.get_dispute(dispute_id).current_request_id
        for caller in (ALICE, ADMIN, CAROL):
            with pytest.raises(Unauthorized) as exc:
                engine.deliver_verdict(caller, request_id, "split", 50, "ipfs://r")
            assert exc.value.kind is ErrorKind.AUTHORIZATION
        assert engine.get_request(request_id).status is RequestStatus.PENDING

    @pytest.mark.parametrize("resolution,confidence,error", [
        ("none", 50, InvalidResolution),
        (0, 50, InvalidResolution),
        ("maybe", 50, InvalidResolution),
        ("split", 101, InvalidConfidence),
        ("split", -1, InvalidConfidence),
        ("split", True, InvalidConfidence),
        ("split", 50.0, InvalidConfidence),
    ])
    def test_verdict_payload(self, engine, driver, resolution, confidence, error):
        dispute_id = driver.awaiting_verdict()
        request_id = engine.get_dispute(dispute_id).current_request_id
        with pytest.raises(error):
            engine.deliver_verdict(RELAYER, request_id, resolution, confidence, "ipfs://r")
        assert engine.get_dispute(dispute_id).status is DisputeStatus.AWAITING_VERDICT
        assert engine.get_request(request_id).status is RequestStatus.PENDING

    def test_confidence_bounds_inclusive(self, engine, driver):
        for confidence in (0, 100):
            dispute_id = driver.awaiting_verdict()
            request_id = engine.get_dispute(dispute_id).current_request_id
            engine.deliver_verdict(RELAYER, request_id, "split", confidence, "ipfs://r")
            assert engine.get_dispute(dispute_id).confidence_score == confidence

    def test_unknown_request(self, engine):
        with pytest.raises(RequestNotFound):
            engine.deliver_verdict(RELAYER, "0x" + "ab" * 32, "split", 50, "ipfs://r")

    def test_late_delivery(self, engine, clock, driver):
        dispute_id = driver.awaiting_verdict()
        request_id = engine.get_dispute(dispute_id).current_request_id
        clock.advance(DAY + 1)
        with pytest.raises(RequestExpired):
            engine.deliver_verdict(RELAYER, request_id, "split", 50, "ipfs://r")
        assert engine.get_dispute(dispute_id).status is DisputeStatus.AWAITING_VERDICT

    def test_signed_relayer(self, engine, driver):
        key = Ed25519PrivateKey.generate()
        engine.set_relayer(ADMIN, RELAYER, key.public_key())
        dispute_id = driver.awaiting_verdict()
        request_id = engine.get_dispute(dispute_id).current_request_id

        with pytest.raises(InvalidSignature):
            engine.deliver_verdict(RELAYER, request_id, "split", 50, "ipfs://r")
        forged = sign_verdict(key, request_id, "favor_claimant", 50, "ipfs://r")
        with pytest.raises(InvalidSignature):
            engine.deliver_verdict(RELAYER, request_id, "split", 50, "ipfs://r", signature=forged)

        signature = sign_verdict(key, request_id, "split", 50, "ipfs://r")
        engine.deliver_verdict(RELAYER, request_id, "split", 50, "ipfs://r", signature=signature)
        assert engine.get_dispute(dispute_id).status is DisputeStatus.VERDICT_DELIVERED


class TestAppealGuards:

    def test_appeal_rules(self, engine, clock, driver):
        awaiting = driver.awaiting_verdict()
        with pytest.raises(NotAppealable):
            engine.appeal(ALICE, awaiting, ETH)

        dispute_id = driver.verdict_delivered("favor_respondent")
        required = engine.required_appeal_stake(dispute_id)
        with pytest.raises(NotAParty):
            engine.appeal(CAROL, dispute_id, required)
        with pytest.raises(InsufficientAppealStake) as exc:
            engine.appeal(ALICE, dispute_id, required - 1)
        assert exc.value.details == {"required": required, "given": required - 1}

        engine.appeal(ALICE, dispute_id, required + 5)
        assert engine.get_dispute(dispute_id).appeal.amount == required + 5
        with pytest.raises(AlreadyAppealed):
            engine.appeal(BOB, dispute_id, required)
        clock.advance(30 * DAY)
        with pytest.raises(AlreadyAppealed):
            engine.appeal(BOB, dispute_id, required)

    def test_appeal_window(self, engine, clock, driver):
        dispute_id = driver.verdict_delivered()
        clock.advance(2 * DAY + 1)
        with pytest.raises(AppealWindowClosed):
            engine.appeal(BOB, dispute_id, engine.required_appeal_stake(dispute_id))

    def test_finalize_once(self, engine, driver):
        dispute_id = driver.resolved()
        with pytest.raises(NotFinalizable):
            engine.finalize(CAROL, dispute_id)
        created = driver.create()
        with pytest.raises(NotFinalizable):
            engine.finalize(CAROL, created)
        with pytest.raises(NotFinalizable):
            engine.preview_payout(created)


class TestPause:

    def test_pause_blocks_only_creation(self, engine, clock, driver):
        accepted = driver.accepted()
        delivered = driver.verdict_delivered()
        pending = driver.create()

        with pytest.raises(Unauthorized):
            engine.pause(ALICE)
        engine.pause(ADMIN)
        assert engine.paused
        with pytest.raises(PlatformPaused) as exc:
            driver.create()
        assert exc.value.kind is ErrorKind.STATE

        engine.accept_dispute(BOB, pending, ETH)
        engine.submit_evidence(ALICE, accepted, "ipfs://paused", "other")
        clock.advance(2 * DAY + 1)
        engine.finalize(CAROL, delivered)

        engine.unpause(ADMIN)
        driver.create()


class TestClock:

    def test_regression_rejected_before_mutation(self, engine, clock, driver):
        dispute_id = driver.create()
        clock.set(clock.now() - 1)
        with pytest.raises(ClockRegression) as exc:
            engine.accept_dispute(BOB, dispute_id, ETH)
        assert exc.value.kind is ErrorKind.INTEGRITY
        assert engine.get_dispute(dispute_id).status is DisputeStatus.CREATED
        assert engine.escrowed(dispute_id) == ETH


class TestAdministration:

    def test_setting_changes_are_audited(self, engine, store):
        engine.pause(ADMIN)
        engine.set_treasury(ADMIN, CAROL)
        actions = [r.action for r in engine.audit.records()]
        assert actions == ["set_relayer", "set_paused", "set_treasury"]
        assert engine.audit.verify_chain()
        platform = store.read_stream("platform")
        assert [e.setting for e in platform] == ["relayer", "paused", "treasury"]
        assert platform[-1].actor == ADMIN

    def test_admin_only(self, engine):
        for op, args in [
            (engine.set_treasury, (CAROL,)),
            (engine.set_relayer, (CAROL,)),
            (engine.configure_currency, ("USDC", 6, "1", "100", 100)),
            (engine.remove_currency, ("ETH",)),
            (engine.grant_capability, (CAROL, "admin")),
        ]:
            with pytest.raises(Unauthorized):
                op(ALICE, *args)
        assert engine.treasury == TREASURY

    def test_treasury_receives_fees(self, engine, clock, driver):
        engine.set_treasury(ADMIN, CAROL)
        driver.resolved()
        assert engine.ledger.paid_to(CAROL, "ETH") == 2 * ETH * 250 // 10_000
        assert engine.ledger.paid_to(TREASURY, "ETH") == 0
        with pytest.raises(InvalidIdentity):
            engine.set_treasury(ADMIN, "")

    def test_relayer_rotation(self, engine, driver):
        dispute_id = driver.awaiting_verdict()
        request_id = engine.get_dispute(dispute_id).current_request_id
        engine.set_relayer(ADMIN, CAROL)
        with pytest.raises(Unauthorized):
            engine.deliver_verdict(RELAYER, request_id, "split", 50, "ipfs://r")
        engine.deliver_verdict(CAROL, request_id, "split", 50, "ipfs://r")

    def test_capabilities(self, engine):
        engine.grant_capability(ADMIN, CAROL, "admin")
        engine.pause(CAROL)
        engine.revoke_capability(CAROL, ADMIN, "admin")
        with pytest.raises(Unauthorized):
            engine.unpause(ADMIN)

    def test_currency_lifecycle(self, engine, clock, driver):
        usdc = engine.configure_currency(ADMIN, "USDC", 6, "1", "10000", 100)
        assert usdc.min_amount == 1_000_000
        dispute_id = driver.accepted(amount=5_000_000, asset="USDC")
        dispute = engine.get_dispute(dispute_id)
        assert (dispute.stake_asset, dispute.fee_bps) == ("USDC", 100)

        with pytest.raises(AmountOutOfBounds):
            driver.create(amount=999_999, asset="USDC")

        engine.configure_currency(ADMIN, "USDC", 6, "1", "10000", 50)
        engine.remove_currency(ADMIN, "USDC")
        with pytest.raises(UnsupportedCurrency):
            driver.create(amount=5_000_000, asset="USDC")

        clock.advance(3 * DAY)
        engine.request_verdict(ALICE, dispute_id)
        driver.deliver(dispute_id, "favor_respondent")
        clock.advance(2 * DAY + 1)
        plan = engine.finalize(CAROL, dispute_id)
        assert plan.platform_fee == 100_000
        assert engine.ledger.paid_to(BOB, "USDC") == 10_000_000 - 100_000

    def test_platform_stats(self, engine, driver):
        driver.resolved()
        driver.accepted()
        stats = engine.get_platform_stats()
        assert stats["dispute_count"] == 2
        assert stats["by_status"]["resolved"] == 1
        assert stats["by_status"]["evidence_submission"] == 1
        assert stats["total_escrowed"] == {"ETH": 2 * ETH}
        assert stats["fees_collected"] == {"ETH": 5 * 10 ** 16}
        assert stats["oracle_requests"] == 1
        assert stats["pending_requests"] == 0
        assert stats["relayer"] == RELAYER
        assert not stats["paused"]


class TestHandlerIsolation:

    def test_failing_subscriber_does_not_abort_operation(self, clock):
        errors = []
        engine = DisputeResolution(ADMIN, TREASURY, clock=clock, config=TribunalConfig(),
                                   bus=EventBus(on_error=errors.append))
        driver = Driver(engine, clock)

        @engine.bus.subscribe()
        def broken(event):
            raise RuntimeError("indexer down")

        dispute_id = driver.create()
        assert engine.get_dispute(dispute_id).status is DisputeStatus.CREATED
        assert len(errors) == 1
        assert engine.bus.metrics["error_count"] == 1
