"""Structured logging, correlation ids and the audit chain."""

import io
import json
import logging

import pytest

from tribunal.config import TribunalConfig, apply_config_values
from tribunal.engine import DisputeResolution
from tribunal.errors import AmountOutOfBounds, ClockRegression, LedgerUnderflow
from tribunal.hardening import ManualClock
from tribunal.observability import (
    ROOT_LOGGER_NAME,
    AuditLogger,
    TribunalLayer,
    configure_logging,
    correlation_id_var,
    get_logger,
    set_correlation_id,
    timed_operation,
)

from conftest import ADMIN, ALICE, BOB, CAROL, TREASURY


@pytest.fixture
def log_stream():
    root = logging.getLogger(ROOT_LOGGER_NAME)
    saved = (list(root.handlers), root.level, root.propagate)
    stream = io.StringIO()
    configure_logging("debug", "json", stream)
    token = set_correlation_id("")
    yield stream
    correlation_id_var.reset(token)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in saved[0]:
        root.addHandler(handler)
    root.setLevel(saved[1])
    root.propagate = saved[2]


def lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestStructuredLogging:

    def test_rejected_operation_logged_as_warning(self, log_stream, engine):
        with pytest.raises(AmountOutOfBounds):
            engine.create_dispute(ALICE, BOB, "contract_breach", "ipfs://d", 1)
        rejected = [r for r in lines(log_stream) if r["level"] == "warning"]
        assert len(rejected) == 1
        record = rejected[0]
        assert record["logger"] == "tribunal.engine.dispute_resolution"
        assert record["layer"] == "engine"
        assert record["operation"] == "create_dispute"
        assert record["error_code"] == "amount_out_of_bounds"
        assert record["context"]["kind"] == "validation"
        assert record["correlation_id"].startswith("corr-")
        assert "duration_ms" in record

    def test_completed_operation_logged_as_info(self, log_stream, engine):
        engine.create_dispute(ALICE, BOB, "contract_breach", "ipfs://d", 10 ** 18)
        records = [r for r in lines(log_stream) if r.get("operation") == "create_dispute"]
        assert [r["level"] for r in records] == ["info"]
        assert "error_code" not in records[0]

    def test_clock_regression_logged_as_critical(self, log_stream, engine, clock):
        clock.set(clock.now() - 10)
        with pytest.raises(ClockRegression):
            engine.pause(ADMIN)
        critical = [r for r in lines(log_stream) if r["level"] == "critical"]
        assert len(critical) == 1
        assert critical[0]["layer"] == "admin"
        assert critical[0]["error_code"] == "clock_regression"

    def test_integrity_error_from_any_layer(self, log_stream):
        logger = get_logger("escrow", TribunalLayer.LEDGER)
        logger.operation("release", 0.5, success=False, error=LedgerUnderflow(1, 10, 5))
        (record,) = lines(log_stream)
        assert record["level"] == "critical"
        assert record["error_code"] == "ledger_underflow"

    def test_unexpected_error_includes_traceback(self, log_stream):
        logger = get_logger("worker", TribunalLayer.ENGINE)

        @timed_operation(logger, "explode")
        def explode():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            explode()
        (record,) = lines(log_stream)
        assert record["level"] == "error"
        assert "RuntimeError: boom" in record["exception"]

    def test_text_format(self):
        root = logging.getLogger(ROOT_LOGGER_NAME)
        saved = (list(root.handlers), root.propagate)
        stream = io.StringIO()
        try:
            configure_logging("info", "text", stream)
            get_logger("worker", TribunalLayer.CLI).info("hello")
        finally:
            for handler in list(root.handlers):
                root.removeHandler(handler)
            for handler in saved[0]:
                root.addHandler(handler)
            root.propagate = saved[1]
        assert "INFO tribunal.cli.worker hello" in stream.getvalue()


class TestCorrelation:

    def test_operation_gets_fresh_id(self, log_stream):
        logger = get_logger("worker", TribunalLayer.ENGINE)
        seen = []

        @timed_operation(logger, "tick")
        def tick():
            seen.append(correlation_id_var.get())

        tick()
        tick()
        assert all(cid.startswith("corr-") for cid in seen)
        assert seen[0] != seen[1]
        assert correlation_id_var.get() == ""

    def test_caller_id_kept(self, log_stream, engine):
        token = set_correlation_id("req-42")
        try:
            engine.pause(ADMIN)
            assert correlation_id_var.get() == "req-42"
        finally:
            correlation_id_var.reset(token)
        tagged = [r for r in lines(log_stream) if r.get("correlation_id") == "req-42"]
        assert sorted(r["operation"] for r in tagged) == ["audit", "pause"]
        assert engine.audit.records()[-1].correlation_id == "req-42"


class TestAuditLogger:

    @pytest.fixture
    def audit(self):
        return AuditLogger(get_logger("audit", TribunalLayer.AUDIT))

    def test_chain(self, audit):
        assert audit.head == AuditLogger.GENESIS
        first = audit.log(ADMIN, "set_paused", "platform", "paused", "success", value=True)
        audit.log(ADMIN, "set_treasury", "platform", "treasury", "success", value=CAROL)
        records = audit.records()
        assert records[0] is first
        assert first.previous_hash == AuditLogger.GENESIS
        assert records[1].previous_hash != AuditLogger.GENESIS
        assert audit.head not in (r.previous_hash for r in records)
        assert audit.verify_chain()

    def test_tampering_detected(self, audit):
        audit.log(ADMIN, "set_paused", "platform", "paused", "success", value=True)
        audit.log(ADMIN, "set_treasury", "platform", "treasury", "success", value=CAROL)
        audit.records()[0].details["value"] = False
        assert not audit.verify_chain()

    def test_engine_audit_can_be_disabled(self):
        config = TribunalConfig()
        apply_config_values(config, {"observability": {"audit_enabled": False}})
        engine = DisputeResolution(ADMIN, TREASURY, clock=ManualClock(1_000), config=config)
        engine.pause(ADMIN)
        engine.unpause(ADMIN)
        assert engine.audit.records() == []
        assert engine.paused is False
