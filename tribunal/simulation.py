"""Scenario simulator.

Replays a YAML scenario against a fresh engine running on a manual clock,
so a whole dispute lifecycle (including deadlines days apart) runs in
milliseconds and always produces the same outcome.

A scenario names its actors, optionally overrides the platform config,
and lists steps. Each step is a single-key mapping naming the operation,
optionally paired with ``expect_error: <code>`` when the step must be
rejected with that error code::

    name: happy path
    actors: {admin: "0xad", treasury: "0x7e", relayer: "0x5e", alice: "0xa1", bob: "0xb0"}
    steps:
      - create: {as: alice, respondent: bob, category: contract_breach, description: "ipfs://d", amount: "1"}
      - accept: {as: bob, dispute: 1}
      - advance: 3d
      - request_verdict: {as: alice, dispute: 1}
      - deliver: {dispute: 1, resolution: favor_claimant, confidence: 85, reasoning: "ipfs://r"}
      - advance: 3d
      - finalize: {dispute: 1}
    expect:
      disputes: {"1": {status: resolved}}
      paid: {alice: "1.95"}

Amounts are decimal amounts of the relevant currency ("0.5"), never base
units. The run stops at the first step that does not behave as declared.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from tribunal.config import TribunalConfig, apply_config_values
from tribunal.core import SCHEMAS_DIR, load_yaml, parse_duration_seconds
from tribunal.currencies import Currency
from tribunal.engine import DisputeResolution
from tribunal.errors import TribunalError
from tribunal.events import EventBus, EventStore
from tribunal.hardening import ManualClock
from tribunal.observability import TribunalLayer, get_logger
from tribunal.oracle import sign_verdict
from tribunal.projections import ProtocolStatsProjection
from tribunal.schema import validate_against_schema
from tribunal.types import Resolution

SCENARIO_SCHEMA = SCHEMAS_DIR / "scenario.schema.json"

# 2023-11-14T22:13:20Z
DEFAULT_START = 1_700_000_000

logger = get_logger("simulation", TribunalLayer.CLI)


class ScenarioError(Exception):
    """The scenario document itself is malformed."""


@dataclass
class StepResult:
    index: int
    action: str
    ok: bool
    error_code: Optional[str] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "action": self.action,
            "ok": self.ok,
            "error_code": self.error_code,
            "message": self.message,
        }


@dataclass
class ScenarioResult:
    name: str
    steps: List[StepResult] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    events: Dict[str, int] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "failures": list(self.failures),
            "steps": [s.to_dict() for s in self.steps],
            "events": dict(self.events),
            "stats": self.stats,
        }


def load_scenario(path: Path) -> Dict[str, Any]:
    """Load and schema-check a scenario file."""
    path = Path(path)
    if not path.exists():
        raise ScenarioError(f"Scenario not found: {path}")
    data = load_yaml(path)
    errors = validate_scenario(data)
    if errors:
        raise ScenarioError(f"{path}: " + "; ".join(errors))
    return data


def validate_scenario(data: Any) -> List[str]:
    return validate_against_schema(data, SCENARIO_SCHEMA)


class ScenarioRunner:
    """Drives one engine through a scenario's steps."""

    def __init__(self, scenario: Dict[str, Any]):
        self.scenario = scenario
        self.actors: Dict[str, str] = dict(scenario["actors"])
        self.clock = ManualClock(scenario.get("start", DEFAULT_START))

        config = TribunalConfig()
        apply_config_values(config, scenario.get("config", {}))

        self.bus = EventBus()
        self.store = EventStore()
        self.bus.subscribe()(self.store.record)
        self.stats = ProtocolStatsProjection()
        self.stats.attach(self.bus)

        self.admin = self.actors["admin"]
        self.engine = DisputeResolution(
            self.admin,
            self.actors["treasury"],
            clock=self.clock,
            config=config,
            bus=self.bus,
        )
        for entry in scenario.get("config", {}).get("currencies", []):
            self.engine.currencies.configure(Currency.from_human(
                entry["asset"], entry["decimals"], entry["min_amount"], entry["max_amount"], entry["fee_bps"],
            ))

        self.relayer_key: Optional[Ed25519PrivateKey] = None
        seed = scenario.get("relayer_key_seed")
        if seed:
            self.relayer_key = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(seed))
        if "relayer" in self.actors:
            public_key = self.relayer_key.public_key() if self.relayer_key else None
            self.engine.set_relayer(self.admin, self.actors["relayer"], public_key)

        self._handlers: Dict[str, Callable[[Any], None]] = {
            "create": self._create,
            "accept": self._accept,
            "cancel": self._cancel,
            "evidence": self._evidence,
            "request_verdict": self._request_verdict,
            "deliver": self._deliver,
            "fail": self._fail,
            "expire": self._expire,
            "retry": self._retry,
            "appeal": self._appeal,
            "finalize": self._finalize,
            "advance": self._advance,
            "pause": self._pause,
            "unpause": self._unpause,
            "set_treasury": self._set_treasury,
            "set_relayer": self._set_relayer,
            "configure_currency": self._configure_currency,
            "remove_currency": self._remove_currency,
        }

    # -- helpers ----------------------------------------------------------

    def who(self, name: Optional[str], default: Optional[str] = None) -> str:
        """Resolve an actor name; unknown names are used as raw identities."""
        if name is None:
            if default is None:
                raise ScenarioError("step needs an 'as' actor")
            name = default
        return self.actors.get(name, name)

    def _currency_of(self, dispute_id: int) -> Currency:
        return self.engine.currencies.require(self.engine.get_dispute(dispute_id).stake_asset)

    def _current_request(self, params: Dict[str, Any]) -> str:
        if "request" in params:
            return params["request"]
        request_id = self.engine.get_dispute(params["dispute"]).current_request_id
        if request_id is None:
            raise ScenarioError(f"dispute {params['dispute']} has no oracle request")
        return request_id

    # -- steps ------------------------------------------------------------

    def _create(self, p: Dict[str, Any]) -> None:
        asset = p.get("asset")
        currency = self.engine.currencies.get(asset) if asset else self.engine.currencies.native
        amount = currency.to_units(p["amount"]) if currency else int(p["amount"])
        self.engine.create_dispute(
            self.who(p.get("as")),
            self.who(p["respondent"]),
            p.get("category", "other"),
            p.get("description", ""),
            amount,
            asset,
        )

    def _accept(self, p: Dict[str, Any]) -> None:
        dispute = self.engine.get_dispute(p["dispute"])
        amount = dispute.stake_amount
        if "amount" in p:
            amount = self._currency_of(p["dispute"]).to_units(p["amount"])
        self.engine.accept_dispute(self.who(p.get("as")), p["dispute"], amount)

    def _cancel(self, p: Dict[str, Any]) -> None:
        self.engine.cancel_dispute(self.who(p.get("as")), p["dispute"])

    def _evidence(self, p: Dict[str, Any]) -> None:
        caller = self.who(p.get("as"))
        if "items" in p:
            items = [(i["ref"], i.get("type", "document")) for i in p["items"]]
            self.engine.submit_evidence_batch(caller, p["dispute"], items)
        else:
            self.engine.submit_evidence(caller, p["dispute"], p["ref"], p.get("type", "document"))

    def _request_verdict(self, p: Dict[str, Any]) -> None:
        self.engine.request_verdict(self.who(p.get("as")), p["dispute"])

    def _deliver(self, p: Dict[str, Any]) -> None:
        request_id = self._current_request(p)
        resolution = p["resolution"]
        confidence = p.get("confidence", 80)
        reasoning = p.get("reasoning", "")
        signature = None
        if self.relayer_key is not None and not p.get("unsigned", False):
            try:
                signed = Resolution.parse(resolution)
            except ValueError:
                signed = resolution
            signature = sign_verdict(self.relayer_key, request_id, signed, confidence, reasoning)
            if p.get("tamper", False):
                signature = bytes([signature[0] ^ 0xFF]) + signature[1:]
        self.engine.deliver_verdict(
            self.who(p.get("as"), "relayer"), request_id, resolution, confidence, reasoning, signature,
        )

    def _fail(self, p: Dict[str, Any]) -> None:
        self.engine.fail_request(self.who(p.get("as"), "relayer"), self._current_request(p), p.get("reason", ""))

    def _expire(self, p: Dict[str, Any]) -> None:
        self.engine.handle_expired_request(self.who(p.get("as"), "admin"), self._current_request(p))

    def _retry(self, p: Dict[str, Any]) -> None:
        self.engine.retry_verdict(self.who(p.get("as")), p["dispute"])

    def _appeal(self, p: Dict[str, Any]) -> None:
        dispute_id = p["dispute"]
        if "amount" in p:
            amount = self._currency_of(dispute_id).to_units(p["amount"])
        else:
            amount = self.engine.required_appeal_stake(dispute_id)
        self.engine.appeal(self.who(p.get("as")), dispute_id, amount)

    def _finalize(self, p: Dict[str, Any]) -> None:
        self.engine.finalize(self.who(p.get("as"), "admin"), p["dispute"])

    def _advance(self, duration: Any) -> None:
        self.clock.advance(parse_duration_seconds(duration))

    def _pause(self, p: Optional[Dict[str, Any]]) -> None:
        self.engine.pause(self.who((p or {}).get("as"), "admin"))

    def _unpause(self, p: Optional[Dict[str, Any]]) -> None:
        self.engine.unpause(self.who((p or {}).get("as"), "admin"))

    def _set_treasury(self, p: Dict[str, Any]) -> None:
        self.engine.set_treasury(self.who(p.get("as"), "admin"), self.who(p["treasury"]))

    def _set_relayer(self, p: Dict[str, Any]) -> None:
        self.engine.set_relayer(self.who(p.get("as"), "admin"), self.who(p["relayer"]))

    def _configure_currency(self, p: Dict[str, Any]) -> None:
        self.engine.configure_currency(
            self.who(p.get("as"), "admin"),
            p["asset"], p["decimals"], p["min_amount"], p["max_amount"], p["fee_bps"],
        )

    def _remove_currency(self, p: Dict[str, Any]) -> None:
        self.engine.remove_currency(self.who(p.get("as"), "admin"), p["asset"])

    # -- run --------------------------------------------------------------

    def run(self) -> ScenarioResult:
        result = ScenarioResult(name=self.scenario["name"])
        for index, step in enumerate(self.scenario["steps"], start=1):
            expected = step.get("expect_error")
            actions = [k for k in step if k != "expect_error"]
            if len(actions) != 1:
                raise ScenarioError(f"step {index} must name exactly one action, got {actions}")
            action = actions[0]
            handler = self._handlers.get(action)
            if handler is None:
                raise ScenarioError(f"step {index}: unknown action {action!r}")

            try:
                handler(step[action])
            except TribunalError as e:
                ok = expected == e.code
                result.steps.append(StepResult(index, action, ok, e.code, e.message))
                if not ok:
                    wanted = f"expected {expected}" if expected else "expected success"
                    result.failures.append(f"step {index} ({action}): {wanted}, got {e.code}: {e.message}")
                    break
                continue
            except (KeyError, TypeError, ValueError) as e:
                raise ScenarioError(f"step {index} ({action}): malformed parameters: {e}") from e

            result.steps.append(StepResult(index, action, expected is None))
            if expected is not None:
                result.failures.append(f"step {index} ({action}): expected {expected}, but it succeeded")
                break

        if result.passed:
            result.failures.extend(self.check_expectations(self.scenario.get("expect", {})))

        result.events = dict(Counter(r.event.event_type for r in self.store.read_all()))
        result.stats = self.stats.to_dict()
        logger.info(
            f"Scenario {result.name} {'passed' if result.passed else 'failed'}",
            operation="simulate",
            steps=len(result.steps),
            failures=len(result.failures),
        )
        return result

    def check_expectations(self, expect: Dict[str, Any]) -> List[str]:
        failures: List[str] = []

        def check(label: str, actual: Any, wanted: Any) -> None:
            if actual != wanted:
                failures.append(f"{label}: expected {wanted!r}, got {actual!r}")

        for key, wanted in expect.get("disputes", {}).items():
            dispute_id = int(key)
            dispute = self.engine.get_dispute(dispute_id)
            if "status" in wanted:
                check(f"dispute {dispute_id} status", dispute.status.value, wanted["status"])
            if "resolution" in wanted:
                check(f"dispute {dispute_id} resolution", dispute.resolution.value, wanted["resolution"])
            if "appealed" in wanted:
                check(f"dispute {dispute_id} appealed", dispute.appealed, wanted["appealed"])
            if "evidence_count" in wanted:
                check(f"dispute {dispute_id} evidence", len(self.engine.get_evidence(dispute_id)),
                      wanted["evidence_count"])
            if "escrowed" in wanted:
                currency = self._currency_of(dispute_id)
                check(f"dispute {dispute_id} escrowed", self.engine.escrowed(dispute_id),
                      currency.to_units(wanted["escrowed"]))

        native = self.engine.currencies.native
        for name, amount in expect.get("paid", {}).items():
            identity = self.who(name)
            check(f"paid to {name}", native.format(self.engine.ledger.paid_to(identity, native.asset)),
                  native.format(native.to_units(amount)))

        if "dispute_count" in expect:
            check("dispute count", self.engine.get_dispute_count(), expect["dispute_count"])

        counts = Counter(r.event.event_type for r in self.store.read_all())
        for event_type, wanted in expect.get("events", {}).items():
            check(f"{event_type} events", counts.get(event_type, 0), wanted)
        return failures


def run_scenario(scenario: Any) -> ScenarioResult:
    """Run a scenario given as a path or an already-loaded mapping."""
    if isinstance(scenario, (str, Path)):
        scenario = load_scenario(Path(scenario))
    else:
        errors = validate_scenario(scenario)
        if errors:
            raise ScenarioError("; ".join(errors))
    return ScenarioRunner(scenario).run()
