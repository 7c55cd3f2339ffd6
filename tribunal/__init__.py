"""
Tribunal: escrowed dispute resolution with oracle verdicts

Two parties stake equal amounts into escrow, submit evidence references,
and receive a verdict from an external oracle delivered through a trusted
relayer. After a single optional appeal, the pool is paid out according
to the verdict minus a platform fee.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                          DISPUTE RESOLUTION                              │
    │                                                                          │
    │  CONTROL                                                                 │
    │    engine.py          Lifecycle state machine, guards, admin surface     │
    │    authorization.py   Admin/relayer capabilities, party roles, keys      │
    │                                                                          │
    │  COMPONENTS                                                              │
    │    ledger.py          Per-dispute escrow accounts and journal            │
    │    evidence.py        Append-only, deduplicated evidence register        │
    │    oracle.py          Request ids, timeouts, single termination          │
    │    settlement.py      Fee and payout arithmetic, payout plans            │
    │    currencies.py      Stake currencies, bounds and fee rates             │
    │                                                                          │
    │  AMBIENT                                                                 │
    │    events.py          Event bus, event store, projection base            │
    │    projections.py     Platform statistics and dispute index              │
    │    config.py          YAML/env configuration                             │
    │    observability.py   Structured logging and audit chain                 │
    │    simulation.py      YAML scenario replay on a manual clock             │
    │    cli.py             ``tribunal`` command                               │
    └─────────────────────────────────────────────────────────────────────────┘

Every amount is an integer count of the currency's base units; every time
is an integer Unix timestamp taken from an injected clock.
"""

from __future__ import annotations

from typing import Any

__version__ = "0.1.0"

_EXPORTS = {
    "DisputeResolution": "tribunal.engine",
    "EscrowLedger": "tribunal.ledger",
    "EvidenceRegister": "tribunal.evidence",
    "OracleBridge": "tribunal.oracle",
    "sign_verdict": "tribunal.oracle",
    "AuthorizationPolicy": "tribunal.authorization",
    "Capability": "tribunal.authorization",
    "Currency": "tribunal.currencies",
    "CurrencyRegistry": "tribunal.currencies",
    "PayoutPlan": "tribunal.settlement",
    "compute_payout_plan": "tribunal.settlement",
    "Dispute": "tribunal.types",
    "DisputeStatus": "tribunal.types",
    "DisputeCategory": "tribunal.types",
    "Evidence": "tribunal.types",
    "EvidenceType": "tribunal.types",
    "Resolution": "tribunal.types",
    "RequestStatus": "tribunal.types",
    "TribunalError": "tribunal.errors",
    "ErrorKind": "tribunal.errors",
    "ManualClock": "tribunal.hardening",
    "SystemClock": "tribunal.hardening",
    "EventBus": "tribunal.events",
    "EventStore": "tribunal.events",
    "ProtocolStatsProjection": "tribunal.projections",
    "DisputeIndexProjection": "tribunal.projections",
    "run_scenario": "tribunal.simulation",
}


def __getattr__(name: str) -> Any:
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module 'tribunal' has no attribute {name!r}")
    import importlib
    return getattr(importlib.import_module(module_name), name)


__all__ = ["__version__", *_EXPORTS]
