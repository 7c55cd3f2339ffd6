"""
Tribunal Hardening Primitives

Thread-safety, id generation, clock and invariant utilities shared by the
ledger, registers and the dispute engine.

    AtomicCounter           Thread-safe counter
    SequentialIdGenerator   Injected id source (1, 2, 3, ...) never reusing a value
    SystemClock/ManualClock External clock sampled once per operation
    InvariantChecker        Transition table checks
"""

from __future__ import annotations

import secrets
import threading
import time
from enum import Enum
from typing import Dict, Optional, Protocol, Set

from tribunal.errors import ClockRegression, InvariantViolation


# =============================================================================
# COUNTERS AND IDS
# =============================================================================

class AtomicCounter:
    """Thread-safe counter."""

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    def increment(self, delta: int = 1) -> int:
        """Atomically increment and return new value."""
        with self._lock:
            self._value += delta
            return self._value

    def get(self) -> int:
        """Get current value."""
        with self._lock:
            return self._value


class IdGenerator(Protocol):
    def next_id(self) -> int: ...


class SequentialIdGenerator:
    """Monotonic integer ids starting at ``start``; a value is never handed out twice."""

    def __init__(self, start: int = 1):
        self._counter = AtomicCounter(start - 1)

    def next_id(self) -> int:
        return self._counter.increment()


def secure_random_bytes(n_bytes: int = 32) -> bytes:
    """Generate cryptographically secure random bytes."""
    return secrets.token_bytes(n_bytes)


# =============================================================================
# CLOCKS
# =============================================================================

class Clock(Protocol):
    def now(self) -> int: ...


class SystemClock:
    """Wall clock in whole unix seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock driven by the caller. Used by tests and scenario simulation."""

    def __init__(self, start: int = 1_700_000_000):
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("ManualClock only moves forward")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, timestamp: int) -> None:
        with self._lock:
            self._now = timestamp


class MonotonicGuard:
    """Samples a clock and refuses readings earlier than the last one seen."""

    def __init__(self, clock: Clock):
        self._clock = clock
        self._last: Optional[int] = None
        self._lock = threading.Lock()

    def sample(self) -> int:
        now = int(self._clock.now())
        with self._lock:
            if self._last is not None and now < self._last:
                raise ClockRegression(self._last, now)
            self._last = now
        return now


# =============================================================================
# STATE MACHINE INVARIANTS
# =============================================================================

class InvariantChecker:
    """Enforces state machine invariants."""

    @staticmethod
    def check_state_transition(
        current_state: Enum,
        target_state: Enum,
        valid_transitions: Dict[Enum, Set[Enum]],
    ) -> None:
        """Verify state transition is valid."""
        valid_targets = valid_transitions.get(current_state, set())
        if target_state not in valid_targets:
            raise InvariantViolation(
                f"Invalid state transition: {current_state.name} -> {target_state.name}. "
                f"Valid targets: {sorted(s.name for s in valid_targets)}"
            )
