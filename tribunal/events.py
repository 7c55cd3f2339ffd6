"""
Tribunal Event Infrastructure

Every state transition of a dispute emits exactly one notification. The
engine buffers them while an operation runs and publishes them only once
the new state is committed, so subscribers never observe a transition
that later fails.

Architecture
────────────

    ┌──────────────────────────────────────────────────────────────────┐
    │                      EVENT INFRASTRUCTURE                         │
    │                                                                   │
    │  Event Bus             Event Store            Projection          │
    │  ├─ Typed events       ├─ Append-only         ├─ Read models      │
    │  ├─ Priorities         ├─ Per-dispute streams ├─ Rebuild from     │
    │  └─ Filters            └─ Global ordering     └─  the store       │
    │                                                                   │
    │  Dispute Events                     Platform Events               │
    │  ├─ DisputeCreated / Accepted       └─ PlatformSettingChanged     │
    │  ├─ EvidenceSubmitted                                             │
    │  ├─ VerdictRequested / Received                                   │
    │  ├─ OracleRequestFailed / Expired                                 │
    │  ├─ DisputeAppealed                                               │
    │  └─ DisputeResolved / Cancelled                                   │
    └──────────────────────────────────────────────────────────────────┘

Usage
─────

    bus = EventBus()

    @bus.subscribe(DisputeResolved)
    def on_resolved(event: DisputeResolved):
        print(f"Dispute {event.dispute_id} resolved as {event.resolution}")

Events are facts: they are never modified after publication. Handlers
should be idempotent, since a projection may replay the same events when
it is rebuilt from the store.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Type

from tribunal.core import digest_of

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all events in the system.

    ``occurred_at`` is protocol time (the clock value the operation ran
    with); ``event_timestamp`` is wall-clock time of emission.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    occurred_at: int = 0
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    @property
    def stream_id(self) -> str:
        return "platform"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        data = data.copy()
        data.pop("event_type", None)
        return cls(**data)

    def to_json(self) -> str:
        """Serialize for display/transport (not for digest computation)."""
        return json.dumps(self.to_dict(), default=str, sort_keys=True)

    def digest(self) -> str:
        """Deterministic digest of the event's content fields."""
        content = {
            k: v for k, v in self.to_dict().items()
            if k not in ("event_id", "event_timestamp", "correlation_id")
        }
        return digest_of(content)


@dataclass
class DisputeEvent(Event):
    """An event that belongs to one dispute's stream."""
    dispute_id: int = 0

    @property
    def stream_id(self) -> str:
        return f"dispute-{self.dispute_id}"


# ════════════════════════════════════════════════════════════════════════════
# DISPUTE EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class DisputeCreated(DisputeEvent):
    claimant: str = ""
    respondent: str = ""
    category: str = ""
    description_ref: str = ""
    stake_asset: str = ""
    stake_amount: int = 0
    evidence_deadline: int = 0


@dataclass
class DisputeAccepted(DisputeEvent):
    respondent: str = ""
    stake_amount: int = 0
    evidence_deadline: int = 0


@dataclass
class EvidenceSubmitted(DisputeEvent):
    evidence_id: int = 0
    submitter: str = ""
    content_ref: str = ""
    type_tag: str = ""


@dataclass
class VerdictRequested(DisputeEvent):
    request_id: str = ""
    requested_by: str = ""
    expires_at: int = 0


@dataclass
class VerdictReceived(DisputeEvent):
    request_id: str = ""
    resolution: str = ""
    confidence: int = 0
    reasoning_ref: str = ""
    appeal_deadline: int = 0


@dataclass
class OracleRequestFailed(DisputeEvent):
    request_id: str = ""
    reason: str = ""


@dataclass
class OracleRequestExpired(DisputeEvent):
    request_id: str = ""
    swept_by: str = ""


@dataclass
class DisputeAppealed(DisputeEvent):
    appellant: str = ""
    appeal_stake: int = 0
    appeal_deadline: int = 0


@dataclass
class DisputeResolved(DisputeEvent):
    resolution: str = ""
    stake_asset: str = ""
    total_pool: int = 0
    claimant_payout: int = 0
    respondent_payout: int = 0
    platform_fee: int = 0
    appeal_stake: int = 0
    finalized_by: str = ""


@dataclass
class DisputeCancelled(DisputeEvent):
    claimant: str = ""
    refund: int = 0
    stake_asset: str = ""


# ════════════════════════════════════════════════════════════════════════════
# PLATFORM EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class PlatformSettingChanged(Event):
    """Administrative change (pause, treasury, relayer, currency, capability)."""
    setting: str = ""
    value: Any = None
    actor: str = ""


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {event.event_type}: {cause}")


class EventBus:
    """
    In-memory synchronous pub/sub.

    Handlers run in priority order (higher first) on the publishing thread.
    A failing handler never affects the publisher or the other handlers;
    the failure goes to ``on_error`` or, without one, to the log.
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """Decorator subscribing a handler to event types (all events if none given)."""
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        with self._lock:
            self._published_count += 1
            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
                and (r.filter_func is None or r.filter_func(event))
            ]

        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            if self._on_error:
                self._on_error(error)
            else:
                logger.error("%s", error, exc_info=True)

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }


# ════════════════════════════════════════════════════════════════════════════
# EVENT STORE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class EventRecord:
    """A persisted event record."""
    sequence_number: int
    event: Event
    stream_id: str
    version: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence_number": self.sequence_number,
            "event": self.event.to_dict(),
            "stream_id": self.stream_id,
            "version": self.version,
        }


class ConcurrencyError(Exception):
    """Optimistic concurrency violation."""
    def __init__(self, stream_id: str, expected: int, actual: int):
        self.stream_id = stream_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Concurrency error for stream '{stream_id}': "
            f"expected version {expected}, actual {actual}"
        )


class EventStore:
    """
    Append-only event log, organized into one stream per dispute plus a
    ``platform`` stream for administrative events.

    Subscribe ``store.record`` to a bus to persist everything published.
    """

    def __init__(self):
        self._events: List[EventRecord] = []
        self._streams: Dict[str, List[EventRecord]] = {}
        self._lock = threading.RLock()

    def append(
        self,
        stream_id: str,
        events: List[Event],
        expected_version: Optional[int] = None,
    ) -> List[EventRecord]:
        with self._lock:
            stream = self._streams.setdefault(stream_id, [])
            current_version = len(stream)

            if expected_version is not None and expected_version != current_version:
                raise ConcurrencyError(stream_id, expected_version, current_version)

            records = []
            for event in events:
                current_version += 1
                record = EventRecord(
                    sequence_number=len(self._events) + 1,
                    event=event,
                    stream_id=stream_id,
                    version=current_version,
                )
                self._events.append(record)
                stream.append(record)
                records.append(record)
            return records

    def record(self, event: Event) -> None:
        """Bus handler: append an event to its own stream."""
        self.append(event.stream_id, [event])

    def read_stream(self, stream_id: str, from_version: int = 0) -> List[Event]:
        with self._lock:
            return [r.event for r in self._streams.get(stream_id, [])[from_version:]]

    def read_all(self, from_position: int = 0, max_count: Optional[int] = None) -> List[EventRecord]:
        with self._lock:
            end = None if max_count is None else from_position + max_count
            return self._events[from_position:end]

    def get_stream_version(self, stream_id: str) -> int:
        with self._lock:
            return len(self._streams.get(stream_id, []))

    def get_stream_ids(self) -> List[str]:
        with self._lock:
            return list(self._streams.keys())

    @property
    def total_events(self) -> int:
        with self._lock:
            return len(self._events)


# ════════════════════════════════════════════════════════════════════════════
# PROJECTION
# ════════════════════════════════════════════════════════════════════════════


class Projection(ABC):
    """
    Base class for read models derived purely from events.

    A projection can be attached live (``projection.attach(bus)``) or
    rebuilt from scratch from an EventStore at any time.
    """

    def __init__(self):
        self._position = 0

    @property
    def position(self) -> int:
        """Last processed event position."""
        return self._position

    @abstractmethod
    def handle_event(self, event: Event) -> None:
        """Process an event to update the projection."""

    @abstractmethod
    def reset(self) -> None:
        """Drop all derived state."""

    def attach(self, bus: EventBus, priority: int = 0) -> None:
        bus.subscribe(priority=priority)(self._on_live_event)

    def _on_live_event(self, event: Event) -> None:
        self.handle_event(event)
        self._position += 1

    def process_events(self, records: List[EventRecord]) -> None:
        for record in records:
            self.handle_event(record.event)
            self._position = record.sequence_number

    def rebuild(self, store: EventStore) -> None:
        self.reset()
        self._position = 0
        self.process_events(store.read_all())


__all__ = [
    "Event",
    "DisputeEvent",
    "DisputeCreated",
    "DisputeAccepted",
    "EvidenceSubmitted",
    "VerdictRequested",
    "VerdictReceived",
    "OracleRequestFailed",
    "OracleRequestExpired",
    "DisputeAppealed",
    "DisputeResolved",
    "DisputeCancelled",
    "PlatformSettingChanged",
    "EventHandler",
    "EventHandlerRegistration",
    "EventHandlerError",
    "EventBus",
    "EventRecord",
    "EventStore",
    "ConcurrencyError",
    "Projection",
]
