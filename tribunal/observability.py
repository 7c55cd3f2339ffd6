"""
Tribunal Observability

Structured logging and a hash-chained audit trail.

    ┌─────────────────────────────────────────────────────────┐
    │                   Dispute engine code                    │
    │  logger.info("msg", dispute_id=x)   @timed_operation     │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                    TribunalLogger                        │
    │  correlation ids, layer, operation, error codes          │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │     StructuredHandler (JSON lines) │ text StreamHandler  │
    └─────────────────────────────────────────────────────────┘

Guard failures are logged at warning with their error code; integrity
failures at critical, since they mean the implementation is wrong.
"""

from __future__ import annotations

import contextvars
import functools
import hashlib
import json
import logging
import sys
import threading
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TypeVar

from tribunal.errors import ErrorKind, TribunalError

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

ROOT_LOGGER_NAME = "tribunal"


class TribunalLayer(Enum):
    """Components, used to categorize log records."""
    ENGINE = "engine"
    LEDGER = "ledger"
    EVIDENCE = "evidence"
    ORACLE = "oracle"
    SETTLEMENT = "settlement"
    ADMIN = "admin"
    CONFIG = "config"
    CLI = "cli"
    AUDIT = "audit"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs one JSON object per line."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


def configure_logging(level: str = "info", fmt: str = "json", stream: Any = None) -> logging.Logger:
    """Install a single handler on the ``tribunal`` logger hierarchy."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, level.upper()))
    for handler in list(root.handlers):
        root.removeHandler(handler)
    if fmt == "json":
        handler: logging.Handler = StructuredHandler(stream)
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(handler)
    root.propagate = False
    return root


class TribunalLogger:
    """
    Structured logger for tribunal components.

    Records carry the layer, operation, error code and correlation id as
    structured fields rather than inside the message text.
    """

    def __init__(self, name: str, layer: TribunalLayer):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{layer.value}.{name}")

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(self, message: str, error_code: str = "", exc_info: bool = False, **context: Any) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def critical(self, message: str, error_code: str = "", exc_info: bool = False, **context: Any) -> None:
        self._log(logging.CRITICAL, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        error: Optional[BaseException] = None,
        **context: Any,
    ) -> None:
        """Log an operation completion, or its failure with the violated guard."""
        if success:
            self._log(logging.INFO, f"Operation {name} completed", operation=name,
                      duration_ms=duration_ms, **context)
            return
        if isinstance(error, TribunalError):
            level = logging.CRITICAL if error.kind is ErrorKind.INTEGRITY else logging.WARNING
            self._log(level, f"Operation {name} rejected: {error.message}", operation=name,
                      duration_ms=duration_ms, error_code=error.code, kind=error.kind.value,
                      **context)
            return
        self._log(logging.ERROR, f"Operation {name} failed: {error}", operation=name,
                  duration_ms=duration_ms, exc_info=error is not None, **context)


def generate_correlation_id() -> str:
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one if unset."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: TribunalLayer) -> TribunalLogger:
    return TribunalLogger(name, layer)


T = TypeVar("T")


def timed_operation(
    logger: TribunalLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations.

    Each call runs under its own correlation id unless the caller already
    set one.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            token = None
            if not correlation_id_var.get():
                token = set_correlation_id(generate_correlation_id())
            start = time.monotonic()
            error: Optional[BaseException] = None
            try:
                return func(*args, **kwargs)
            except Exception as e:
                error = e
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, error is None, error)
                if token is not None:
                    correlation_id_var.reset(token)
        return wrapper
    return decorator


# ════════════════════════════════════════════════════════════════════════════
# AUDIT
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class AuditEvent:
    """Audit record for an administrative action."""
    event_id: str
    timestamp: str
    actor: str
    action: str
    resource_type: str
    resource_id: str
    outcome: str  # success, failure, denied
    correlation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    previous_hash: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditLogger:
    """
    Tamper-evident audit trail.

    Each record's hash covers its content and the previous record's hash,
    so editing or dropping any record breaks ``verify_chain``.
    """

    GENESIS = "genesis"

    def __init__(self, logger: TribunalLogger):
        self._logger = logger
        self._last_hash: str = self.GENESIS
        self._records: List[tuple] = []
        self._lock = threading.Lock()

    @staticmethod
    def _compute_hash(event: AuditEvent) -> str:
        data = json.dumps(event.to_dict(), sort_keys=True, default=str)
        return hashlib.sha256(data.encode()).hexdigest()

    def log(
        self,
        actor: str,
        action: str,
        resource_type: str,
        resource_id: str,
        outcome: str,
        **details: Any,
    ) -> AuditEvent:
        with self._lock:
            event = AuditEvent(
                event_id=uuid.uuid4().hex,
                timestamp=datetime.now(timezone.utc).isoformat(),
                actor=actor,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                outcome=outcome,
                correlation_id=get_correlation_id(),
                details=details,
                previous_hash=self._last_hash,
            )
            event_hash = self._compute_hash(event)
            self._last_hash = event_hash
            self._records.append((event, event_hash))

        self._logger.info(
            f"AUDIT: {action} on {resource_type}/{resource_id}",
            operation="audit",
            actor=actor,
            outcome=outcome,
            event_hash=event_hash,
        )
        return event

    @property
    def head(self) -> str:
        with self._lock:
            return self._last_hash

    def records(self) -> List[AuditEvent]:
        with self._lock:
            return [event for event, _ in self._records]

    def verify_chain(self) -> bool:
        with self._lock:
            previous = self.GENESIS
            for event, event_hash in self._records:
                if event.previous_hash != previous or self._compute_hash(event) != event_hash:
                    return False
                previous = event_hash
            return True
