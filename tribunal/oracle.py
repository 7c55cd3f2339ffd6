"""
Oracle request/callback bridge.

Maps opaque request identifiers to disputes and makes sure every request
is terminated exactly once: fulfilled by the relayer, failed by the
relayer, or expired by anyone after the timeout. Terminal requests are
never reopened; a fresh round gets a fresh request.

Request ids are HMAC-SHA256 digests keyed with a per-bridge secret over
the dispute id, a strictly increasing nonce, the creation time and 16
bytes of fresh randomness, so they cannot be predicted before creation.
"""

from __future__ import annotations

import hashlib
import hmac
import threading
from typing import Any, Dict, List, Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from tribunal.core import canonical_json_bytes
from tribunal.errors import (
    RequestAlreadyTerminal,
    RequestExpired,
    RequestNotExpired,
    RequestNotFound,
)
from tribunal.hardening import AtomicCounter, secure_random_bytes
from tribunal.types import OracleRequest, RequestStatus, Resolution

DEFAULT_REQUEST_TIMEOUT = 24 * 3600


def verdict_message(request_id: str, resolution: Any, confidence: int, reasoning_ref: str) -> bytes:
    """Canonical bytes a relayer signs when delivering a verdict."""
    if isinstance(resolution, Resolution):
        resolution = resolution.value
    return canonical_json_bytes({
        "request_id": request_id,
        "resolution": resolution,
        "confidence": confidence,
        "reasoning_ref": reasoning_ref,
    })


def sign_verdict(
    private_key: Ed25519PrivateKey,
    request_id: str,
    resolution: Any,
    confidence: int,
    reasoning_ref: str,
) -> bytes:
    """Relayer-side helper producing the Ed25519 signature for a delivery."""
    return private_key.sign(verdict_message(request_id, resolution, confidence, reasoning_ref))


class OracleBridge:
    """Registry of oracle requests and their single termination."""

    def __init__(self, timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT, secret: Optional[bytes] = None):
        if timeout_seconds <= 0:
            raise ValueError("oracle timeout must be positive")
        self.timeout_seconds = timeout_seconds
        self._secret = secret or secure_random_bytes(32)
        self._nonce = AtomicCounter()
        self._requests: Dict[str, OracleRequest] = {}
        self._by_dispute: Dict[int, List[str]] = {}
        self._lock = threading.RLock()

    def _derive_id(self, dispute_id: int, nonce: int, now: int) -> str:
        material = b"|".join([
            str(dispute_id).encode(),
            str(nonce).encode(),
            str(now).encode(),
            secure_random_bytes(16),
        ])
        return "0x" + hmac.new(self._secret, material, hashlib.sha256).hexdigest()

    def create_request(self, dispute_id: int, now: int) -> OracleRequest:
        with self._lock:
            request_id = self._derive_id(dispute_id, self._nonce.increment(), now)
            while request_id in self._requests:
                request_id = self._derive_id(dispute_id, self._nonce.increment(), now)
            request = OracleRequest(
                request_id=request_id,
                dispute_id=dispute_id,
                created_at=now,
                expires_at=now + self.timeout_seconds,
            )
            self._requests[request_id] = request
            self._by_dispute.setdefault(dispute_id, []).append(request_id)
            return request

    def get_request(self, request_id: str) -> OracleRequest:
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise RequestNotFound(request_id)
            return request

    def requests_for(self, dispute_id: int) -> List[OracleRequest]:
        with self._lock:
            return [self._requests[r] for r in self._by_dispute.get(dispute_id, ())]

    def check_deliverable(self, request_id: str, now: int) -> OracleRequest:
        """Return the request if a verdict may still be applied to it."""
        request = self.get_request(request_id)
        if request.status.is_terminal():
            raise RequestAlreadyTerminal(request_id, request.status)
        if request.is_expired_at(now):
            raise RequestExpired(request_id, request.expires_at, now)
        return request

    def deliver(self, request_id: str, now: int) -> OracleRequest:
        with self._lock:
            request = self.check_deliverable(request_id, now)
            request.status = RequestStatus.FULFILLED
            request.terminated_at = now
            return request

    def check_failable(self, request_id: str) -> OracleRequest:
        request = self.get_request(request_id)
        if request.status.is_terminal():
            raise RequestAlreadyTerminal(request_id, request.status)
        return request

    def fail(self, request_id: str, reason: str, now: int) -> OracleRequest:
        with self._lock:
            request = self.check_failable(request_id)
            request.status = RequestStatus.FAILED
            request.terminated_at = now
            request.failure_reason = reason or "unspecified"
            return request

    def expire(self, request_id: str, now: int) -> OracleRequest:
        """Timeout sweep. Permissionless; the owning dispute is left as is."""
        with self._lock:
            request = self.get_request(request_id)
            if request.status.is_terminal():
                raise RequestAlreadyTerminal(request_id, request.status)
            if not request.is_expired_at(now):
                raise RequestNotExpired(request_id, request.expires_at, now)
            request.status = RequestStatus.EXPIRED
            request.terminated_at = now
            return request

    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for r in self._requests.values() if r.status is RequestStatus.PENDING)

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)
