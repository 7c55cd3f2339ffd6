"""
Authorization policy.

A single object answers every "may this identity do this?" question the
dispute engine asks. Platform capabilities (admin, relayer) are held per
identity; party roles are read from the dispute itself.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Dict, Optional, Set

from cryptography.exceptions import InvalidSignature as _CryptoInvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from tribunal.errors import (
    InvalidRespondent,
    InvalidSignature,
    NotAParty,
    NotClaimant,
    NotRespondent,
    Unauthorized,
)
from tribunal.types import Dispute

ZERO_IDENTITY = "0x0000000000000000000000000000000000000000"


class Capability(Enum):
    ADMIN = "admin"
    RELAYER = "relayer"


def is_null_identity(identity: Optional[str]) -> bool:
    if identity is None:
        return True
    text = str(identity).strip()
    return not text or text.lower() == ZERO_IDENTITY


class AuthorizationPolicy:
    """Capability sets per identity, plus the single authorized relayer.

    Only one identity is accepted as relayer at a time; ``set_relayer``
    moves the capability. An optional Ed25519 public key can be bound to the
    relayer, in which case verdict deliveries must be signed with it.
    """

    def __init__(self, admin: str):
        if is_null_identity(admin):
            raise ValueError("an administrator identity is required")
        self._grants: Dict[str, Set[Capability]] = {admin: {Capability.ADMIN}}
        self._relayer: Optional[str] = None
        self._relayer_key: Optional[Ed25519PublicKey] = None
        self._lock = threading.RLock()

    # -- capabilities -------------------------------------------------------

    def has(self, identity: str, capability: Capability) -> bool:
        with self._lock:
            if capability is Capability.RELAYER:
                return self._relayer is not None and identity == self._relayer
            return capability in self._grants.get(identity, set())

    def require(self, identity: str, capability: Capability) -> None:
        if not self.has(identity, capability):
            raise Unauthorized(identity, capability.value)

    def grant(self, identity: str, capability: Capability) -> None:
        if is_null_identity(identity):
            raise Unauthorized(str(identity), capability.value, "cannot grant to the null identity")
        if capability is Capability.RELAYER:
            self.set_relayer(identity)
            return
        with self._lock:
            self._grants.setdefault(identity, set()).add(capability)

    def revoke(self, identity: str, capability: Capability) -> None:
        with self._lock:
            if capability is Capability.RELAYER:
                if self._relayer == identity:
                    self._relayer = None
                    self._relayer_key = None
                return
            held = self._grants.get(identity, set())
            if capability is Capability.ADMIN and capability in held and self._admin_count() == 1:
                raise Unauthorized(identity, capability.value, "cannot revoke the last administrator")
            held.discard(capability)

    def _admin_count(self) -> int:
        return sum(1 for caps in self._grants.values() if Capability.ADMIN in caps)

    @property
    def relayer(self) -> Optional[str]:
        with self._lock:
            return self._relayer

    def set_relayer(self, identity: str, public_key: Optional[Ed25519PublicKey] = None) -> None:
        if is_null_identity(identity):
            raise Unauthorized(str(identity), Capability.RELAYER.value, "relayer cannot be the null identity")
        with self._lock:
            self._relayer = identity
            self._relayer_key = public_key

    def capabilities_of(self, identity: str) -> Set[Capability]:
        with self._lock:
            caps = set(self._grants.get(identity, set()))
            if self._relayer == identity:
                caps.add(Capability.RELAYER)
            return caps

    # -- relayer signatures -------------------------------------------------

    @property
    def requires_signature(self) -> bool:
        with self._lock:
            return self._relayer_key is not None

    def verify_relayer_signature(self, identity: str, message: bytes, signature: Optional[bytes]) -> None:
        """Check ``signature`` over ``message`` when a relayer key is registered."""
        with self._lock:
            key = self._relayer_key
        if key is None:
            return
        if not signature:
            raise InvalidSignature(identity, "signature required")
        try:
            key.verify(signature, message)
        except _CryptoInvalidSignature:
            raise InvalidSignature(identity, "signature does not match the registered relayer key") from None

    # -- party roles --------------------------------------------------------

    @staticmethod
    def require_party(dispute: Dispute, identity: str) -> None:
        if not dispute.is_party(identity):
            raise NotAParty(dispute.dispute_id, identity)

    @staticmethod
    def require_claimant(dispute: Dispute, identity: str) -> None:
        if identity != dispute.claimant:
            raise NotClaimant(dispute.dispute_id, identity)

    @staticmethod
    def require_respondent(dispute: Dispute, identity: str) -> None:
        if identity != dispute.respondent:
            raise NotRespondent(dispute.dispute_id, identity)

    @staticmethod
    def check_counterparty(claimant: str, respondent: str) -> None:
        if is_null_identity(respondent):
            raise InvalidRespondent(str(respondent), "respondent must not be the null identity")
        if respondent == claimant:
            raise InvalidRespondent(respondent, "claimant cannot dispute with themselves")
