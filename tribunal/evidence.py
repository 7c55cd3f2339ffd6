"""
Evidence Register

Append-only, capped list of content references per dispute. A content
reference may be used only once on the whole platform. There is no update
or delete; quality scoring of the content is someone else's job.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from tribunal.authorization import AuthorizationPolicy
from tribunal.errors import (
    CapacityExceeded,
    DuplicateContent,
    EvidenceStageOver,
    InvalidContentRef,
    WindowClosed,
)
from tribunal.hardening import IdGenerator, SequentialIdGenerator
from tribunal.types import Dispute, Evidence, EvidenceType

DEFAULT_EVIDENCE_CAP = 20


def normalize_content_ref(content_ref: Any) -> str:
    if not isinstance(content_ref, str) or not content_ref.strip():
        raise InvalidContentRef(content_ref)
    return content_ref.strip()


class EvidenceRegister:
    """Evidence per dispute, with global content deduplication."""

    def __init__(self, cap: int = DEFAULT_EVIDENCE_CAP, id_generator: Optional[IdGenerator] = None):
        if cap <= 0:
            raise ValueError("evidence cap must be positive")
        self.cap = cap
        self._ids = id_generator or SequentialIdGenerator()
        self._by_dispute: Dict[int, List[Evidence]] = {}
        self._used_refs: Set[str] = set()
        self._lock = threading.RLock()

    def submit(
        self,
        dispute: Dispute,
        submitter: str,
        content_ref: str,
        type_tag: Any,
        now: int,
    ) -> Evidence:
        return self.submit_batch(dispute, submitter, [(content_ref, type_tag)], now)[0]

    def submit_batch(
        self,
        dispute: Dispute,
        submitter: str,
        items: Sequence[Tuple[str, Any]],
        now: int,
    ) -> List[Evidence]:
        """Submit several items; if any one fails, none are recorded."""
        with self._lock:
            prepared = self._check(dispute, submitter, items, now)
            records: List[Evidence] = []
            bucket = self._by_dispute.setdefault(dispute.dispute_id, [])
            for ref, type_tag in prepared:
                evidence = Evidence(
                    evidence_id=self._ids.next_id(),
                    dispute_id=dispute.dispute_id,
                    submitter=submitter,
                    content_ref=ref,
                    type_tag=type_tag,
                    submitted_at=now,
                )
                bucket.append(evidence)
                self._used_refs.add(ref)
                records.append(evidence)
            return records

    def _check(
        self,
        dispute: Dispute,
        submitter: str,
        items: Sequence[Tuple[str, Any]],
        now: int,
    ) -> List[Tuple[str, EvidenceType]]:
        if not items:
            raise InvalidContentRef(None)
        AuthorizationPolicy.require_party(dispute, submitter)
        if not dispute.status.accepts_evidence():
            raise EvidenceStageOver(dispute.dispute_id, dispute.status)
        if now > dispute.evidence_deadline:
            raise WindowClosed(dispute.dispute_id, dispute.evidence_deadline, now)

        prepared: List[Tuple[str, EvidenceType]] = []
        seen: Set[str] = set()
        for content_ref, type_tag in items:
            ref = normalize_content_ref(content_ref)
            tag = EvidenceType.checked(type_tag)
            if ref in self._used_refs or ref in seen:
                raise DuplicateContent(ref)
            seen.add(ref)
            prepared.append((ref, tag))

        existing = len(self._by_dispute.get(dispute.dispute_id, ()))
        if existing + len(prepared) > self.cap:
            raise CapacityExceeded(dispute.dispute_id, self.cap)
        return prepared

    def list_for(self, dispute_id: int) -> List[Evidence]:
        with self._lock:
            return list(self._by_dispute.get(dispute_id, ()))

    def count_for(self, dispute_id: int) -> int:
        with self._lock:
            return len(self._by_dispute.get(dispute_id, ()))

    def content_used(self, content_ref: str) -> bool:
        with self._lock:
            return content_ref.strip() in self._used_refs

    def submitters(self, dispute_id: int) -> Set[str]:
        with self._lock:
            return {e.submitter for e in self._by_dispute.get(dispute_id, ())}

    @property
    def total(self) -> int:
        with self._lock:
            return len(self._used_refs)

    def iter_all(self) -> Iterable[Evidence]:
        with self._lock:
            return [e for bucket in self._by_dispute.values() for e in bucket]
