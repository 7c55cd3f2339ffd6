"""
Escrow Ledger

Sole owner of balances. Every dispute has one escrow account in a single
currency; value enters through ``deposit`` and leaves through ``release``
or ``execute_plan``. Each movement is appended to a journal, so for every
dispute:

    escrowed == sum(deposits) - sum(releases) >= 0

holds after every call. Failed calls leave the ledger untouched.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from tribunal.errors import (
    CurrencyMismatch,
    InsufficientFunds,
    InvariantViolation,
    LedgerUnderflow,
    PayoutPlanMismatch,
)
from tribunal.settlement import PayoutPlan


class EntryKind(Enum):
    DEPOSIT = "deposit"
    RELEASE = "release"


@dataclass(frozen=True)
class LedgerEntry:
    """A single journal line."""
    sequence: int
    dispute_id: int
    kind: EntryKind
    party: str
    asset: str
    amount: int
    timestamp: int
    memo: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "dispute_id": self.dispute_id,
            "kind": self.kind.value,
            "party": self.party,
            "asset": self.asset,
            "amount": self.amount,
            "timestamp": self.timestamp,
            "memo": self.memo,
        }


@dataclass
class EscrowAccount:
    dispute_id: int
    asset: str
    balance: int = 0
    deposited: int = 0
    released: int = 0
    depositors: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dispute_id": self.dispute_id,
            "asset": self.asset,
            "balance": self.balance,
            "deposited": self.deposited,
            "released": self.released,
            "depositors": dict(self.depositors),
        }


class EscrowLedger:
    """Per-dispute escrow accounting with a global conservation check."""

    def __init__(self):
        self._accounts: Dict[int, EscrowAccount] = {}
        self._paid: Dict[Tuple[str, str], int] = {}
        self._contributed: Dict[Tuple[str, str], int] = {}
        self._entries: List[LedgerEntry] = []
        self._lock = threading.RLock()

    # -- mutations ----------------------------------------------------------

    def deposit(
        self,
        dispute_id: int,
        payer: str,
        asset: str,
        required: int,
        tendered: int,
        timestamp: int,
        memo: str = "",
    ) -> LedgerEntry:
        """Escrow ``tendered`` for a dispute; it must equal ``required`` exactly."""
        if tendered != required:
            raise InsufficientFunds(required, tendered)
        if required <= 0:
            raise InvariantViolation(f"deposit amount must be positive, got {required}")
        with self._lock:
            account = self._accounts.get(dispute_id)
            if account is not None and account.asset != asset:
                raise CurrencyMismatch(dispute_id, account.asset, asset)
            if account is None:
                account = self._accounts[dispute_id] = EscrowAccount(dispute_id, asset)
            account.balance += required
            account.deposited += required
            account.depositors[payer] = account.depositors.get(payer, 0) + required
            key = (payer, asset)
            self._contributed[key] = self._contributed.get(key, 0) + required
            return self._journal(dispute_id, EntryKind.DEPOSIT, payer, asset, required, timestamp, memo)

    def release(
        self,
        dispute_id: int,
        recipient: str,
        amount: int,
        timestamp: int,
        memo: str = "",
    ) -> LedgerEntry:
        """Pay ``amount`` out of a dispute's escrow to ``recipient``."""
        with self._lock:
            account = self._require_account(dispute_id)
            self._check_release(account, amount)
            return self._apply_release(account, recipient, amount, timestamp, memo)

    def execute_plan(self, plan: PayoutPlan, timestamp: int) -> List[LedgerEntry]:
        """Execute every transfer of ``plan`` or none of them.

        The plan must move exactly the current escrowed balance of its
        dispute, in the dispute's currency.
        """
        with self._lock:
            account = self._require_account(plan.dispute_id)
            if account.asset != plan.asset:
                raise CurrencyMismatch(plan.dispute_id, account.asset, plan.asset)
            transfers = plan.transfers
            for transfer in transfers:
                if transfer.amount < 0:
                    raise InvariantViolation(f"negative transfer in payout plan: {transfer}")
            planned = sum(t.amount for t in transfers)
            if planned != account.balance or plan.total != account.balance:
                raise PayoutPlanMismatch(plan.dispute_id, planned, account.balance)
            return [
                self._apply_release(account, t.recipient, t.amount, timestamp, t.reason.value)
                for t in transfers
            ]

    # -- queries ------------------------------------------------------------

    def escrowed(self, dispute_id: int) -> int:
        with self._lock:
            account = self._accounts.get(dispute_id)
            return account.balance if account else 0

    def balance_of(self, dispute_id: int) -> Optional[EscrowAccount]:
        """Snapshot of a dispute's escrow account (None if never funded)."""
        with self._lock:
            account = self._accounts.get(dispute_id)
            if account is None:
                return None
            return EscrowAccount(
                dispute_id=account.dispute_id,
                asset=account.asset,
                balance=account.balance,
                deposited=account.deposited,
                released=account.released,
                depositors=dict(account.depositors),
            )

    def total_escrowed(self, asset: Optional[str] = None) -> int:
        with self._lock:
            return sum(a.balance for a in self._accounts.values() if asset is None or a.asset == asset)

    def paid_to(self, identity: str, asset: str) -> int:
        """Total released to ``identity`` in ``asset`` across all disputes."""
        with self._lock:
            return self._paid.get((identity, asset), 0)

    def contributed_by(self, identity: str, asset: str) -> int:
        with self._lock:
            return self._contributed.get((identity, asset), 0)

    def net_flow(self, identity: str, asset: str) -> int:
        """Released to minus deposited by ``identity``."""
        with self._lock:
            return self.paid_to(identity, asset) - self.contributed_by(identity, asset)

    def entries(self, dispute_id: Optional[int] = None) -> List[LedgerEntry]:
        with self._lock:
            if dispute_id is None:
                return list(self._entries)
            return [e for e in self._entries if e.dispute_id == dispute_id]

    def check_conservation(self) -> None:
        """Re-derive every balance from the journal and compare."""
        with self._lock:
            derived: Dict[int, int] = {}
            for entry in self._entries:
                delta = entry.amount if entry.kind is EntryKind.DEPOSIT else -entry.amount
                derived[entry.dispute_id] = derived.get(entry.dispute_id, 0) + delta
            for dispute_id, account in self._accounts.items():
                expected = derived.get(dispute_id, 0)
                if account.balance != expected or account.balance < 0:
                    raise InvariantViolation(
                        f"escrow for dispute {dispute_id} is {account.balance}, journal says {expected}"
                    )

    # -- internals ----------------------------------------------------------

    def _require_account(self, dispute_id: int) -> EscrowAccount:
        account = self._accounts.get(dispute_id)
        if account is None:
            raise LedgerUnderflow(dispute_id, 0, 0)
        return account

    @staticmethod
    def _check_release(account: EscrowAccount, amount: int) -> None:
        if amount <= 0:
            raise InvariantViolation(f"release amount must be positive, got {amount}")
        if amount > account.balance:
            raise LedgerUnderflow(account.dispute_id, amount, account.balance)

    def _apply_release(
        self,
        account: EscrowAccount,
        recipient: str,
        amount: int,
        timestamp: int,
        memo: str,
    ) -> LedgerEntry:
        account.balance -= amount
        account.released += amount
        key = (recipient, account.asset)
        self._paid[key] = self._paid.get(key, 0) + amount
        return self._journal(account.dispute_id, EntryKind.RELEASE, recipient, account.asset,
                             amount, timestamp, memo)

    def _journal(
        self,
        dispute_id: int,
        kind: EntryKind,
        party: str,
        asset: str,
        amount: int,
        timestamp: int,
        memo: str,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            sequence=len(self._entries) + 1,
            dispute_id=dispute_id,
            kind=kind,
            party=party,
            asset=asset,
            amount=amount,
            timestamp=timestamp,
            memo=memo,
        )
        self._entries.append(entry)
        return entry
