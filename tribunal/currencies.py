"""
Supported stake currencies.

Each currency carries its own bounds and platform fee. Amounts are held as
integers in the currency's base unit (wei for the native asset); Decimal is
only used at the edges, when parsing user input or rendering output.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, List, Optional

from tribunal.core import to_decimal
from tribunal.errors import AmountOutOfBounds, InvalidCurrencyConfig, UnsupportedCurrency

NATIVE_ASSET = "ETH"
NATIVE_DECIMALS = 18
BPS_DENOMINATOR = 10_000
DEFAULT_MAX_FEE_BPS = 1_000


@dataclass(frozen=True)
class Currency:
    """A stake currency and its admission parameters (all in base units)."""
    asset: str
    decimals: int
    min_amount: int
    max_amount: int
    fee_bps: int
    native: bool = False

    def to_units(self, amount: Any) -> int:
        """Convert a human amount ("1.5") to base units, rejecting sub-unit precision."""
        value = to_decimal(amount)
        scaled = value.scaleb(self.decimals)
        units = scaled.to_integral_value(rounding=ROUND_DOWN)
        if units != scaled:
            raise ValueError(f"{amount} has more than {self.decimals} decimal places for {self.asset}")
        return int(units)

    def from_units(self, units: int) -> Decimal:
        return Decimal(units).scaleb(-self.decimals)

    def format(self, units: int) -> str:
        text = format(self.from_units(units), "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text

    def check_bounds(self, amount: int) -> None:
        if amount < self.min_amount or amount > self.max_amount:
            raise AmountOutOfBounds(amount, self.min_amount, self.max_amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset": self.asset,
            "decimals": self.decimals,
            "min_amount": self.min_amount,
            "max_amount": self.max_amount,
            "min": self.format(self.min_amount),
            "max": self.format(self.max_amount),
            "fee_bps": self.fee_bps,
            "native": self.native,
        }

    @classmethod
    def from_human(
        cls,
        asset: str,
        decimals: int,
        min_amount: Any,
        max_amount: Any,
        fee_bps: int,
        native: bool = False,
    ) -> "Currency":
        """Build a currency from decimal bounds such as ``min_amount="0.001"``."""
        unbounded = cls(asset, decimals, 0, 0, fee_bps, native)
        return cls(
            asset=asset,
            decimals=decimals,
            min_amount=unbounded.to_units(min_amount),
            max_amount=unbounded.to_units(max_amount),
            fee_bps=fee_bps,
            native=native,
        )


def validate_currency(currency: Currency, max_fee_bps: int = DEFAULT_MAX_FEE_BPS) -> None:
    """Raise InvalidCurrencyConfig unless the parameters are admissible."""
    if not currency.asset or not isinstance(currency.asset, str):
        raise InvalidCurrencyConfig(str(currency.asset), "asset identifier must be a non-empty string")
    if currency.decimals < 0 or currency.decimals > 36:
        raise InvalidCurrencyConfig(currency.asset, f"decimals out of range: {currency.decimals}")
    if currency.min_amount <= 0:
        raise InvalidCurrencyConfig(currency.asset, "minimum must be positive")
    if currency.min_amount > currency.max_amount:
        raise InvalidCurrencyConfig(currency.asset, "minimum exceeds maximum")
    if currency.fee_bps < 0 or currency.fee_bps > max_fee_bps:
        raise InvalidCurrencyConfig(currency.asset, f"fee must be within [0, {max_fee_bps}] bps")


class CurrencyRegistry:
    """Thread-safe table of supported currencies keyed by asset identifier."""

    def __init__(self, max_fee_bps: int = DEFAULT_MAX_FEE_BPS):
        self._currencies: Dict[str, Currency] = {}
        self._max_fee_bps = max_fee_bps
        self._lock = threading.RLock()

    def configure(self, currency: Currency) -> Currency:
        validate_currency(currency, self._max_fee_bps)
        with self._lock:
            self._currencies[currency.asset] = currency
        return currency

    def remove(self, asset: str) -> Currency:
        with self._lock:
            currency = self._currencies.get(asset)
            if currency is None:
                raise UnsupportedCurrency(asset)
            if currency.native:
                raise InvalidCurrencyConfig(asset, "the native currency cannot be removed")
            return self._currencies.pop(asset)

    def get(self, asset: str) -> Optional[Currency]:
        with self._lock:
            return self._currencies.get(asset)

    def require(self, asset: str) -> Currency:
        currency = self.get(asset)
        if currency is None:
            raise UnsupportedCurrency(asset)
        return currency

    @property
    def native(self) -> Currency:
        with self._lock:
            for currency in self._currencies.values():
                if currency.native:
                    return currency
        raise UnsupportedCurrency(NATIVE_ASSET)

    def all(self) -> List[Currency]:
        with self._lock:
            return sorted(self._currencies.values(), key=lambda c: (not c.native, c.asset))

    def __contains__(self, asset: str) -> bool:
        return self.get(asset) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._currencies)


def default_native_currency(
    min_amount: Any = "0.001",
    max_amount: Any = "1000",
    fee_bps: int = 250,
) -> Currency:
    """The native asset with the parameters of the production deployment."""
    return Currency.from_human(NATIVE_ASSET, NATIVE_DECIMALS, min_amount, max_amount, fee_bps, native=True)
