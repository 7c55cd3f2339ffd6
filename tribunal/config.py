"""
Tribunal Configuration System

Unified configuration management with YAML files, environment variables,
validation, and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (TRIBUNAL_*)
    2. Runtime overrides
    3. User config file (~/.tribunal/config.yaml)
    4. Project config file (./tribunal.yaml, ./config/tribunal.yaml)
    5. Default values

A config file may also carry a ``currencies`` list (extra stake
currencies besides the native one); the whole file is checked against
``schemas/platform-config.schema.json`` before anything is applied.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from tribunal.core import SCHEMAS_DIR, parse_duration_seconds
from tribunal.errors import TribunalError

T = TypeVar("T")

logger = logging.getLogger(__name__)

PLATFORM_CONFIG_SCHEMA = SCHEMAS_DIR / "platform-config.schema.json"


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding, an optional
    coercion applied to file and environment input, validation, and
    change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    coerce: Optional[Callable[[Any], T]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[Optional[T], T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: Any) -> None:
        """Set the value with coercion and validation."""
        try:
            value = self._coerce(value)
            valid = self.validator is None or self.validator(value)
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(f"Invalid value for config: {value!r} ({e})") from e
        if not valid:
            raise ConfigValidationError(f"Invalid value for config: {value!r}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: Any) -> T:
        if self.coerce is not None:
            return self.coerce(value)
        if not isinstance(value, str):
            return value
        target_type = type(self.default)
        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        return value  # type: ignore

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


def _positive(x: int) -> bool:
    return x > 0


def _bps(x: int) -> bool:
    return 0 <= x <= 10_000


@dataclass
class ProtocolConfig:
    """Lifecycle windows and economic constants."""
    evidence_window_seconds: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=3 * 86400,
        env_var="TRIBUNAL_EVIDENCE_WINDOW",
        description="Evidence submission window (seconds or duration string)",
        validator=_positive,
        coerce=parse_duration_seconds,
    ))
    appeal_window_seconds: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=2 * 86400,
        env_var="TRIBUNAL_APPEAL_WINDOW",
        description="Appeal window after a verdict (seconds or duration string)",
        validator=_positive,
        coerce=parse_duration_seconds,
    ))
    oracle_timeout_seconds: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=24 * 3600,
        env_var="TRIBUNAL_ORACLE_TIMEOUT",
        description="Time after which a pending oracle request may be expired",
        validator=_positive,
        coerce=parse_duration_seconds,
    ))
    evidence_cap: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=20,
        env_var="TRIBUNAL_EVIDENCE_CAP",
        description="Maximum evidence items per dispute",
        validator=_positive,
    ))
    min_evidence_for_early_verdict: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=2,
        env_var="TRIBUNAL_EARLY_VERDICT_EVIDENCE",
        description="Evidence count that allows requesting a verdict before the deadline",
        validator=_positive,
    ))
    appeal_stake_bps: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=1000,
        env_var="TRIBUNAL_APPEAL_STAKE_BPS",
        description="Minimum appeal stake as basis points of the total pool",
        validator=_bps,
    ))
    max_fee_bps: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=1000,
        env_var="TRIBUNAL_MAX_FEE_BPS",
        description="Upper bound for any currency's platform fee",
        validator=_bps,
    ))


@dataclass
class NativeCurrencyConfig:
    """Parameters of the native stake currency."""
    asset: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="ETH",
        env_var="TRIBUNAL_NATIVE_ASSET",
        description="Native asset symbol",
        validator=lambda x: bool(x),
    ))
    decimals: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=18,
        env_var="TRIBUNAL_NATIVE_DECIMALS",
        description="Native asset decimals",
        validator=lambda x: 0 <= x <= 36,
    ))
    min_amount: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="0.001",
        env_var="TRIBUNAL_NATIVE_MIN",
        description="Minimum stake (decimal string)",
        coerce=str,
    ))
    max_amount: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="1000",
        env_var="TRIBUNAL_NATIVE_MAX",
        description="Maximum stake (decimal string; testnets use 100)",
        coerce=str,
    ))
    fee_bps: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=250,
        env_var="TRIBUNAL_NATIVE_FEE_BPS",
        description="Platform fee in basis points",
        validator=_bps,
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="TRIBUNAL_LOG_LEVEL",
        description="Log level (debug, info, warning, error, critical)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="TRIBUNAL_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))
    audit_enabled: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="TRIBUNAL_AUDIT_ENABLED",
        description="Record administrative actions in the hash-chained audit log",
    ))


@dataclass
class TribunalConfig:
    """Root configuration, aggregating every section."""
    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)
    native: NativeCurrencyConfig = field(default_factory=NativeCurrencyConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        return yaml.dump(self.to_dict(), default_flow_style=False)


def apply_config_values(config_obj: Any, values: Dict[str, Any]) -> None:
    """Set nested ConfigValues from a plain mapping, ignoring unknown keys."""
    for key, value in values.items():
        if hasattr(config_obj, key):
            attr = getattr(config_obj, key)
            if isinstance(attr, ConfigValue):
                attr.set(value)
            elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                apply_config_values(attr, value)


def validate_platform_document(data: Any) -> List[str]:
    """Schema errors for a platform config document (empty if valid)."""
    from tribunal.schema import validate_against_schema
    return validate_against_schema(data, PLATFORM_CONFIG_SCHEMA)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = TribunalConfig()
        self._config_paths: List[Path] = []
        self._currencies: List[Dict[str, Any]] = []
        self._watchers: List[Callable[[TribunalConfig], None]] = []
        self._initialized = True

    @property
    def config(self) -> TribunalConfig:
        return self._config

    @property
    def currencies(self) -> List[Dict[str, Any]]:
        """Extra currencies declared by loaded config files."""
        return [dict(c) for c in self._currencies]

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file, validating it first."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if not data:
            return
        self.load_from_dict(data)
        if path not in self._config_paths:
            self._config_paths.append(path)

    def load_from_dict(self, data: Dict[str, Any]) -> None:
        errors = validate_platform_document(data)
        if errors:
            raise ConfigValidationError("; ".join(errors))
        self._apply_dict(data)
        if "currencies" in data:
            self._currencies = [dict(c) for c in data["currencies"]]

    def load_defaults(self) -> None:
        """Load default configuration files if they exist."""
        default_paths = [
            Path.home() / ".tribunal" / "config.yaml",
            Path("config/tribunal.yaml"),
            Path("tribunal.yaml"),
        ]

        for path in default_paths:
            if path.exists():
                try:
                    self.load_from_file(path)
                except ConfigError as e:
                    logger.warning("Ignoring invalid config file %s: %s", path, e)

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        apply_config_values(self._config, data)

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("protocol.appeal_window_seconds", "2d")
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("native.fee_bps")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, "__dataclass_fields__") or part not in obj.__dataclass_fields__:
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def watch(self, callback: Callable[[TribunalConfig], None]) -> None:
        self._watchers.append(callback)

    def reload(self) -> None:
        """Reload configuration from all loaded files."""
        for path in self._config_paths:
            if path.exists():
                self.load_from_file(path)

        for watcher in self._watchers:
            watcher(self._config)

    def reset(self) -> None:
        """Drop loaded files, overrides and declared currencies."""
        self._config = TribunalConfig()
        self._config_paths = []
        self._currencies = []

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value}")
                except (TypeError, ValueError) as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)

        native = self._config.native
        try:
            from tribunal.currencies import Currency, validate_currency
            validate_currency(
                Currency.from_human(
                    native.asset.get(),
                    native.decimals.get(),
                    native.min_amount.get(),
                    native.max_amount.get(),
                    native.fee_bps.get(),
                    native=True,
                ),
                self._config.protocol.max_fee_bps.get(),
            )
        except (ArithmeticError, ValueError, TribunalError) as e:
            errors.append(f"native: {e}")
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> TribunalConfig:
    """Get the current configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
