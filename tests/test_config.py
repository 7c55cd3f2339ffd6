"""Configuration values, files, environment binding and validation."""

import pytest
import yaml

from tribunal.config import (
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    ConfigValue,
    TribunalConfig,
    apply_config_values,
    get_config,
    get_config_manager,
    validate_platform_document,
)
from tribunal.engine import DisputeResolution

from conftest import ADMIN, TREASURY


@pytest.fixture
def manager():
    mgr = ConfigManager()
    mgr.reset()
    yield mgr
    mgr.reset()


class TestConfigValue:

    def test_default_and_override(self):
        value = ConfigValue(default=5, validator=lambda x: x > 0)
        assert value.get() == 5
        value.set("7")
        assert value.get() == 7
        value.reset()
        assert value.get() == 5

    def test_validation(self):
        value = ConfigValue(default=5, validator=lambda x: x > 0)
        with pytest.raises(ConfigValidationError):
            value.set(0)
        with pytest.raises(ConfigValidationError):
            value.set("seven")
        assert value.get() == 5

    def test_change_callbacks(self):
        value = ConfigValue(default="info")
        changes = []
        value.on_change(lambda old, new: changes.append((old, new)))
        value.set("debug")
        value.set("error")
        assert changes == [(None, "debug"), ("debug", "error")]

    def test_env_var_wins(self, monkeypatch):
        value = ConfigValue(default=False, env_var="TRIBUNAL_TEST_FLAG")
        value.set(False)
        monkeypatch.setenv("TRIBUNAL_TEST_FLAG", "yes")
        assert value.get() is True


class TestTribunalConfig:

    def test_defaults(self):
        config = TribunalConfig()
        assert config.protocol.evidence_window_seconds.get() == 3 * 86400
        assert config.protocol.appeal_window_seconds.get() == 2 * 86400
        assert config.protocol.oracle_timeout_seconds.get() == 86400
        assert config.protocol.appeal_stake_bps.get() == 1000
        assert config.native.fee_bps.get() == 250
        assert config.native.min_amount.get() == "0.001"

    def test_durations_accept_strings(self):
        config = TribunalConfig()
        apply_config_values(config, {"protocol": {"appeal_window_seconds": "PT6H", "evidence_window_seconds": "1d"}})
        assert config.protocol.appeal_window_seconds.get() == 6 * 3600
        assert config.protocol.evidence_window_seconds.get() == 86400

    def test_unknown_keys_ignored(self):
        config = TribunalConfig()
        apply_config_values(config, {"nonsense": 1, "protocol": {"nope": 2}})
        assert config.to_dict() == TribunalConfig().to_dict()

    def test_yaml_round_trip(self):
        config = TribunalConfig()
        config.native.asset.set("MATIC")
        data = yaml.safe_load(config.to_yaml())
        assert data["native"]["asset"] == "MATIC"
        assert data["observability"]["audit_enabled"] is True

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("TRIBUNAL_APPEAL_WINDOW", "1h")
        monkeypatch.setenv("TRIBUNAL_EVIDENCE_CAP", "4")
        monkeypatch.setenv("TRIBUNAL_AUDIT_ENABLED", "false")
        config = TribunalConfig()
        assert config.protocol.appeal_window_seconds.get() == 3600
        assert config.protocol.evidence_cap.get() == 4
        assert config.observability.audit_enabled.get() is False

    def test_engine_reads_windows(self):
        config = TribunalConfig()
        apply_config_values(config, {"protocol": {"appeal_window_seconds": "1h", "evidence_cap": 2}})
        engine = DisputeResolution(ADMIN, TREASURY, config=config)
        assert engine.appeal_window == 3600
        assert engine.evidence.cap == 2


class TestConfigManager:

    def test_singleton(self, manager):
        assert ConfigManager() is manager
        assert get_config_manager() is manager
        assert get_config() is manager.config

    def test_get_and_set_paths(self, manager):
        manager.set("protocol.appeal_window_seconds", "3d")
        assert manager.get("protocol.appeal_window_seconds") == 3 * 86400
        assert manager.get("native").fee_bps.get() == 250
        with pytest.raises(ConfigError):
            manager.get("protocol.missing")
        with pytest.raises(ConfigError):
            manager.set("protocol", 1)

    def test_load_file_with_currencies(self, manager, tmp_path):
        path = tmp_path / "tribunal.yaml"
        path.write_text(yaml.safe_dump({
            "native": {"max_amount": "100"},
            "currencies": [
                {"asset": "USDC", "decimals": 6, "min_amount": "1", "max_amount": "50000", "fee_bps": 100},
            ],
        }))
        manager.load_from_file(path)
        assert manager.get("native.max_amount") == "100"
        assert manager.currencies[0]["asset"] == "USDC"

        engine = DisputeResolution.from_config(ADMIN, TREASURY, manager)
        assert engine.currencies.require("USDC").max_amount == 50_000 * 10 ** 6
        assert engine.currencies.native.max_amount == 100 * 10 ** 18

    def test_schema_rejects_bad_documents(self, manager):
        with pytest.raises(ConfigValidationError, match="protocol"):
            manager.load_from_dict({"protocol": {"evidence_cap": 0}})
        with pytest.raises(ConfigValidationError):
            manager.load_from_dict({"treasury": "0x01"})
        with pytest.raises(ConfigValidationError):
            manager.load_from_dict({"protocol": {"appeal_stake_policy": "refund_if_overturned"}})
        assert manager.get("protocol.evidence_cap") == 20

    def test_document_errors_have_paths(self):
        errors = validate_platform_document({"native": {"fee_bps": 20000}})
        assert errors and errors[0].startswith("$.native.fee_bps")
        assert validate_platform_document({"protocol": {"appeal_window_seconds": "2d"}}) == []

    def test_missing_file(self, manager, tmp_path):
        with pytest.raises(ConfigError):
            manager.load_from_file(tmp_path / "absent.yaml")

    def test_default_locations(self, manager, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        monkeypatch.chdir(tmp_path)
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "tribunal.yaml").write_text("protocol:\n  evidence_cap: 0\n")
        (tmp_path / "tribunal.yaml").write_text("native:\n  fee_bps: 100\n")
        manager.load_defaults()
        assert manager.get("native.fee_bps") == 100
        assert manager.get("protocol.evidence_cap") == 20

    def test_reload_notifies_watchers(self, manager, tmp_path):
        path = tmp_path / "tribunal.yaml"
        path.write_text("protocol:\n  evidence_cap: 5\n")
        manager.load_from_file(path)
        seen = []
        manager.watch(lambda cfg: seen.append(cfg.protocol.evidence_cap.get()))
        path.write_text("protocol:\n  evidence_cap: 9\n")
        manager.reload()
        assert seen == [9]

    def test_validate_checks_native_currency(self, manager):
        assert manager.validate() == []
        manager.set("native.min_amount", "5000")
        errors = manager.validate()
        assert len(errors) == 1
        assert errors[0].startswith("native:")

    def test_export_schema(self, manager):
        schema = manager.export_schema()
        window = schema["properties"]["protocol"]["appeal_window_seconds"]
        assert window["env_var"] == "TRIBUNAL_APPEAL_WINDOW"
        assert window["type"] == "int"
