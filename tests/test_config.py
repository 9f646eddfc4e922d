"""
Tests for Settings loading and ConfigValidator.
"""
import dataclasses
import logging
import os

import pytest

from pongbot.config.config import DEFAULT_CONTRACT_ADDRESS, DEFAULT_RPC_URL, Settings
from pongbot.config.config_validator import ConfigValidator, ValidationSeverity, validate_and_log

TEST_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("PONG_") or key in {"PRIVATE_KEY", "SEPOLIA_RPC_URL"}:
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings(monkeypatch):
    monkeypatch.setenv("PONG_PRIVATE_KEY", TEST_KEY)
    monkeypatch.setenv("PONG_START_BLOCK", "100")
    return Settings.load()


class TestSettingsLoad:
    """Environment parsing."""

    def test_defaults(self):
        cfg = Settings.load()
        assert cfg.rpc_url == DEFAULT_RPC_URL
        assert cfg.contract_address == DEFAULT_CONTRACT_ADDRESS
        assert cfg.private_key is None
        assert cfg.start_height is None
        assert cfg.gas_limit == 100_000
        assert cfg.max_block_range == 2000
        assert cfg.restart_backoff_sec == 5.0
        assert cfg.max_restarts == 0
        assert cfg.max_rejected_attempts == 3
        assert cfg.suppress_rejected is False
        assert cfg.state_file == "state/state.json"

    def test_legacy_variable_names(self, monkeypatch):
        monkeypatch.setenv("SEPOLIA_RPC_URL", "https://sepolia.example")
        monkeypatch.setenv("PRIVATE_KEY", TEST_KEY)
        cfg = Settings.load()
        assert cfg.rpc_url == "https://sepolia.example"
        assert cfg.private_key == TEST_KEY

    def test_prefixed_names_take_precedence(self, monkeypatch):
        monkeypatch.setenv("SEPOLIA_RPC_URL", "https://sepolia.example")
        monkeypatch.setenv("PONG_RPC_URL", "https://node.example")
        assert Settings.load().rpc_url == "https://node.example"

    def test_numeric_and_bool_parsing(self, monkeypatch):
        monkeypatch.setenv("PONG_START_BLOCK", "7907600")
        monkeypatch.setenv("PONG_POLL_INTERVAL_SEC", "2.5")
        monkeypatch.setenv("PONG_SUPPRESS_REJECTED", "yes")
        cfg = Settings.load()
        assert cfg.start_height == 7907600
        assert cfg.poll_interval_sec == 2.5
        assert cfg.suppress_rejected is True

    def test_impossible_values_raise(self, monkeypatch):
        monkeypatch.setenv("PONG_POLL_INTERVAL_SEC", "30")
        monkeypatch.setenv("PONG_FEED_STALE_AFTER_SEC", "10")
        with pytest.raises(ValueError):
            Settings.load()

    def test_dump_masks_key(self, settings):
        assert settings.dump()["private_key"] == "***"

    def test_resolve_signer(self, settings):
        assert settings.resolve_account().startswith("0x")
        assert len(settings.resolve_account()) == 42

    def test_resolve_signer_without_key(self):
        with pytest.raises(RuntimeError):
            Settings.load().resolve_signer()


class TestConfigValidator:
    """Startup validation."""

    def test_valid_settings(self, settings):
        result = ConfigValidator().validate(settings)
        assert result.valid
        assert not result.has_errors()

    def test_missing_key_is_error(self):
        result = ConfigValidator().validate(Settings.load())
        assert not result.valid
        assert any(i.field == "private_key" for i in result.get_errors())

    def test_bad_address_is_error(self, settings):
        cfg = dataclasses.replace(settings, contract_address="0x1234")
        errors = ConfigValidator().validate(cfg).get_errors()
        assert [i.field for i in errors] == ["contract_address"]

    def test_bad_rpc_scheme_is_error(self, settings):
        cfg = dataclasses.replace(settings, rpc_url="ws://node.example")
        assert not ConfigValidator().validate(cfg).valid

    def test_out_of_range_gas_limit(self, settings):
        cfg = dataclasses.replace(settings, gas_limit=1000)
        errors = ConfigValidator().validate(cfg).get_errors()
        assert errors[0].field == "gas_limit"
        assert errors[0].suggestion

    def test_risky_values_warn(self, settings):
        cfg = dataclasses.replace(settings, start_height=None, suppress_rejected=True, max_block_range=50_000)
        result = ConfigValidator().validate(cfg)
        assert result.valid
        warned = {i.field for i in result.get_warnings()}
        assert warned == {"start_height", "suppress_rejected", "max_block_range"}

    def test_alerts_without_url_is_info(self, settings):
        result = ConfigValidator().validate(settings)
        infos = [i for i in result.issues if i.severity == ValidationSeverity.INFO]
        assert [i.field for i in infos] == ["alert_webhook_url"]

    def test_validate_and_log(self, settings, caplog):
        with caplog.at_level(logging.INFO):
            assert validate_and_log(settings, logging.getLogger("pongbot.test"))
            assert not validate_and_log(dataclasses.replace(settings, private_key=None), logging.getLogger("pongbot.test"))
        assert "CONFIG ERROR" in caplog.text
