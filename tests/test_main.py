"""
Tests for the startup exit codes of pongbot.main.
"""
import logging
import os

import pytest

from pongbot.core.errors import EXIT_CONFIG_ERROR, EXIT_STATE_IO_ERROR
from pongbot.infra.logging_cfg import shutdown_logger
from pongbot.main import main

TEST_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("PONG_") or key in {"PRIVATE_KEY", "SEPOLIA_RPC_URL"}:
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("PONG_LOG_FILE", "")
    monkeypatch.setenv("PONG_ALERT_ENABLED", "false")

    logger = logging.getLogger("pongbot")
    propagate = logger.propagate
    yield
    shutdown_logger()
    logger.propagate = propagate


class TestStartupExitCodes:

    @pytest.mark.asyncio
    async def test_missing_key_is_config_error(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PONG_STATE_FILE", str(tmp_path / "state.json"))
        assert await main() == EXIT_CONFIG_ERROR

    @pytest.mark.asyncio
    async def test_unusable_state_dir_is_state_io_error(self, tmp_path, monkeypatch):
        """A state path under a regular file exits 3 before any ledger access."""
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        monkeypatch.setenv("PONG_PRIVATE_KEY", TEST_KEY)
        monkeypatch.setenv("PONG_STATE_FILE", str(blocker / "state.json"))

        assert await main() == EXIT_STATE_IO_ERROR
