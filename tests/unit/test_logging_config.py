"""Tests for src/logging_config.py"""

import logging

import pytest

from src.logging_config import GATE_LOGGER, NOISY_LOGGERS, setup_logging, setup_logging_from_env


@pytest.fixture(autouse=True)
def _restore_levels():
    names = [GATE_LOGGER, *NOISY_LOGGERS]
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


class TestSetupLogging:
    def test_quiets_library_loggers(self):
        setup_logging()
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_gate_actions_stay_visible(self):
        setup_logging(log_level="WARNING")
        assert logging.getLogger(GATE_LOGGER).level == logging.INFO
        assert logging.getLogger("src.gates.release").isEnabledFor(logging.INFO)

    def test_returns_app_logger(self):
        assert setup_logging().name == "woflow"

    def test_gate_level_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WOFLOW_GATE_LOG_LEVEL", "debug")
        monkeypatch.setenv("WOFLOW_LOG_FILE", str(tmp_path / "logs" / "woflow.log"))
        setup_logging_from_env()
        assert logging.getLogger(GATE_LOGGER).level == logging.DEBUG
        assert (tmp_path / "logs").is_dir()
