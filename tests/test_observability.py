"""
Tests for logging setup — level precedence and handlers.
"""

import logging

import pytest

from src.core.observability.logging_config import (
    LOG_FILE_ENV_VAR,
    LOG_LEVEL_ENV_VAR,
    resolve_level,
    setup_from_flags,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestResolveLevel:
    def test_debug_wins(self):
        assert resolve_level(debug=True, verbose=True, quiet=True) == "DEBUG"

    def test_verbose_beats_quiet(self):
        assert resolve_level(verbose=True, quiet=True) == "INFO"

    def test_quiet(self):
        assert resolve_level(quiet=True) == "ERROR"

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv(LOG_LEVEL_ENV_VAR, "INFO")
        assert resolve_level() == "INFO"

    def test_default(self, monkeypatch):
        monkeypatch.delenv(LOG_LEVEL_ENV_VAR, raising=False)
        assert resolve_level() == "WARNING"


class TestSetupLogging:
    def test_single_console_handler(self):
        setup_logging("INFO")
        setup_logging("INFO")
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.INFO

    def test_unknown_level_falls_back(self):
        setup_logging("LOUD")
        assert logging.getLogger().level == logging.WARNING

    def test_third_party_quietened(self):
        setup_logging("INFO")
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_file_handler(self, tmp_path, monkeypatch):
        log_file = tmp_path / "envplan.log"
        monkeypatch.setenv(LOG_FILE_ENV_VAR, str(log_file))
        monkeypatch.delenv(LOG_LEVEL_ENV_VAR, raising=False)

        setup_from_flags()
        logging.getLogger("src.test").warning("disk low")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "disk low" in log_file.read_text()
