import logging

from matilda_relay.core.logging import LogSettings, parse_level, set_log_level, setup_logging


def test_parse_level():
    assert parse_level("debug") == logging.DEBUG
    assert parse_level("WARNING") == logging.WARNING
    assert parse_level("chatty") == logging.INFO
    assert parse_level(None, logging.ERROR) == logging.ERROR


def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("MATILDA_RELAY_LOG_DIR", str(tmp_path))
    monkeypatch.setenv("MATILDA_RELAY_LOG_FILE", "relay-test.log")
    monkeypatch.setenv("MATILDA_RELAY_CONSOLE_LOGS", "yes")
    monkeypatch.setenv("RELAY_LOG_LEVEL", "warning")
    monkeypatch.setenv("MATILDA_LOG_BACKUP_COUNT", "not-a-number")

    settings = LogSettings.from_env()

    assert settings.directory == tmp_path
    assert settings.filename == "relay-test.log"
    assert settings.console is True
    assert settings.level == logging.WARNING
    assert settings.backup_count == 5


def test_setup_logging_is_idempotent_and_isolated():
    logger = setup_logging("matilda_relay.tests.sample")
    again = setup_logging("matilda_relay.tests.sample")

    assert logger is again
    assert len(logger.handlers) == 1
    assert logger.propagate is False


def test_set_log_level_updates_relay_loggers():
    logger = setup_logging("matilda_relay.tests.levels", log_level="INFO")
    previous = logger.level

    try:
        assert set_log_level("DEBUG") == logging.DEBUG
        assert logger.level == logging.DEBUG
    finally:
        set_log_level(logging.getLevelName(previous))
