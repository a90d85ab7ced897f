"""Tests for the loguru setup."""

import pytest
from loguru import logger

from storekit.logger import (
    LoggerSettings,
    configure_logging,
    get_logger,
    is_testing_mode,
)


@pytest.fixture
def quiet_settings() -> LoggerSettings:
    return LoggerSettings(colorize=False, log_level="debug")


@pytest.fixture(autouse=True)
def _restore_handlers():
    yield
    configure_logging()


class TestConfigureLogging:
    def test_testing_mode_detected(self) -> None:
        assert is_testing_mode() is True

    def test_no_sink_in_testing_mode(self, capsys, quiet_settings) -> None:
        assert configure_logging(quiet_settings) is None

        get_logger("storekit.repository").info("silent")

        assert "silent" not in capsys.readouterr().err

    def test_forced_sink(self, capsys, quiet_settings) -> None:
        handler_id = configure_logging(quiet_settings, force=True)

        get_logger("storekit.repository.unit_of_work").debug("committed")

        err = capsys.readouterr().err
        assert isinstance(handler_id, int)
        assert "committed" in err
        assert "unit_of_work" in err
        assert "DEBUG" in err

    def test_unbound_logger_gets_module_name(self, capsys, quiet_settings) -> None:
        configure_logging(quiet_settings, force=True)

        logger.info("plain")

        err = capsys.readouterr().err
        assert "plain" in err
        assert "test_logger" in err

    def test_level_filter(self, capsys) -> None:
        configure_logging(
            LoggerSettings(colorize=False, log_level="WARNING"), force=True
        )

        get_logger("storekit").info("hidden")
        get_logger("storekit").warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err
