#!/usr/bin/env python3
"""Unit tests for log sink configuration."""
import logging
import logging.handlers
from unittest.mock import patch

import pytest

from dattormm.logging_config import PACKAGE_LOGGER, configure_logging


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


class TestConfigureLogging:
    """Test configure_logging sinks and levels."""

    def test_console_only(self):
        logger = configure_logging()

        assert logger.name == "dattormm"
        assert logger.level == logging.INFO
        assert [type(h) for h in logger.handlers] == [logging.StreamHandler]

    def test_verbose(self):
        assert configure_logging(verbose=True).level == logging.DEBUG

    def test_log_file(self, tmp_path):
        path = tmp_path / "drmm.log"
        logger = configure_logging(console=False, log_file=str(path))

        logging.getLogger("dattormm.api.client").info("fetched 3 devices")
        for handler in logger.handlers:
            handler.flush()

        assert "fetched 3 devices" in path.read_text()

    def test_idempotent(self):
        configure_logging()
        logger = configure_logging()
        assert len(logger.handlers) == 1

    def test_foreign_handlers_kept(self):
        """Handlers added by the application are not removed."""
        own = logging.NullHandler()
        logging.getLogger(PACKAGE_LOGGER).addHandler(own)

        logger = configure_logging()

        assert own in logger.handlers

    def test_event_log_uses_syslog_off_windows(self):
        with patch("dattormm.logging_config.sys.platform", "linux"), \
                patch("logging.handlers.SysLogHandler") as syslog:
            syslog.return_value = logging.NullHandler()
            logger = configure_logging(console=False, event_log=True)

        syslog.assert_called_once()
        assert len(logger.handlers) == 1
        assert logger.handlers[0].level == logging.WARNING

    def test_event_log_uses_nt_handler_on_windows(self):
        with patch("dattormm.logging_config.sys.platform", "win32"), \
                patch("logging.handlers.NTEventLogHandler") as nt_handler:
            nt_handler.return_value = logging.NullHandler()
            configure_logging(console=False, event_log=True)

        nt_handler.assert_called_once_with("DattoRMM")

    def test_aiohttp_quietened(self):
        configure_logging()
        assert logging.getLogger("aiohttp").level == logging.WARNING
