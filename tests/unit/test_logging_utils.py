"""Unit tests for logging helpers."""

from __future__ import annotations

import logging
from unittest.mock import Mock, patch

from copy_monitor import logging_utils


class TestSetupLogging:

    @patch("copy_monitor.logging_utils.JournalHandler", None)
    def test_stream_handler_without_journal(self):
        logger = logging.getLogger(logging_utils.LOGGER_NAME)
        saved = list(logger.handlers)
        logger.handlers = []
        try:
            result = logging_utils.setup_logging(logging.DEBUG)

            assert result is logger
            assert result.level == logging.DEBUG
            assert len(result.handlers) == 1
            assert isinstance(result.handlers[0], logging.StreamHandler)
        finally:
            logger.handlers = saved

    @patch("copy_monitor.logging_utils.JournalHandler", None)
    def test_handlers_not_duplicated(self):
        logger = logging.getLogger(logging_utils.LOGGER_NAME)
        saved = list(logger.handlers)
        logger.handlers = []
        try:
            logging_utils.setup_logging()
            logging_utils.setup_logging()

            assert len(logger.handlers) == 1
        finally:
            logger.handlers = saved


class TestLogStructured:

    @patch("copy_monitor.logging_utils.JournalHandler", None)
    def test_fields_appended_to_message(self):
        logger = Mock()
        logger.handlers = []

        logging_utils.log_structured(logger, "copy started", {"DEVICE": "/dev/sdb1", "SIZE": 10})

        logger.log.assert_called_once_with(logging.INFO, "copy started DEVICE=/dev/sdb1 SIZE=10")

    @patch("copy_monitor.logging_utils.JournalHandler", None)
    def test_no_fields(self):
        logger = Mock()
        logger.handlers = []

        logging_utils.log_structured(logger, "hello", {}, level=logging.WARNING)

        logger.log.assert_called_once_with(logging.WARNING, "hello")

    def test_journal_handler_gets_extra(self):
        class FakeJournal(logging.Handler):
            pass

        logger = Mock()
        logger.handlers = [FakeJournal()]
        with patch("copy_monitor.logging_utils.JournalHandler", FakeJournal):
            logging_utils.log_structured(logger, "copy started", {"DEVICE": "/dev/sdb1"})

        logger.log.assert_called_once_with(logging.INFO, "copy started", extra={"DEVICE": "/dev/sdb1"})

    def test_mock_logger_without_handlers_list(self):
        logger = Mock()

        logging_utils.log_structured(logger, "x", {"A": 1})

        logger.log.assert_called_once()
