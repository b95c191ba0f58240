# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for logging configuration.
"""

import logging

from utils.logger import ROOT_LOGGER_NAME, SensitiveDataFilter, get_logger, setup_logging


def _record(msg, *args):
    return logging.LogRecord("prefsync.test", logging.INFO, __file__, 1, msg, args, None)


class TestSensitiveDataFilter:
    """Test masking of credentials in log records."""

    def test_masks_bearer_token(self):
        record = _record("Authorization: Bearer abc.def.ghi")
        assert SensitiveDataFilter().filter(record) is True
        assert "abc.def.ghi" not in record.getMessage()
        assert "***" in record.getMessage()

    def test_masks_formatted_arguments(self):
        record = _record("Using token=%s for %s", "s3cr3t", "alice")
        SensitiveDataFilter().filter(record)

        message = record.getMessage()
        assert "s3cr3t" not in message
        assert "alice" in message

    def test_leaves_plain_messages_untouched(self):
        record = _record("Loaded preferences for %s", "calendar:preferences:alice")
        SensitiveDataFilter().filter(record)
        assert record.getMessage() == "Loaded preferences for calendar:preferences:alice"


def test_get_logger_namespaces_names():
    """Test loggers live under the application namespace."""
    assert get_logger("store").name == f"{ROOT_LOGGER_NAME}.store"
    assert get_logger(f"{ROOT_LOGGER_NAME}.store").name == f"{ROOT_LOGGER_NAME}.store"


def test_setup_logging_writes_file(tmp_path):
    """Test setup_logging installs a rotating file handler."""
    logger = setup_logging(log_dir=tmp_path, level="DEBUG", console_output=False)
    try:
        get_logger("test").info("hello from test")
        for handler in logger.handlers:
            handler.flush()

        log_file = tmp_path / "prefsync.log"
        assert log_file.exists()
        assert "hello from test" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
