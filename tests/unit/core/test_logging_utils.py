"""Unit tests for component-tagged logging."""

import logging

import pytest

from device_location.core.logging_config import configure_logging, resolve_level
from device_location.core.logging_utils import StructuredLogger, get_module_logger


class TestStructuredLogger:
    """Test component and source tagging."""

    def test_module_logger_namespace(self):
        logger = get_module_logger("DeviceLocationService")

        assert isinstance(logger, StructuredLogger)
        assert logger.logger.name == "device_location.DeviceLocationService"
        assert logger.component == "DeviceLocationService"
        assert logger.source is None

    def test_messages_prefixed_with_component(self, caplog):
        logger = get_module_logger("Reader")

        with caplog.at_level(logging.INFO, logger="device_location"):
            logger.info("Opened %s", "COM3")

        record = caplog.records[-1]
        assert record.getMessage() == "[Reader] Opened COM3"
        assert record.component == "Reader"

    def test_source_bound_logger(self, caplog):
        logger = get_module_logger("DeviceLocationService").for_source("COM3 @ 4800 baud")

        with caplog.at_level(logging.WARNING, logger="device_location"):
            logger.warning("Read error (%d/%d)", 1, 3)

        record = caplog.records[-1]
        assert record.getMessage() == "[DeviceLocationService COM3 @ 4800 baud] Read error (1/3)"
        assert record.location_source == "COM3 @ 4800 baud"
        assert record.name == "device_location.DeviceLocationService"

    def test_caller_extra_kept(self, caplog):
        logger = get_module_logger("Reader")

        with caplog.at_level(logging.INFO, logger="device_location"):
            logger.info("fix", extra={"satellites": 9})

        assert caplog.records[-1].satellites == 9


class TestConfigureLogging:
    """Test log output setup."""

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"

        handlers = configure_logging("debug", console=False, log_file=log_file)
        get_module_logger("Test").debug("hello")
        for handler in handlers:
            handler.flush()

        assert "[Test] hello" in log_file.read_text()
        assert logging.getLogger().level == logging.DEBUG

    def test_reconfigure_replaces_only_own_handlers(self, tmp_path):
        root = logging.getLogger()
        foreign = logging.NullHandler()
        root.addHandler(foreign)
        try:
            first = configure_logging("info", console=True)
            second = configure_logging("warning", console=False, log_file=tmp_path / "run.log")

            assert foreign in root.handlers
            assert not any(h in root.handlers for h in first)
            assert all(h in root.handlers for h in second)
        finally:
            root.removeHandler(foreign)

    def test_levels(self):
        assert resolve_level("DEBUG") == logging.DEBUG
        assert resolve_level(logging.ERROR) == logging.ERROR
        with pytest.raises(ValueError):
            resolve_level("loud")
