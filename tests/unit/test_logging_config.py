# -*- coding: utf-8 -*-
"""
Tests for logging configuration
"""

import json
import logging
import warnings
from io import StringIO

import pytest
from pythonjsonlogger.json import JsonFormatter

from deltadeploy.logging_config import LogContext, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


class TestSetupLogging:

    @pytest.mark.unit
    def test_json_format(self, restore_root_logger):
        stream = StringIO()
        setup_logging(level="INFO", json_format=True, stream=stream)

        with LogContext(track="destructive"):
            logging.getLogger("deltadeploy.test").info("Polling")

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert record["message"] == "Polling"
        assert record["level"] == "INFO"
        assert record["logger"] == "deltadeploy.test"
        assert record["track"] == "destructive"

    @pytest.mark.unit
    def test_json_formatter_without_deprecation_warning(self, restore_root_logger):
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            setup_logging(level="INFO", json_format=True, stream=StringIO())

        handlers = logging.getLogger().handlers
        assert any(isinstance(handler.formatter, JsonFormatter) for handler in handlers)

    @pytest.mark.unit
    def test_readable_format(self, restore_root_logger):
        stream = StringIO()
        setup_logging(level="DEBUG", json_format=False, stream=stream)

        logging.getLogger("deltadeploy.test").warning("Ignorando arquivo")

        assert "| WARNING  | deltadeploy.test | Ignorando arquivo" in stream.getvalue()


class TestLogContext:

    @pytest.mark.unit
    def test_factory_is_restored(self):
        original = logging.getLogRecordFactory()

        with LogContext(run_id="abc"):
            record = logging.getLogger("x").makeRecord("x", logging.INFO, "f", 1, "m", None, None)
            assert record.run_id == "abc"

        assert logging.getLogRecordFactory() is original
