"""
Tests for structured logging setup.
"""

import logging

import structlog

from src.core.logger import setup_logging


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_console_renderer_by_default(self):
        """Test the console renderer is the last processor."""
        setup_logging(level=logging.DEBUG)

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_json_renderer(self):
        """Test JSON output can be requested."""
        setup_logging(json_logs=True)

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert structlog.get_config()["wrapper_class"] is structlog.stdlib.BoundLogger
