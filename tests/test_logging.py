"""Tests for structlog configuration."""

import logging

import pytest
import structlog

from core.logging import configure_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


def test_json_format_renders_json_last(settings):
    configure_logging(settings.model_copy(update={"log_format": "json"}))

    processors = structlog.get_config()["processors"]
    assert isinstance(processors[-1], structlog.processors.JSONRenderer)
    assert not any(isinstance(p, structlog.stdlib.PositionalArgumentsFormatter) for p in processors)


def test_console_format_and_quiet_drivers(settings):
    configure_logging(settings.model_copy(update={"log_format": "console"}))

    assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("aiosqlite").level == logging.WARNING
