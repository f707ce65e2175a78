import logging

import pytest
import structlog

from alivecheck.core.config import settings
from alivecheck.logging import configure_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)


@pytest.mark.parametrize("level", ["warning", "DEBUG"])
def test_root_level_follows_settings(monkeypatch, restore_root_logger, level):
    monkeypatch.setattr(settings, "LOG_LEVEL", level)
    configure_logging()
    assert restore_root_logger.level == logging.getLevelName(level.upper())


def test_stdlib_records_share_structlog_formatter(monkeypatch, restore_root_logger):
    monkeypatch.setattr(settings, "ENV", "production")
    configure_logging()
    [handler] = restore_root_logger.handlers
    assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)
    assert structlog.contextvars.merge_contextvars in handler.formatter.foreign_pre_chain
