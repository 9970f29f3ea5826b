"""Tests for logging configuration."""
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

import pytest

from rehearse.config import settings
from rehearse.logging_config import get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Restore root logger handlers after each test."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)


def test_setup_logging_console_only(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that only a console handler is added without a log directory."""
    monkeypatch.setattr(settings.logging, "dir", None)
    setup_logging("Starting", level="debug")

    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG
    assert len(root_logger.handlers) == 1
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_setup_logging_with_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Test that a rotating file handler is added when a log directory is set."""
    monkeypatch.setattr(settings.logging, "dir", str(tmp_path / "logs"))
    setup_logging(level=logging.INFO)

    handlers = logging.getLogger().handlers
    assert any(isinstance(h, TimedRotatingFileHandler) for h in handlers)
    assert (tmp_path / "logs" / "rehearse.log").exists()


def test_get_logger() -> None:
    """Test named logger lookup."""
    assert get_logger("rehearse.test").name == "rehearse.test"


if __name__ == "__main__":
    pytest.main([__file__])
