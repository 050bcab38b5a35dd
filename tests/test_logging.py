"""Tests for logging setup."""

import logging
import logging.handlers

import pytest

from strikewatch.logging import LOG_FILE, configure_logging, resolve_level


@pytest.fixture(autouse=True)
def restore_root_logger(monkeypatch):
    monkeypatch.delenv("STRIKEWATCH_LOG_LEVEL", raising=False)
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    aiohttp_level = logging.getLogger("aiohttp").level
    # detach pytest's capture handlers so setup does not close them
    for handler in handlers:
        root.removeHandler(handler)
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    logging.getLogger("aiohttp").setLevel(aiohttp_level)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        (None, logging.INFO),
        ("", logging.INFO),
        ("debug", logging.DEBUG),
        (" Warning ", logging.WARNING),
        ("WARN", logging.WARNING),
        ("15", 15),
        (logging.ERROR, logging.ERROR),
    ],
)
def test_resolve_level(name, expected):
    assert resolve_level(name) == expected


def test_resolve_level_rejects_unknown_name():
    with pytest.raises(ValueError, match="VERBOSE"):
        resolve_level("verbose")


def test_level_read_from_env(tmp_path, monkeypatch):
    """Test STRIKEWATCH_LOG_LEVEL sets the root level."""
    monkeypatch.setenv("STRIKEWATCH_LOG_LEVEL", "debug")

    assert configure_logging(tmp_path) == logging.DEBUG
    assert logging.getLogger().level == logging.DEBUG
    # aiohttp chatter stays at WARNING even in debug
    assert logging.getLogger("aiohttp").level == logging.WARNING


def test_unknown_level_falls_back_to_info(tmp_path, monkeypatch):
    """Test a typo in the level keeps the service running at INFO and says so."""
    monkeypatch.setenv("STRIKEWATCH_LOG_LEVEL", "verbose")

    assert configure_logging(tmp_path) == logging.INFO
    assert logging.getLogger().level == logging.INFO

    for handler in logging.getLogger().handlers:
        handler.flush()
    text = (tmp_path / LOG_FILE).read_text(encoding="utf-8")
    assert "STRIKEWATCH_LOG_LEVEL" in text
    assert "'verbose'" in text


def test_explicit_level_beats_env(monkeypatch):
    monkeypatch.setenv("STRIKEWATCH_LOG_LEVEL", "debug")

    assert configure_logging(level="error") == logging.ERROR
    assert logging.getLogger("aiohttp").level == logging.ERROR


def test_handlers_replaced_not_stacked(tmp_path):
    """Test repeated setup leaves one console and one file handler."""
    configure_logging(tmp_path)
    configure_logging(tmp_path)

    handlers = logging.getLogger().handlers
    assert len(handlers) == 2
    assert sum(isinstance(h, logging.handlers.RotatingFileHandler) for h in handlers) == 1
    assert (tmp_path / LOG_FILE).exists()


def test_console_only_without_log_dir():
    configure_logging()

    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert not isinstance(handlers[0], logging.FileHandler)
