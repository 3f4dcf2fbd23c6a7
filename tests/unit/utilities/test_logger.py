"""Tests for beadherd.utilities.logger."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from beadherd.utilities.logger import get_logger, setup_logging


@pytest.fixture
def restore_logging() -> Iterator[None]:
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        if isinstance(handler, logging.FileHandler) or type(handler) is logging.StreamHandler:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(logging.WARNING)
    structlog.reset_defaults()


@pytest.mark.usefixtures("restore_logging")
class TestSetupLogging:
    def test_log_file_receives_structured_records(self, tmp_path: Path) -> None:
        target = tmp_path / "state" / "board.log"
        setup_logging(log_file=target)

        get_logger("beadherd.board_test").warning("pane vanished", task_id="az-1")
        for handler in logging.getLogger().handlers:
            handler.flush()

        text = target.read_text(encoding="utf-8")
        assert "pane vanished" in text
        assert "task_id=az-1" in text
        assert "\x1b[" not in text

    def test_file_replaces_terminal_handler(self, tmp_path: Path) -> None:
        setup_logging()
        setup_logging(log_file=tmp_path / "board.log")
        handlers = logging.getLogger().handlers
        assert any(isinstance(h, logging.FileHandler) for h in handlers)
        assert not any(type(h) is logging.StreamHandler for h in handlers)

    def test_debug_level(self, tmp_path: Path) -> None:
        target = tmp_path / "board.log"
        setup_logging(debug=True, log_file=target)
        get_logger("beadherd.board_test_debug").debug("observation ignored", detected="done")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "observation ignored" in target.read_text(encoding="utf-8")
