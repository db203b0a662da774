# tests/unit/logging/test_context_and_handlers.py — v1
"""Tests for logging/context.py and logging/handlers.py."""

from __future__ import annotations

import asyncio
from logging.handlers import RotatingFileHandler

import pytest

from shipyard.logging.context import (
    clear_context,
    get_context,
    set_pipeline_context,
    set_step_context,
)
from shipyard.logging.handlers import create_rotating_handler, parse_size


class TestLogContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_empty(self):
        assert get_context().as_dict() == {}

    def test_step_context_without_attempt(self):
        set_step_context("clone")
        assert get_context().as_dict() == {"step": "clone"}

    def test_clear(self):
        set_pipeline_context("p", "r")
        clear_context()
        assert get_context().pipeline_id is None

    @pytest.mark.asyncio
    async def test_task_local(self):
        async def run(pipeline_id: str) -> str | None:
            set_pipeline_context(pipeline_id, "repo")
            await asyncio.sleep(0)
            return get_context().pipeline_id

        results = await asyncio.gather(
            asyncio.create_task(run("a")), asyncio.create_task(run("b"))
        )
        assert results == ["a", "b"]
        assert get_context().pipeline_id is None


class TestParseSize:
    @pytest.mark.parametrize(
        "text, expected",
        [("10MB", 10 * 1024**2), ("512kb", 512 * 1024), ("1 GB", 1024**3), ("7B", 7)],
    )
    def test_valid(self, text, expected):
        assert parse_size(text) == expected

    @pytest.mark.parametrize("text", ["", "10", "MB", "1.5MB", "10TB"])
    def test_invalid(self, text):
        with pytest.raises(ValueError, match="Invalid size"):
            parse_size(text)


def test_rotating_handler(tmp_path):
    handler = create_rotating_handler(str(tmp_path / "a" / "b.log"), rotation="1KB", retention=3)
    try:
        assert isinstance(handler, RotatingFileHandler)
        assert handler.maxBytes == 1024
        assert handler.backupCount == 3
        assert (tmp_path / "a").is_dir()
    finally:
        handler.close()
