"""
Tests for the logging helpers.
"""

import pytest

from sop_assistant.config import DEBUG_LOG_FILE
from sop_assistant.logging_config import Timer, close_debug_log, debug_log, warning


class TestTimer:
    """Test the timing context manager."""

    def test_duration_recorded(self):
        with Timer("[Test] block", auto_log=False) as timer:
            sum(range(1000))
        assert timer.get_duration_ms() >= 0

    def test_duration_before_exit_raises(self):
        """Asking for the duration of an unfinished block is an error."""
        with pytest.raises(ValueError):
            Timer("[Test] unfinished").get_duration_ms()


class TestDebugTrace:
    """Test the debug trace file."""

    def test_messages_reach_trace_file(self):
        """Traced messages and warnings land in debug_flow.txt."""
        debug_log("[Test] traced message")
        warning("[Test] something odd")
        close_debug_log()
        content = DEBUG_LOG_FILE.read_text(encoding="utf-8")
        assert "[Test] traced message" in content
        assert "[WARNING] [Test] something odd" in content
        assert "=== Closed" in content

    def test_trace_reopens_after_close(self):
        """Writing after close_debug_log() starts a fresh trace."""
        close_debug_log()
        debug_log("[Test] after close")
        close_debug_log()
        assert "[Test] after close" in DEBUG_LOG_FILE.read_text(encoding="utf-8")
