"""Tests for the JSONL logging system."""

import json

from steward import logging as steward_logging
from steward.logging import (
    BashLogEntry,
    LogConfig,
    SessionLogEntry,
    ToolLogEntry,
    bash_logger,
    get_session_id,
    now_iso,
    session_logger,
    set_session_id,
    tool_logger,
)
from steward.messages import ToolCall, ToolResult
from steward.state import DevelopmentMode
from steward.tools.registry import log_tool_result


def read_jsonl(path):
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestEntries:
    def test_to_json_round_trip(self):
        entry = SessionLogEntry(timestamp=now_iso(), session_id="s1", event_type="start")
        data = json.loads(entry.to_json())
        assert data["event_type"] == "start"
        assert SessionLogEntry.from_dict({**data, "unknown": 1}) == entry

    def test_bash_entry_defaults(self):
        entry = BashLogEntry(timestamp="t", execution_id="e", command="ls")
        assert entry.to_dict()["cancelled"] is False


class TestLoggers:
    def test_entries_written_as_lines(self, log_dir):
        session_logger.info(SessionLogEntry(timestamp="t", session_id="s", event_type="start").to_json())
        session_logger.info(SessionLogEntry(timestamp="t", session_id="s", event_type="end").to_json())
        entries = read_jsonl(log_dir / "session.jsonl")
        assert [e["event_type"] for e in entries] == ["start", "end"]

    def test_plain_text_wrapped(self, log_dir):
        tool_logger.warning("not json")
        entry = read_jsonl(log_dir / "tools.jsonl")[0]
        assert entry["message"] == "not json"
        assert entry["level"] == "WARNING"
        assert entry["channel"] == "tools"

    def test_plain_text_carries_session(self, log_dir):
        set_session_id("sess-42")
        bash_logger.error("spawn failed")
        entry = read_jsonl(log_dir / "bash.jsonl")[0]
        assert entry["session_id"] == "sess-42"

    def test_multiline_message_stays_one_line(self, log_dir):
        session_logger.info("first\nsecond")
        assert read_jsonl(log_dir / "session.jsonl")[0]["message"] == "first\nsecond"

    def test_level_filter(self, tmp_path):
        config = LogConfig(log_dir=tmp_path / "quiet", session_level="ERROR")
        steward_logging.set_config(config)
        session_logger.info("dropped")
        session_logger.error("kept")
        entries = read_jsonl(config.session_log_path)
        assert [e["message"] for e in entries] == ["kept"]

    def test_session_id(self):
        set_session_id("abc")
        assert get_session_id() == "abc"


class TestLogConfig:
    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("STEWARD_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("STEWARD_LOG_DIR", str(tmp_path / "env-logs"))
        monkeypatch.setenv("STEWARD_LOG_MAX_SIZE_MB", "3")
        config = LogConfig.from_env()
        assert config.tool_level == "DEBUG"
        assert config.log_dir == tmp_path / "env-logs"
        assert config.max_file_size_bytes == 3 * 1024 * 1024

    def test_channel_level_overrides_shared(self, monkeypatch):
        monkeypatch.setenv("STEWARD_LOG_LEVEL", "warning")
        monkeypatch.setenv("STEWARD_LOG_LEVEL_BASH", "debug")
        monkeypatch.setenv("STEWARD_LOG_BACKUPS", "not-a-number")
        config = LogConfig.from_env()
        assert config.bash_level == "DEBUG"
        assert config.session_level == "WARNING"
        assert config.backup_count == 5

    def test_paths(self, tmp_path):
        config = LogConfig(log_dir=tmp_path)
        assert config.bash_log_path == tmp_path / "bash.jsonl"
        assert config.model_log_path.name == "model.jsonl"


class TestToolLog:
    def test_log_tool_result(self, log_dir):
        call = ToolCall(id="c1", name="read_file", arguments={"path": "a"})
        log_tool_result(call, ToolResult("c1", "read_file", "contents"), "direct", DevelopmentMode.PLAN)
        log_tool_result(call, ToolResult("c1", "read_file", "Error: gone"), "confirmed")
        first, second = read_jsonl(log_dir / "tools.jsonl")
        assert first["disposition"] == "direct"
        assert first["mode"] == "plan"
        assert first["error"] is None
        assert second["error"] == "Error: gone"

    def test_entry_shape(self):
        entry = ToolLogEntry(timestamp="t", session_id="s", tool_call_id="c", tool_name="x")
        assert entry.to_dict()["arguments"] == {}
