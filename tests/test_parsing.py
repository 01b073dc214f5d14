"""Tests for log line parsing and level normalization."""
from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from infrawatch.rules.model import LogLevel, LogSource
from infrawatch.sources.parsing import detect_format, normalize_level, parse_log_line

NOW = datetime(2025, 8, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# detect_format
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("line,expected", [
    ('{"level": "INFO"}', "json"),
    ("Aug  1 10:00:00 host sshd[123]: message", "syslog"),
    ("<34>Oct 11 22:14:15 mymachine su: 'su root' failed", "syslog"),
    ("plain text log line", "raw"),
    ("", "raw"),
])
def test_detect_format(line: str, expected: str) -> None:
    assert detect_format(line) == expected


@pytest.mark.parametrize("raw,expected", [
    ("ERROR", LogLevel.ERROR),
    ("err", LogLevel.ERROR),
    ("Warning", LogLevel.WARN),
    ("WARN", LogLevel.WARN),
    ("CRITICAL", LogLevel.FATAL),
    ("notice", LogLevel.INFO),
    ("trace", LogLevel.TRACE),
    (50, LogLevel.ERROR),
    (60, LogLevel.FATAL),
    ("bogus", LogLevel.INFO),
    (None, LogLevel.INFO),
])
def test_normalize_level(raw, expected: LogLevel) -> None:
    assert normalize_level(raw) is expected


# ---------------------------------------------------------------------------
# parse_log_line
# ---------------------------------------------------------------------------

class TestJsonLines:
    def test_fields_mapped(self) -> None:
        raw = json.dumps({
            "timestamp": "2025-08-01T10:00:01Z", "level": "ERROR",
            "message": "disk full", "request_id": "abc",
        })
        line = parse_log_line(raw, source_id="api", now=NOW)
        assert line is not None
        assert line.level is LogLevel.ERROR
        assert line.message == "disk full"
        assert line.timestamp == datetime(2025, 8, 1, 10, 0, 1, tzinfo=timezone.utc)
        assert line.source is LogSource.APP
        assert line.source_id == "api"
        assert line.metadata == {"request_id": "abc"}

    def test_pino_style(self) -> None:
        raw = json.dumps({"level": 50, "time": 1754042400000, "msg": "boom"})
        line = parse_log_line(raw, now=NOW)
        assert line.level is LogLevel.ERROR
        assert line.message == "boom"
        assert line.timestamp == datetime.fromtimestamp(1754042400, tz=timezone.utc)

    def test_embedded_source(self) -> None:
        raw = json.dumps({"source": "docker", "source_id": "db-1", "log": "ready\n"})
        line = parse_log_line(raw, now=NOW)
        assert line.source is LogSource.DOCKER
        assert line.source_id == "db-1"
        assert line.message == "ready"

    def test_missing_timestamp_uses_now(self) -> None:
        line = parse_log_line('{"message": "x"}', now=NOW)
        assert line.timestamp == NOW

    @pytest.mark.parametrize("ts", ["1e20", "-1e20", "NaN"])
    def test_out_of_range_epoch_uses_now(self, ts: str) -> None:
        line = parse_log_line('{"timestamp": ' + ts + ', "level": "ERROR", "message": "x"}', now=NOW)
        assert line is not None
        assert line.timestamp == NOW
        assert line.level is LogLevel.ERROR

    def test_broken_json_falls_back_to_raw(self) -> None:
        line = parse_log_line('{"level": "ERROR", ', now=NOW)
        assert line is not None
        assert line.level is LogLevel.ERROR
        assert line.message == '{"level": "ERROR",'


class TestSyslogLines:
    def test_parses_tag_and_host(self, syslog_lines) -> None:
        line = parse_log_line(syslog_lines[0], now=NOW)
        assert line.source is LogSource.JOURNAL
        assert line.source_id == "sshd"
        assert line.message == "Accepted publickey for admin"
        assert line.metadata["hostname"] == "webserver"
        assert line.metadata["pid"] == "1234"

    def test_priority_maps_level(self, syslog_lines) -> None:
        # <11> = facility 1, severity 3 (err)
        line = parse_log_line(syslog_lines[1], now=NOW)
        assert line.level is LogLevel.ERROR
        assert line.source_id == "kernel"

    def test_year_taken_from_now(self, syslog_lines) -> None:
        line = parse_log_line(syslog_lines[2], now=NOW)
        assert line.timestamp.year == 2025
        assert line.timestamp.tzinfo is not None


class TestRawLines:
    def test_level_sniffed(self) -> None:
        line = parse_log_line("2025-08-01 10:00:00 WARNING cache miss ratio high", now=NOW)
        assert line.level is LogLevel.WARN
        assert line.timestamp == NOW

    def test_default_level_info(self) -> None:
        assert parse_log_line("just text", now=NOW).level is LogLevel.INFO

    def test_blank_line_is_none(self) -> None:
        assert parse_log_line("   \n") is None

    def test_source_passed_through(self) -> None:
        line = parse_log_line("fatal: bad", source=LogSource.DOCKER, source_id="c1", now=NOW)
        assert line.source is LogSource.DOCKER
        assert line.source_id == "c1"
        assert line.level is LogLevel.FATAL
