"""Shared pytest fixtures for infrawatch tests."""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from infrawatch.alerts.logs import LogLine
from infrawatch.alerts.store import Alert, AlertStatus
from infrawatch.rules.model import AlertCategory, LogLevel, LogSource, Severity

T0 = datetime(2025, 8, 1, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def tmp_log_file(tmp_path: Path):
    """Return a factory that creates temporary log files."""

    def _make(lines: list[str], name: str = "test.log") -> Path:
        p = tmp_path / name
        p.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return p

    return _make


@pytest.fixture()
def make_line():
    """Return a factory for LogLine records ``offset`` seconds after T0."""

    def _make(
        message: str = "hello",
        level: LogLevel = LogLevel.INFO,
        offset: float = 0,
        source: LogSource = LogSource.APP,
        source_id: str = "api",
    ) -> LogLine:
        return LogLine(
            source=source,
            source_id=source_id,
            level=level,
            message=message,
            timestamp=T0 + timedelta(seconds=offset),
        )

    return _make


@pytest.fixture()
def make_alert():
    """Return a factory for stored Alert records."""

    def _make(
        rule_id: str = "cpu-high",
        severity: Severity = Severity.CRITICAL,
        message: str = "CPU usage: 95.0 (threshold > 90)",
    ) -> Alert:
        return Alert(
            id=f"alert-{rule_id}",
            rule_id=rule_id,
            rule_name="CPU high",
            category=AlertCategory.CPU,
            severity=severity,
            status=AlertStatus.ACTIVE,
            message=message,
            value=95.0,
            threshold=90.0,
            created_at=T0,
        )

    return _make


@pytest.fixture()
def json_log_lines() -> list[str]:
    return [
        json.dumps({"timestamp": "2025-08-01T10:00:00Z", "level": "INFO", "message": "startup"}),
        json.dumps({"timestamp": "2025-08-01T10:00:01Z", "level": "ERROR", "message": "disk full"}),
        json.dumps({"timestamp": "2025-08-01T10:00:02Z", "level": "ERROR", "message": "disk full"}),
        json.dumps({"timestamp": "2025-08-01T10:00:03Z", "level": "ERROR", "message": "disk full"}),
        json.dumps({"timestamp": "2025-08-01T10:00:04Z", "level": "INFO", "message": "done"}),
    ]


@pytest.fixture()
def syslog_lines() -> list[str]:
    return [
        "Aug  1 10:00:00 webserver sshd[1234]: Accepted publickey for admin",
        "<11>Aug  1 10:00:01 webserver kernel: Out of memory: Kill process 5678",
        "Aug  1 10:00:02 webserver cron[9999]: (root) CMD (/usr/bin/backup.sh)",
    ]


@pytest.fixture()
def rules_yaml(tmp_path: Path) -> Path:
    p = tmp_path / "rules.yaml"
    p.write_text(
        """
threshold_rules:
  - id: cpu-high
    name: CPU high
    category: cpu
    condition: {metric: usage, operator: ">", threshold: 90}
    severity: critical
    cooldown_seconds: 300

log_rules:
  - id: disk-full
    name: Disk full
    condition: {type: keyword, keywords: ["disk full"]}
    severity: warning
    cooldown_seconds: 0
  - id: error-burst
    name: Error burst
    condition: {type: frequency, level: error, threshold: 3, window_seconds: 60}
    severity: critical
""",
        encoding="utf-8",
    )
    return p
