"""Turn raw log text into :class:`LogLine` records.

Format is detected per line:

  1. JSON    — line starts with '{'  (NDJSON from containers / pino-style apps)
  2. Syslog  — RFC 3164 month-day timestamp, optional <priority>
  3. raw     — anything else; the level is sniffed from the text

Levels from every format are normalized onto :class:`LogLevel`.
"""
from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

from ..alerts.logs import LogLine
from ..rules.model import LogLevel, LogSource

# Syslog month abbreviation pattern (RFC 3164 timestamp start)
_SYSLOG_MONTH_RE = re.compile(
    r"^(?:<\d+>)?(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)\s"
)

# RFC 3164: <priority>timestamp hostname tag[pid]: message
_SYSLOG_RE = re.compile(
    r"^(?:<(?P<priority>\d+)>)?"
    r"(?P<timestamp>\w{3}\s+\d+\s+\d{2}:\d{2}:\d{2})\s+"
    r"(?P<hostname>\S+)\s+"
    r"(?P<tag>[^:\[]+)(?:\[(?P<pid>\d+)\])?:\s*"
    r"(?P<message>.*)$"
)

_RAW_LEVEL_RE = re.compile(
    r"\b(TRACE|DEBUG|INFO|NOTICE|WARN(?:ING)?|ERR(?:OR)?|CRIT(?:ICAL)?|FATAL|PANIC)\b",
    re.IGNORECASE,
)

# syslog severity (priority % 8) -> level
_SYSLOG_SEVERITY: dict[int, LogLevel] = {
    0: LogLevel.FATAL, 1: LogLevel.FATAL, 2: LogLevel.FATAL, 3: LogLevel.ERROR,
    4: LogLevel.WARN, 5: LogLevel.INFO, 6: LogLevel.INFO, 7: LogLevel.DEBUG,
}

_LEVEL_ALIASES: dict[str, LogLevel] = {
    "trace": LogLevel.TRACE,
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "notice": LogLevel.INFO,
    "warn": LogLevel.WARN,
    "warning": LogLevel.WARN,
    "err": LogLevel.ERROR,
    "error": LogLevel.ERROR,
    "crit": LogLevel.FATAL,
    "critical": LogLevel.FATAL,
    "fatal": LogLevel.FATAL,
    "panic": LogLevel.FATAL,
    "emerg": LogLevel.FATAL,
    "alert": LogLevel.FATAL,
}

# pino numeric levels
_PINO_LEVELS: dict[int, LogLevel] = {
    10: LogLevel.TRACE, 20: LogLevel.DEBUG, 30: LogLevel.INFO,
    40: LogLevel.WARN, 50: LogLevel.ERROR, 60: LogLevel.FATAL,
}


def detect_format(line: str) -> str:
    """Return one of: 'json', 'syslog', 'raw'."""
    line = line.strip()
    if line.startswith("{"):
        return "json"
    if _SYSLOG_MONTH_RE.match(line):
        return "syslog"
    return "raw"


def normalize_level(raw: Any, default: LogLevel = LogLevel.INFO) -> LogLevel:
    if isinstance(raw, int) and not isinstance(raw, bool):
        return _PINO_LEVELS.get(raw, default)
    if raw is None:
        return default
    return _LEVEL_ALIASES.get(str(raw).strip().lower(), default)


def _parse_iso(raw: Any) -> datetime | None:
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        # epoch seconds or milliseconds
        seconds = raw / 1000 if raw > 1e11 else raw
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(raw, str) or not raw:
        return None
    text = raw.strip().replace("Z", "+00:00")
    try:
        ts = datetime.fromisoformat(text)
    except ValueError:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _parse_syslog_time(raw: str, now: datetime) -> datetime | None:
    try:
        ts = datetime.strptime(f"{now.year} {' '.join(raw.split())}", "%Y %b %d %H:%M:%S")
    except ValueError:
        return None
    return ts.astimezone(timezone.utc)


def parse_log_line(
    line: str,
    source: LogSource = LogSource.APP,
    source_id: str = "unknown",
    now: datetime | None = None,
) -> LogLine | None:
    """Parse one line. Returns None for blank lines.

    ``now`` stands in for lines that carry no usable timestamp.
    """
    line = line.strip()
    if not line:
        return None
    now = now or datetime.now(timezone.utc)

    fmt = detect_format(line)
    if fmt == "json":
        parsed = _parse_json(line, source, source_id, now)
        if parsed is not None:
            return parsed
    elif fmt == "syslog":
        parsed = _parse_syslog(line, source_id, now)
        if parsed is not None:
            return parsed
    return _parse_raw(line, source, source_id, now)


def _parse_json(line: str, source: LogSource, source_id: str, now: datetime) -> LogLine | None:
    try:
        entry = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(entry, dict):
        return None

    message = entry.get("message") or entry.get("msg") or entry.get("log") or ""
    level = normalize_level(entry.get("level") or entry.get("severity") or entry.get("lvl"))
    ts = _parse_iso(entry.get("timestamp") or entry.get("time") or entry.get("@timestamp"))
    try:
        src = LogSource(entry.get("source", source))
    except ValueError:
        src = source
    known = {"message", "msg", "log", "level", "severity", "lvl",
             "timestamp", "time", "@timestamp", "source", "source_id"}
    return LogLine(
        source=src,
        source_id=str(entry.get("source_id") or source_id),
        level=level,
        message=str(message).rstrip("\n"),
        timestamp=ts or now,
        metadata={k: v for k, v in entry.items() if k not in known},
    )


def _parse_syslog(line: str, source_id: str, now: datetime) -> LogLine | None:
    m = _SYSLOG_RE.match(line)
    if not m:
        return None
    d = m.groupdict()
    priority = int(d["priority"]) if d.get("priority") else None
    if priority is not None:
        level = _SYSLOG_SEVERITY.get(priority % 8, LogLevel.INFO)
    else:
        level = _sniff_level(d["message"])
    tag = (d.get("tag") or "").strip()
    return LogLine(
        source=LogSource.JOURNAL,
        source_id=tag or source_id,
        level=level,
        message=d.get("message", ""),
        timestamp=_parse_syslog_time(d["timestamp"], now) or now,
        metadata={"hostname": d.get("hostname"), "pid": d.get("pid"), "priority": priority},
    )


def _sniff_level(text: str) -> LogLevel:
    m = _RAW_LEVEL_RE.search(text)
    return normalize_level(m.group(1)) if m else LogLevel.INFO


def _parse_raw(line: str, source: LogSource, source_id: str, now: datetime) -> LogLine:
    return LogLine(
        source=source,
        source_id=source_id,
        level=_sniff_level(line),
        message=line,
        timestamp=now,
    )
