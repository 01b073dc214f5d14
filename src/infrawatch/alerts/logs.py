"""Log pattern matching — keyword, regex and frequency-window rules.

Keyword and pattern rules fire on the line that matches. Frequency rules keep
a sliding window of timestamps per rule:

    1. a line whose level equals the rule's level is appended to the window;
    2. timestamps at or before ``newest - window_seconds`` are trimmed from
       the front;
    3. if the window still holds ``threshold`` or more entries the rule fires
       (subject to cooldown).

The window is not cleared on fire; it keeps sliding, so a sustained burst
re-fires once per cooldown period.

All three rule kinds share the same :class:`CooldownTracker` as the metric
evaluator.
"""
from __future__ import annotations

import bisect
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from ..rules.model import (
    AlertCategory,
    FrequencyCondition,
    KeywordCondition,
    LogAlertRule,
    LogLevel,
    LogSource,
    PatternCondition,
)
from .cooldown import CooldownTracker
from .store import Alert, NewAlert

logger = logging.getLogger(__name__)

_MESSAGE_PREVIEW = 100


@dataclass(frozen=True)
class LogLine:
    """One structured log record as delivered by a log collector."""

    source: LogSource
    source_id: str
    level: LogLevel
    message: str
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def epoch(self) -> float:
        ts = self.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.timestamp()


class FrequencyTracker:
    """Per-rule sliding windows of qualifying-line timestamps.

    Lines normally arrive in timestamp order, so trimming is a prefix pop.
    A late line (older than the newest held timestamp) is inserted in order
    so that the prefix-trim stays correct when sources are merged.
    """

    def __init__(self) -> None:
        self._events: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def add(self, rule_id: str, timestamp: float, window_seconds: float) -> int:
        """Record an event and return how many events the window holds."""
        with self._lock:
            window = self._events.setdefault(rule_id, deque())
            if window and timestamp < window[-1]:
                bisect.insort(window, timestamp)
            else:
                window.append(timestamp)
            cutoff = window[-1] - window_seconds
            while window and window[0] <= cutoff:
                window.popleft()
            return len(window)

    def count(self, rule_id: str, window_seconds: float, now: float) -> int:
        """Events newer than ``now - window_seconds``, without recording one."""
        cutoff = now - window_seconds
        with self._lock:
            return sum(1 for t in self._events.get(rule_id, ()) if t > cutoff)

    def cleanup(self, max_age_seconds: float, now: float) -> int:
        """Drop events older than ``max_age_seconds``; forget empty rules.

        Returns the number of rules removed entirely.
        """
        cutoff = now - max_age_seconds
        removed = 0
        with self._lock:
            for rule_id in list(self._events):
                window = self._events[rule_id]
                while window and window[0] <= cutoff:
                    window.popleft()
                if not window:
                    del self._events[rule_id]
                    removed += 1
        return removed

    def reset(self, rule_id: str | None = None) -> None:
        with self._lock:
            if rule_id is None:
                self._events.clear()
            else:
                self._events.pop(rule_id, None)


def _preview(message: str) -> str:
    if len(message) > _MESSAGE_PREVIEW:
        return message[:_MESSAGE_PREVIEW] + "..."
    return message


class LogPatternMatcher:
    """Evaluate log lines against log rules, one line at a time.

    Usage::

        matcher = LogPatternMatcher(CooldownTracker())
        for line in log_stream:
            for candidate in matcher.evaluate(line, repo.list_enabled_log_rules()):
                store.create(candidate)
    """

    def __init__(
        self,
        cooldowns: CooldownTracker,
        frequency: FrequencyTracker | None = None,
    ) -> None:
        self._cooldowns = cooldowns
        self.frequency = frequency if frequency is not None else FrequencyTracker()

    def evaluate(
        self,
        line: LogLine,
        rules: Iterable[LogAlertRule],
        now: float | None = None,
    ) -> list[NewAlert]:
        """Return a candidate alert for every rule this line fires.

        ``now`` is the cooldown clock and defaults to the line's own
        timestamp, which keeps replays of old log files deterministic.
        """
        now = line.epoch if now is None else now
        fired: list[NewAlert] = []
        for rule in rules:
            if not rule.enabled or not rule.accepts_source(line.source, line.source_id):
                continue
            candidate = self._match(rule, line)
            if candidate is None:
                continue
            if not self._cooldowns.try_fire(rule.id, rule.cooldown_seconds, now):
                logger.debug("Log rule %s suppressed by cooldown", rule.id)
                continue
            fired.append(candidate)
        return fired

    def _match(self, rule: LogAlertRule, line: LogLine) -> NewAlert | None:
        cond = rule.condition
        if isinstance(cond, KeywordCondition):
            if not cond.matches(line.message):
                return None
            return self._alert(rule, f'Keyword match in log: "{_preview(line.message)}"', 1, 1)

        if isinstance(cond, PatternCondition):
            if not cond.matches(line.message):
                return None
            return self._alert(rule, f'Pattern match in log: "{_preview(line.message)}"', 1, 1)

        if isinstance(cond, FrequencyCondition):
            if line.level is not cond.level:
                return None
            count = self.frequency.add(rule.id, line.epoch, cond.window_seconds)
            if count < cond.threshold:
                return None
            message = (
                f"{cond.level.value} log frequency exceeded: {count} in "
                f"{cond.window_seconds}s (threshold {cond.threshold})"
            )
            return self._alert(rule, message, count, cond.threshold)

        return None

    @staticmethod
    def _alert(rule: LogAlertRule, message: str, value: float, threshold: float) -> NewAlert:
        return NewAlert(
            rule_id=rule.id,
            rule_name=rule.name,
            category=AlertCategory.LOG,
            severity=rule.severity,
            message=message,
            value=value,
            threshold=threshold,
        )


def make_log_alert_event(alert: Alert, line: LogLine) -> dict[str, Any]:
    """Event payload pushed to realtime subscribers when a log rule fires."""
    return {
        "alert": {
            "id": alert.id,
            "rule_id": alert.rule_id,
            "rule_name": alert.rule_name,
            "severity": alert.severity.value,
            "message": alert.message,
            "value": alert.value,
        },
        "log": {
            "source": line.source.value,
            "source_id": line.source_id,
            "level": line.level.value,
            "message": line.message,
            "timestamp": line.timestamp.isoformat(),
        },
        "rule_id": alert.rule_id,
        "timestamp": alert.created_at.isoformat(),
    }
