"""Per-rule cooldown tracking shared by the metric and log evaluators."""
from __future__ import annotations

import threading


class CooldownTracker:
    """Remember when each rule last fired and suppress early re-fires.

    Rule ids are unique across threshold and log rules, so a single tracker
    serves both evaluators. An entry exists only for rules that have fired.

    Usage::

        tracker = CooldownTracker()
        if not tracker.should_suppress(rule.id, rule.cooldown_seconds, now):
            tracker.record_fired(rule.id, now)
    """

    def __init__(self) -> None:
        self._last_fired: dict[str, float] = {}
        self._lock = threading.Lock()

    def should_suppress(self, rule_id: str, cooldown_seconds: float, now: float) -> bool:
        """True while ``now - last_fired < cooldown_seconds``. 0 never suppresses."""
        if cooldown_seconds <= 0:
            return False
        with self._lock:
            last = self._last_fired.get(rule_id)
        if last is None:
            return False
        return now - last < cooldown_seconds

    def record_fired(self, rule_id: str, now: float) -> None:
        with self._lock:
            self._last_fired[rule_id] = now

    def try_fire(self, rule_id: str, cooldown_seconds: float, now: float) -> bool:
        """Check and record in one step. Returns True if the rule may fire."""
        with self._lock:
            last = self._last_fired.get(rule_id)
            if cooldown_seconds > 0 and last is not None and now - last < cooldown_seconds:
                return False
            self._last_fired[rule_id] = now
            return True

    def last_fired(self, rule_id: str) -> float | None:
        with self._lock:
            return self._last_fired.get(rule_id)

    def reset(self, rule_id: str | None = None) -> None:
        """Forget one rule's last fire, or all of them."""
        with self._lock:
            if rule_id is None:
                self._last_fired.clear()
            else:
                self._last_fired.pop(rule_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_fired)
