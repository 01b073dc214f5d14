"""Per-channel rate limiting: per-rule cooldown plus a daily send cap.

Reservation is pessimistic — a slot is taken before the send is attempted
and is not refunded if the send then fails. That bounds the worst-case send
volume of a flapping channel to the daily cap.
"""
from __future__ import annotations

import enum
import threading
import time
from datetime import datetime


class RateDecision(enum.Enum):
    ALLOWED = "allowed"
    COOLDOWN = "cooldown"
    DAILY_LIMIT = "daily_limit"

    def __bool__(self) -> bool:
        return self is RateDecision.ALLOWED


def date_key(now: float) -> str:
    """Local-time calendar day for an epoch timestamp, e.g. ``2025-08-01``."""
    return datetime.fromtimestamp(now).strftime("%Y-%m-%d")


class ChannelRateLimiter:
    """Rate limit one notification channel (email, webhook).

    Args:
        channel:           Name used in logs and outcomes.
        cooldown_seconds:  Default per-rule gap between sends.
        daily_cap:         Default max sends per local calendar day.

    The daily counter resets lazily: the first check on a new day zeroes it.
    """

    def __init__(self, channel: str, cooldown_seconds: float = 1800, daily_cap: int = 50) -> None:
        self.channel = channel
        self.cooldown_seconds = cooldown_seconds
        self.daily_cap = daily_cap
        self._last_sent: dict[str, float] = {}
        self._daily_count = 0
        self._reset_key = ""
        self._lock = threading.Lock()

    def check_and_reserve(
        self,
        rule_id: str | None,
        now: float | None = None,
        cooldown_seconds: float | None = None,
        daily_cap: int | None = None,
    ) -> RateDecision:
        """Decide whether a send may proceed and, if so, reserve it.

        The daily cap is checked first and is a hard stop for the rest of the
        day. A ``rule_id`` of ``None`` skips the per-rule cooldown.
        """
        now = time.time() if now is None else now
        cooldown = self.cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        cap = self.daily_cap if daily_cap is None else daily_cap

        with self._lock:
            self._roll_day(now)
            if self._daily_count >= cap:
                return RateDecision.DAILY_LIMIT
            if rule_id is not None:
                last = self._last_sent.get(rule_id)
                if last is not None and now - last < cooldown:
                    return RateDecision.COOLDOWN
                self._last_sent[rule_id] = now
            self._daily_count += 1
            return RateDecision.ALLOWED

    def _roll_day(self, now: float) -> None:
        key = date_key(now)
        if key != self._reset_key:
            self._daily_count = 0
            self._reset_key = key

    @property
    def daily_count(self) -> int:
        with self._lock:
            return self._daily_count

    def remaining_today(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        with self._lock:
            count = self._daily_count if date_key(now) == self._reset_key else 0
        return max(self.daily_cap - count, 0)

    def __repr__(self) -> str:
        return (
            f"ChannelRateLimiter(channel={self.channel!r}, "
            f"cooldown={self.cooldown_seconds}s, daily_cap={self.daily_cap})"
        )
