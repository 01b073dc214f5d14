"""In-app toast queue — local UI feedback for every alert.

Toasts are not rate limited. The queue is bounded; when full, the oldest
pending toast is dropped. A UI layer drains it with :meth:`ToastQueue.drain`.
"""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass

from ..alerts.store import Alert
from ..rules.model import Severity
from .base import SendOutcome, SendStatus

TOAST_DURATION_MS = 5000
TOAST_DURATION_CRITICAL_MS = 10000


@dataclass(frozen=True)
class Toast:
    alert_id: str
    title: str
    description: str
    severity: Severity
    duration_ms: int


class ToastQueue:
    def __init__(self, capacity: int = 50) -> None:
        self._pending: deque[Toast] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "toast"

    def attempt_send(self, alert: Alert) -> SendOutcome:
        duration = (
            TOAST_DURATION_CRITICAL_MS if alert.severity is Severity.CRITICAL else TOAST_DURATION_MS
        )
        toast = Toast(
            alert_id=alert.id,
            title=alert.rule_name,
            description=alert.message,
            severity=alert.severity,
            duration_ms=duration,
        )
        with self._lock:
            self._pending.append(toast)
        return SendOutcome(self.name, SendStatus.SENT)

    def drain(self) -> list[Toast]:
        """Remove and return all pending toasts, oldest first."""
        with self._lock:
            toasts = list(self._pending)
            self._pending.clear()
        return toasts

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
