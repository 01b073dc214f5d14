"""Notification channel Protocol and send outcomes.

Channels are duck-typed — no inheritance required. The dispatcher iterates
them uniformly through :meth:`NotificationChannel.attempt_send`.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from ..alerts.store import Alert


class SendStatus(str, enum.Enum):
    SENT = "sent"
    SUPPRESSED_COOLDOWN = "suppressed_cooldown"
    SUPPRESSED_DAILY_LIMIT = "suppressed_daily_limit"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class SendOutcome:
    channel: str
    status: SendStatus
    detail: str = ""
    message_id: str | None = None

    @property
    def sent(self) -> bool:
        return self.status is SendStatus.SENT


@dataclass(frozen=True)
class ChannelPolicy:
    """Account-level switch for one channel.

    ``critical_only`` restricts the channel to critical alerts.
    """

    enabled: bool = False
    critical_only: bool = True


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol for alert delivery channels."""

    @property
    def name(self) -> str: ...

    def attempt_send(self, alert: Alert) -> SendOutcome:
        """Deliver ``alert``. Must not raise for expected failures."""
        ...
