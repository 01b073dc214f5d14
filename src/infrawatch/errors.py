"""Exception hierarchy for infrawatch.

Suppression outcomes (cooldown active, daily cap reached) are not errors and
never appear here — they are reported as ``SendOutcome`` values.
"""
from __future__ import annotations


class InfrawatchError(Exception):
    """Base class for all infrawatch errors."""


class RuleConfigError(InfrawatchError, ValueError):
    """A rule definition is structurally invalid."""


class WebhookConfigError(InfrawatchError, ValueError):
    """A webhook URL does not match the accepted URL shape."""


class ChannelError(InfrawatchError):
    """A notification channel failed to deliver."""


class EmailSendError(ChannelError):
    """Email could not be sent.

    ``kind`` distinguishes the three failure conditions of the email wire
    contract: ``"cooldown"``, ``"daily_limit"`` and ``"transport"``.
    """

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class WebhookSendError(ChannelError):
    """The webhook endpoint rejected the message or could not be reached."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
