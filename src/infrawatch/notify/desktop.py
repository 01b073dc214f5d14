"""Native desktop notifications (notify-send on Linux, osascript on macOS).

Best-effort: when the platform has no notifier, or desktop notifications are
disabled in configuration, sends are skipped silently. Commands are run with
an argument list (no shell) so alert text cannot inject commands.
"""
from __future__ import annotations

import logging
import shutil
import subprocess
import sys

from ..alerts.store import Alert
from ..rules.model import Severity
from .base import SendOutcome, SendStatus

logger = logging.getLogger(__name__)


def _sanitize(text: str, limit: int = 200) -> str:
    """Strip characters that break AppleScript string literals; truncate."""
    return str(text).replace("\\", "").replace('"', "'").replace("\n", " ")[:limit]


class DesktopChannel:
    """Pop a native notification for an alert.

    Args:
        enabled:  Config switch; False behaves like a denied permission.
        timeout:  Seconds to wait for the notifier process.
    """

    def __init__(self, enabled: bool = True, timeout: float = 5.0) -> None:
        self._enabled = enabled
        self._timeout = timeout
        self._command = self._find_notifier() if enabled else None

    @property
    def name(self) -> str:
        return "desktop"

    @staticmethod
    def _find_notifier() -> str | None:
        tool = "osascript" if sys.platform == "darwin" else "notify-send"
        return shutil.which(tool)

    @property
    def permitted(self) -> bool:
        return self._command is not None

    def _argv(self, alert: Alert) -> list[str]:
        title = _sanitize(f"infrawatch: {alert.rule_name}")
        body = _sanitize(alert.message)
        if sys.platform == "darwin":
            script = f'display notification "{body}" with title "{title}"'
            if alert.severity is Severity.CRITICAL:
                script += ' sound name "Purr"'
            return [self._command or "osascript", "-e", script]
        urgency = "critical" if alert.severity is Severity.CRITICAL else "normal"
        return [self._command or "notify-send", "-u", urgency, "-a", "infrawatch", title, body]

    def attempt_send(self, alert: Alert) -> SendOutcome:
        if not self.permitted:
            return SendOutcome(self.name, SendStatus.SKIPPED, "no notification permission")
        try:
            result = subprocess.run(
                self._argv(alert),
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Desktop notifier timed out after %ss", self._timeout)
            return SendOutcome(self.name, SendStatus.FAILED, "timeout")
        except OSError as exc:
            logger.warning("Desktop notifier unavailable: %s", exc)
            self._command = None
            return SendOutcome(self.name, SendStatus.FAILED, str(exc))

        if result.returncode != 0:
            logger.warning("Desktop notifier failed: %s", result.stderr.strip())
            return SendOutcome(self.name, SendStatus.FAILED, result.stderr.strip())
        return SendOutcome(self.name, SendStatus.SENT)
