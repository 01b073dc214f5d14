"""Alert lifecycle store.

State machine per alert::

    active ──acknowledge──▶ acknowledged ──resolve──▶ resolved
      └───────────────────resolve──────────────────────┘

``resolved`` is terminal. Transitions that do not apply (unknown id, already
resolved, acknowledging twice) are silent no-ops so callers may race
harmlessly.

The store owns retention: it keeps at most ``retention`` alerts, newest
first, and evicts the oldest when a new alert pushes it over the cap.
"""
from __future__ import annotations

import enum
import logging
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable

from ..rules.model import AlertCategory, Severity

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = 100


class AlertStatus(str, enum.Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class NewAlert:
    """A candidate alert produced by an evaluator; not yet stored."""

    rule_id: str
    rule_name: str
    category: AlertCategory
    severity: Severity
    message: str
    value: float
    threshold: float
    status: AlertStatus = AlertStatus.ACTIVE


@dataclass(frozen=True)
class Alert:
    id: str
    rule_id: str
    rule_name: str
    category: AlertCategory
    severity: Severity
    status: AlertStatus
    message: str
    value: float
    threshold: float
    created_at: datetime
    acknowledged_at: datetime | None = None
    resolved_at: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "category": self.category.value,
            "severity": self.severity.value,
            "status": self.status.value,
            "message": self.message,
            "value": self.value,
            "threshold": self.threshold,
            "created_at": self.created_at.isoformat(),
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertStore:
    """In-memory, lock-guarded alert history with a retention cap.

    Alerts are immutable dataclasses; transitions replace the stored record,
    so anything handed to a caller is a snapshot that never changes under it.
    """

    def __init__(
        self,
        retention: int = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if retention <= 0:
            raise ValueError("retention must be > 0")
        self._retention = retention
        self._clock = clock
        self._alerts: list[Alert] = []  # newest first
        self._lock = threading.Lock()

    @property
    def retention(self) -> int:
        return self._retention

    def create(self, new_alert: NewAlert) -> Alert:
        """Store a candidate alert as ``active`` and return it."""
        alert = Alert(
            id=str(uuid.uuid4()),
            rule_id=new_alert.rule_id,
            rule_name=new_alert.rule_name,
            category=new_alert.category,
            severity=new_alert.severity,
            status=AlertStatus.ACTIVE,
            message=new_alert.message,
            value=new_alert.value,
            threshold=new_alert.threshold,
            created_at=self._clock(),
        )
        with self._lock:
            self._alerts.insert(0, alert)
            evicted = self._alerts[self._retention:]
            del self._alerts[self._retention:]
        if evicted:
            logger.debug("Evicted %d alert(s) over retention cap %d", len(evicted), self._retention)
        return alert

    def acknowledge(self, alert_id: str) -> Alert | None:
        return self._transition(alert_id, AlertStatus.ACKNOWLEDGED)

    def resolve(self, alert_id: str) -> Alert | None:
        return self._transition(alert_id, AlertStatus.RESOLVED)

    def _transition(self, alert_id: str, target: AlertStatus) -> Alert | None:
        with self._lock:
            for i, alert in enumerate(self._alerts):
                if alert.id != alert_id:
                    continue
                if alert.status is AlertStatus.RESOLVED:
                    return alert
                if target is AlertStatus.ACKNOWLEDGED:
                    if alert.status is not AlertStatus.ACTIVE:
                        return alert
                    updated = replace(alert, status=target, acknowledged_at=self._clock())
                else:
                    updated = replace(alert, status=target, resolved_at=self._clock())
                self._alerts[i] = updated
                return updated
        logger.debug("Ignoring %s for unknown alert %s", target.value, alert_id)
        return None

    def clear_resolved(self) -> int:
        """Drop every resolved alert. Returns how many were removed."""
        with self._lock:
            before = len(self._alerts)
            self._alerts = [a for a in self._alerts if a.status is not AlertStatus.RESOLVED]
            return before - len(self._alerts)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, alert_id: str) -> Alert | None:
        with self._lock:
            return next((a for a in self._alerts if a.id == alert_id), None)

    def all(self) -> list[Alert]:
        """All alerts, newest first."""
        with self._lock:
            return list(self._alerts)

    def by_status(self, status: AlertStatus) -> list[Alert]:
        with self._lock:
            return [a for a in self._alerts if a.status is status]

    def by_severity(self, severity: Severity) -> list[Alert]:
        with self._lock:
            return [a for a in self._alerts if a.severity is severity]

    def active(self) -> list[Alert]:
        return self.by_status(AlertStatus.ACTIVE)

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)
