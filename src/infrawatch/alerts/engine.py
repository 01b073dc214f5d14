"""Alert engine — evaluators, lifecycle store and dispatcher wired together.

Usage::

    engine = AlertEngine(repo, dispatcher=dispatcher)
    engine.evaluate_snapshot(MetricsSnapshot.from_dict({"cpu": {"usage": 95}}))
    for line in log_stream:
        engine.evaluate_log_line(line)

    engine.acknowledge(alert_id)
    engine.resolve(alert_id)
"""
from __future__ import annotations

import logging
from typing import Callable, Protocol

from ..rules.repository import RuleRepository
from .cooldown import CooldownTracker
from .logs import LogLine, LogPatternMatcher
from .metrics import MetricEvaluator, MetricsSnapshot
from .store import Alert, AlertStore, NewAlert

logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    def dispatch(self, alert: Alert) -> None: ...


class AlertEngine:
    """Single-process alert detection engine.

    One :class:`CooldownTracker` is shared by the metric evaluator and the
    log matcher. Every candidate alert is stored first and then handed to
    the dispatcher, so notification outcomes never affect the stored record.
    """

    def __init__(
        self,
        rules: RuleRepository,
        store: AlertStore | None = None,
        dispatcher: Dispatcher | None = None,
        cooldowns: CooldownTracker | None = None,
    ) -> None:
        self.rules = rules
        self.store = store if store is not None else AlertStore()
        self.dispatcher = dispatcher
        self.cooldowns = cooldowns if cooldowns is not None else CooldownTracker()
        self.metric_evaluator = MetricEvaluator(self.cooldowns)
        self.log_matcher = LogPatternMatcher(self.cooldowns)
        self._listeners: list[Callable[[Alert], None]] = []

    def subscribe(self, listener: Callable[[Alert], None]) -> None:
        """Call ``listener`` with every newly created alert."""
        self._listeners.append(listener)

    def evaluate_snapshot(self, metrics: MetricsSnapshot, now: float | None = None) -> list[Alert]:
        candidates = self.metric_evaluator.evaluate(
            metrics, self.rules.list_enabled_threshold_rules(), now=now
        )
        return self._publish(candidates)

    def evaluate_log_line(self, line: LogLine, now: float | None = None) -> list[Alert]:
        candidates = self.log_matcher.evaluate(
            line, self.rules.list_enabled_log_rules(), now=now
        )
        return self._publish(candidates)

    def _publish(self, candidates: list[NewAlert]) -> list[Alert]:
        created: list[Alert] = []
        for candidate in candidates:
            alert = self.store.create(candidate)
            created.append(alert)
            logger.info(
                "Alert %s [%s] %s: %s",
                alert.id, alert.severity.value, alert.rule_name, alert.message,
            )
            if self.dispatcher is not None:
                self.dispatcher.dispatch(alert)
            self._notify(alert)
        return created

    def _notify(self, alert: Alert) -> None:
        for listener in self._listeners:
            try:
                listener(alert)
            except Exception as exc:
                logger.warning(
                    "Alert listener failed for %s (rule %s): %s", alert.id, alert.rule_id, exc
                )

    def acknowledge(self, alert_id: str) -> Alert | None:
        return self.store.acknowledge(alert_id)

    def resolve(self, alert_id: str) -> Alert | None:
        return self.store.resolve(alert_id)

    def clear_resolved(self) -> int:
        return self.store.clear_resolved()
