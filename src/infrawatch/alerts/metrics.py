"""Threshold evaluation of metrics snapshots."""
from __future__ import annotations

import logging
import time
from typing import Any, Iterable, Mapping, Protocol, runtime_checkable

from ..rules.model import AlertCategory, AlertRule
from .cooldown import CooldownTracker
from .store import NewAlert

logger = logging.getLogger(__name__)

_CATEGORY_LABELS: dict[AlertCategory, str] = {
    AlertCategory.CPU: "CPU",
    AlertCategory.MEMORY: "Memory",
    AlertCategory.DISK: "Disk",
    AlertCategory.NETWORK: "Network",
    AlertCategory.CONTAINER: "Container",
}


class MetricsSnapshot:
    """Numeric metric values keyed by ``(category, metric)``.

    Build one from the nested shape metrics collectors report::

        MetricsSnapshot.from_dict({"cpu": {"usage": 95.0}, "disk": {"usage": 41.2}})

    Network values arrive per interface; pass a list of interface dicts under
    ``"network"`` and they are summed (loopback excluded).
    """

    def __init__(self, values: Mapping[tuple[str, str], float] | None = None) -> None:
        self._values: dict[tuple[str, str], float] = dict(values or {})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MetricsSnapshot":
        values: dict[tuple[str, str], float] = {}
        for category, metrics in data.items():
            if category == "network" and isinstance(metrics, list):
                metrics = _sum_interfaces(metrics)
            if not isinstance(metrics, Mapping):
                continue
            for metric, raw in metrics.items():
                try:
                    values[(str(category), str(metric))] = float(raw)
                except (TypeError, ValueError):
                    continue
        return cls(values)

    def get(self, category: AlertCategory | str, metric: str) -> float | None:
        key = category.value if isinstance(category, AlertCategory) else category
        return self._values.get((key, metric))

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"MetricsSnapshot({len(self._values)} values)"


def _sum_interfaces(interfaces: list[Any]) -> dict[str, float]:
    totals: dict[str, float] = {}
    for iface in interfaces:
        if not isinstance(iface, Mapping) or iface.get("name") == "lo":
            continue
        for key in ("rxBytes", "txBytes"):
            try:
                totals[key] = totals.get(key, 0.0) + float(iface.get(key, 0))
            except (TypeError, ValueError):
                continue
    return totals


@runtime_checkable
class MetricsSource(Protocol):
    """Anything that can produce the current metrics snapshot."""

    def read(self) -> MetricsSnapshot: ...


def format_metric_message(rule: AlertRule, value: float) -> str:
    label = _CATEGORY_LABELS.get(rule.category, rule.category.value)
    cond = rule.condition
    return f"{label} {cond.metric}: {value:.1f} (threshold {cond.operator.value} {cond.threshold:g})"


class MetricEvaluator:
    """Compare snapshots against threshold rules.

    Each rule is evaluated on its own; several may fire from one snapshot.
    A rule whose metric is absent from the snapshot is skipped.
    """

    def __init__(self, cooldowns: CooldownTracker) -> None:
        self._cooldowns = cooldowns

    def evaluate(
        self,
        snapshot: MetricsSnapshot,
        rules: Iterable[AlertRule],
        now: float | None = None,
    ) -> list[NewAlert]:
        now = time.time() if now is None else now
        fired: list[NewAlert] = []
        for rule in rules:
            if not rule.enabled:
                continue
            value = snapshot.get(rule.category, rule.condition.metric)
            if value is None:
                continue
            if not rule.condition.operator.apply(value, rule.condition.threshold):
                continue
            if not self._cooldowns.try_fire(rule.id, rule.cooldown_seconds, now):
                logger.debug("Rule %s suppressed by cooldown", rule.id)
                continue
            fired.append(
                NewAlert(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    category=rule.category,
                    severity=rule.severity,
                    message=format_metric_message(rule, value),
                    value=value,
                    threshold=rule.condition.threshold,
                )
            )
        return fired
