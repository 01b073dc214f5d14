"""Rule repositories — where the engine gets its enabled rules from.

Rule CRUD and persistence live outside infrawatch. The engine only needs the
two read operations of :class:`RuleRepository`; the implementations here
cover tests (in-memory) and the CLI (a YAML rules file).

Rules file layout::

    threshold_rules:
      - id: cpu-high
        name: CPU high
        category: cpu
        condition: {metric: usage, operator: ">", threshold: 90}
        severity: critical
        cooldown_seconds: 300

    log_rules:
      - id: oom
        name: Out of memory
        condition: {type: keyword, keywords: ["out of memory", "oom"]}
        severity: critical
      - id: error-burst
        name: Error burst
        condition: {type: frequency, level: error, threshold: 3, window_seconds: 60}
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

import yaml

from ..errors import RuleConfigError
from .model import (
    AlertRule,
    LogAlertRule,
    default_threshold_rules,
    log_rule_from_dict,
    rule_from_dict,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class RuleRepository(Protocol):
    """Read side of the rule store, as consumed by the engine."""

    def list_enabled_threshold_rules(self) -> list[AlertRule]: ...

    def list_enabled_log_rules(self) -> list[LogAlertRule]: ...


class InMemoryRuleRepository:
    """Hold rules in plain lists."""

    def __init__(
        self,
        threshold_rules: list[AlertRule] | None = None,
        log_rules: list[LogAlertRule] | None = None,
    ) -> None:
        self.threshold_rules = list(threshold_rules or [])
        self.log_rules = list(log_rules or [])

    def list_enabled_threshold_rules(self) -> list[AlertRule]:
        return [r for r in self.threshold_rules if r.enabled]

    def list_enabled_log_rules(self) -> list[LogAlertRule]:
        return [r for r in self.log_rules if r.enabled]

    def __repr__(self) -> str:
        return (
            f"InMemoryRuleRepository(threshold={len(self.threshold_rules)}, "
            f"log={len(self.log_rules)})"
        )


class YamlRuleRepository(InMemoryRuleRepository):
    """Load rules from a YAML file.

    Rule ids must be unique across both lists since they key the shared
    cooldown map. Raises :class:`RuleConfigError` on malformed content.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self.load()

    def load(self) -> None:
        with self.path.open(encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise RuleConfigError(f"{self.path}: invalid YAML: {exc}") from exc
        if not isinstance(data, dict):
            raise RuleConfigError(f"{self.path}: expected a mapping at top level")

        threshold = [rule_from_dict(r) for r in data.get("threshold_rules") or []]
        log = [log_rule_from_dict(r) for r in data.get("log_rules") or []]

        seen: set[str] = set()
        for rule_id in [r.id for r in threshold] + [r.id for r in log]:
            if rule_id in seen:
                raise RuleConfigError(f"{self.path}: duplicate rule id {rule_id!r}")
            seen.add(rule_id)

        self.threshold_rules = threshold
        self.log_rules = log
        logger.info(
            "Loaded %d threshold rules, %d log rules from %s",
            len(threshold), len(log), self.path,
        )


def load_repository(rules_file: str = "") -> InMemoryRuleRepository:
    """Return the YAML repository for ``rules_file`` or the built-in defaults."""
    if rules_file:
        return YamlRuleRepository(rules_file)
    return InMemoryRuleRepository(threshold_rules=default_threshold_rules())
