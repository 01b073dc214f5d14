"""Rule model — threshold rules for metrics and log rules for log streams.

Log rule conditions form a closed tagged union::

    KeywordCondition | PatternCondition | FrequencyCondition

Evaluators dispatch on the variant with ``isinstance``; there is no class
hierarchy of rule behaviours.

Rules are plain data. Validation happens at construction so that anything
reaching an evaluator is structurally valid.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Any, Union

from ..errors import RuleConfigError


class Severity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertCategory(str, enum.Enum):
    CPU = "cpu"
    MEMORY = "memory"
    DISK = "disk"
    NETWORK = "network"
    CONTAINER = "container"
    LOG = "log"


class Operator(str, enum.Enum):
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    EQ = "=="

    def apply(self, value: float, threshold: float) -> bool:
        """Compare with exact float semantics (no epsilon)."""
        if self is Operator.GT:
            return value > threshold
        if self is Operator.LT:
            return value < threshold
        if self is Operator.GE:
            return value >= threshold
        if self is Operator.LE:
            return value <= threshold
        return value == threshold


class LogLevel(str, enum.Enum):
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class LogSource(str, enum.Enum):
    DOCKER = "docker"
    JOURNAL = "journal"
    APP = "app"


# ---------------------------------------------------------------------------
# Threshold rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ThresholdCondition:
    metric: str
    operator: Operator
    threshold: float


@dataclass
class AlertRule:
    """A threshold rule evaluated against metrics snapshots.

    Attributes:
        id:                Unique across threshold and log rules.
        category:          Snapshot section the metric is read from.
        condition:         ``metric operator threshold``.
        cooldown_seconds:  Minimum seconds between fires. 0 never suppresses.
    """

    id: str
    name: str
    category: AlertCategory
    condition: ThresholdCondition
    severity: Severity = Severity.WARNING
    enabled: bool = True
    cooldown_seconds: int = 300

    def __post_init__(self) -> None:
        if self.cooldown_seconds < 0:
            raise RuleConfigError(f"Rule {self.id!r}: cooldown_seconds must be >= 0")
        if self.category is AlertCategory.LOG:
            raise RuleConfigError(f"Rule {self.id!r}: category 'log' is reserved for log rules")


# ---------------------------------------------------------------------------
# Log rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KeywordCondition:
    """Fire when any term occurs in the message."""

    terms: frozenset[str]
    case_sensitive: bool = False
    _folded: frozenset[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        terms = frozenset(t for t in self.terms if t)
        if not terms:
            raise RuleConfigError("Keyword condition needs at least one non-empty term")
        object.__setattr__(self, "terms", terms)
        folded = terms if self.case_sensitive else frozenset(t.lower() for t in terms)
        object.__setattr__(self, "_folded", folded)

    def matches(self, message: str) -> bool:
        haystack = message if self.case_sensitive else message.lower()
        return any(term in haystack for term in self._folded)


@dataclass(frozen=True)
class PatternCondition:
    """Fire when the regex finds a match anywhere in the message."""

    regex: str
    case_sensitive: bool = False
    _compiled: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        flags = 0 if self.case_sensitive else re.IGNORECASE
        try:
            compiled = re.compile(self.regex, flags)
        except re.error as exc:
            raise RuleConfigError(f"Invalid regex {self.regex!r}: {exc}") from exc
        object.__setattr__(self, "_compiled", compiled)

    def matches(self, message: str) -> bool:
        return self._compiled.search(message) is not None


@dataclass(frozen=True)
class FrequencyCondition:
    """Fire when ``threshold`` lines of ``level`` arrive within ``window_seconds``."""

    level: LogLevel
    threshold: int
    window_seconds: int

    def __post_init__(self) -> None:
        if self.threshold <= 0:
            raise RuleConfigError("Frequency threshold must be > 0")
        if self.window_seconds <= 0:
            raise RuleConfigError("Frequency window_seconds must be > 0")


LogCondition = Union[KeywordCondition, PatternCondition, FrequencyCondition]

_KIND_BY_TYPE: dict[type, str] = {
    KeywordCondition: "keyword",
    PatternCondition: "pattern",
    FrequencyCondition: "frequency",
}


@dataclass
class LogAlertRule:
    """A rule evaluated against individual log lines.

    ``sources`` / ``source_ids`` restrict the rule to particular log sources
    (empty means all). ``owner_id`` of ``None`` marks a global rule; tenant
    filtering is the repository's job, not the matcher's.
    """

    id: str
    name: str
    condition: LogCondition
    severity: Severity = Severity.WARNING
    enabled: bool = True
    cooldown_seconds: int = 300
    description: str = ""
    sources: frozenset[LogSource] = frozenset()
    source_ids: frozenset[str] = frozenset()
    owner_id: str | None = None

    def __post_init__(self) -> None:
        if self.cooldown_seconds < 0:
            raise RuleConfigError(f"Rule {self.id!r}: cooldown_seconds must be >= 0")
        if type(self.condition) not in _KIND_BY_TYPE:
            raise RuleConfigError(f"Rule {self.id!r}: unknown condition {self.condition!r}")
        self.sources = frozenset(self.sources)
        self.source_ids = frozenset(self.source_ids)

    @property
    def kind(self) -> str:
        return _KIND_BY_TYPE[type(self.condition)]

    def accepts_source(self, source: LogSource, source_id: str) -> bool:
        if self.sources and source not in self.sources:
            return False
        if self.source_ids and source_id not in self.source_ids:
            return False
        return True


def summarize_condition(condition: LogCondition) -> str:
    """One-line human summary used in rule listings."""
    if isinstance(condition, KeywordCondition):
        terms = sorted(condition.terms)
        more = f" +{len(terms) - 3} more" if len(terms) > 3 else ""
        return f"keywords: {', '.join(terms[:3])}{more}"
    if isinstance(condition, PatternCondition):
        pattern = condition.regex if len(condition.regex) <= 30 else condition.regex[:30] + "..."
        return f"pattern: {pattern}"
    return f"{condition.level.value} x{condition.threshold} / {condition.window_seconds}s"


# ---------------------------------------------------------------------------
# Dict (de)serialization: used by the YAML repository and the Redis cache
# ---------------------------------------------------------------------------

def _enum(cls: type[enum.Enum], raw: Any, what: str) -> Any:
    try:
        return cls(raw)
    except ValueError as exc:
        raise RuleConfigError(f"Invalid {what}: {raw!r}") from exc


def rule_to_dict(rule: AlertRule) -> dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "category": rule.category.value,
        "condition": {
            "metric": rule.condition.metric,
            "operator": rule.condition.operator.value,
            "threshold": rule.condition.threshold,
        },
        "severity": rule.severity.value,
        "enabled": rule.enabled,
        "cooldown_seconds": rule.cooldown_seconds,
    }


def rule_from_dict(data: dict[str, Any]) -> AlertRule:
    try:
        cond = data["condition"]
        return AlertRule(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            category=_enum(AlertCategory, data["category"], "category"),
            condition=ThresholdCondition(
                metric=str(cond["metric"]),
                operator=_enum(Operator, cond["operator"], "operator"),
                threshold=float(cond["threshold"]),
            ),
            severity=_enum(Severity, data.get("severity", "warning"), "severity"),
            enabled=bool(data.get("enabled", True)),
            cooldown_seconds=int(data.get("cooldown_seconds", 300)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        if isinstance(exc, RuleConfigError):
            raise
        raise RuleConfigError(f"Malformed threshold rule {data!r}: {exc}") from exc


def _condition_to_dict(condition: LogCondition) -> dict[str, Any]:
    if isinstance(condition, KeywordCondition):
        return {
            "type": "keyword",
            "keywords": sorted(condition.terms),
            "case_sensitive": condition.case_sensitive,
        }
    if isinstance(condition, PatternCondition):
        return {
            "type": "pattern",
            "pattern": condition.regex,
            "case_sensitive": condition.case_sensitive,
        }
    return {
        "type": "frequency",
        "level": condition.level.value,
        "threshold": condition.threshold,
        "window_seconds": condition.window_seconds,
    }


def _condition_from_dict(data: dict[str, Any]) -> LogCondition:
    kind = data.get("type")
    if kind == "keyword":
        return KeywordCondition(
            terms=frozenset(str(k) for k in data.get("keywords") or ()),
            case_sensitive=bool(data.get("case_sensitive", False)),
        )
    if kind == "pattern":
        if not data.get("pattern"):
            raise RuleConfigError("Pattern condition needs a 'pattern'")
        return PatternCondition(
            regex=str(data["pattern"]),
            case_sensitive=bool(data.get("case_sensitive", False)),
        )
    if kind == "frequency":
        return FrequencyCondition(
            level=_enum(LogLevel, data.get("level"), "log level"),
            threshold=int(data["threshold"]),
            window_seconds=int(data["window_seconds"]),
        )
    raise RuleConfigError(f"Unknown log condition type: {kind!r}")


def log_rule_to_dict(rule: LogAlertRule) -> dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "condition": _condition_to_dict(rule.condition),
        "severity": rule.severity.value,
        "enabled": rule.enabled,
        "cooldown_seconds": rule.cooldown_seconds,
        "sources": sorted(s.value for s in rule.sources),
        "source_ids": sorted(rule.source_ids),
        "owner_id": rule.owner_id,
    }


def log_rule_from_dict(data: dict[str, Any]) -> LogAlertRule:
    try:
        return LogAlertRule(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            description=str(data.get("description") or ""),
            condition=_condition_from_dict(data["condition"]),
            severity=_enum(Severity, data.get("severity", "warning"), "severity"),
            enabled=bool(data.get("enabled", True)),
            cooldown_seconds=int(data.get("cooldown_seconds", 300)),
            sources=frozenset(
                _enum(LogSource, s, "log source") for s in data.get("sources") or ()
            ),
            source_ids=frozenset(str(s) for s in data.get("source_ids") or ()),
            owner_id=data.get("owner_id"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        if isinstance(exc, RuleConfigError):
            raise
        raise RuleConfigError(f"Malformed log rule {data!r}: {exc}") from exc


def default_threshold_rules() -> list[AlertRule]:
    """Built-in rules used when no rules file is configured."""
    specs = [
        ("default-cpu-critical", "CPU critical", AlertCategory.CPU, 90.0, Severity.CRITICAL, 300),
        ("default-cpu-warning", "CPU warning", AlertCategory.CPU, 70.0, Severity.WARNING, 300),
        ("default-memory-critical", "Memory critical", AlertCategory.MEMORY, 90.0, Severity.CRITICAL, 300),
        ("default-memory-warning", "Memory warning", AlertCategory.MEMORY, 80.0, Severity.WARNING, 300),
        ("default-disk-critical", "Disk critical", AlertCategory.DISK, 95.0, Severity.CRITICAL, 600),
        ("default-disk-warning", "Disk warning", AlertCategory.DISK, 85.0, Severity.WARNING, 600),
    ]
    return [
        AlertRule(
            id=rule_id,
            name=name,
            category=category,
            condition=ThresholdCondition("usage", Operator.GT, threshold),
            severity=severity,
            cooldown_seconds=cooldown,
        )
        for rule_id, name, category, threshold, severity, cooldown in specs
    ]
