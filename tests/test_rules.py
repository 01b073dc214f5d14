"""Tests for the rule model, dict serialization and repositories."""
from __future__ import annotations

from pathlib import Path

import pytest

from infrawatch.errors import RuleConfigError
from infrawatch.rules.model import (
    AlertCategory,
    AlertRule,
    FrequencyCondition,
    KeywordCondition,
    LogAlertRule,
    LogLevel,
    LogSource,
    Operator,
    PatternCondition,
    Severity,
    ThresholdCondition,
    default_threshold_rules,
    log_rule_from_dict,
    log_rule_to_dict,
    rule_from_dict,
    rule_to_dict,
    summarize_condition,
)
from infrawatch.rules.repository import InMemoryRuleRepository, YamlRuleRepository, load_repository


# ---------------------------------------------------------------------------
# Operators and conditions
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("op,value,expected", [
    (Operator.GT, 90.0, False),
    (Operator.GT, 90.1, True),
    (Operator.GE, 90.0, True),
    (Operator.LT, 89.9, True),
    (Operator.LE, 90.0, True),
    (Operator.EQ, 90.0, True),
    (Operator.EQ, 90.0000001, False),
])
def test_operator_apply(op: Operator, value: float, expected: bool) -> None:
    assert op.apply(value, 90.0) is expected


class TestKeywordCondition:
    def test_case_insensitive_by_default(self) -> None:
        cond = KeywordCondition(frozenset({"Disk Full"}))
        assert cond.matches("ERROR: disk full on /var")

    def test_case_sensitive(self) -> None:
        cond = KeywordCondition(frozenset({"OOM"}), case_sensitive=True)
        assert cond.matches("kernel: OOM killer invoked")
        assert not cond.matches("kernel: oom killer invoked")

    def test_any_term_matches(self) -> None:
        cond = KeywordCondition(frozenset({"panic", "segfault"}))
        assert cond.matches("worker segfault at 0x0")
        assert not cond.matches("all good")

    def test_empty_terms_rejected(self) -> None:
        with pytest.raises(RuleConfigError):
            KeywordCondition(frozenset({""}))


class TestPatternCondition:
    def test_search_anywhere(self) -> None:
        cond = PatternCondition(r"status=5\d\d")
        assert cond.matches("GET /api status=503 in 12ms")

    def test_case_insensitive_by_default(self) -> None:
        assert PatternCondition("timeout").matches("Read TIMEOUT after 30s")
        assert not PatternCondition("timeout", case_sensitive=True).matches("Read TIMEOUT")

    def test_invalid_regex_raises(self) -> None:
        with pytest.raises(RuleConfigError, match="Invalid regex"):
            PatternCondition("([unclosed")


class TestFrequencyCondition:
    def test_non_positive_threshold_rejected(self) -> None:
        with pytest.raises(RuleConfigError):
            FrequencyCondition(LogLevel.ERROR, threshold=0, window_seconds=60)

    def test_non_positive_window_rejected(self) -> None:
        with pytest.raises(RuleConfigError):
            FrequencyCondition(LogLevel.ERROR, threshold=3, window_seconds=0)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

class TestAlertRule:
    def test_negative_cooldown_rejected(self) -> None:
        with pytest.raises(RuleConfigError):
            AlertRule(
                id="r", name="r", category=AlertCategory.CPU,
                condition=ThresholdCondition("usage", Operator.GT, 90), cooldown_seconds=-1,
            )

    def test_log_category_reserved(self) -> None:
        with pytest.raises(RuleConfigError):
            AlertRule(
                id="r", name="r", category=AlertCategory.LOG,
                condition=ThresholdCondition("usage", Operator.GT, 90),
            )

    def test_defaults(self) -> None:
        rule = AlertRule(
            id="r", name="r", category=AlertCategory.CPU,
            condition=ThresholdCondition("usage", Operator.GT, 90),
        )
        assert rule.severity is Severity.WARNING
        assert rule.enabled
        assert rule.cooldown_seconds == 300


class TestLogAlertRule:
    def _rule(self, **kwargs) -> LogAlertRule:
        return LogAlertRule(
            id="oom", name="OOM", condition=KeywordCondition(frozenset({"oom"})), **kwargs
        )

    def test_kind(self) -> None:
        assert self._rule().kind == "keyword"

    def test_no_filters_accept_everything(self) -> None:
        assert self._rule().accepts_source(LogSource.DOCKER, "abc123")

    def test_source_filter(self) -> None:
        rule = self._rule(sources={LogSource.DOCKER})
        assert rule.accepts_source(LogSource.DOCKER, "abc123")
        assert not rule.accepts_source(LogSource.JOURNAL, "sshd")

    def test_source_id_filter(self) -> None:
        rule = self._rule(source_ids={"abc123"})
        assert rule.accepts_source(LogSource.DOCKER, "abc123")
        assert not rule.accepts_source(LogSource.DOCKER, "def456")

    def test_sets_are_frozen(self) -> None:
        rule = self._rule(sources={LogSource.APP})
        assert isinstance(rule.sources, frozenset)


class TestSummarizeCondition:
    def test_keyword_truncates_term_list(self) -> None:
        cond = KeywordCondition(frozenset({"a", "b", "c", "d", "e"}))
        assert summarize_condition(cond) == "keywords: a, b, c +2 more"

    def test_frequency(self) -> None:
        cond = FrequencyCondition(LogLevel.ERROR, 3, 60)
        assert summarize_condition(cond) == "error x3 / 60s"


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

class TestSerialization:
    def test_threshold_rule_round_trip(self) -> None:
        rule = default_threshold_rules()[0]
        assert rule_from_dict(rule_to_dict(rule)) == rule

    def test_log_rule_round_trip_keeps_filters(self) -> None:
        rule = LogAlertRule(
            id="burst",
            name="Burst",
            condition=FrequencyCondition(LogLevel.ERROR, 3, 60),
            severity=Severity.CRITICAL,
            sources=frozenset({LogSource.DOCKER}),
            source_ids=frozenset({"abc"}),
            owner_id="user-1",
        )
        assert log_rule_from_dict(log_rule_to_dict(rule)) == rule

    def test_unknown_category_raises(self) -> None:
        with pytest.raises(RuleConfigError, match="category"):
            rule_from_dict({
                "id": "x", "category": "gpu",
                "condition": {"metric": "usage", "operator": ">", "threshold": 1},
            })

    def test_missing_condition_raises(self) -> None:
        with pytest.raises(RuleConfigError, match="Malformed"):
            rule_from_dict({"id": "x", "category": "cpu"})

    def test_unknown_log_condition_type(self) -> None:
        with pytest.raises(RuleConfigError, match="Unknown log condition"):
            log_rule_from_dict({"id": "x", "condition": {"type": "magic"}})

    def test_name_defaults_to_id(self) -> None:
        rule = log_rule_from_dict({"id": "x", "condition": {"type": "pattern", "pattern": "x+"}})
        assert rule.name == "x"
        assert rule.kind == "pattern"


class TestDefaultRules:
    def test_default_thresholds(self) -> None:
        by_id = {r.id: r for r in default_threshold_rules()}
        assert by_id["default-cpu-critical"].condition.threshold == 90
        assert by_id["default-cpu-warning"].condition.threshold == 70
        assert by_id["default-memory-warning"].condition.threshold == 80
        assert by_id["default-disk-critical"].condition.threshold == 95
        assert by_id["default-disk-critical"].cooldown_seconds == 600

    def test_ids_unique(self) -> None:
        ids = [r.id for r in default_threshold_rules()]
        assert len(ids) == len(set(ids))


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------

class TestInMemoryRuleRepository:
    def test_lists_only_enabled(self) -> None:
        rules = default_threshold_rules()
        rules[0].enabled = False
        repo = InMemoryRuleRepository(threshold_rules=rules)
        enabled = repo.list_enabled_threshold_rules()
        assert len(enabled) == len(rules) - 1
        assert rules[0] not in enabled
        assert repo.list_enabled_log_rules() == []


class TestYamlRuleRepository:
    def test_loads_both_lists(self, rules_yaml: Path) -> None:
        repo = YamlRuleRepository(rules_yaml)
        assert [r.id for r in repo.list_enabled_threshold_rules()] == ["cpu-high"]
        log_ids = [r.id for r in repo.list_enabled_log_rules()]
        assert log_ids == ["disk-full", "error-burst"]

    def test_duplicate_ids_rejected(self, tmp_path: Path) -> None:
        p = tmp_path / "dupes.yaml"
        p.write_text(
            "threshold_rules:\n"
            "  - {id: same, category: cpu, condition: {metric: usage, operator: '>', threshold: 1}}\n"
            "log_rules:\n"
            "  - {id: same, condition: {type: keyword, keywords: [x]}}\n",
            encoding="utf-8",
        )
        with pytest.raises(RuleConfigError, match="duplicate"):
            YamlRuleRepository(p)

    def test_invalid_yaml_raises_config_error(self, tmp_path: Path) -> None:
        p = tmp_path / "bad.yaml"
        p.write_text("threshold_rules: [unclosed\n", encoding="utf-8")
        with pytest.raises(RuleConfigError):
            YamlRuleRepository(p)

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        p = tmp_path / "list.yaml"
        p.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(RuleConfigError, match="mapping"):
            YamlRuleRepository(p)

    def test_empty_file_means_no_rules(self, tmp_path: Path) -> None:
        p = tmp_path / "empty.yaml"
        p.write_text("", encoding="utf-8")
        repo = YamlRuleRepository(p)
        assert repo.list_enabled_threshold_rules() == []


class TestLoadRepository:
    def test_defaults_without_file(self) -> None:
        repo = load_repository("")
        assert len(repo.list_enabled_threshold_rules()) == 6

    def test_yaml_with_file(self, rules_yaml: Path) -> None:
        assert isinstance(load_repository(str(rules_yaml)), YamlRuleRepository)
