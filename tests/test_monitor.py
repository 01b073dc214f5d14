"""Tests for file sources, engine wiring and the monitor loop."""
from __future__ import annotations

import json
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

from infrawatch.alerts.engine import AlertEngine
from infrawatch.alerts.metrics import MetricsSnapshot
from infrawatch.config import Settings
from infrawatch.monitor import Monitor, build_dispatcher, build_engine
from infrawatch.notify.email_channel import EmailChannel
from infrawatch.notify.webhook import WebhookChannel
from infrawatch.rules.cache import CachedRuleRepository
from infrawatch.rules.model import AlertCategory, LogSource
from infrawatch.rules.repository import InMemoryRuleRepository, YamlRuleRepository
from infrawatch.sources.files import SnapshotFileSource, follow_lines, read_lines

WEBHOOK_URL = "https://hooks.slack.com/services/T000/B000/XXXXXXXX"


def _settings(**overrides) -> Settings:
    params = dict(desktop_enabled=False)
    params.update(overrides)
    return Settings(**params)


# ---------------------------------------------------------------------------
# File sources
# ---------------------------------------------------------------------------

class TestReadLines:
    def test_parses_every_line(self, tmp_log_file, json_log_lines) -> None:
        path = tmp_log_file(json_log_lines + [""])
        lines = list(read_lines(path))
        assert len(lines) == 5
        assert lines[1].message == "disk full"
        assert lines[0].source_id == "test.log"

    def test_explicit_source(self, tmp_log_file) -> None:
        path = tmp_log_file(["hello"])
        [line] = read_lines(path, source=LogSource.DOCKER, source_id="c1")
        assert line.source is LogSource.DOCKER
        assert line.source_id == "c1"


class TestSnapshotFileSource:
    def test_iterates_in_order_and_skips_bad_lines(self, tmp_path: Path) -> None:
        p = tmp_path / "metrics.jsonl"
        p.write_text(
            json.dumps({"cpu": {"usage": 10}}) + "\n"
            "not json\n"
            "[1, 2]\n"
            + json.dumps({"cpu": {"usage": 95}}) + "\n",
            encoding="utf-8",
        )
        values = [s.get(AlertCategory.CPU, "usage") for s in SnapshotFileSource(p)]
        assert values == [10.0, 95.0]

    def test_read_returns_latest(self, tmp_path: Path) -> None:
        p = tmp_path / "metrics.jsonl"
        p.write_text(
            json.dumps({"cpu": {"usage": 10}}) + "\n" + json.dumps({"cpu": {"usage": 42}}) + "\n",
            encoding="utf-8",
        )
        assert SnapshotFileSource(p).read().get("cpu", "usage") == 42.0

    def test_missing_file_is_empty_snapshot(self, tmp_path: Path) -> None:
        assert len(SnapshotFileSource(tmp_path / "absent.jsonl").read()) == 0


class TestFollowLines:
    def test_yields_appended_lines_and_handles_truncation(self, tmp_path: Path) -> None:
        p = tmp_path / "app.log"
        p.write_text("old line\n", encoding="utf-8")
        stop = threading.Event()
        gen = follow_lines(p, interval=0.01, stop_event=stop)

        with p.open("a", encoding="utf-8") as fh:
            fh.write("first\nsecond\npart")
        assert next(gen) == "first"
        assert next(gen) == "second"

        # truncation: the file is read again from the top
        p.write_text("rotated\n", encoding="utf-8")
        assert next(gen) == "rotated"
        stop.set()

    def test_from_start(self, tmp_path: Path) -> None:
        p = tmp_path / "app.log"
        p.write_text("a\n\nb\n", encoding="utf-8")
        stop = threading.Event()
        gen = follow_lines(p, interval=0.01, stop_event=stop, from_start=True)
        assert [next(gen), next(gen)] == ["a", "b"]
        stop.set()
        assert list(gen) == []

    def test_stops_while_waiting_for_file(self, tmp_path: Path) -> None:
        stop = threading.Event()
        stop.set()
        assert list(follow_lines(tmp_path / "never.log", interval=0.01, stop_event=stop)) == []


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

class TestBuildEngine:
    def test_defaults(self) -> None:
        engine = build_engine(_settings())
        assert isinstance(engine.rules, InMemoryRuleRepository)
        assert len(engine.rules.list_enabled_threshold_rules()) == 6
        assert engine.store.retention == 100
        engine.dispatcher.shutdown(wait=True)

    def test_no_dispatch(self) -> None:
        assert build_engine(_settings(), dispatch=False).dispatcher is None

    def test_rules_file_and_retention(self, rules_yaml: Path) -> None:
        engine = build_engine(_settings(rules_file=str(rules_yaml), alert_retention=5), dispatch=False)
        assert isinstance(engine.rules, YamlRuleRepository)
        assert engine.store.retention == 5

    def test_redis_url_wraps_repository(self) -> None:
        with patch("infrawatch.rules.cache.CachedRuleRepository._connect"):
            engine = build_engine(_settings(redis_url="redis://localhost:6379/0"), dispatch=False)
        assert isinstance(engine.rules, CachedRuleRepository)


class TestBuildDispatcher:
    def test_channels_off_by_default(self) -> None:
        dispatcher = build_dispatcher(_settings())
        assert dispatcher.email is None
        assert dispatcher.webhook is None
        assert not dispatcher.email_policy.enabled
        dispatcher.shutdown()

    def test_email_needs_recipient(self) -> None:
        dispatcher = build_dispatcher(_settings(email_enabled=True, email_to=""))
        assert dispatcher.email is None
        dispatcher.shutdown()

    def test_email_limits_from_settings(self) -> None:
        dispatcher = build_dispatcher(_settings(
            email_enabled=True, email_to="ops@example.com",
            email_cooldown_minutes=10, email_daily_cap=7, email_critical_only=False,
        ))
        assert isinstance(dispatcher.email, EmailChannel)
        assert dispatcher.email.limiter.cooldown_seconds == 600
        assert dispatcher.email.limiter.daily_cap == 7
        assert dispatcher.email_policy.enabled
        assert not dispatcher.email_policy.critical_only
        dispatcher.shutdown()

    def test_webhook_enabled(self) -> None:
        dispatcher = build_dispatcher(_settings(webhook_enabled=True, webhook_url=WEBHOOK_URL))
        assert isinstance(dispatcher.webhook, WebhookChannel)
        assert dispatcher.webhook.limiter.daily_cap == 100
        dispatcher.shutdown()

    def test_invalid_webhook_url_disables_channel(self) -> None:
        dispatcher = build_dispatcher(_settings(webhook_enabled=True, webhook_url="https://example.com"))
        assert dispatcher.webhook is None
        assert not dispatcher.webhook_policy.enabled
        dispatcher.shutdown()


# ---------------------------------------------------------------------------
# Monitor
# ---------------------------------------------------------------------------

class TestMonitor:
    def _engine(self) -> AlertEngine:
        return build_engine(_settings(), dispatch=False)

    def test_tick_evaluates_snapshot(self) -> None:
        source = MagicMock()
        source.read.return_value = MetricsSnapshot.from_dict({"memory": {"usage": 85}})
        monitor = Monitor(self._engine(), source)
        monitor.tick()
        assert [a.rule_id for a in monitor.engine.store.all()] == ["default-memory-warning"]

    def test_tick_failure_is_logged_not_raised(self) -> None:
        source = MagicMock()
        source.read.side_effect = OSError("collector gone")
        monitor = Monitor(self._engine(), source)
        monitor.tick()
        assert len(monitor.engine.store) == 0

    def test_background_thread_ticks_until_stopped(self) -> None:
        ticked = threading.Event()
        source = MagicMock()

        def read() -> MetricsSnapshot:
            ticked.set()
            return MetricsSnapshot()

        source.read.side_effect = read
        monitor = Monitor(self._engine(), source, interval=0.01)
        monitor.start()
        assert ticked.wait(timeout=2)
        assert monitor.running
        monitor.stop()
        assert not monitor.running

    def test_start_without_source_is_noop(self) -> None:
        monitor = Monitor(self._engine(), None)
        monitor.start()
        assert not monitor.running

    def test_run_logs_counts_and_stops(self, make_line) -> None:
        monitor = Monitor(self._engine())
        assert monitor.run_logs([make_line("a"), make_line("b")]) == 2
        monitor.stop()
        assert monitor.run_logs([make_line("c")]) == 0
