"""Infrawatch CLI — entry point.

Commands:
    infrawatch rules                    List configured alert rules
    infrawatch replay-logs    <file>    Run a log file through the log rules
    infrawatch replay-metrics <file>    Run JSON-lines snapshots through threshold rules
    infrawatch watch          <file>    Live monitor: tail a log, tick metrics, notify
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from .alerts.engine import AlertEngine
from .alerts.store import Alert, AlertStore
from .config import Settings, settings
from .errors import RuleConfigError
from .monitor import Monitor, build_dispatcher, build_engine, build_repository
from .notify.base import SendOutcome
from .rules.model import LogSource
from .sources.files import SnapshotFileSource, follow_lines, read_lines
from .sources.parsing import parse_log_line
from .visualization.tables import print_alerts_table, print_rules_table, print_toasts

console = Console()
err_console = Console(stderr=True)

_SOURCE_CHOICE = click.Choice([s.value for s in LogSource], case_sensitive=False)

# ── Helpers ─────────────────────────────────────────────────────────────────


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _settings(ctx: click.Context, rules_file: str | None) -> Settings:
    cfg: Settings = ctx.obj["settings"]
    if rules_file:
        cfg = cfg.model_copy(update={"rules_file": rules_file})
    return cfg


def _build(cfg: Settings, dispatch: bool = False) -> AlertEngine:
    try:
        return build_engine(cfg, dispatch=dispatch, on_outcome=_print_outcome if dispatch else None)
    except (RuleConfigError, OSError) as exc:
        err_console.print(f"[red]Cannot load rules:[/red] {exc}")
        sys.exit(1)


def _print_outcome(alert: Alert, outcome: SendOutcome) -> None:
    if outcome.channel == "toast":
        return
    colour = "green" if outcome.sent else "yellow"
    detail = f" ({outcome.detail})" if outcome.detail else ""
    err_console.print(
        f"[dim]{alert.rule_id}[/dim] → {outcome.channel}: "
        f"[{colour}]{outcome.status.value}[/{colour}]{detail}"
    )


def _emit(alerts: list[Alert], output_fmt: str, title: str) -> None:
    if output_fmt == "json":
        for alert in alerts:
            click.echo(json.dumps(alert.to_dict(), default=str))
        return
    print_alerts_table(alerts, title=title, console=console)


def _shutdown(engine: AlertEngine) -> None:
    shutdown = getattr(engine.dispatcher, "shutdown", None)
    if shutdown is not None:
        shutdown(wait=True)


# ── CLI root ─────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version="1.0.0", prog_name="infrawatch")
@click.option(
    "--log-level", default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log verbosity (default: INFRAWATCH_LOG_LEVEL or INFO).",
)
@click.pass_context
def main(ctx: click.Context, log_level: str | None) -> None:
    """infrawatch — metric and log alerting with multi-channel notifications."""
    ctx.ensure_object(dict)
    ctx.obj.setdefault("settings", settings)
    _setup_logging(log_level or settings.log_level)


# ── rules ────────────────────────────────────────────────────────────────────


@main.command()
@click.option("--rules", "rules_file", default=None, type=click.Path(exists=True, dir_okay=False),
              help="YAML rules file (default: INFRAWATCH_RULES_FILE or built-ins).")
@click.pass_context
def rules(ctx: click.Context, rules_file: str | None) -> None:
    """List the enabled alert rules.

    \b
    Examples:
      infrawatch rules
      infrawatch rules --rules rules.yaml
    """
    cfg = _settings(ctx, rules_file)
    try:
        repo = build_repository(cfg)
    except (RuleConfigError, OSError) as exc:
        err_console.print(f"[red]Cannot load rules:[/red] {exc}")
        sys.exit(1)
    print_rules_table(
        repo.list_enabled_threshold_rules(), repo.list_enabled_log_rules(), console=console
    )


# ── replay-logs ──────────────────────────────────────────────────────────────


@main.command("replay-logs")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--rules", "rules_file", default=None, type=click.Path(exists=True, dir_okay=False),
              help="YAML rules file.")
@click.option("--source", default=LogSource.APP.value, type=_SOURCE_CHOICE, show_default=True,
              help="Source type for lines that do not name one.")
@click.option("--source-id", default=None, help="Source identifier (default: file name).")
@click.option(
    "--output", "-o", "output_fmt", default="table",
    type=click.Choice(["table", "json"], case_sensitive=False),
    help="Output format.",
    show_default=True,
)
@click.option("--dispatch", is_flag=True, help="Send notifications for fired alerts.")
@click.pass_context
def replay_logs(
    ctx: click.Context,
    file: Path,
    rules_file: str | None,
    source: str,
    source_id: str | None,
    output_fmt: str,
    dispatch: bool,
) -> None:
    """Feed a log file through the log rules and report fired alerts.

    Cooldowns and frequency windows run on each line's own timestamp, so a
    replay behaves as the live stream did.

    \b
    Examples:
      infrawatch replay-logs app.log --rules rules.yaml
      infrawatch replay-logs app.json -o json
    """
    cfg = _settings(ctx, rules_file)
    engine = _build(cfg, dispatch=dispatch)
    count = 0
    try:
        for line in read_lines(file, source=LogSource(source.lower()), source_id=source_id):
            engine.evaluate_log_line(line)
            count += 1
    finally:
        _shutdown(engine)

    _emit(engine.store.all(), output_fmt, title=f"Alerts from {file.name}")
    err_console.print(f"[dim]Evaluated {count} lines, {len(engine.store)} alerts[/dim]")


# ── replay-metrics ───────────────────────────────────────────────────────────


@main.command("replay-metrics")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--rules", "rules_file", default=None, type=click.Path(exists=True, dir_okay=False),
              help="YAML rules file.")
@click.option("--step", default=None, type=float,
              help="Seconds between snapshots (default: INFRAWATCH_METRICS_INTERVAL).")
@click.option(
    "--output", "-o", "output_fmt", default="table",
    type=click.Choice(["table", "json"], case_sensitive=False),
    show_default=True,
)
@click.option("--dispatch", is_flag=True, help="Send notifications for fired alerts.")
@click.pass_context
def replay_metrics(
    ctx: click.Context,
    file: Path,
    rules_file: str | None,
    step: float | None,
    output_fmt: str,
    dispatch: bool,
) -> None:
    """Feed a JSON-lines snapshot file through the threshold rules.

    Snapshots are treated as taken ``--step`` seconds apart, starting now.

    \b
    Examples:
      infrawatch replay-metrics metrics.jsonl
      infrawatch replay-metrics metrics.jsonl --step 60 -o json
    """
    cfg = _settings(ctx, rules_file)
    engine = _build(cfg, dispatch=dispatch)
    interval = cfg.metrics_interval if step is None else step
    start = datetime.now(timezone.utc).timestamp()
    count = 0
    try:
        for i, snapshot in enumerate(SnapshotFileSource(file)):
            engine.evaluate_snapshot(snapshot, now=start + i * interval)
            count += 1
    finally:
        _shutdown(engine)

    _emit(engine.store.all(), output_fmt, title=f"Alerts from {file.name}")
    err_console.print(f"[dim]Evaluated {count} snapshots, {len(engine.store)} alerts[/dim]")


# ── watch ────────────────────────────────────────────────────────────────────


@main.command()
@click.argument("file", type=click.Path(path_type=Path))
@click.option("--metrics", "metrics_file", default=None, type=click.Path(path_type=Path),
              help="JSON-lines metrics snapshot file to tick.")
@click.option("--rules", "rules_file", default=None, type=click.Path(exists=True, dir_okay=False),
              help="YAML rules file.")
@click.option("--source", default=LogSource.APP.value, type=_SOURCE_CHOICE, show_default=True)
@click.option("--source-id", default=None, help="Source identifier (default: file name).")
@click.option("--interval", default=0.25, type=float, show_default=True,
              help="Log poll interval in seconds.")
@click.option("--from-start", is_flag=True, help="Read the log from the beginning, not the end.")
@click.pass_context
def watch(
    ctx: click.Context,
    file: Path,
    metrics_file: Path | None,
    rules_file: str | None,
    source: str,
    source_id: str | None,
    interval: float,
    from_start: bool,
) -> None:
    """Live monitor: tail a log file, tick metrics, dispatch notifications.

    \b
    Examples:
      infrawatch watch /var/log/app.log
      infrawatch watch /var/log/app.log --metrics /run/metrics.jsonl --rules rules.yaml
    """
    cfg = _settings(ctx, rules_file)
    try:
        repo = build_repository(cfg)
    except (RuleConfigError, OSError) as exc:
        err_console.print(f"[red]Cannot load rules:[/red] {exc}")
        sys.exit(1)
    dispatcher = build_dispatcher(cfg, on_outcome=_print_outcome)
    engine = AlertEngine(repo, store=AlertStore(retention=cfg.alert_retention), dispatcher=dispatcher)
    engine.subscribe(lambda _alert: print_toasts(dispatcher.toast.drain(), console=console))

    metrics_source = SnapshotFileSource(metrics_file) if metrics_file else None
    monitor = Monitor(engine, metrics_source, interval=cfg.metrics_interval)

    src = LogSource(source.lower())
    sid = source_id or file.name
    raw_lines = follow_lines(file, interval=interval, stop_event=monitor.stop_event,
                             from_start=from_start)
    parsed = (parse_log_line(raw, source=src, source_id=sid) for raw in raw_lines)

    console.print(f"[dim]Watching {file} (Ctrl+C to stop)[/dim]")
    monitor.start()
    try:
        monitor.run_logs(line for line in parsed if line is not None)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
    finally:
        monitor.stop()
        dispatcher.shutdown(wait=True)

    active = engine.store.active()
    if active:
        print_alerts_table(active, title="Active alerts", console=console)


if __name__ == "__main__":
    main()
