"""Rich-powered rendering of rules, alerts and toasts for the CLI."""
from __future__ import annotations

from typing import Iterable

from rich import box
from rich.console import Console
from rich.table import Table

from ..alerts.store import Alert, AlertStatus
from ..notify.toast import Toast
from ..rules.model import AlertRule, LogAlertRule, Severity, summarize_condition

_console = Console()

_SEVERITY_STYLE = {
    Severity.CRITICAL: "bold red",
    Severity.WARNING: "yellow",
    Severity.INFO: "cyan",
}

_STATUS_STYLE = {
    AlertStatus.ACTIVE: "red",
    AlertStatus.ACKNOWLEDGED: "yellow",
    AlertStatus.RESOLVED: "dim",
}


def severity_markup(severity: Severity) -> str:
    style = _SEVERITY_STYLE.get(severity, "white")
    return f"[{style}]{severity.value}[/{style}]"


def print_rules_table(
    threshold_rules: Iterable[AlertRule],
    log_rules: Iterable[LogAlertRule],
    console: Console | None = None,
) -> None:
    """Render threshold and log rules as two Rich tables."""
    out = console or _console
    threshold_rules = list(threshold_rules)
    log_rules = list(log_rules)
    if not threshold_rules and not log_rules:
        out.print("[yellow]No rules configured.[/yellow]")
        return

    if threshold_rules:
        table = Table(title="Threshold rules", box=box.ROUNDED)
        table.add_column("ID", style="bold")
        table.add_column("Name")
        table.add_column("Condition")
        table.add_column("Severity")
        table.add_column("Cooldown", justify="right", style="cyan")
        table.add_column("Enabled", justify="center")
        for rule in threshold_rules:
            cond = rule.condition
            table.add_row(
                rule.id,
                rule.name,
                f"{rule.category.value}.{cond.metric} {cond.operator.value} {cond.threshold:g}",
                severity_markup(rule.severity),
                f"{rule.cooldown_seconds}s",
                "✓" if rule.enabled else "[dim]–[/dim]",
            )
        out.print(table)

    if log_rules:
        table = Table(title="Log rules", box=box.ROUNDED)
        table.add_column("ID", style="bold")
        table.add_column("Name")
        table.add_column("Type")
        table.add_column("Condition", overflow="fold", max_width=50)
        table.add_column("Severity")
        table.add_column("Cooldown", justify="right", style="cyan")
        table.add_column("Enabled", justify="center")
        for rule in log_rules:
            table.add_row(
                rule.id,
                rule.name,
                rule.kind,
                summarize_condition(rule.condition),
                severity_markup(rule.severity),
                f"{rule.cooldown_seconds}s",
                "✓" if rule.enabled else "[dim]–[/dim]",
            )
        out.print(table)


def print_alerts_table(
    alerts: list[Alert],
    title: str = "Alerts",
    max_rows: int = 100,
    console: Console | None = None,
) -> None:
    """Render alerts newest first.

    Args:
        alerts:    Alerts as returned by the store (newest first).
        max_rows:  Hard cap; longer lists are truncated with a notice.
    """
    out = console or _console
    if not alerts:
        out.print("[green]No alerts fired.[/green]")
        return

    table = Table(title=title, box=box.SIMPLE_HEAVY)
    table.add_column("Created", style="dim")
    table.add_column("Severity")
    table.add_column("Rule")
    table.add_column("Message", overflow="fold", max_width=70)
    table.add_column("Value", justify="right", style="cyan")
    table.add_column("Status")

    for alert in alerts[:max_rows]:
        style = _STATUS_STYLE.get(alert.status, "white")
        table.add_row(
            alert.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            severity_markup(alert.severity),
            alert.rule_name,
            alert.message,
            f"{alert.value:g}",
            f"[{style}]{alert.status.value}[/{style}]",
        )

    out.print(table)
    if len(alerts) > max_rows:
        out.print(f"[dim]... and {len(alerts) - max_rows} more alerts[/dim]")


def print_toasts(toasts: Iterable[Toast], console: Console | None = None) -> None:
    """Print pending toasts as single coloured lines."""
    out = console or _console
    for toast in toasts:
        style = _SEVERITY_STYLE.get(toast.severity, "white")
        out.print(f"[{style}]● {toast.title}[/{style}] {toast.description}")
