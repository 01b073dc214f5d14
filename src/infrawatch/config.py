"""Configuration via pydantic-settings — 12-factor app style."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Infrawatch configuration — loaded from env vars / .env file."""

    rules_file: str = Field(default="", description="YAML rules file (empty = built-in defaults)")
    redis_url: str = Field(default="", description="Redis URL for the rule-list cache (empty = no cache)")
    rules_cache_ttl: int = Field(default=60, description="Rule-list cache TTL in seconds")
    alert_retention: int = Field(default=100, description="Max alerts kept in the lifecycle store")
    metrics_interval: float = Field(default=5.0, description="Seconds between metrics ticks")
    dispatch_workers: int = Field(default=4, description="Threads used for notification sends")
    toast_capacity: int = Field(default=50, description="Max pending in-app toasts")
    desktop_enabled: bool = Field(default=True, description="Allow native desktop notifications")
    log_level: str = Field(default="INFO", description="Root log level for the CLI")

    email_enabled: bool = Field(default=False, description="Send alert emails")
    email_critical_only: bool = Field(default=True, description="Only email critical alerts")
    email_to: str = Field(default="", description="Alert email recipient")
    email_from: str = Field(default="infrawatch@localhost", description="Sender address")
    email_subject_prefix: str = Field(default="[infrawatch]", description="Subject prefix")
    smtp_host: str = Field(default="localhost", description="SMTP server")
    smtp_port: int = Field(default=587, description="SMTP port")
    smtp_user: str = Field(default="", description="SMTP username")
    smtp_password: str = Field(default="", description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="STARTTLS before login")
    smtp_timeout: float = Field(default=10.0, description="SMTP socket timeout in seconds")
    email_cooldown_minutes: int = Field(default=30, description="Per-rule email cooldown")
    email_daily_cap: int = Field(default=50, description="Max emails per local calendar day")

    webhook_enabled: bool = Field(default=False, description="Post alerts to a chat webhook")
    webhook_critical_only: bool = Field(default=True, description="Only post critical alerts")
    webhook_url: str = Field(default="", description="Slack incoming-webhook URL")
    webhook_timeout: float = Field(default=5.0, description="Webhook HTTP timeout in seconds")
    webhook_cooldown_minutes: int = Field(default=30, description="Per-rule webhook cooldown")
    webhook_daily_cap: int = Field(default=100, description="Max webhook posts per local calendar day")

    class Config:
        env_prefix = "INFRAWATCH_"
        env_file = ".env"


settings = Settings()
