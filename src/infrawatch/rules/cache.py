"""Redis-backed cache in front of a rule repository.

Rule lists are read on every metrics tick and every log line, while the
underlying store changes rarely. The cache keeps the serialized enabled-rule
lists under two keys for a short TTL:

Key schema:
    infrawatch:rules:threshold
    infrawatch:rules:log

TTL defaults to 60 seconds. Call :meth:`CachedRuleRepository.invalidate`
after rules are created, updated or deleted.

Usage::

    from infrawatch.rules.cache import CachedRuleRepository

    repo = CachedRuleRepository(YamlRuleRepository("rules.yaml"),
                                url="redis://localhost:6379/0", ttl=60)
    rules = repo.list_enabled_log_rules()
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable

from .model import (
    AlertRule,
    LogAlertRule,
    log_rule_from_dict,
    log_rule_to_dict,
    rule_from_dict,
    rule_to_dict,
)
from .repository import RuleRepository

logger = logging.getLogger(__name__)

KEY_PREFIX = "infrawatch:rules:"
THRESHOLD_KEY = f"{KEY_PREFIX}threshold"
LOG_KEY = f"{KEY_PREFIX}log"


class CachedRuleRepository:
    """Cache the enabled-rule lists of another repository in Redis.

    Gracefully degrades to a pass-through when Redis is unavailable — the
    caller never needs to handle cache errors.

    Args:
        backend:  Repository that owns the rules.
        url:      Redis connection URL (redis://host:port/db).
        ttl:      Time-to-live in seconds for cached lists (default: 60).
    """

    def __init__(
        self,
        backend: RuleRepository,
        url: str = "redis://localhost:6379/0",
        ttl: int = 60,
    ) -> None:
        self._backend = backend
        self._url = url
        self._ttl = ttl
        self._client: Any = None
        # key -> (payload, decoded rules); reused while the cached payload is unchanged
        self._decoded: dict[str, tuple[str, list[Any]]] = {}
        self._connect()

    def _connect(self) -> None:
        try:
            import redis  # type: ignore[import-untyped]

            self._client = redis.Redis.from_url(self._url, decode_responses=True)
            self._client.ping()
            logger.debug("Redis rule cache connected: %s", self._url)
        except Exception as exc:
            logger.warning("Redis unavailable — rule caching disabled: %s", exc)
            self._client = None

    # ------------------------------------------------------------------
    # RuleRepository
    # ------------------------------------------------------------------

    def list_enabled_threshold_rules(self) -> list[AlertRule]:
        return self._cached(
            THRESHOLD_KEY,
            self._backend.list_enabled_threshold_rules,
            rule_to_dict,
            rule_from_dict,
        )

    def list_enabled_log_rules(self) -> list[LogAlertRule]:
        return self._cached(
            LOG_KEY,
            self._backend.list_enabled_log_rules,
            log_rule_to_dict,
            log_rule_from_dict,
        )

    # ------------------------------------------------------------------
    # Cache plumbing
    # ------------------------------------------------------------------

    def _cached(
        self,
        key: str,
        load: Callable[[], list[Any]],
        dump_one: Callable[[Any], dict[str, Any]],
        load_one: Callable[[dict[str, Any]], Any],
    ) -> list[Any]:
        raw = self._get(key)
        if raw is not None:
            memo = self._decoded.get(key)
            if memo is not None and memo[0] == raw:
                return list(memo[1])
            try:
                rules = [load_one(d) for d in json.loads(raw)]
            except ValueError as exc:
                logger.warning("Discarding unreadable cache entry %r: %s", key, exc)
                self.invalidate()
            else:
                self._decoded[key] = (raw, rules)
                return list(rules)

        rules = load()
        payload = json.dumps([dump_one(r) for r in rules])
        if self._set(key, payload):
            self._decoded[key] = (payload, rules)
        return rules

    def _get(self, key: str) -> str | None:
        if self._client is None:
            return None
        try:
            return self._client.get(key)
        except Exception as exc:
            logger.warning("Cache get failed for key %r: %s", key, exc)
            return None

    def _set(self, key: str, payload: str) -> bool:
        if self._client is None:
            return False
        try:
            self._client.setex(key, self._ttl, payload)
            return True
        except Exception as exc:
            logger.warning("Cache set failed for key %r: %s", key, exc)
            return False

    def invalidate(self) -> int:
        """Drop both cached lists. Returns the number of keys deleted."""
        self._decoded.clear()
        if self._client is None:
            return 0
        try:
            return int(self._client.delete(THRESHOLD_KEY, LOG_KEY))
        except Exception as exc:
            logger.warning("Cache invalidate failed: %s", exc)
            return 0

    @property
    def available(self) -> bool:
        """True when the Redis connection is healthy."""
        return self._client is not None
