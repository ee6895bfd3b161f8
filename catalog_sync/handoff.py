from __future__ import annotations

import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Literal

from redis import Redis
from redis.exceptions import RedisError

from catalog_sync.config import Settings, get_settings
from catalog_sync.errors import HandoffUnavailable


NONCE_PREFIX = "oauth:nonce:"
PENDING_PREFIX = "oauth:pending:"
AUTH_CODE_PREFIX = "oauth:code:"

LookupStatus = Literal["found", "not_found", "unavailable"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CodeLookup:
    status: LookupStatus
    value: Any | None = None

    @property
    def found(self) -> bool:
        return self.status == "found"


class HandoffStore:
    """TTL store behind the supplier OAuth handoff.

    Nonces and pending connections fall back to process memory when Redis is
    unreachable. One-time auth codes never do: issuing needs Redis, and a
    redeem that cannot reach Redis reports ``unavailable`` rather than
    ``not_found``, so a replayed code can never look fresh.
    """

    def __init__(self, redis: Redis | None = None, settings: Settings | None = None, connect: bool = True) -> None:
        self.settings = settings or get_settings()
        self._fallback: dict[str, tuple[float, str]] = {}
        self._redis = redis
        if self._redis is None and connect:
            try:
                self._redis = Redis.from_url(self.settings.redis_url, decode_responses=True)
                self._redis.ping()
            except RedisError as exc:
                logger.warning("Redis unavailable for handoff store: %s", exc)
                self._redis = None

    def save_nonce(self, nonce: str, payload: Any) -> None:
        self._set(NONCE_PREFIX + nonce, payload, self.settings.nonce_ttl_seconds)

    def consume_nonce(self, nonce: str) -> Any | None:
        return self._pop(NONCE_PREFIX + nonce)

    def save_pending_connection(self, key: str, payload: Any) -> None:
        self._set(PENDING_PREFIX + key, payload, self.settings.pending_connection_ttl_seconds)

    def get_pending_connection(self, key: str) -> Any | None:
        return self._get(PENDING_PREFIX + key)

    def delete_pending_connection(self, key: str) -> None:
        name = PENDING_PREFIX + key
        self._fallback.pop(name, None)
        if self._redis is None:
            return
        try:
            self._redis.delete(name)
        except RedisError as exc:
            logger.warning("Failed to delete pending connection %s: %s", key, exc)

    def issue_auth_code(self, payload: Any) -> str:
        if self._redis is None:
            raise HandoffUnavailable("auth code store is unavailable")
        code = secrets.token_urlsafe(32)
        try:
            self._redis.setex(AUTH_CODE_PREFIX + code, self.settings.auth_code_ttl_seconds, _encode(payload))
        except RedisError as exc:
            raise HandoffUnavailable(f"auth code store is unavailable: {exc}") from exc
        return code

    def redeem_auth_code(self, code: str) -> CodeLookup:
        """Atomically read and delete a one-time code."""
        if self._redis is None:
            return CodeLookup(status="unavailable")
        try:
            pipe = self._redis.pipeline(transaction=True)
            pipe.get(AUTH_CODE_PREFIX + code)
            pipe.delete(AUTH_CODE_PREFIX + code)
            value, _ = pipe.execute()
        except RedisError as exc:
            logger.error("Auth code lookup failed closed: %s", exc)
            return CodeLookup(status="unavailable")
        if value is None:
            return CodeLookup(status="not_found")
        return CodeLookup(status="found", value=json.loads(value))

    def _set(self, name: str, payload: Any, ttl_seconds: int) -> None:
        encoded = _encode(payload)
        entry = (time.monotonic() + ttl_seconds, encoded)
        try:
            if self._redis:
                self._redis.setex(name, ttl_seconds, encoded)
            else:
                self._fallback[name] = entry
        except RedisError:
            self._fallback[name] = entry

    def _get(self, name: str) -> Any | None:
        value: str | None = None
        try:
            if self._redis:
                value = self._redis.get(name)
            else:
                value = self._memory_get(name)
        except RedisError:
            value = self._memory_get(name)
        return json.loads(value) if value is not None else None

    def _pop(self, name: str) -> Any | None:
        value: str | None = None
        try:
            if self._redis:
                pipe = self._redis.pipeline(transaction=True)
                pipe.get(name)
                pipe.delete(name)
                value, _ = pipe.execute()
            else:
                value = self._memory_get(name)
        except RedisError:
            value = self._memory_get(name)
        self._fallback.pop(name, None)
        return json.loads(value) if value is not None else None

    def _memory_get(self, name: str) -> str | None:
        entry = self._fallback.get(name)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            self._fallback.pop(name, None)
            return None
        return value


def _encode(payload: Any) -> str:
    return json.dumps(payload, default=str)
