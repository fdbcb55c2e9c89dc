from __future__ import annotations

import os
from collections.abc import Iterable
from typing import Any

import redis

from .interface import StorageError, StorageQuotaError, StorageUnavailableError


def _translate(exc: redis.exceptions.RedisError, action: str, key: str | None) -> StorageError:
    where = f"{action} {key!r}" if key is not None else action
    if isinstance(exc, redis.exceptions.ConnectionError | redis.exceptions.TimeoutError):
        return StorageUnavailableError(f"redis unavailable during {where}", exc)
    # maxmemory with a noeviction policy answers writes with "OOM command not allowed"
    if isinstance(exc, redis.exceptions.ResponseError) and str(exc).startswith("OOM"):
        return StorageQuotaError(f"redis out of memory during {where}", exc)
    return StorageError(f"redis error during {where}: {exc}", exc)


class RedisMedium:
    """Redis-backed key-value medium.

    - plain string keys (GET/SET/DEL), no expiry
    - keys(): SCAN over ``match`` (default: the whole logical database)
    """

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        match: str = "*",
        client: Any | None = None,
    ) -> None:
        url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        if client is not None:
            self._redis = client
        else:
            # decode_responses=True returns str everywhere for easier JSON handling
            self._redis = redis.from_url(url, decode_responses=True)
        self._match = match

    def get_client(self) -> Any:
        """Return the underlying Redis client object."""
        return self._redis

    def get(self, key: str) -> str | None:
        try:
            value = self._redis.get(key)
        except redis.exceptions.RedisError as exc:
            raise _translate(exc, "get", key) from exc
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self._redis.set(key, value)
        except redis.exceptions.RedisError as exc:
            raise _translate(exc, "set", key) from exc

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(key)
        except redis.exceptions.RedisError as exc:
            raise _translate(exc, "delete", key) from exc

    def keys(self) -> Iterable[str]:
        try:
            found = list(self._redis.scan_iter(match=self._match))
        except redis.exceptions.RedisError as exc:
            raise _translate(exc, "scan", None) from exc
        return [k.decode("utf-8") if isinstance(k, bytes) else k for k in found]

    def is_available(self) -> bool:
        try:
            return bool(self._redis.ping())
        except redis.exceptions.RedisError:
            return False


__all__ = ["RedisMedium"]
