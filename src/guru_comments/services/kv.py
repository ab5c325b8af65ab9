"""Key-value store adapters used for rate-limit counters and sessions."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from threading import Lock
from typing import Protocol

import redis

logger = logging.getLogger(__name__)


class KVStoreError(Exception):
    """The key-value backend could not serve a request."""


class KVStore(Protocol):
    """Minimal best-effort key-value contract with per-key expiry."""

    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...


class RedisKVStore:
    """KV store backed by Redis string keys with ``EX`` expiry."""

    def __init__(self, client: redis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> RedisKVStore:
        return cls(redis.from_url(url))  # type: ignore[no-untyped-call]

    def get(self, key: str) -> str | None:
        try:
            value = self._redis.get(key)
        except redis.RedisError as exc:
            raise KVStoreError(f"GET {key} failed: {exc}") from exc
        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else str(value)

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self._redis.set(key, value, ex=int(ttl_seconds))
        except redis.RedisError as exc:
            raise KVStoreError(f"SET {key} failed: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(key)
        except redis.RedisError as exc:
            raise KVStoreError(f"DEL {key} failed: {exc}") from exc


class MemoryKVStore:
    """Process-local KV store for development and tests.

    Entries expire lazily on read.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                self._entries.pop(key, None)
                return None
            return value

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def build_kv_store(backend: str, redis_url: str) -> KVStore:
    """Return the KV store selected by configuration."""
    if backend == "memory":
        logger.info("Using in-process KV store")
        return MemoryKVStore()
    if backend == "redis":
        return RedisKVStore.from_url(redis_url)
    raise ValueError(f"Unknown KV backend: {backend!r}")
