"""Per-identity request throttling over a shared key-value counter store.

Counters live in one-minute buckets aligned to the minute boundary, keyed by
``(identity, action, window_start)``. This is a fixed-window counter rather
than a continuously sliding one.

Two imprecisions are accepted on purpose:

* The increment is a read-modify-write without compare-and-swap, so
  concurrent requests in the same window may overshoot the quota by up to
  the degree of concurrency.
* When the counter store is unreachable the check **fails open**: the
  request is admitted and the fault is logged. Availability wins over
  strict enforcement.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum

from guru_comments.services.kv import KVStore, KVStoreError

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60
# Counters outlive their window slightly so a request landing right at the
# boundary on a skewed clock still sees its bucket.
EXPIRY_BUFFER_SECONDS = 10


class RateLimitAction(StrEnum):
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class RateLimitRule:
    """Quota for one (caller class, action) cell."""

    max_requests: int
    window_seconds: int = WINDOW_SECONDS

    @property
    def window_ms(self) -> int:
        return self.window_seconds * 1000


@dataclass(frozen=True)
class RateLimitPolicy:
    """Immutable quota matrix: (authenticated vs anonymous) x (read vs write)."""

    authenticated_read: RateLimitRule = RateLimitRule(100)
    authenticated_write: RateLimitRule = RateLimitRule(10)
    anonymous_read: RateLimitRule = RateLimitRule(30)
    anonymous_write: RateLimitRule = RateLimitRule(0)

    def rule_for(self, action: RateLimitAction, is_authenticated: bool) -> RateLimitRule:
        if is_authenticated:
            return self.authenticated_write if action is RateLimitAction.WRITE else self.authenticated_read
        return self.anonymous_write if action is RateLimitAction.WRITE else self.anonymous_read


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single check.

    ``reset_time`` is the end of the current window in epoch milliseconds.
    """

    allowed: bool
    remaining: int
    reset_time: int


class RateLimiter:
    """Admit or deny actions per identity using shared per-window counters."""

    def __init__(
        self,
        store: KVStore,
        policy: RateLimitPolicy | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._policy = policy or RateLimitPolicy()
        self._clock = clock

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    def replace_policy(self, policy: RateLimitPolicy) -> None:
        """Swap in a new policy snapshot; in-flight checks keep the old one."""
        self._policy = policy

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @staticmethod
    def window_start(now_ms: int, window_ms: int) -> int:
        return (now_ms // window_ms) * window_ms

    @staticmethod
    def counter_key(identity: str, action: RateLimitAction, window_start: int) -> str:
        return f"rate_limit:{identity}:{action.value}:{window_start}"

    def check_limit(
        self,
        identity: str,
        action: RateLimitAction | str,
        is_authenticated: bool = False,
    ) -> RateLimitResult:
        """Check and, if admitted, consume one request from the current window.

        Args:
            identity: User id, or a stable anonymous key such as a client address.
            action: ``read`` or ``write``.
            is_authenticated: Selects the authenticated or anonymous quota.

        Returns:
            The admission decision, the quota left before this request and
            the window reset time.
        """
        action = RateLimitAction(action)
        rule = self._policy.rule_for(action, is_authenticated)
        now_ms = self._now_ms()
        window_start = self.window_start(now_ms, rule.window_ms)
        reset_time = window_start + rule.window_ms

        # A zero quota denies outright and never touches the store.
        if rule.max_requests <= 0:
            return RateLimitResult(allowed=False, remaining=0, reset_time=reset_time)

        key = self.counter_key(identity, action, window_start)
        try:
            raw = self._store.get(key)
            count = int(raw) if raw else 0
            allowed = count < rule.max_requests
            if allowed:
                self._store.put(
                    key,
                    str(count + 1),
                    ttl_seconds=rule.window_seconds + EXPIRY_BUFFER_SECONDS,
                )
        except (KVStoreError, ValueError) as exc:
            # ValueError covers a counter value that is not an integer.
            logger.warning(
                "Rate limiter store error for %s/%s, failing open: %s",
                identity,
                action.value,
                exc,
            )
            return RateLimitResult(
                allowed=True,
                remaining=rule.max_requests,
                reset_time=now_ms + rule.window_ms,
            )

        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, rule.max_requests - count),
            reset_time=reset_time,
        )

    def check_multiple(
        self,
        identity: str,
        actions: Iterable[RateLimitAction | str],
        is_authenticated: bool = False,
    ) -> dict[RateLimitAction, RateLimitResult]:
        """Run independent checks per action.

        There is no atomicity across the batch: one action may be admitted
        while another is denied, and quota already consumed is not returned.
        """
        results: dict[RateLimitAction, RateLimitResult] = {}
        for action in actions:
            action = RateLimitAction(action)
            results[action] = self.check_limit(identity, action, is_authenticated)
        return results

    def reset_limit(self, identity: str, action: RateLimitAction | str) -> bool:
        """Clear the current window's counter. Older windows simply expire."""
        action = RateLimitAction(action)
        rule = self._policy.rule_for(action, True)
        window_start = self.window_start(self._now_ms(), rule.window_ms)
        try:
            self._store.delete(self.counter_key(identity, action, window_start))
        except KVStoreError as exc:
            logger.error("Failed to reset rate limit for %s/%s: %s", identity, action.value, exc)
            return False
        return True
