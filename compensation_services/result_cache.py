"""
ResultCache -- get-or-compute memoization of salary and billing results.

Responsibility:
    Remember immutable calculation results keyed by (tenant, kind, subject,
    period, configuration fingerprint) and coalesce concurrent requests for
    the same key onto a single computation.

Architecture position:
    Services -- the only mutable shared state of the calculation stack.
    Engines never see it; the salary and billing services wrap their engine
    calls in ``get_or_compute``.

Invariants enforced:
    - At most one computation per key at a time: the first caller (leader)
      registers an in-flight future, later callers (followers) wait on it.
    - Writes are atomic per key: a finished, frozen result is assigned under
      the lock; nothing partial is ever stored.
    - ``clear_tenant`` drops every entry of the tenant and bumps its
      generation, so a computation that started before the clear is returned
      to its caller but never stored.
    - Entries expire after ``ttl_seconds``; each tenant namespace holds at
      most ``max_entries`` entries (least recently used evicted first).

Failure modes:
    - A follower whose deadline passes while waiting gets
      ComputationTimeoutError; the leader keeps running and may still
      populate the cache.
    - A follower whose leader failed computes on its own.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Generic, TypeVar

from compensation_kernel.domain.clock import Deadline
from compensation_kernel.exceptions import ComputationTimeoutError
from compensation_kernel.logging_config import get_logger

logger = get_logger("services.result_cache")

T = TypeVar("T")


@dataclass(frozen=True)
class CacheKey:
    """Identity of one cached calculation."""

    tenant_id: str
    kind: str  # "salary", "salary_details", "bill", ...
    subject_id: str
    period_start: date | None
    period_end: date | None
    fingerprint: str


@dataclass
class _Entry(Generic[T]):
    value: T
    stored_at: float


@dataclass
class _Namespace:
    entries: OrderedDict[CacheKey, _Entry[Any]] = field(default_factory=OrderedDict)
    generation: int = 0


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    coalesced: int
    evictions: int
    entries: int


class ResultCache:
    """
    Thread-safe, tenant-namespaced get-or-compute cache.

    Args:
        ttl_seconds: Lifetime of an entry.
        max_entries: Entries kept per tenant before LRU eviction.
        monotonic: Time source (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 500,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._monotonic = monotonic
        self._lock = threading.Lock()
        self._namespaces: dict[str, _Namespace] = {}
        self._inflight: dict[CacheKey, Future] = {}
        self._hits = 0
        self._misses = 0
        self._coalesced = 0
        self._evictions = 0

    # -- lookups -----------------------------------------------------------

    def _is_fresh(self, entry: _Entry[Any]) -> bool:
        return self._monotonic() - entry.stored_at < self.ttl_seconds

    def _lookup_locked(self, key: CacheKey) -> _Entry[Any] | None:
        namespace = self._namespaces.get(key.tenant_id)
        if namespace is None:
            return None
        entry = namespace.entries.get(key)
        if entry is None:
            return None
        if not self._is_fresh(entry):
            del namespace.entries[key]
            return None
        namespace.entries.move_to_end(key)
        return entry

    def get(self, key: CacheKey) -> Any | None:
        """Return a fresh cached value or None."""
        with self._lock:
            entry = self._lookup_locked(key)
            return entry.value if entry is not None else None

    def __contains__(self, key: CacheKey) -> bool:
        return self.get(key) is not None

    # -- get-or-compute ----------------------------------------------------

    def get_or_compute(
        self,
        key: CacheKey,
        compute: Callable[[], T],
        deadline: Deadline | None = None,
    ) -> T:
        """
        Return the cached value for ``key`` or compute, store and return it.

        Raises:
            ComputationTimeoutError: If the deadline passes while waiting for
                another caller's computation of the same key.
            Any exception raised by ``compute`` for the leader.
        """
        with self._lock:
            entry = self._lookup_locked(key)
            if entry is not None:
                self._hits += 1
                logger.debug("cache_hit", extra={"tenant_id": key.tenant_id, "kind": key.kind})
                return entry.value

            future = self._inflight.get(key)
            leader = future is None
            if leader:
                self._misses += 1
                future = Future()
                self._inflight[key] = future
                generation = self._namespace_locked(key.tenant_id).generation
            else:
                self._coalesced += 1

        if not leader:
            return self._follow(key, future, compute, deadline)

        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                if self._inflight.get(key) is future:
                    del self._inflight[key]
            future.set_exception(exc)
            raise

        with self._lock:
            namespace = self._namespace_locked(key.tenant_id)
            if namespace.generation == generation:
                self._store_locked(namespace, key, value)
            else:
                logger.info(
                    "cache_store_skipped_after_clear",
                    extra={"tenant_id": key.tenant_id, "kind": key.kind},
                )
            if self._inflight.get(key) is future:
                del self._inflight[key]
        future.set_result(value)
        return value

    def _follow(
        self,
        key: CacheKey,
        future: Future,
        compute: Callable[[], T],
        deadline: Deadline | None,
    ) -> T:
        timeout = deadline.remaining() if deadline is not None else None
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            raise ComputationTimeoutError(
                deadline.operation if deadline else "cached calculation",
                deadline.timeout_seconds if deadline and deadline.timeout_seconds else 0,
            ) from exc
        except ComputationTimeoutError:
            # the leader ran out of its own time; ours may still allow a run
            if deadline is not None:
                deadline.check()
        except Exception as exc:
            logger.info(
                "cache_leader_failed",
                extra={"tenant_id": key.tenant_id, "kind": key.kind, "error": type(exc).__name__},
            )
        return compute()

    def _namespace_locked(self, tenant_id: str) -> _Namespace:
        namespace = self._namespaces.get(tenant_id)
        if namespace is None:
            namespace = _Namespace()
            self._namespaces[tenant_id] = namespace
        return namespace

    def _store_locked(self, namespace: _Namespace, key: CacheKey, value: Any) -> None:
        namespace.entries[key] = _Entry(value=value, stored_at=self._monotonic())
        namespace.entries.move_to_end(key)
        while len(namespace.entries) > self.max_entries:
            namespace.entries.popitem(last=False)
            self._evictions += 1

    # -- invalidation ------------------------------------------------------

    def clear_tenant(self, tenant_id: str) -> int:
        """Drop every entry of a tenant; returns the number dropped."""
        with self._lock:
            namespace = self._namespace_locked(tenant_id)
            dropped = len(namespace.entries)
            namespace.entries.clear()
            namespace.generation += 1
            for key in [k for k in self._inflight if k.tenant_id == tenant_id]:
                del self._inflight[key]
        logger.info("cache_tenant_cleared", extra={"tenant_id": tenant_id, "dropped": dropped})
        return dropped

    def clear(self) -> None:
        with self._lock:
            for namespace in self._namespaces.values():
                namespace.entries.clear()
                namespace.generation += 1
            self._inflight.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                coalesced=self._coalesced,
                evictions=self._evictions,
                entries=sum(len(n.entries) for n in self._namespaces.values()),
            )
