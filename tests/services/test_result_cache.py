"""
Tests for ResultCache.

Verifies:
- Hits, misses and TTL expiry
- LRU eviction per tenant namespace
- Coalescing: concurrent callers of one key share one computation
- Failure handling: leader errors, follower deadlines
- clear_tenant: entries dropped, in-flight results never stored afterwards
"""

import threading
import time
from datetime import date

import pytest

from compensation_kernel.domain.clock import Deadline
from compensation_kernel.exceptions import ComputationTimeoutError
from compensation_services.result_cache import CacheKey, ResultCache


def _key(tenant="school-1", subject="t-1", fingerprint="fp-1"):
    return CacheKey(
        tenant_id=tenant,
        kind="salary",
        subject_id=subject,
        period_start=date(2024, 11, 1),
        period_end=date(2024, 11, 30),
        fingerprint=fingerprint,
    )


class FakeMonotonic:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _wait_for(predicate, timeout=5.0):
    end = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > end:
            raise AssertionError("condition not reached")
        time.sleep(0.005)


class TestBasics:

    def test_miss_then_hit(self):
        cache = ResultCache()
        calls = []

        first = cache.get_or_compute(_key(), lambda: calls.append(1) or "result")
        second = cache.get_or_compute(_key(), lambda: calls.append(1) or "other")

        assert first == second == "result"
        assert len(calls) == 1
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.entries) == (1, 1, 1)

    def test_fingerprint_is_part_of_the_key(self):
        cache = ResultCache()
        cache.get_or_compute(_key(fingerprint="a"), lambda: 1)
        assert cache.get_or_compute(_key(fingerprint="b"), lambda: 2) == 2

    def test_ttl_expiry(self):
        clock = FakeMonotonic()
        cache = ResultCache(ttl_seconds=60, monotonic=clock)
        cache.get_or_compute(_key(), lambda: "old")

        clock.now += 59
        assert cache.get(_key()) == "old"
        clock.now += 2
        assert cache.get(_key()) is None
        assert cache.get_or_compute(_key(), lambda: "new") == "new"

    def test_lru_eviction_per_tenant(self):
        cache = ResultCache(max_entries=2)
        cache.get_or_compute(_key(subject="a"), lambda: "a")
        cache.get_or_compute(_key(subject="b"), lambda: "b")
        cache.get(_key(subject="a"))
        cache.get_or_compute(_key(subject="c"), lambda: "c")
        cache.get_or_compute(_key(tenant="school-2", subject="x"), lambda: "x")

        assert _key(subject="a") in cache
        assert _key(subject="b") not in cache
        assert _key(subject="c") in cache
        assert _key(tenant="school-2", subject="x") in cache
        assert cache.stats().evictions == 1

    def test_failed_computation_is_not_cached(self):
        cache = ResultCache()

        def boom():
            raise RuntimeError("db down")

        with pytest.raises(RuntimeError):
            cache.get_or_compute(_key(), boom)
        assert cache.get_or_compute(_key(), lambda: "ok") == "ok"

    @pytest.mark.parametrize("kwargs", [{"ttl_seconds": 0}, {"max_entries": 0}])
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            ResultCache(**kwargs)


class TestConcurrency:

    def test_concurrent_callers_share_one_computation(self):
        cache = ResultCache()
        release = threading.Event()
        calls = []
        results = []
        callers = 8

        def compute():
            calls.append(threading.get_ident())
            release.wait(timeout=5)
            return "shared"

        def worker():
            results.append(cache.get_or_compute(_key(), compute))

        threads = [threading.Thread(target=worker) for _ in range(callers)]
        for thread in threads:
            thread.start()
        _wait_for(lambda: cache.stats().coalesced == callers - 1)
        release.set()
        for thread in threads:
            thread.join(timeout=5)

        assert len(calls) == 1
        assert results == ["shared"] * callers
        assert cache.stats().misses == 1

    def test_follower_times_out_while_leader_continues(self):
        cache = ResultCache()
        release = threading.Event()
        leader_result = []

        def slow():
            release.wait(timeout=5)
            return "late"

        leader = threading.Thread(
            target=lambda: leader_result.append(cache.get_or_compute(_key(), slow)),
        )
        leader.start()
        _wait_for(lambda: cache.stats().misses == 1)

        with pytest.raises(ComputationTimeoutError):
            cache.get_or_compute(_key(), slow, deadline=Deadline(0.05, "salary_calculation"))

        release.set()
        leader.join(timeout=5)
        assert leader_result == ["late"]
        assert cache.get(_key()) == "late"

    def test_follower_recomputes_when_leader_fails(self):
        cache = ResultCache()
        release = threading.Event()
        leader_errors = []

        def failing():
            release.wait(timeout=5)
            raise RuntimeError("leader failed")

        def run_leader():
            try:
                cache.get_or_compute(_key(), failing)
            except RuntimeError as e:
                leader_errors.append(e)

        leader = threading.Thread(target=run_leader)
        leader.start()
        _wait_for(lambda: cache.stats().misses == 1)

        follower_result = []
        follower = threading.Thread(
            target=lambda: follower_result.append(cache.get_or_compute(_key(), lambda: "mine")),
        )
        follower.start()
        _wait_for(lambda: cache.stats().coalesced == 1)
        release.set()
        leader.join(timeout=5)
        follower.join(timeout=5)

        assert len(leader_errors) == 1
        assert follower_result == ["mine"]


class TestClearTenant:

    def test_clear_drops_only_that_tenant(self):
        cache = ResultCache()
        cache.get_or_compute(_key(subject="a"), lambda: 1)
        cache.get_or_compute(_key(subject="b"), lambda: 2)
        cache.get_or_compute(_key(tenant="school-2"), lambda: 3)

        assert cache.clear_tenant("school-1") == 2
        assert _key(subject="a") not in cache
        assert _key(tenant="school-2") in cache

    def test_result_computed_across_a_clear_is_not_stored(self, captured_logs):
        cache = ResultCache()

        def compute():
            cache.clear_tenant("school-1")
            return "stale"

        assert cache.get_or_compute(_key(), compute) == "stale"
        assert _key() not in cache
        assert any(r["message"] == "cache_store_skipped_after_clear" for r in captured_logs())

    def test_clear_all(self):
        cache = ResultCache()
        cache.get_or_compute(_key(), lambda: 1)
        cache.get_or_compute(_key(tenant="school-2"), lambda: 2)
        cache.clear()
        assert cache.stats().entries == 0
