from __future__ import annotations

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from tracecov.errors import CacheCorruption, InputNotFound
from tracecov.infra.cache import CacheManager, FileCache, MatcherResponseCache


class _CountingLoader:
    def __init__(self) -> None:
        self.reads = 0

    def __call__(self, path: Path) -> str:
        self.reads += 1
        return path.read_text(encoding="utf-8")


class _Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_file_cache_reuses_unchanged_file(tmp_path: Path) -> None:
    path = tmp_path / "baseline.yml"
    path.write_text("a: 1\n", encoding="utf-8")
    loader = _CountingLoader()
    cache = FileCache()

    first = cache.read(path, loader)
    second = cache.read(path, loader)

    assert first == second == "a: 1\n"
    assert loader.reads == 1
    assert cache.stats.hits == 1
    assert cache.stats.misses == 1


def test_file_cache_rereads_after_size_change(tmp_path: Path) -> None:
    path = tmp_path / "tests.jsonl"
    path.write_text("one\n", encoding="utf-8")
    loader = _CountingLoader()
    cache = FileCache()
    cache.read(path, loader)

    path.write_text("one\ntwo\n", encoding="utf-8")

    assert cache.has_changed(path)
    assert cache.read(path, loader) == "one\ntwo\n"
    assert loader.reads == 2
    assert cache.stats.invalidations == 1


def test_file_cache_rereads_after_mtime_change(tmp_path: Path) -> None:
    path = tmp_path / "apis.yaml"
    path.write_text("abc", encoding="utf-8")
    loader = _CountingLoader()
    cache = FileCache()
    cache.read(path, loader)

    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))

    cache.read(path, loader)
    assert loader.reads == 2


def test_file_cache_missing_file_raises_and_evicts(tmp_path: Path) -> None:
    path = tmp_path / "gone.yml"
    path.write_text("x", encoding="utf-8")
    cache = FileCache()
    cache.read(path)
    assert len(cache) == 1

    path.unlink()

    with pytest.raises(InputNotFound) as excinfo:
        cache.read(path)
    assert excinfo.value.path == str(path.resolve())
    assert isinstance(excinfo.value, FileNotFoundError)
    assert len(cache) == 0


def test_file_cache_lru_eviction(tmp_path: Path) -> None:
    cache = FileCache(max_entries=2)
    paths = []
    for name in ("a", "b", "c"):
        path = tmp_path / name
        path.write_text(name, encoding="utf-8")
        paths.append(path)
        cache.read(path)

    assert len(cache) == 2
    assert cache.stats.evictions == 1
    assert cache.has_changed(paths[0])
    assert not cache.has_changed(paths[2])


def test_matcher_cache_serves_fresh_entry_without_recompute() -> None:
    clock = _Clock()
    cache = MatcherResponseCache(max_age_seconds=60, clock=clock)
    calls = []

    def compute():
        calls.append(1)
        return ["verdict"]

    payload = {"operation": "match_coverage", "api": "POST /users"}
    assert cache.get_or_compute(payload, compute) == (["verdict"], False)
    clock.now += 59
    assert cache.get_or_compute(payload, compute) == (["verdict"], True)
    assert len(calls) == 1


def test_matcher_cache_does_not_serve_expired_entry() -> None:
    clock = _Clock()
    cache = MatcherResponseCache(max_age_seconds=60, clock=clock)
    key = cache.key_for({"api": "GET /users"})
    cache.put(key, ["old"])

    clock.now += 60

    assert cache.get(key) is None
    assert cache.stats.invalidations == 1


def test_matcher_cache_failure_keeps_previous_success() -> None:
    clock = _Clock()
    cache = MatcherResponseCache(max_age_seconds=60, clock=clock)
    payload = {"api": "GET /users"}
    cache.get_or_compute(payload, lambda: ["first"])
    clock.now += 120

    def broken():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        cache.get_or_compute(payload, broken)
    assert len(cache) == 1

    response, from_cache = cache.get_or_compute(payload, lambda: ["second"])
    assert (response, from_cache) == (["second"], False)
    clock.now += 1
    assert cache.get(cache.key_for(payload)) == ["second"]


def test_matcher_cache_detects_tampered_entry() -> None:
    cache = MatcherResponseCache()
    key = cache.key_for({"api": "GET /users"})
    cache.put(key, [{"status": "FULLY_COVERED"}])
    cache.get(key)[0]["status"] = "NOT_COVERED"

    with pytest.raises(CacheCorruption):
        cache.get(key)
    assert len(cache) == 0


def test_matcher_cache_recomputes_after_corruption() -> None:
    cache = MatcherResponseCache()
    payload = {"api": "GET /users"}
    stored, _ = cache.get_or_compute(payload, lambda: [{"status": "FULLY_COVERED"}])
    stored[0]["status"] = "tampered"

    response, from_cache = cache.get_or_compute(payload, lambda: [{"status": "PARTIALLY_COVERED"}])

    assert from_cache is False
    assert response == [{"status": "PARTIALLY_COVERED"}]


def test_cache_manager_stats_and_isolation(tmp_path: Path) -> None:
    path = tmp_path / "f.txt"
    path.write_text("x", encoding="utf-8")
    first = CacheManager.create(file_max_entries=5, matcher_max_entries=5)
    second = CacheManager.create()
    first.files.read(path)
    first.files.read(path)

    stats = first.stats()
    assert stats["file"]["hits"] == 1
    assert stats["file"]["hit_rate"] == 50.0
    assert stats["matcher"]["size"] == 0
    assert second.stats()["file"]["misses"] == 0

    first.clear()
    assert len(first.files) == 0


def test_concurrent_misses_on_one_key_compute_once() -> None:
    cache = MatcherResponseCache()
    payload = {"operation": "match_coverage", "api": "POST /users"}
    calls = []
    start = threading.Barrier(8)

    def compute():
        calls.append(threading.get_ident())
        time.sleep(0.05)
        return [{"status": "FULLY_COVERED"}]

    def worker():
        start.wait()
        return cache.get_or_compute(payload, compute)

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = [future.result() for future in [executor.submit(worker) for _ in range(8)]]

    assert len(calls) == 1
    assert all(response == [{"status": "FULLY_COVERED"}] for response, _ in results)
    assert sorted(from_cache for _, from_cache in results) == [False] + [True] * 7
    assert cache.stats.hits == 7


def test_key_locks_do_not_outlive_their_calls() -> None:
    cache = CacheManager.create(matcher_max_entries=2).matcher

    for index in range(500):
        cache.get_or_compute({"api": f"GET /items/{index}"}, lambda: ["verdict"])

    assert len(cache) == 2
    assert len(cache._locks) == 0


def test_stats_survive_concurrent_traffic_on_distinct_keys() -> None:
    cache = MatcherResponseCache(max_entries=1000)

    def worker(offset: int) -> None:
        for index in range(50):
            payload = {"api": f"GET /items/{offset}-{index}"}
            cache.get_or_compute(payload, lambda: ["verdict"])
            cache.get_or_compute(payload, lambda: ["other"])

    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(worker, range(8)))

    assert cache.stats.misses == 400
    assert cache.stats.hits == 400
