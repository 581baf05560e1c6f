import queue
import threading

import pytest

from sysstress.config import CacheInfo, PerformanceStats
from sysstress.cpu_heavy import cache_array_size, run_cache_stress, run_crypto_stress


@pytest.fixture(autouse=True)
def _in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


def _args(stop_set):
    stop = threading.Event()
    if stop_set:
        stop.set()
    return stop, queue.Queue(), PerformanceStats()


def test_cache_array_size_has_minimum():
    assert cache_array_size(CacheInfo()) == 1024
    assert cache_array_size(CacheInfo(l1_size=32 * 1024, l2_size=4096)) == 1024


def test_cache_array_size_three_quarters_of_l2():
    assert cache_array_size(CacheInfo(l2_size=8 * 1024 * 1024)) == 786432


def test_cache_array_size_prefers_l3():
    l2_only = CacheInfo(l2_size=256 * 1024)
    with_l3 = CacheInfo(l2_size=256 * 1024, l3_size=8 * 1024 * 1024)
    assert cache_array_size(with_l3) > cache_array_size(l2_only)
    assert cache_array_size(with_l3) == cache_array_size(CacheInfo(l2_size=8 * 1024 * 1024))


def test_cache_stress_stopped_records_nothing():
    stop, errors, stats = _args(True)
    assert run_cache_stress(stop, errors, 2, stats, False, "low", 5.0) == 0
    assert 2 not in stats.cpu.core_gflops
    assert stats.cpu.cache_count == 0


def test_cache_stress_zero_duration_records_zero():
    stop, errors, stats = _args(False)
    assert run_cache_stress(stop, errors, 3, stats, False, "low", 0.0) == 0
    assert stats.cpu.core_gflops[3] == 0.0
    assert stats.cpu.cache_count == 0


def test_cache_stress_single_batch_counts():
    stop, errors, stats = _args(False)
    count = run_cache_stress(stop, errors, 1, stats, False, "low", 0.0005)
    assert count >= 100
    assert stats.cpu.cache_count == count
    assert stats.cpu.core_gflops[1] >= 0.0
    assert errors.empty()


def test_crypto_stress_stopped_records_nothing():
    stop, errors, stats = _args(True)
    assert run_crypto_stress(stop, errors, 0, stats, False, "low", 5.0) == 0
    assert 0 not in stats.cpu.core_gflops
    assert stats.cpu.crypto_count == 0


def test_crypto_stress_zero_duration_records_zero():
    stop, errors, stats = _args(False)
    assert run_crypto_stress(stop, errors, 4, stats, False, "low", 0.0) == 0
    assert stats.cpu.core_gflops[4] == 0.0
    assert stats.cpu.crypto_count == 0


def test_crypto_stress_single_low_batch():
    stop, errors, stats = _args(False)
    count = run_crypto_stress(stop, errors, 5, stats, False, "low", 0.0001)
    assert count == 100
    assert stats.cpu.crypto_count == 100
    assert stats.cpu.core_gflops[5] > 0.0
    assert errors.empty()