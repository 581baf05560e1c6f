import os
import queue
import threading

import pytest

from sysstress.config import PerformanceStats
from sysstress.cpu import (
    CPUConfig,
    normalize_load_level,
    run_all_tests_per_core,
    run_cpu_stress_tests,
    select_tests,
)
from sysstress.cpu_compute import (
    adjust_batch_size,
    run_float_computation,
    run_integer_computation,
)


@pytest.fixture(autouse=True)
def _work_in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


def _usable_cpu():
    if hasattr(os, "sched_getaffinity"):
        return min(os.sched_getaffinity(0))
    return 0


@pytest.mark.parametrize(
    "level, expected",
    [
        ("High", "high"),
        ("2", "high"),
        ("LOW", "low"),
        ("1", "low"),
        ("Default", "default"),
        ("0", "default"),
        ("", "default"),
        ("turbo", "default"),
    ],
)
def test_normalize_load_level(level, expected):
    assert normalize_load_level(level) == expected


def test_select_tests_high_covers_all_workloads_and_sums_to_one():
    tests = select_tests("High")
    assert [t.name for t in tests] == ["integer", "float", "vector", "cache", "branch", "crypto"]
    assert sum(t.weight for t in tests) == pytest.approx(1.0)


def test_select_tests_low_keeps_raw_weights():
    tests = select_tests("low")
    assert [t.name for t in tests] == ["integer", "float"]
    assert [t.weight for t in tests] == [0.2, 0.3]
    assert tests[0].fn is run_integer_computation
    assert tests[1].fn is run_float_computation


def test_select_tests_default_has_equal_weights():
    tests = select_tests("Default")
    assert [t.name for t in tests] == ["float", "vector", "cache", "branch", "crypto"]
    assert all(t.weight == 0.2 for t in tests)


def test_select_tests_unknown_level_falls_back_to_default():
    assert [t.name for t in select_tests("bogus")] == [t.name for t in select_tests("0")]


def test_run_all_tests_per_core_returns_at_once_when_stopped():
    stop = threading.Event()
    stop.set()
    stats = PerformanceStats()
    cycles = run_all_tests_per_core(stop, queue.Queue(), _usable_cpu(), stats, False, "low")
    assert cycles == 0
    assert stats.cpu.integer_count == 0
    assert stats.cpu.float_count == 0


def test_run_all_tests_per_core_runs_low_workloads():
    stop = threading.Event()
    errors = queue.Queue()
    stats = PerformanceStats()
    result = {}
    cpu_id = _usable_cpu()

    def work():
        result["cycles"] = run_all_tests_per_core(stop, errors, cpu_id, stats, False, "low")

    worker = threading.Thread(target=work)
    timer = threading.Timer(0.3, stop.set)
    worker.start()
    timer.start()
    worker.join(timeout=60)
    timer.cancel()

    assert result["cycles"] >= 1
    assert stats.cpu.integer_count > 0
    assert stats.cpu.integer_count % adjust_batch_size(1_000_000, "low") == 0
    assert stats.cpu.float_count % adjust_batch_size(500_000, "low") == 0
    assert stats.cpu.vector_count == 0
    assert cpu_id in stats.cpu.core_gflops
    assert errors.empty()


def test_run_cpu_stress_tests_truncates_cpu_list():
    stop = threading.Event()
    stop.set()
    stats = PerformanceStats()
    config = CPUConfig(num_cores=1, cpu_list=[3, 5, 7], load_level="low")
    used = run_cpu_stress_tests(stop, queue.Queue(), config, stats)
    assert used == [3]
    assert stats.cpu.num_cores == 1
    assert stats.cpu.cache_info.l1_size > 0
    assert stats.cpu.cache_info.l2_size > 0


def test_run_cpu_stress_tests_builds_list_from_core_count():
    stop = threading.Event()
    stop.set()
    stats = PerformanceStats()
    used = run_cpu_stress_tests(stop, queue.Queue(), CPUConfig(num_cores=2), stats)
    assert used == [0, 1]
    assert stats.cpu.num_cores == 2


def test_run_cpu_stress_tests_uses_whole_list_when_cores_exceed_it():
    stop = threading.Event()
    stop.set()
    stats = PerformanceStats()
    config = CPUConfig(num_cores=5, cpu_list=[4, 2])
    used = run_cpu_stress_tests(stop, queue.Queue(), config, stats)
    assert used == [4, 2]
    assert stats.cpu.num_cores == len(used)