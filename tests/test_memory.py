import queue
import threading
import time

import psutil
import pytest

from sysstress.config import PerformanceStats
from sysstress.memory import MemoryConfig, run_memory_stress_test, total_system_memory


@pytest.fixture(autouse=True)
def _in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


def _small_config(**overrides):
    values = dict(
        usage_percent=0.5,
        speed_test_size=1000,
        random_samples=200,
        array_size=1000,
        total_memory=80_000,
    )
    values.update(overrides)
    return MemoryConfig(**values)


def _run_stopped(config):
    stop = threading.Event()
    stop.set()
    errors = queue.Queue()
    stats = PerformanceStats()
    run_memory_stress_test(stop, errors, config, stats)
    return stats, errors


def test_total_system_memory_matches_psutil():
    assert total_system_memory() == psutil.virtual_memory().total


def test_operation_counts_are_recorded():
    stats, errors = _run_stopped(_small_config())
    assert stats.memory.write_count == 1000
    assert stats.memory.read_count == 1000
    assert stats.memory.random_access_count == 200
    assert errors.empty()


def test_usage_percent_reaches_target():
    stats, _ = _run_stopped(_small_config())
    assert stats.memory.usage_percent == pytest.approx(50.0)


def test_speeds_are_non_negative():
    stats, _ = _run_stopped(_small_config(speed_test_size=20_000, random_samples=5_000))
    assert stats.memory.write_speed >= 0.0
    assert stats.memory.read_speed >= 0.0
    assert stats.memory.random_access_speed >= 0.0
    assert stats.memory.write_speed + stats.memory.read_speed > 0.0


def test_under_allocation_reports_error():
    config = _small_config(usage_percent=0.9, array_size=625_000, total_memory=10_000_000)
    stats, errors = _run_stopped(config)
    message = errors.get_nowait()
    assert message.startswith("Could only allocate")
    assert "wanted 90.00%" in message
    assert stats.memory.usage_percent < 0.9 * 75.0


def test_random_access_continues_until_stopped():
    stop = threading.Event()
    errors = queue.Queue()
    stats = PerformanceStats()
    config = _small_config()
    worker = threading.Thread(
        target=run_memory_stress_test, args=(stop, errors, config, stats)
    )
    worker.start()
    time.sleep(0.2)
    stop.set()
    worker.join(timeout=10)
    assert not worker.is_alive()
    extra = stats.memory.random_access_count - config.random_samples
    assert extra > 0
    assert extra % 1000 == 0