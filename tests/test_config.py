import json
import threading

import pytest

from sysstress.config import (
    CacheInfo,
    Config,
    CPUPerformance,
    PerformanceStats,
    TestResult,
    load_config,
)


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "config.json")


def test_defaults_fill_absent_fields(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"CPU": true, "Cores": 4}')
    config = load_config(path)
    assert config.cpu is True
    assert config.cores == 4
    assert config.load == "Default"
    assert config.size == "10M"
    assert config.offset == "1G"
    assert config.block == "4K"
    assert config.mode == "both"


def test_keys_match_case_insensitively(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"cpu": true, "mempercent": 5, "MODE": "random"}')
    config = load_config(path)
    assert config.cpu is True
    assert config.mem_percent == 5.0
    assert config.mode == "random"


def test_wrong_type_raises(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"Cores": "four"}')
    with pytest.raises(ValueError):
        load_config(path)


def test_bool_field_rejects_number(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"CPU": 1}')
    with pytest.raises(ValueError):
        load_config(path)


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(ValueError):
        load_config(path)


def test_to_json_round_trip(tmp_path):
    original = Config(
        cpu=True,
        cores=8,
        memory=True,
        mem_percent=7.5,
        mountpoint="/mnt/a,/mnt/b",
        raw_disk="/dev/sdb",
        mode="sequential",
    )
    path = tmp_path / "config.json"
    path.write_text(original.to_json())
    assert load_config(path) == original


def test_to_json_uses_file_keys_in_order():
    keys = list(json.loads(Config().to_json()))
    assert keys == [
        "debug", "CPU", "Cores", "Load", "Memory", "MEMPercent",
        "Mountpoint", "RAWDisk", "Size", "Offset", "Block", "Mode",
    ]


def test_to_json_is_indented_by_four_spaces():
    lines = Config().to_json().splitlines()
    assert lines[1].startswith('    "debug"')


def test_test_result_defaults_pass():
    result = TestResult()
    assert (result.cpu, result.dimm, result.hdd) == ("PASS", "PASS", "PASS")


def test_performance_stats_context_manager_holds_lock():
    stats = PerformanceStats()
    with stats:
        assert not stats.lock.acquire(blocking=False)
    assert stats.lock.acquire(blocking=False)
    stats.lock.release()


def test_performance_stats_serialises_updates():
    stats = PerformanceStats()

    def bump():
        for _ in range(1000):
            with stats:
                stats.cpu.integer_count += 1

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert stats.cpu.integer_count == 4000


def test_cpu_performance_containers_are_independent():
    first = CPUPerformance()
    second = CPUPerformance()
    first.core_gflops[0] = 1.0
    first.cache_info.l1_size = 10
    assert second.core_gflops == {}
    assert second.cache_info == CacheInfo()