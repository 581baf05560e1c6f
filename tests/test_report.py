import pytest

from sysstress.config import PerformanceStats
from sysstress.report import (
    ResultCollector,
    classify_error,
    format_duration,
    performance_lines,
    progress_message,
)


@pytest.mark.parametrize(
    "message, component",
    [
        ("Integer computation error on CPU 0: Expected 1, got 2", "CPU"),
        ("Float computation error on CPU 1: Expected 1.0, got 2.0", "CPU"),
        ("Vector computation error on CPU 2: Expected checksum 1, got 2", "CPU"),
        ("Memory allocation failed", "DIMM"),
        ("Disk write error on /mnt", "HDD"),
        ("RawDisk failure", "HDD"),
        ("Cache stress error on CPU 0: Expected sum 1, got 2", None),
        ("Could only allocate 1.00% of system memory, wanted 50.00%", None),
    ],
)
def test_classify_error(message, component):
    assert classify_error(message) == component


def test_format_duration_pins():
    assert format_duration(600) == "10m0s"
    assert format_duration(3600) == "1h0m0s"


def test_format_duration_rounds_to_seconds():
    assert format_duration(29.6) == format_duration(30)
    assert format_duration(30.4) == format_duration(30)
    assert format_duration(0.2) == format_duration(0)
    assert format_duration(-30) == "-" + format_duration(30)


def test_collector_ignores_empty_and_unclassified():
    collector = ResultCollector()
    assert collector.add_error("") is None
    assert collector.add_error("Cache stress error on CPU 0") is None
    assert collector.error_details == {}
    assert collector.results.cpu == "PASS"


def test_collector_marks_failures():
    collector = ResultCollector()
    assert collector.add_error("Integer computation error on CPU 0") == "CPU"
    assert collector.add_error("Memory fault") == "DIMM"
    assert collector.results.cpu == "FAIL"
    assert collector.results.dimm == "FAIL"
    assert collector.results.hdd == "PASS"
    assert collector.error_details["CPU"] == ["Integer computation error on CPU 0"]


def test_summary_lists_first_reason_and_extra_count():
    collector = ResultCollector()
    first = "Integer computation error on CPU 0: Expected 1, got 2"
    second = "Float computation error on CPU 1: Expected 1.0, got 2.0"
    collector.add_error(first)
    collector.add_error(second)
    lines = collector.summary(30, True, False).splitlines()
    assert lines[0].startswith("Stress Test Summary - Duration: " + format_duration(30))
    assert lines[0].endswith(f"CPU: {collector.results.cpu}")
    assert "DIMM" not in lines[0]
    assert first in lines[1]
    assert second not in lines[1]
    assert lines[1].endswith("(and 1 more errors)")
    assert len(lines) == 2


def test_summary_without_errors_is_one_line():
    collector = ResultCollector()
    text = collector.summary(5, True, True)
    assert "\n" not in text
    assert text.count("PASS") == 2


def test_progress_message_plain():
    assert progress_message(PerformanceStats(), False, False) == "Progress update"


def test_progress_message_with_cpu_and_memory():
    stats = PerformanceStats()
    stats.cpu.gflops = 1.5
    stats.memory.read_speed = 100.0
    stats.memory.write_speed = 50.0
    message = progress_message(stats, True, True)
    assert message.startswith("Progress update - CPU:")
    assert "approximate value, not exact" in message
    assert message.index("GFLOPS") < message.index("Memory: R=")


def test_performance_lines_empty_run():
    lines = performance_lines(PerformanceStats(), False, "Default", False)
    assert lines[0] == "=== PERFORMANCE RESULTS ==="
    assert len(lines) == 2
    assert int(lines[-1].rsplit(" ", 1)[1]) == 0


def test_performance_lines_totals_match_counts():
    stats = PerformanceStats()
    cpu_counts = [10, 20, 30, 40, 50, 60]
    (
        stats.cpu.integer_count,
        stats.cpu.float_count,
        stats.cpu.vector_count,
        stats.cpu.cache_count,
        stats.cpu.branch_count,
        stats.cpu.crypto_count,
    ) = cpu_counts
    mem_counts = [7, 8, 9]
    (
        stats.memory.write_count,
        stats.memory.read_count,
        stats.memory.random_access_count,
    ) = mem_counts
    lines = performance_lines(stats, True, "High", True)
    assert len(lines) == 6
    assert "(Load Level: High)" in lines[1]
    assert lines[2].endswith(f"Total={sum(cpu_counts)}")
    assert lines[4].endswith(f"Total={sum(mem_counts)}")
    assert int(lines[-1].rsplit(" ", 1)[1]) == sum(cpu_counts) + sum(mem_counts)