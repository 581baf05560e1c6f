"""Error classification, progress messages and end-of-run reporting."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from sysstress.config import PerformanceStats, TestResult

_RESULT_ATTR = {"CPU": "cpu", "DIMM": "dimm", "HDD": "hdd"}


def classify_error(message: str) -> str | None:
    """Component ("CPU", "DIMM" or "HDD") an error message belongs to, if any."""
    if "Integer" in message or "Float" in message or "Vector" in message:
        return "CPU"
    if "Memory" in message:
        return "DIMM"
    if "Disk" in message or "RawDisk" in message:
        return "HDD"
    return None


def format_duration(seconds: float) -> str:
    """Round to whole seconds and render as e.g. "1h2m3s", "4m0s" or "5s"."""
    total = int(math.floor(abs(seconds) + 0.5))
    if total == 0:
        return "0s"
    sign = "-" if seconds < 0 else ""
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        body = f"{hours}h{minutes}m{secs}s"
    elif minutes:
        body = f"{minutes}m{secs}s"
    else:
        body = f"{secs}s"
    return sign + body


@dataclass
class ResultCollector:
    """Collects error messages into pass/fail verdicts per component."""

    results: TestResult = field(default_factory=TestResult)
    error_details: dict[str, list[str]] = field(default_factory=dict)

    def add_error(self, message: str) -> str | None:
        """Record an error; returns the component it failed, or None if unclassified."""
        if not message:
            return None
        component = classify_error(message)
        if component is None:
            return None
        setattr(self.results, _RESULT_ATTR[component], "FAIL")
        self.error_details.setdefault(component, []).append(message)
        return component

    def summary(self, elapsed: float, test_cpu: bool, test_memory: bool) -> str:
        """Final verdict line followed by the first failure reason of each component."""
        text = f"Stress Test Summary - Duration: {format_duration(elapsed)}"
        if test_cpu:
            text += f" | CPU: {self.results.cpu}"
        if test_memory:
            text += f" | DIMM: {self.results.dimm}"
        for component, messages in self.error_details.items():
            if not messages:
                continue
            text += f"\n{component} FAIL reason: {messages[0]}"
            if len(messages) > 1:
                text += f" (and {len(messages) - 1} more errors)"
        return text


def progress_message(stats: PerformanceStats, test_cpu: bool, test_memory: bool) -> str:
    """Periodic progress line with the current CPU and memory figures."""
    with stats:
        gflops = stats.cpu.gflops
        mem_read = stats.memory.read_speed
        mem_write = stats.memory.write_speed

    if test_cpu:
        message = (
            f"Progress update - CPU: {gflops:.2f} GFLOPS (approximate value, not exact)"
        )
    else:
        message = "Progress update"
    if test_memory:
        message += f", Memory: R={mem_read:.2f} MB/s W={mem_write:.2f} MB/s"
    return message


def performance_lines(
    stats: PerformanceStats, test_cpu: bool, cpu_load: str, test_memory: bool
) -> list[str]:
    """Lines of the end-of-run performance report."""
    lines = ["=== PERFORMANCE RESULTS ==="]
    total_operations = 0
    with stats:
        cpu = stats.cpu
        memory = stats.memory
        if test_cpu:
            cpu_total = (
                cpu.integer_count
                + cpu.float_count
                + cpu.vector_count
                + cpu.cache_count
                + cpu.branch_count
                + cpu.crypto_count
            )
            lines.append(f"CPU Performance: {cpu.gflops:.2f} GFLOPS (Load Level: {cpu_load})")
            lines.append(
                f"CPU Operations: Integer={cpu.integer_count}, Float={cpu.float_count}, "
                f"Vector={cpu.vector_count}, Cache={cpu.cache_count}, "
                f"Branch={cpu.branch_count}, Crypto={cpu.crypto_count}, Total={cpu_total}"
            )
            total_operations += cpu_total
        if test_memory:
            mem_total = memory.write_count + memory.read_count + memory.random_access_count
            lines.append(
                f"Memory Performance - Read: {memory.read_speed:.2f} MB/s, "
                f"Write: {memory.write_speed:.2f} MB/s, "
                f"Random Access: {memory.random_access_speed:.2f} MB/s"
            )
            lines.append(
                f"Memory Operations: Write={memory.write_count}, Read={memory.read_count}, "
                f"Random Access={memory.random_access_count}, Total={mem_total}"
            )
            total_operations += mem_total
    lines.append(f"Total Operations Across All Tests: {total_operations}")
    return lines