"""Per-core CPU stress orchestration: workload selection, pinning and cycling."""

from __future__ import annotations

import os
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from sysstress.config import PerformanceStats
from sysstress.cpu_compute import (
    run_branch_prediction,
    run_float_computation,
    run_integer_computation,
    run_vector_computation,
)
from sysstress.cpu_heavy import run_cache_stress, run_crypto_stress
from sysstress.utils import get_cache_info, log_message

Workload = Callable[
    [threading.Event, "queue.Queue[str]", int, PerformanceStats, bool, str, float], int
]

CYCLE_SECONDS = 0.05

_WORKLOADS: dict[str, Workload] = {
    "integer": run_integer_computation,
    "float": run_float_computation,
    "vector": run_vector_computation,
    "cache": run_cache_stress,
    "branch": run_branch_prediction,
    "crypto": run_crypto_stress,
}

_LOAD_CONFIGS: dict[str, tuple[tuple[str, float], ...]] = {
    "high": (
        ("integer", 0.1),
        ("float", 0.2),
        ("vector", 0.2),
        ("cache", 0.2),
        ("branch", 0.15),
        ("crypto", 0.15),
    ),
    "low": (
        ("integer", 0.2),
        ("float", 0.3),
    ),
    "default": (
        ("float", 0.2),
        ("vector", 0.2),
        ("cache", 0.2),
        ("branch", 0.2),
        ("crypto", 0.2),
    ),
}


@dataclass
class CPUConfig:
    """Settings for the CPU stress test."""

    num_cores: int = 0
    debug: bool = False
    cpu_list: list[int] = field(default_factory=list)
    load_level: str = "Default"


@dataclass
class SelectedTest:
    """A workload chosen for a load level, with its share of each cycle."""

    name: str
    fn: Workload
    weight: float


def normalize_load_level(load_level: str) -> str:
    """Map a load level to "high", "low" or "default"; unknown levels become "default"."""
    level = load_level.lower()
    if level in ("high", "2"):
        return "high"
    if level in ("low", "1"):
        return "low"
    if level in ("default", "0", ""):
        return "default"
    log_message(f"Invalid CPU load level: {load_level}, using Default", True)
    return "default"


def _select_for_key(key: str) -> tuple[list[SelectedTest], float]:
    entries = _LOAD_CONFIGS.get(key)
    if entries is None:
        log_message(f"No config for load level {key}, using Default", True)
        entries = _LOAD_CONFIGS["default"]

    total_weight = sum(weight for _, weight in entries)
    normalize = key == "high" and total_weight != 0 and total_weight != 1.0

    selected: list[SelectedTest] = []
    for name, weight in entries:
        fn = _WORKLOADS.get(name)
        if fn is None:
            log_message(f"Test {name} not found in allTests, skipping", True)
            continue
        selected.append(
            SelectedTest(name, fn, weight / total_weight if normalize else weight)
        )
    return selected, total_weight


def select_tests(load_level: str) -> list[SelectedTest]:
    """Workloads and weights for a load level; only "high" weights are normalised."""
    selected, _ = _select_for_key(normalize_load_level(load_level))
    return selected


def _pin_to_cpu(cpu_id: int, debug: bool) -> set[int] | None:
    """Pin the calling thread to one CPU; returns the previous affinity, if changed."""
    if not hasattr(os, "sched_setaffinity"):
        log_message(
            f"Failed to set CPU affinity for CPU {cpu_id}: not supported on this platform "
            "(may require root privileges)",
            True,
        )
        return None
    try:
        previous = os.sched_getaffinity(0)
        os.sched_setaffinity(0, {cpu_id})
    except OSError as exc:
        log_message(
            f"Failed to set CPU affinity for CPU {cpu_id}: {exc} (may require root privileges)",
            True,
        )
        return None
    if debug:
        log_message(f"Successfully set CPU affinity for CPU {cpu_id}", debug)
        try:
            actual = sorted(os.sched_getaffinity(0))
        except OSError as exc:
            log_message(f"Failed to get CPU affinity for CPU {cpu_id}: {exc}", debug)
        else:
            log_message(f"Actual CPU affinity for CPU {cpu_id}: {actual}", debug)
    return previous


def _restore_affinity(previous: set[int] | None) -> None:
    if previous is None:
        return
    try:
        os.sched_setaffinity(0, previous)
    except OSError:
        pass


def run_all_tests_per_core(
    stop: threading.Event,
    errors: queue.Queue[str],
    cpu_id: int,
    stats: PerformanceStats,
    debug: bool,
    load_level: str,
) -> int:
    """Cycle through the selected workloads on one CPU until stopped.

    Returns the number of completed cycles.
    """
    if debug:
        log_message(f"Starting stress worker on CPU {cpu_id}", debug)

    previous = _pin_to_cpu(cpu_id, debug)
    try:
        key = normalize_load_level(load_level)
        selected, total_weight = _select_for_key(key)
        if not selected:
            log_message(f"No valid tests selected for CPU {cpu_id}, exiting", True)
            return 0

        normalize = key == "high" and total_weight != 0 and total_weight != 1.0
        if debug:
            used = CYCLE_SECONDS if normalize else CYCLE_SECONDS * total_weight
            names = [f"{test.name}({test.weight:.2f})" for test in selected]
            log_message(
                f"CPU {cpu_id}: Load level {key}, running {len(selected)} tests: {names}, "
                f"expected cycle time: {used * 1000:.0f}ms",
                debug,
            )

        cycles = 0
        while not stop.is_set():
            start = time.perf_counter()
            for test in selected:
                test.fn(stop, errors, cpu_id, stats, debug, load_level, CYCLE_SECONDS * test.weight)
            if key != "high" and total_weight < 1.0:
                stop.wait(CYCLE_SECONDS * (1.0 - total_weight))
            cycles += 1
            if debug:
                elapsed_ms = (time.perf_counter() - start) * 1000
                log_message(f"CPU {cpu_id}: Actual cycle time: {elapsed_ms:.1f}ms", debug)

        if debug:
            log_message(f"Stress tests on CPU {cpu_id} completed", debug)
        return cycles
    finally:
        _restore_affinity(previous)


def run_cpu_stress_tests(
    stop: threading.Event,
    errors: queue.Queue[str],
    config: CPUConfig,
    stats: PerformanceStats,
) -> list[int]:
    """Run a worker thread per selected CPU until stopped; returns the CPUs used."""
    debug = config.debug
    cache_info = get_cache_info()

    log_message(f"L1 Cache Size: {cache_info.l1_size / 1024:.2f} KB", debug)
    log_message(f"L2 Cache Size: {cache_info.l2_size / 1024:.2f} KB", debug)
    if cache_info.l3_size > 0:
        log_message(f"L3 Cache Size: {cache_info.l3_size / (1024 * 1024):.2f} MB", debug)
    else:
        log_message("L3 Cache: Not present", debug)

    with stats:
        stats.cpu.cache_info = cache_info

    cpus = list(config.cpu_list) or list(range(config.num_cores))
    if config.num_cores > len(cpus):
        if debug:
            log_message(
                f"Adjusted NumCores to {len(cpus)} to match CPU list length", debug
            )
    elif config.num_cores > 0:
        cpus = cpus[: config.num_cores]

    with stats:
        stats.cpu.num_cores = len(cpus)

    log_message(f"Running CPU tests on {len(cpus)} cores (CPUs: {cpus})", debug)

    workers = [
        threading.Thread(
            target=run_all_tests_per_core,
            args=(stop, errors, cpu_id, stats, debug, config.load_level),
            name=f"cpu-stress-{cpu_id}",
            daemon=True,
        )
        for cpu_id in cpus
    ]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()
    return cpus