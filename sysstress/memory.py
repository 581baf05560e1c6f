"""Memory stress test: speed measurement, bulk allocation and random access."""

from __future__ import annotations

import gc
import os
import queue
import random
import threading
import time
from array import array
from dataclasses import dataclass

import psutil

from sysstress.config import PerformanceStats
from sysstress.utils import log_message

_BYTES_PER_ENTRY = 8
_MB = 1024 * 1024
_GB = 1024 * _MB
_ACCESSES_PER_ROUND = 1000


@dataclass
class MemoryConfig:
    """Settings for the memory stress test.

    ``usage_percent`` is the fraction (0.0-1.0) of total memory to hold.
    ``total_memory`` overrides the detected amount of system memory.
    """

    usage_percent: float = 0.0
    debug: bool = False
    speed_test_size: int = 50_000_000
    random_samples: int = 5_000_000
    array_size: int = 10_000_000
    total_memory: int | None = None


def total_system_memory() -> int:
    """Total physical memory in bytes, or 0 when it cannot be determined."""
    try:
        return int(psutil.virtual_memory().total)
    except (OSError, RuntimeError) as exc:
        log_message(f"Failed to get system memory info: {exc}", True)
        return 0


def _mb_per_second(num_bytes: int, seconds: float) -> float:
    if seconds <= 0:
        return 0.0
    return num_bytes / seconds / _MB


def _measure_speeds(
    config: MemoryConfig,
) -> tuple[float, float, float, int, int, int]:
    size = config.speed_test_size
    debug = config.debug

    if debug:
        log_message("Measuring sequential memory write speed...", debug)
    start = time.perf_counter()
    speed_array = array("q", range(size))
    write_speed = _mb_per_second(size * _BYTES_PER_ENTRY, time.perf_counter() - start)
    write_count = size

    if debug:
        log_message("Measuring sequential memory read speed...", debug)
    start = time.perf_counter()
    sum(speed_array)
    read_speed = _mb_per_second(size * _BYTES_PER_ENTRY, time.perf_counter() - start)
    read_count = size

    if debug:
        log_message("Measuring random memory access speed...", debug)
    rng = random.Random()
    indices = [rng.randrange(size) for _ in range(config.random_samples)] if size else []
    start = time.perf_counter()
    for idx in indices:
        speed_array[idx] ^= 0x1
    random_speed = _mb_per_second(len(indices) * 16, time.perf_counter() - start)
    random_count = len(indices)

    if debug:
        log_message("Memory speed results:", debug)
        log_message(
            f"  - Sequential write: {write_speed:.2f} MB/s, operations: {write_count}", debug
        )
        log_message(
            f"  - Sequential read:  {read_speed:.2f} MB/s, operations: {read_count}", debug
        )
        log_message(
            f"  - Random access:    {random_speed:.2f} MB/s, operations: {random_count}", debug
        )

    del speed_array
    gc.collect()
    return write_speed, read_speed, random_speed, write_count, read_count, random_count


def _allocate(
    config: MemoryConfig, target_bytes: int, total: int
) -> tuple[list[array], int]:
    debug = config.debug
    array_bytes = config.array_size * _BYTES_PER_ENTRY
    arrays_needed = max(1, target_bytes // array_bytes) if array_bytes else 1

    if debug:
        log_message(
            f"Memory test allocating {arrays_needed} arrays of "
            f"{config.array_size} elements each",
            debug,
        )

    arrays: list[array] = []
    allocated = 0
    for i in range(arrays_needed):
        try:
            block = array("q")
            block.frombytes(os.urandom(array_bytes))
        except MemoryError as exc:
            if debug:
                log_message(f"Recovered from allocation panic: {exc}", debug)
                log_message("Failed to allocate memory array, continuing with what we have", debug)
            break

        arrays.append(block)
        allocated += array_bytes
        if debug and (i + 1) % 10 == 0:
            alloc_percent = allocated * 100 / total if total else 0.0
            log_message(
                f"Memory allocation progress: {i + 1}/{arrays_needed} arrays "
                f"({alloc_percent:.2f}% of system memory)",
                debug,
            )

        if allocated >= target_bytes:
            if debug:
                log_message("Reached target memory allocation", debug)
            break

        if i % 100 == 0:
            gc.collect()
    return arrays, allocated


def run_memory_stress_test(
    stop: threading.Event,
    errors: queue.Queue[str],
    config: MemoryConfig,
    stats: PerformanceStats,
) -> None:
    """Measure memory speeds, hold the target amount of memory and touch it until stopped."""
    total = config.total_memory if config.total_memory is not None else total_system_memory()
    target_bytes = int(total * config.usage_percent)
    debug = config.debug

    if debug:
        log_message(
            f"Memory test targeting {config.usage_percent * 100:.2f}% of total system "
            f"memory ({target_bytes / _GB:.2f} GB)",
            debug,
        )

    (
        write_speed,
        read_speed,
        random_speed,
        write_count,
        read_count,
        random_count,
    ) = _measure_speeds(config)

    alloc_start = time.perf_counter()
    arrays, allocated = _allocate(config, target_bytes, total)
    alloc_speed = _mb_per_second(allocated, time.perf_counter() - alloc_start)
    usage_percent = allocated * 100 / total if total else 0.0

    if debug:
        log_message(
            f"Memory allocated: {allocated / _GB:.2f} GB out of {total / _GB:.2f} GB total "
            f"({usage_percent:.2f}% of system memory)",
            debug,
        )
        log_message(f"Memory bulk allocation speed: {alloc_speed:.2f} MB/s", debug)

    with stats:
        memory = stats.memory
        memory.write_speed = write_speed
        memory.read_speed = read_speed
        memory.random_access_speed = random_speed
        memory.usage_percent = usage_percent
        memory.write_count = write_count
        memory.read_count = read_count
        memory.random_access_count = random_count

    if usage_percent < config.usage_percent * 75.0:
        errors.put(
            f"Could only allocate {usage_percent:.2f}% of system memory, "
            f"wanted {config.usage_percent * 100:.2f}%"
        )

    rng = random.Random()
    while not stop.is_set():
        if arrays:
            for _ in range(_ACCESSES_PER_ROUND):
                block = rng.choice(arrays)
                idx = rng.randrange(len(block))
                block[idx] ^= 0xFF
            with stats:
                stats.memory.random_access_count += _ACCESSES_PER_ROUND

        if rng.randrange(10_000) == 0:
            gc.collect()

        stop.wait(0.001)

    if debug:
        log_message("Memory test stopped.", debug)