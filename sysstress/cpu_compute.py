"""Integer, floating-point, vector and branch-prediction CPU workloads.

Each ``run_*`` function repeats its workload in batches until ``duration``
seconds have passed. It checks that every result matches the first one and
reports the first mismatch on ``errors``. When it finishes, it folds its
throughput into the shared performance record. If ``stop`` is set, the
function returns without recording anything.
"""

from __future__ import annotations

import math
import queue
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from sysstress.config import CPUPerformance, PerformanceStats
from sysstress.utils import log_message

_PRIMES = (2, 3, 5, 7, 11, 13, 17, 19, 23, 29, 31, 37, 41, 43, 47, 53)
_MODULUS = (1 << 31) - 1
_FLOAT_CONSTANTS = (3.14159, 2.71828, 1.41421, 1.73205, 2.23606, 2.44949, 2.64575)
_EPSILON = 1e-10
_VECTOR_SIZE = 1024
_MIN_BATCH = 100


def adjust_batch_size(base_batch_size: int, load_level: str) -> int:
    """Scale a batch size for the load level, never going below 100."""
    level = load_level.lower()
    if level in ("high", "2"):
        adjusted = base_batch_size * 2
    elif level in ("low", "1"):
        adjusted = base_batch_size // 100
    elif level in ("default", "0", ""):
        adjusted = base_batch_size
    else:
        log_message(f"Invalid CPU load level: {load_level}, using Default", True)
        adjusted = base_batch_size
    return max(adjusted, _MIN_BATCH)


def integer_kernel() -> int:
    """One pass of the integer workload; the result is always the same."""
    result = 1
    for prime in _PRIMES:
        result = (result * prime) % _MODULUS
        result ^= result >> 3
        result += prime
    return result


def float_kernel() -> float:
    """One pass of the floating-point workload; the result is always the same."""
    result = 1.0
    for c in _FLOAT_CONSTANTS:
        result = result * math.sin(c) + math.cos(result)
        result = math.sqrt(abs(result)) + math.log(1 + abs(result))
        result = math.pow(result, 0.5) * c
    return result


def _make_vectors() -> tuple[list[float], list[float], list[float]]:
    vec_a = [(i % 17) * 0.5 for i in range(_VECTOR_SIZE)]
    vec_b = [(i % 19) * 0.75 for i in range(_VECTOR_SIZE)]
    vec_c = [0.0] * _VECTOR_SIZE
    return vec_a, vec_b, vec_c


def _vector_pass(vec_a: list[float], vec_b: list[float], vec_c: list[float]) -> float:
    dot_product = 0.0
    for i, (a, b) in enumerate(zip(vec_a, vec_b)):
        combined = (a + b) * (a * b)
        vec_c[i] = math.sqrt(abs(combined))
        dot_product += a * b
    return dot_product


def vector_checksum() -> float:
    """Checksum (dot product) of one pass of the vector workload."""
    return _vector_pass(*_make_vectors())


def branch_kernel(x: int) -> int:
    """Branch-heavy step: square, double, negate or keep ``x`` by divisibility."""
    if x % 7 == 0:
        return x * x
    if x % 5 == 0:
        return x * 2
    if x % 3 == 0:
        return -x
    return x


@dataclass
class _Reference:
    """The first result seen, and whether a mismatch has been reported yet."""

    value: Any = None
    reported: bool = False


def _run_batches(
    stop: threading.Event, duration: float, batch: Callable[[], int]
) -> tuple[int, float] | None:
    """Run batches until the duration passes.

    Returns the operation count and the elapsed time, or None if stop was set.
    """
    start = time.perf_counter()
    count = 0
    while time.perf_counter() - start < duration:
        if stop.is_set():
            return None
        count += batch()
    return count, time.perf_counter() - start


def _record(
    stats: PerformanceStats,
    cpu_id: int,
    gflops: float,
    update: Callable[[CPUPerformance], None],
) -> None:
    with stats:
        cpu = stats.cpu
        update(cpu)
        cpu.core_gflops[cpu_id] = (cpu.core_gflops.get(cpu_id, 0.0) + gflops) / 2
        cpu.gflops = (cpu.gflops + gflops) / 2


def run_integer_computation(
    stop: threading.Event,
    errors: queue.Queue[str],
    cpu_id: int,
    stats: PerformanceStats,
    debug: bool,
    load_level: str,
    duration: float,
) -> int:
    """Stress integer arithmetic; returns the number of operations performed."""
    batch_size = adjust_batch_size(1_000_000, load_level)
    reference = _Reference()

    def batch() -> int:
        for _ in range(batch_size):
            result = integer_kernel()
            if reference.value is None:
                reference.value = result
            elif not reference.reported and result != reference.value:
                errors.put(
                    f"Integer computation error on CPU {cpu_id}: "
                    f"Expected {reference.value}, got {result}"
                )
                reference.reported = True
        return batch_size

    outcome = _run_batches(stop, duration, batch)
    if outcome is None:
        return 0
    count, elapsed = outcome
    if elapsed > 0:
        ops_per_second = count / elapsed
        gflops = ops_per_second * 8 / 1e9

        def update(cpu: CPUPerformance) -> None:
            cpu.integer_ops = (cpu.integer_ops + ops_per_second / 1e9) / 2
            cpu.integer_count += count

        _record(stats, cpu_id, gflops, update)
        if debug:
            log_message(
                f"CPU {cpu_id} integer perf: {ops_per_second / 1e9:.2f} GOPS "
                f"({gflops:.2f} GFLOPS equiv), operations: {count}",
                debug,
            )
    return count


def run_float_computation(
    stop: threading.Event,
    errors: queue.Queue[str],
    cpu_id: int,
    stats: PerformanceStats,
    debug: bool,
    load_level: str,
    duration: float,
) -> int:
    """Stress floating-point arithmetic; returns the number of operations performed."""
    batch_size = adjust_batch_size(500_000, load_level)
    reference = _Reference()

    def batch() -> int:
        for _ in range(batch_size):
            result = float_kernel()
            if reference.value is None:
                reference.value = result
            elif not reference.reported and abs(result - reference.value) > _EPSILON:
                errors.put(
                    f"Float computation error on CPU {cpu_id}: "
                    f"Expected {reference.value:.10f}, got {result:.10f}"
                )
                reference.reported = True
        return batch_size

    outcome = _run_batches(stop, duration, batch)
    if outcome is None:
        return 0
    count, elapsed = outcome
    if elapsed > 0:
        ops_per_second = count / elapsed
        gflops = ops_per_second * 12 / 1e9

        def update(cpu: CPUPerformance) -> None:
            cpu.float_ops = (cpu.float_ops + ops_per_second / 1e9) / 2
            cpu.float_count += count

        _record(stats, cpu_id, gflops, update)
        if debug:
            log_message(
                f"CPU {cpu_id} float perf: {gflops:.2f} GFLOPS, operations: {count}",
                debug,
            )
    return count


def run_vector_computation(
    stop: threading.Event,
    errors: queue.Queue[str],
    cpu_id: int,
    stats: PerformanceStats,
    debug: bool,
    load_level: str,
    duration: float,
) -> int:
    """Stress element-wise vector arithmetic; returns the number of operations performed."""
    batch_size = adjust_batch_size(10_000, load_level)
    vec_a, vec_b, vec_c = _make_vectors()
    reference = _Reference()

    def batch() -> int:
        for _ in range(batch_size):
            checksum = _vector_pass(vec_a, vec_b, vec_c)
            if reference.value is None:
                reference.value = checksum
            elif not reference.reported and abs(checksum - reference.value) > _EPSILON:
                errors.put(
                    f"Vector computation error on CPU {cpu_id}: "
                    f"Expected checksum {reference.value:.10f}, got {checksum:.10f}"
                )
                reference.reported = True
        return batch_size

    outcome = _run_batches(stop, duration, batch)
    if outcome is None:
        return 0
    count, elapsed = outcome
    if elapsed > 0:
        ops_per_second = count / elapsed
        gflops = ops_per_second * (_VECTOR_SIZE * 5) / 1e9

        def update(cpu: CPUPerformance) -> None:
            cpu.vector_ops = (cpu.vector_ops + ops_per_second / 1e9) / 2
            cpu.vector_count += count

        _record(stats, cpu_id, gflops, update)
        if debug:
            log_message(
                f"CPU {cpu_id} vector perf: {gflops:.2f} GFLOPS, operations: {count}",
                debug,
            )
    return count


def run_branch_prediction(
    stop: threading.Event,
    errors: queue.Queue[str],
    cpu_id: int,
    stats: PerformanceStats,
    debug: bool,
    load_level: str,
    duration: float,
) -> int:
    """Stress the branch predictor with random inputs; returns the number of operations."""
    batch_size = adjust_batch_size(1_000_000, load_level)
    rng = random.Random(cpu_id)

    def batch() -> int:
        for _ in range(batch_size):
            branch_kernel(rng.randrange(100))
        return batch_size

    outcome = _run_batches(stop, duration, batch)
    if outcome is None:
        return 0
    count, elapsed = outcome
    if elapsed > 0:
        ops_per_second = count / elapsed
        gflops = ops_per_second * 4 / 1e9

        def update(cpu: CPUPerformance) -> None:
            cpu.branch_count += count

        _record(stats, cpu_id, gflops, update)
        if debug:
            log_message(
                f"CPU {cpu_id} branch perf: {ops_per_second / 1e9:.2f} GOPS "
                f"({gflops:.2f} GFLOPS equiv), operations: {count}",
                debug,
            )
    return count