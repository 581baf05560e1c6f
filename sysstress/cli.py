"""Command-line entry point: resolve settings, run the stress tests, report."""

from __future__ import annotations

import argparse
import os
import queue
import random
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from sysstress.config import Config, PerformanceStats, load_config
from sysstress.cpu import CPUConfig, run_cpu_stress_tests
from sysstress.memory import MemoryConfig, run_memory_stress_test
from sysstress.report import (
    ResultCollector,
    format_duration,
    performance_lines,
    progress_message,
)
from sysstress.utils import NUMAInfo, get_numa_info, log_message

DEFAULT_DURATION = 10 * 60.0
PROGRESS_INTERVAL = 30.0
MEMORY_CAP = 0.95

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "\u00b5s": 1e-6,
    "\u03bcs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_COMPONENT = re.compile(r"([0-9]*(?:\.[0-9]*)?)(ns|us|\u00b5s|\u03bcs|ms|s|m|h)")

_NOTES = (
    "Notes:",
    "- At least one of -cpu or -memory must be specified for stress testing.",
    "- Use -cpu-load to adjust CPU test intensity: 'High(2)', 'Low(1)', or 'Default(0)'.",
)


def build_parser() -> argparse.ArgumentParser:
    """Parser for the command-line options; single and double dashes both work."""
    parser = argparse.ArgumentParser(
        prog="sysstress",
        description="System Stress Test Tool",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument(
        "-duration", "--duration", default="10m",
        help="Test duration (e.g. 30s, 5m, 1h)",
    )
    parser.add_argument(
        "-cpu", "--cpu", action="store_true", help="Enable CPU testing"
    )
    parser.add_argument(
        "-cpu-cores", "--cpu-cores", dest="cpu_cores", type=int, default=0,
        help="Number of CPU cores to stress (0 means all cores)",
    )
    parser.add_argument(
        "-cpu-load", "--cpu-load", dest="cpu_load", default="",
        help="CPU load level: High(2), Low(1), or Default(0)",
    )
    parser.add_argument(
        "-numa", "--numa", type=int, default=-1,
        help="NUMA node to stress (e.g., 0 or 1; default -1 means all nodes)",
    )
    parser.add_argument(
        "-memory", "--memory", type=float, default=0.0,
        help="Memory testing percentage (0.1-9.9 for 1%%-99%% of total memory, "
        "e.g., 1.5 for 15%%)",
    )
    parser.add_argument(
        "-d", "--d", dest="debug", action="store_true", help="Enable debug mode"
    )
    parser.add_argument(
        "-h", "--h", "--help", dest="help", action="store_true", help="Show help"
    )
    return parser


def parse_duration(text: str) -> float:
    """Parse a duration such as "30s", "1h30m" or "250ms" into seconds.

    Raises ValueError for malformed input.
    """
    body = text
    sign = 1.0
    if body and body[0] in "+-":
        sign = -1.0 if body[0] == "-" else 1.0
        body = body[1:]
    if body == "0":
        return 0.0
    if not body:
        raise ValueError(f"invalid duration {text!r}")
    total = 0.0
    pos = 0
    while pos < len(body):
        match = _COMPONENT.match(body, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        number, unit = match.groups()
        if number in ("", "."):
            raise ValueError(f"invalid duration {text!r}")
        total += float(number) * _UNITS[unit]
        pos = match.end()
    return sign * total


def random_select_cores(
    cpus: Sequence[int], count: int, rng: random.Random | None = None
) -> list[int]:
    """Pick ``count`` distinct CPUs at random; all of them when count covers the list."""
    if count >= len(cpus):
        return list(cpus)
    rng = rng or random.Random()
    return rng.sample(list(cpus), count)


def select_cpus(
    cpu_cores: int,
    numa_node: int,
    numa_info: NUMAInfo | None,
    total_cores: int,
    rng: random.Random | None = None,
) -> tuple[int, list[int]]:
    """Choose the cores to stress, honouring a NUMA node when one is usable.

    Returns the core count and the CPU ids. ``numa_info`` of None means the
    topology could not be read.
    """
    rng = rng or random.Random()
    num_nodes = numa_info.num_nodes if numa_info is not None else 0
    num_cores = cpu_cores
    selected: list[int] = []

    if numa_info is not None and 0 <= numa_node < num_nodes:
        selected = list(numa_info.node_cpus[numa_node])
        if not selected:
            log_message(f"NUMA node {numa_node} has no CPUs, falling back to all cores", True)
            numa_node = -1
        else:
            log_message(f"NUMA node {numa_node} has CPUs: {selected}")
            if 0 < num_cores and num_cores > len(selected):
                log_message(
                    f"Error: Requested {cpu_cores} cores, but NUMA node {numa_node} only "
                    f"has {len(selected)} cores. Falling back to all cores.",
                    True,
                )
                numa_node = -1

    if numa_node < 0 or num_nodes == 0:
        all_cpus = list(range(total_cores))
        if num_cores == 0:
            num_cores = total_cores
            selected = all_cpus
            log_message(f"No CPU cores specified, using all {num_cores} cores: {selected}")
        elif num_cores > total_cores:
            num_cores = total_cores
            selected = all_cpus
            log_message(
                f"Requested {cpu_cores} cores, but only {total_cores} available. "
                f"Using {num_cores} cores: {selected}",
                True,
            )
        else:
            selected = random_select_cores(all_cpus, num_cores, rng)
            log_message(f"Randomly selected {num_cores} cores: {selected}")
    elif num_cores == 0:
        num_cores = len(selected)
        log_message(
            f"No CPU cores specified, using all {num_cores} cores in NUMA node "
            f"{numa_node}: {selected}"
        )
    else:
        selected = random_select_cores(selected, num_cores, rng)
        log_message(
            f"Randomly selected {num_cores} cores in NUMA node {numa_node}: {selected}"
        )
    return num_cores, selected


@dataclass
class _Settings:
    debug: bool
    test_cpu: bool
    cpu_cores: int
    cpu_load: str
    memory_percent: float
    numa_node: int
    duration: str


def _resolve(args: argparse.Namespace, config: Config | None) -> _Settings:
    """Command-line values first, then the configuration file, then defaults."""
    settings = _Settings(
        debug=args.debug,
        test_cpu=args.cpu,
        cpu_cores=args.cpu_cores,
        cpu_load=args.cpu_load,
        memory_percent=args.memory,
        numa_node=args.numa,
        duration=args.duration,
    )
    if config is not None:
        settings.debug = settings.debug or config.debug
        settings.test_cpu = settings.test_cpu or config.cpu
        if settings.cpu_cores == 0:
            settings.cpu_cores = config.cores
        if not settings.cpu_load:
            settings.cpu_load = config.load
        if settings.memory_percent == 0 and config.memory:
            settings.memory_percent = config.mem_percent
    return settings


def _validation_error(settings: _Settings, config: Config | None) -> str | None:
    if settings.memory_percent != 0:
        if not 0.1 <= settings.memory_percent <= 9.9:
            return (
                "Error: -memory must be between 0.1 and 9.9, "
                f"got {settings.memory_percent:.1f}"
            )
    elif config is not None and config.memory:
        return "Error: MEMPercent must be specified when Memory is enabled"
    return None


def _cpu_count() -> int:
    if hasattr(os, "sched_getaffinity"):
        return len(os.sched_getaffinity(0))
    return os.cpu_count() or 1


def _start(target: Callable[..., object], *args: object, name: str) -> threading.Thread:
    thread = threading.Thread(target=target, args=args, name=name, daemon=True)
    thread.start()
    return thread


def _collect_errors(
    errors: queue.Queue[str | None], collector: ResultCollector, debug: bool
) -> None:
    while (message := errors.get()) is not None:
        if not message:
            continue
        collector.add_error(message)
        log_message(f"Error detected: {message}", debug)


def _report_progress(
    stop: threading.Event, stats: PerformanceStats, test_cpu: bool, test_memory: bool
) -> None:
    while not stop.wait(PROGRESS_INTERVAL):
        log_message(progress_message(stats, test_cpu, test_memory), True)


def _print_help(parser: argparse.ArgumentParser) -> None:
    print("System Stress Test Tool")
    print("Usage: sysstress [options]")
    print("\nOptions:")
    print(parser.format_help())
    print("\n".join(_NOTES))


def main(argv: Sequence[str] | None = None) -> int:
    """Run the stress tests selected on the command line; returns the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.help:
        _print_help(parser)
        return 0

    config: Config | None
    try:
        config = load_config()
    except (OSError, ValueError) as exc:
        print(f"[Ignore] Failed to load config.json, using default settings: {exc}")
        config = None

    settings = _resolve(args, config)
    error = _validation_error(settings, config)
    if error is not None:
        log_message(error, True)
        return 1
    if not settings.cpu_load:
        settings.cpu_load = "Default"

    if not settings.test_cpu and settings.memory_percent == 0:
        print("Error: At least one of -cpu or -memory must be specified for stress testing.")
        print("Use -h to see all options.")
        return 1

    try:
        duration = parse_duration(settings.duration)
    except ValueError:
        log_message(
            f"Invalid duration format: {settings.duration}, using default 10 minutes", True
        )
        duration = DEFAULT_DURATION

    debug = settings.debug
    test_memory = settings.memory_percent > 0
    log_message(f"Starting stress test for {format_duration(duration)}...", True)
    log_message(f"Debug mode: {str(debug).lower()}", True)

    stats = PerformanceStats()
    stop = threading.Event()
    errors: queue.Queue[str | None] = queue.Queue()
    collector = ResultCollector()
    workers: list[threading.Thread] = []

    if test_memory:
        usage = settings.memory_percent / 10.0
        if usage > MEMORY_CAP:
            usage = MEMORY_CAP
            log_message("Memory usage capped at 95% for system stability", True)
        log_message(
            f"Starting memory stress test with {usage * 100:.1f}% of total memory...", debug
        )
        memory_config = MemoryConfig(usage_percent=usage, debug=debug)
        workers.append(
            _start(run_memory_stress_test, stop, errors, memory_config, stats, name="memory")
        )

    if settings.test_cpu:
        rng = random.Random()
        numa_node = settings.numa_node
        numa_info: NUMAInfo | None
        try:
            numa_info = get_numa_info()
        except OSError as exc:
            log_message(f"Failed to get NUMA info: {exc}", debug)
            numa_info = None
            numa_node = -1
        num_cores, cpus = select_cpus(
            settings.cpu_cores, numa_node, numa_info, _cpu_count(), rng
        )
        cpu_config = CPUConfig(
            num_cores=num_cores, debug=debug, cpu_list=cpus, load_level=settings.cpu_load
        )
        log_message(
            f"Starting CPU stress tests using {num_cores} cores (CPUs: {cpus}) "
            f"with load level: {settings.cpu_load}...",
            debug,
        )
        workers.append(
            _start(run_cpu_stress_tests, stop, errors, cpu_config, stats, name="cpu")
        )

    consumer = _start(_collect_errors, errors, collector, debug, name="errors")
    _start(
        _report_progress, stop, stats, settings.test_cpu, test_memory, name="progress"
    )

    start = time.monotonic()
    time.sleep(duration)
    stop.set()
    for worker in workers:
        worker.join()
    errors.put(None)
    consumer.join()
    elapsed = time.monotonic() - start

    for line in performance_lines(stats, settings.test_cpu, settings.cpu_load, test_memory):
        log_message(line, True)
    log_message(collector.summary(elapsed, settings.test_cpu, test_memory), True)
    log_message("Stress test completed!", True)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())