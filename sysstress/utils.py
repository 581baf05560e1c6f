"""Logging, size parsing and formatting, and hardware topology helpers."""

from __future__ import annotations

import os
import re
import struct
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from sysstress.config import CacheInfo

_KB = 1024
_MB = _KB * 1024
_GB = _MB * 1024

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_BLKGETSIZE64 = 0x80081272

_INTEGER = re.compile(r"[+-]?[0-9]+")
_log_lock = threading.Lock()


def _atoi(text: str) -> int | None:
    if not _INTEGER.fullmatch(text):
        return None
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        return None
    return value


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def log_message(message: str, debug: bool = False, path: str | Path = "stress.log") -> str:
    """Append a timestamped entry to the log file, echoing it when debug is set.

    A new log file starts with a creation line. Returns the entry written.
    """
    timestamp = _timestamp()
    entry = f"{timestamp} | {message}"
    log_path = Path(path)
    with _log_lock:
        if not log_path.exists():
            with log_path.open("w") as handle:
                handle.write(f"Log file created at: {timestamp}\n")
        with log_path.open("a") as handle:
            handle.write(entry + "\n")
    if debug:
        print(entry)
    return entry


def format_size(size: int) -> str:
    """Render a byte count with a GB, MB, KB or B suffix."""
    if size >= _GB:
        return f"{size / _GB:.2f}GB"
    if size >= _MB:
        return f"{size / _MB:.2f}MB"
    if size >= _KB:
        return f"{size / _KB:.2f}KB"
    return f"{size}B"


_SIZE_SUFFIXES = (
    ("KB", _KB),
    ("K", _KB),
    ("MB", _MB),
    ("M", _MB),
    ("GB", _GB),
    ("G", _GB),
)


def parse_size(text: str) -> int:
    """Parse a size such as 4K, 64KB, 10M or 1G into bytes.

    Raises ValueError when the number part is not an integer.
    """
    upper = text.upper()
    multiplier = 1
    for suffix, factor in _SIZE_SUFFIXES:
        if upper.endswith(suffix):
            multiplier = factor
            upper = upper[: -len(suffix)]
            break
    value = _atoi(upper)
    if value is None:
        raise ValueError(f"invalid size {text!r}")
    return value * multiplier


def parse_cpu_list(text: str) -> list[int]:
    """Expand a kernel CPU list such as "0-3,8,10-11"; malformed parts are skipped."""
    cpus: list[int] = []
    for segment in text.strip().split(","):
        if "-" in segment:
            parts = segment.split("-")
            if len(parts) != 2:
                continue
            start, end = _atoi(parts[0]), _atoi(parts[1])
            if start is None or end is None:
                continue
            cpus.extend(range(start, end + 1))
        else:
            cpu = _atoi(segment)
            if cpu is not None:
                cpus.append(cpu)
    return cpus


def _available_cpu_count() -> int:
    if hasattr(os, "sched_getaffinity"):
        return len(os.sched_getaffinity(0))
    return os.cpu_count() or 1


@dataclass
class NUMAInfo:
    """NUMA node count and the CPUs belonging to each node."""

    num_nodes: int = 1
    node_cpus: list[list[int]] = field(default_factory=list)


def get_numa_info(node_dir: str | Path = "/sys/devices/system/node") -> NUMAInfo:
    """Read NUMA topology from sysfs.

    Without a node directory a single node holding every CPU is reported.
    Raises OSError when the directory exists but cannot be listed.
    """
    base = Path(node_dir)
    if not base.exists():
        return NUMAInfo(num_nodes=1, node_cpus=[list(range(_available_cpu_count()))])

    node_cpus: list[list[int]] = []
    with os.scandir(base) as entries:
        for entry in entries:
            if not entry.is_dir(follow_symlinks=False) or not entry.name.startswith("node"):
                continue
            node_id = _atoi(entry.name[len("node"):])
            if node_id is None or node_id < 0:
                continue
            while len(node_cpus) <= node_id:
                node_cpus.append([])
            try:
                cpu_list = (base / entry.name / "cpulist").read_text()
            except OSError:
                continue
            node_cpus[node_id] = parse_cpu_list(cpu_list)

    num_nodes = 0
    for index, cpus in enumerate(node_cpus):
        if cpus:
            num_nodes = index + 1
    return NUMAInfo(num_nodes=num_nodes, node_cpus=node_cpus)


def parse_cache_size(text: str) -> int:
    """Convert a cache size such as "32K" or "4M" to bytes; raises ValueError."""
    stripped = text.strip()
    if not stripped:
        raise ValueError("empty cache size string")
    unit = stripped[-1]
    value = _atoi(stripped[:-1])
    if value is None:
        raise ValueError(f"invalid cache size value: {stripped[:-1]!r}")
    factors = {"K": _KB, "M": _MB, "G": _GB}
    factor = factors.get(unit.upper())
    if factor is None:
        raise ValueError(f"unknown cache size unit: {unit}")
    return value * factor


def get_cache_info(cache_dir: str | Path = "/sys/devices/system/cpu/cpu0/cache") -> CacheInfo:
    """Read data and unified cache sizes of the first CPU, with fallbacks for L1 and L2."""
    base = Path(cache_dir)
    info = CacheInfo()
    for index in range(4):
        entry = base / f"index{index}"
        try:
            level = _atoi((entry / "level").read_text().strip())
            if level is None:
                continue
            cache_type = (entry / "type").read_text().strip()
            if cache_type not in ("Data", "Unified"):
                continue
            size = parse_cache_size((entry / "size").read_text())
        except (OSError, ValueError):
            continue
        if level == 1:
            info.l1_size = size
        elif level == 2:
            info.l2_size = size
        elif level == 3:
            info.l3_size = size

    if info.l1_size == 0:
        info.l1_size = 32 * _KB
    if info.l2_size == 0:
        info.l2_size = 256 * _KB
    return info


def get_disk_size(device_path: str | Path) -> int:
    """Return the size in bytes of a block device; raises OSError on failure."""
    import fcntl

    try:
        fd = os.open(device_path, os.O_RDONLY)
    except OSError as exc:
        raise OSError(exc.errno, f"failed to open device {device_path}: {exc.strerror}") from exc
    try:
        buffer = fcntl.ioctl(fd, _BLKGETSIZE64, bytes(8))
    except OSError as exc:
        raise OSError(
            exc.errno, f"ioctl BLKGETSIZE64 failed for {device_path}: {exc.strerror}"
        ) from exc
    finally:
        os.close(fd)
    (size,) = struct.unpack("Q", buffer)
    return size