"""Configuration file handling and shared result/performance records."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# (attribute name, JSON key, expected type)
_FIELDS: tuple[tuple[str, str, type], ...] = (
    ("debug", "debug", bool),
    ("cpu", "CPU", bool),
    ("cores", "Cores", int),
    ("load", "Load", str),
    ("memory", "Memory", bool),
    ("mem_percent", "MEMPercent", float),
    ("mountpoint", "Mountpoint", str),
    ("raw_disk", "RAWDisk", str),
    ("size", "Size", str),
    ("offset", "Offset", str),
    ("block", "Block", str),
    ("mode", "Mode", str),
)


def _coerce(json_key: str, kind: type, value: Any) -> Any:
    if kind is bool:
        ok = isinstance(value, bool)
    elif kind is int:
        ok = isinstance(value, int) and not isinstance(value, bool)
    elif kind is float:
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
    else:
        ok = isinstance(value, str)
    if not ok:
        raise ValueError(
            f"cannot unmarshal {type(value).__name__} into Config field {json_key} "
            f"of type {kind.__name__}"
        )
    return float(value) if kind is float else value


@dataclass
class Config:
    """Settings read from config.json; defaults match an absent or partial file."""

    debug: bool = False
    cpu: bool = False
    cores: int = 0
    load: str = "Default"
    memory: bool = False
    mem_percent: float = 0.0
    mountpoint: str = ""
    raw_disk: str = ""
    size: str = "10M"
    offset: str = "1G"
    block: str = "4K"
    mode: str = "both"

    def to_json(self) -> str:
        """Serialise with the file's key names, indented by four spaces."""
        data = {key: getattr(self, attr) for attr, key, _ in _FIELDS}
        return json.dumps(data, indent=4)

    def _update_from_mapping(self, data: dict[str, Any]) -> None:
        exact = {key: (attr, key, kind) for attr, key, kind in _FIELDS}
        folded = {key.lower(): (attr, key, kind) for attr, key, kind in _FIELDS}
        for name, value in data.items():
            spec = exact.get(name) or folded.get(name.lower())
            if spec is None or value is None:
                continue
            attr, key, kind = spec
            setattr(self, attr, _coerce(key, kind, value))


def load_config(path: str | Path = "config.json") -> Config:
    """Read a configuration file over the default settings.

    Raises OSError when the file cannot be read and ValueError when its
    content is not valid JSON or a field has the wrong type.
    """
    text = Path(path).read_text()
    data = json.loads(text)
    config = Config()
    if data is None:
        return config
    if not isinstance(data, dict):
        raise ValueError(f"cannot unmarshal {type(data).__name__} into Config")
    config._update_from_mapping(data)
    return config


@dataclass
class TestResult:
    """Pass/fail verdict for each tested component."""

    __test__ = False

    cpu: str = "PASS"
    dimm: str = "PASS"
    hdd: str = "PASS"


@dataclass
class CacheInfo:
    """Cache sizes in bytes."""

    l1_size: int = 0
    l2_size: int = 0
    l3_size: int = 0


@dataclass
class CPUPerformance:
    """CPU throughput figures and operation counters."""

    gflops: float = 0.0
    core_gflops: dict[int, float] = field(default_factory=dict)
    integer_ops: float = 0.0
    float_ops: float = 0.0
    vector_ops: float = 0.0
    num_cores: int = 0
    cache_info: CacheInfo = field(default_factory=CacheInfo)
    integer_count: int = 0
    float_count: int = 0
    vector_count: int = 0
    cache_count: int = 0
    branch_count: int = 0
    crypto_count: int = 0


@dataclass
class MemoryPerformance:
    """Memory speeds in MB/s and operation counters."""

    read_speed: float = 0.0
    write_speed: float = 0.0
    random_access_speed: float = 0.0
    usage_percent: float = 0.0
    write_count: int = 0
    read_count: int = 0
    random_access_count: int = 0


@dataclass
class PerformanceStats:
    """Shared performance record; use it as a context manager to hold its lock."""

    cpu: CPUPerformance = field(default_factory=CPUPerformance)
    memory: MemoryPerformance = field(default_factory=MemoryPerformance)
    lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def __enter__(self) -> PerformanceStats:
        self.lock.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.lock.release()