# sysstress

sysstress is a burn-in and stress tool for Linux machines. It loads the CPU
cores and the memory for a set length of time. During the run it checks every
computation against its first result and records throughput. At the end it
logs a performance report and a PASS/FAIL verdict for each component tested.

## Install

```
pip install .
```

To include the test dependencies:

```
pip install .[test]
```

## Usage

Stress every available core for five minutes:

```
sysstress -cpu -duration 5m
```

Stress four randomly chosen cores of NUMA node 0 at high load:

```
sysstress -cpu -cpu-cores 4 -numa 0 -cpu-load High
```

Hold 50% of system memory for half an hour. The `-memory` value runs from 0.1
to 9.9, so 1.0 means 10%. Usage is capped at 95%.

```
sysstress -memory 5.0 -duration 30m
```

You must give at least one of `-cpu` or `-memory`, either on the command line
or through `config.json`. Without one, the command exits with status 1.

### Options

Every option can be written with one dash or with two, for example `-cpu` or
`--cpu`.

- `-cpu`: enable the CPU test.
- `-cpu-cores N`: the number of cores to stress. `0` is the default and means
  all cores. If you ask for fewer cores than are available, the cores are
  picked at random. If you ask for more, all cores are used.
- `-cpu-load LEVEL`: `High` (or `2`), `Low` (or `1`), or `Default` (or `0`).
  An unknown level is treated as `Default`. The level chooses the workloads
  and how much of each 50 ms cycle they get:
  - `High`: integer, float, vector, cache, branch and crypto, filling the
    whole cycle.
  - `Low`: integer and float, idling for the other half of the cycle.
  - `Default`: float, vector, cache, branch and crypto.

  The level also scales the batch sizes of the workloads.
- `-numa N`: restrict the cores to NUMA node N. `-1` is the default and means
  all nodes. If the node has no CPUs, or has fewer than `-cpu-cores` asks for,
  all cores are used instead.
- `-memory P`: enable the memory test and hold P × 10 percent of total memory.
- `-duration D`: how long the run lasts. It takes units `ns`, `us`, `ms`, `s`,
  `m` and `h`, and they can be combined, as in `1h30m`. The default is `10m`.
  An invalid duration falls back to 10 minutes.
- `-d`: print debug messages on the console as well as in the log.
- `-h`, `--help`: show help.

Each CPU worker thread pins itself to its core where the platform allows it.

## Configuration

If a `config.json` file is in the working directory, it fills in any setting
not given on the command line:

| Key          | Used for                                                    |
|--------------|-------------------------------------------------------------|
| `debug`      | debug output, as `-d`                                       |
| `CPU`        | enable the CPU test, as `-cpu`                              |
| `Cores`      | as `-cpu-cores`                                             |
| `Load`       | as `-cpu-load`                                              |
| `Memory`     | enable the memory test, using `MEMPercent`                  |
| `MEMPercent` | as `-memory`; it must be given when `Memory` is true        |

The file also accepts the keys `Mountpoint`, `RAWDisk`, `Size`, `Offset`,
`Block` and `Mode`. They are read and type-checked, but they have no effect.

If the file is missing or cannot be parsed, a notice is printed and the
command-line values and defaults are used.

## Output

Every message is appended to `stress.log` in the working directory. A new log
file starts with a creation line. A progress line is logged every 30 seconds.
When the run ends, the log gets three things:

- the CPU GFLOPS estimate, memory read, write and random-access speeds, and
  operation counts;
- a summary line such as `Stress Test Summary - Duration: 5m0s | CPU: PASS`;
- the first failure reason for any component that failed.

## What it does not do

sysstress tests only the CPU and memory. It has no disk, raw block device or
network tests. It has no command that lists or scans system resources, and it
does not write `config.json`.

## Library use

The building blocks can be used directly:

```python
from sysstress.utils import parse_size, format_size, parse_cpu_list

format_size(parse_size("4K"))   # '4.00KB'
parse_cpu_list("0-3,8")         # [0, 1, 2, 3, 8]
```

- `sysstress.config`
  - `load_config()` reads a configuration file into a `Config`.
  - `Config.to_json()` writes it back out.
  - `PerformanceStats` is the shared record that the workloads update. Use it
    as a context manager to hold its lock.
- `sysstress.utils`
  - `log_message`, `format_size`, `parse_size` and `parse_cpu_list`.
  - `get_numa_info` and `get_cache_info`, which read sysfs.
  - `parse_cache_size`.
  - `get_disk_size`, which queries a block device's size.
- `sysstress.cpu_compute`
  - `integer_kernel`, `float_kernel`, `vector_checksum` and `branch_kernel`.
  - Their timed `run_*` workloads.
- `sysstress.cpu_heavy`
  - `run_cache_stress` and `run_crypto_stress`.
  - `cache_array_size`.
- `sysstress.cpu`
  - `select_tests` and `normalize_load_level`.
  - `run_all_tests_per_core` and `run_cpu_stress_tests`.
- `sysstress.memory`
  - `MemoryConfig`, `total_system_memory` and `run_memory_stress_test`.
- `sysstress.report`
  - `classify_error`, `ResultCollector`, `format_duration`,
    `progress_message` and `performance_lines`.
- `sysstress.cli`
  - `main`, `build_parser`, `parse_duration`, `random_select_cores` and
    `select_cpus`.