# tsarkit

`tsarkit` samples Linux system and service statistics and turns pairs of
samples into per-interval figures. These include CPU shares, load, memory and
swap use, disk I/O, partition fill, TCP/UDP counters, network traffic,
per-process usage, and the status of nginx, Apache, LVS, Squid and HAProxy.

It needs only the Python standard library and Python 3.10 or later.

## How it works

Every statistics module follows the same two steps.

1. **Collect.** `collect(...)` reads raw counters from `/proc`, from the mount
   table, or from a local service, and returns a *record* string (or `None`
   when nothing could be read).
   - A record is a comma-separated list of integer counters, e.g. `"1,2,3"`.
   - When a module reports several items (one per disk, CPU or network
     interface), the record is a `;`-separated list of `name=values` entries,
     e.g. `"sda=1,2;sdb=3,4;"`.
2. **Compute.** `compute(pre, cur, interval)` takes the counters of two samples
   taken `interval` seconds apart and returns a list of floats to display:
   rates, percentages or plain current values, depending on the column.

`tsarkit.module.parse_record(record)` splits a record back into a dict that
maps each item name to its list of integers; a plain record gives a single
item named `""`. A malformed item raises `ValueError`.

Most modules also have a parsing function that works on text you supply, so
saved snapshots of `/proc` files can be processed without a live system:

```python
from tsarkit import cpu, load
from tsarkit.module import parse_record

with open("/proc/loadavg") as f:
    record = load.parse_loadavg(f.read())

with open("/proc/stat") as stat, open("/proc/cpuinfo") as info:
    first = cpu.parse_cpu(stat.read(), info.read())

# ... later, a second sample ...
with open("/proc/stat") as stat, open("/proc/cpuinfo") as info:
    second = cpu.parse_cpu(stat.read(), info.read())

pre = parse_record(first)[""]
cur = parse_record(second)[""]
print(cpu.compute(pre, cur, 1))
```

The collectors that read `/proc` files take a `root` argument (default `"/"`)
so they can also read a copied tree: `cpu`, `ncpu`, `percpu`, `load`, `pcsw`,
`mem`, `swap`, `io`, `tcp`, `tcpx`, `udp`, `traffic`, `pernic` and `proc`.
`partition.collect` takes `mtab_path` (default `/etc/mtab`) and
`apache.collect` takes `rt_path` (default `/tmp/apachert.mmap`).

## Modules

| Module               | What it reports                                              |
|----------------------|--------------------------------------------------------------|
| `tsarkit.cpu`        | overall CPU share (user, sys, wait, irq, util, ...)          |
| `tsarkit.ncpu`       | CPU share for each processor                                 |
| `tsarkit.percpu`     | CPU share for each processor, util as the sum of busy time   |
| `tsarkit.load`       | load averages, run queue and thread count                    |
| `tsarkit.pcsw`       | context switches and process creation                        |
| `tsarkit.mem`        | physical memory use                                          |
| `tsarkit.swap`       | swap traffic and swap use                                    |
| `tsarkit.io`         | block device I/O from `/proc/diskstats`                      |
| `tsarkit.partition`  | space and inode use of block-device mounts                   |
| `tsarkit.tcp`        | TCP counters and retransmission ratio                        |
| `tsarkit.tcpx`       | extended TCP connection and drop counters                    |
| `tsarkit.udp`        | UDP datagram counters                                        |
| `tsarkit.traffic`    | total traffic over interfaces matching name prefixes         |
| `tsarkit.pernic`     | traffic for each network interface                           |
| `tsarkit.proc`       | CPU, memory and I/O of the first process with a given name   |
| `tsarkit.nginx`      | nginx / tengine status page                                  |
| `tsarkit.apache`     | Apache `server-status` page plus a request counter file      |
| `tsarkit.lvs`        | LVS connection, packet and byte counters                     |
| `tsarkit.squid`      | Squid cache manager `info` and `counters` pages              |
| `tsarkit.haproxy`    | HAProxy liveness and stats socket details                    |

Some notes on individual modules:

- `traffic`: the parameter adds whitespace-separated interface name prefixes
  to the defaults `eth`, `em` and `en`.
- `io`: a non-zero parameter limits the number of devices; `collect` raises
  `OSError` when `/proc/diskstats` cannot be opened.
- `proc`: the parameter is a process name, looked up with the `pidof` command.
- `lvs`: when `/usr/local/sbin/slb_admin` is executable, the counters are read
  from that tool and `appctl` via `sudo`; otherwise from
  `/proc/net/ip_vs_stats` and `/proc/net/ip_vs_conn_stats`.
- `squid`: instances are found from `squid.<port>.conf` files in
  `/etc/squid/`, falling back to the parameter's port or 3128; a record is
  returned only when every instance answered.
- `haproxy`: `collect` returns an empty record when HAProxy is not running.

## Column metadata

`tsarkit.module` describes every column with a `FieldInfo` (`header`,
`summary_bit`, `merge_mode`, `stats_opt`):

- `Bit` — `HIDE`, `DETAIL`, `SUMMARY` or `SPEC`: the display level.
- `Merge` — `NULL`, `SUM` or `AVG`: how several items would be combined.
- `StatsOpt` — `NULL`, `SUB` or `SUB_INTER`: how a value is derived from two
  samples.

Each statistics module exposes a `MODULE` object of class `Module`, bundling
its `name`, command-line style `opt`, `usage` line, `info` columns, collector
and calculator. `Module.n_col` is the number of columns.
`Module.collect(parameter)` runs the collector (using `Module.parameter` when
no parameter is given). `Module.compute(pre, cur, interval)` checks the column
count, raising `ValueError` on a mismatch, and runs the module's calculator.
For modules without one, each column follows its `StatsOpt`: the current value
for `NULL`, the difference for `SUB`, the difference per second for
`SUB_INTER`, and `-1.0` when a counter went backwards.

## Environment

A few collectors read settings from the environment:

- `SIGMA_MAX_CPU_QUOTA` scales CPU shares to a container quota (in percent of
  one CPU). See `tsarkit.cpu.cpu_quota`.
- `NGX_TSAR_HOST`, `NGX_TSAR_PORT`, `NGX_TSAR_URI` and `NGX_TSAR_SERVER_NAME`
  choose the nginx status endpoint. A host starting with `/` is used as a Unix
  socket path. See `tsarkit.nginx.host_info`.

## What this package does not do

`tsarkit` is a library of collectors and calculators only. It has no
command-line tool, no scheduler that samples at intervals, no storage of
samples to a data file, and no table or report output. The `Merge` and `Bit`
settings are carried as metadata and are not applied by any code in the
package. Keeping samples, pairing them up and presenting the figures is left
to the caller.

## Running the tests

Install the package with its `test` extra, then run `pytest` from the project
directory.