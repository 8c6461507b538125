#!/usr/bin/env python3
"""
walletflow vs RxPY Stream Throughput Comparison

Runs the same workloads through walletflow's stream layer and through RxPY
(`reactivex`) and reports throughput, peak memory and GC activity.

Benchmark Categories:
- Subject Fan-out: one hot source feeding many subscribers
- Operator Chain: map/filter pipelines
- Combine Latest: re-evaluation on every contributing emission
- Snapshot/Patch Fold: a channel balance resynced by snapshots and patched by events
- Replayed Multicast: one upstream shared with many late subscribers

Install the extra dependencies with `pip install -e .[benchmark]`.
"""

import argparse
import gc
import sys
import time
import tracemalloc
from dataclasses import dataclass
from typing import Callable, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

import walletflow as wf
from walletflow.aggregates import channel_balance_node
from walletflow.records import Channel, Invoice, Payment, Peer

try:
    import reactivex as rx
except ImportError:
    print("RxPY not available. Install with: pip install -e .[benchmark]")
    sys.exit(1)

from reactivex import operators as ops
from reactivex.subject import Subject as RxSubject

# Configuration
TIME_LIMIT_SECONDS = 0.5
STARTING_N = 10
SCALE_FACTOR = 1.5
MAX_N = 2_000_000

LIBRARIES = ("walletflow", "RxPY")


@dataclass
class BenchmarkMetrics:
    library: str
    operation: str
    n: int
    elapsed: float
    events_per_second: float
    memory_peak_kb: int
    gc_collections: int


class BenchmarkProfiler:
    """Time, peak memory and GC counts for one benchmark run."""

    def __enter__(self):
        gc.collect()
        tracemalloc.start()
        self.gc_before = sum(gc.get_count())
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed = time.perf_counter() - self.start
        self.gc_after = sum(gc.get_count())
        _, self.memory_peak = tracemalloc.get_traced_memory()
        tracemalloc.stop()

    def metrics(self, library: str, operation: str, n: int, events: int) -> BenchmarkMetrics:
        return BenchmarkMetrics(
            library=library,
            operation=operation,
            n=n,
            elapsed=self.elapsed,
            events_per_second=events / self.elapsed if self.elapsed > 0 else 0.0,
            memory_peak_kb=self.memory_peak // 1024,
            gc_collections=max(0, self.gc_after - self.gc_before),
        )


def run_adaptive_benchmark(
    library: str, operation: str, workload: Callable[[int], int]
) -> BenchmarkMetrics:
    """
    Grow `n` until one run of `workload(n)` takes TIME_LIMIT_SECONDS, then
    profile a run at that size. `workload` returns the number of events it
    pushed.
    """
    n = STARTING_N
    while n < MAX_N:
        start = time.perf_counter()
        workload(n)
        if time.perf_counter() - start >= TIME_LIMIT_SECONDS:
            break
        n = int(n * SCALE_FACTOR)

    with BenchmarkProfiler() as profiler:
        events = workload(n)
    return profiler.metrics(library, operation, n, events)


# ============================================================================
# WORKLOADS
# ============================================================================


def _sink(_value):
    pass


def fanout_walletflow(n: int) -> int:
    subject = wf.Subject()
    for _ in range(100):
        subject.subscribe(_sink)
    for i in range(n):
        subject.on_next(i)
    return n * 100


def fanout_rxpy(n: int) -> int:
    subject = RxSubject()
    for _ in range(100):
        subject.subscribe(_sink)
    for i in range(n):
        subject.on_next(i)
    return n * 100


def chain_walletflow(n: int) -> int:
    subject = wf.Subject()
    pipeline = (subject >> (lambda x: x * 1000)) & (lambda x: x % 3 == 0)
    (pipeline >> str).subscribe(_sink)
    for i in range(n):
        subject.on_next(i)
    return n


def chain_rxpy(n: int) -> int:
    subject = RxSubject()
    subject.pipe(
        ops.map(lambda x: x * 1000), ops.filter(lambda x: x % 3 == 0), ops.map(str)
    ).subscribe(_sink)
    for i in range(n):
        subject.on_next(i)
    return n


def combine_walletflow(n: int) -> int:
    unit, rate = wf.Subject(), wf.Subject()
    wf.combine_latest(unit, rate, combiner=lambda u, r: (u, r)).subscribe(_sink)
    for i in range(n):
        unit.on_next(i)
        rate.on_next(i)
    return n * 2


def combine_rxpy(n: int) -> int:
    unit, rate = RxSubject(), RxSubject()
    rx.combine_latest(unit, rate).subscribe(_sink)
    for i in range(n):
        unit.on_next(i)
        rate.on_next(i)
    return n * 2


def _balance_events(n: int):
    """Every tenth event is a resync; the rest alternate received and sent."""
    snapshot = [Peer(id="peer", channels=(Channel("CHANNELD_NORMAL", 1_000_000),))]
    for i in range(n):
        if i % 10 == 0:
            yield "peers", snapshot
        elif i % 2:
            yield "incoming", Invoice(label=str(i), msatoshi_received=1_000)
        else:
            yield "outgoing", Payment(msatoshi_sent=999)


def fold_walletflow(n: int) -> int:
    sources = {"peers": wf.Subject(), "incoming": wf.Subject(), "outgoing": wf.Subject()}
    channel_balance_node(**sources).subscribe(_sink)
    for name, value in _balance_events(n):
        sources[name].on_next(value)
    return n


def fold_rxpy(n: int) -> int:
    peers, incoming, outgoing = RxSubject(), RxSubject(), RxSubject()

    def total(listing):
        return sum(c.msatoshi_to_us for p in listing for c in (p.channels or ()) if c.is_normal)

    rx.merge(
        peers.pipe(ops.map(lambda listing: lambda _: total(listing))),
        incoming.pipe(ops.map(lambda inv: lambda state: (state or 0) + inv.msatoshi_received)),
        outgoing.pipe(ops.map(lambda pay: lambda state: (state or 0) - pay.msatoshi_sent)),
    ).pipe(
        ops.scan(lambda state, patch: patch(state), None),
        ops.start_with(None),
        ops.distinct_until_changed(),
    ).subscribe(_sink)
    sources = {"peers": peers, "incoming": incoming, "outgoing": outgoing}
    for name, value in _balance_events(n):
        sources[name].on_next(value)
    return n


def multicast_walletflow(n: int) -> int:
    subject = wf.Subject()
    shared = subject.scan(lambda acc, x: acc + x, 0).share_replay(1)
    for i in range(n):
        shared.subscribe(_sink)
        subject.on_next(i)
    return n


def multicast_rxpy(n: int) -> int:
    subject = RxSubject()
    shared = subject.pipe(ops.scan(lambda acc, x: acc + x, 0), ops.replay(buffer_size=1))
    shared.connect()
    for i in range(n):
        shared.subscribe(_sink)
        subject.on_next(i)
    return n


WORKLOADS: Dict[str, Dict[str, Callable[[int], int]]] = {
    "Subject Fan-out": {"walletflow": fanout_walletflow, "RxPY": fanout_rxpy},
    "Operator Chain": {"walletflow": chain_walletflow, "RxPY": chain_rxpy},
    "Combine Latest": {"walletflow": combine_walletflow, "RxPY": combine_rxpy},
    "Snapshot/Patch Fold": {"walletflow": fold_walletflow, "RxPY": fold_rxpy},
    "Replayed Multicast": {"walletflow": multicast_walletflow, "RxPY": multicast_rxpy},
}


# ============================================================================
# REPORT
# ============================================================================


class StreamComparison:
    def __init__(self, quiet: bool = False):
        self.console = Console()
        self.quiet = quiet
        self.results: List[BenchmarkMetrics] = []

    def run(self):
        start = time.time()
        self.console.print(
            Panel(
                f"walletflow vs RxPY stream throughput\n"
                f"{TIME_LIMIT_SECONDS}s per workload, adaptive size",
                title="Stream Comparison",
                border_style="blue",
            )
        )
        for operation, implementations in WORKLOADS.items():
            if not self.quiet:
                self.console.print(f"[yellow]Running {operation}...[/yellow]")
            for library in LIBRARIES:
                self.results.append(
                    run_adaptive_benchmark(library, operation, implementations[library])
                )

        self._display_results()
        self._display_summary()
        self.console.print(f"\n[dim]Comparison completed in {time.time() - start:.2f} seconds[/dim]")

    def _by_operation(self) -> Dict[str, Dict[str, BenchmarkMetrics]]:
        grouped: Dict[str, Dict[str, BenchmarkMetrics]] = {}
        for result in self.results:
            grouped.setdefault(result.operation, {})[result.library] = result
        return grouped

    def _display_results(self):
        table = Table(title="Throughput")
        table.add_column("Operation", style="cyan")
        table.add_column("Library", style="white")
        table.add_column("Events/s", style="green", justify="right")
        table.add_column("N", justify="right")
        table.add_column("Peak memory", style="magenta", justify="right")
        table.add_column("GCs", style="red", justify="right")

        for operation, results in self._by_operation().items():
            for library in LIBRARIES:
                r = results[library]
                table.add_row(
                    operation if library == LIBRARIES[0] else "",
                    library,
                    f"{r.events_per_second:,.0f}",
                    f"{r.n:,}",
                    f"{r.memory_peak_kb:,} KB",
                    str(r.gc_collections),
                )
        self.console.print(table)

    def _display_summary(self):
        wins = {library: 0 for library in LIBRARIES}
        for results in self._by_operation().values():
            best = max(LIBRARIES, key=lambda library: results[library].events_per_second)
            wins[best] += 1

        lines = "\n".join(f"{library} wins: {count}" for library, count in wins.items())
        self.console.print(Panel(lines, title="Summary", border_style="green"))


def main():
    parser = argparse.ArgumentParser(description="walletflow vs RxPY stream throughput")
    parser.add_argument(
        "--quiet", action="store_true", help="Suppress progress output, show only final results"
    )
    args = parser.parse_args()

    StreamComparison(quiet=args.quiet).run()


if __name__ == "__main__":
    main()
