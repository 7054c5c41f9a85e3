"""
TableDB Benchmarking Suite

Measures the storage engine across the scenarios it is built for:
- Cold disk reads vs cached reads of the same table
- Write bursts coalesced into one flush per table
- Concurrent fan-in reads of an uncached table
- Range queries through an index vs the full-scan fallback

Generates a JSON report next to the working directory.
"""

import asyncio
import json
import statistics
import sys
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from tabledb.engine import FastStorageProvider


@dataclass
class BenchmarkResult:
    """Single benchmark operation result."""
    name: str
    operation_count: int = 0
    total_time_ms: float = 0.0
    latencies_ms: List[float] = field(default_factory=list)
    throughput_ops_sec: float = 0.0
    error_count: int = 0
    notes: Dict[str, Any] = field(default_factory=dict)

    @property
    def avg_latency_ms(self) -> float:
        return statistics.mean(self.latencies_ms) if self.latencies_ms else 0.0

    @property
    def p50_latency_ms(self) -> float:
        return statistics.median(self.latencies_ms) if self.latencies_ms else 0.0

    @property
    def p95_latency_ms(self) -> float:
        if len(self.latencies_ms) < 20:
            return max(self.latencies_ms) if self.latencies_ms else 0.0
        return statistics.quantiles(self.latencies_ms, n=20)[18]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "operation_count": self.operation_count,
            "total_time_ms": round(self.total_time_ms, 2),
            "throughput_ops_sec": round(self.throughput_ops_sec, 2),
            "error_count": self.error_count,
            "latency_ms": {
                "avg": round(self.avg_latency_ms, 3),
                "p50": round(self.p50_latency_ms, 3),
                "p95": round(self.p95_latency_ms, 3),
            },
            "notes": self.notes,
        }


def make_rows(count: int) -> List[Dict[str, Any]]:
    return [
        {"id": i, "name": f"Product {i}", "price": (i * 37) % 1000, "stock": i % 50}
        for i in range(1, count + 1)
    ]


class BenchmarkSuite:
    """Benchmark suite for FastStorageProvider."""

    def __init__(self, output_file: str = "benchmark_results.json"):
        self.results: List[BenchmarkResult] = []
        self.output_file = output_file
        self._tmp = None
        self.store: FastStorageProvider = None

    async def setup(self) -> None:
        """Create a provider over a scratch directory."""
        self._tmp = tempfile.TemporaryDirectory()
        self.store = FastStorageProvider(data_dir=self._tmp.name, hot_data_threshold=10)
        await self.store.connect()

    async def teardown(self) -> None:
        if self.store:
            await self.store.close()
        if self._tmp:
            self._tmp.cleanup()

    async def _time_operation(self, operation: Callable[[], Awaitable[Any]]) -> float:
        """Time a single operation in milliseconds."""
        start = time.perf_counter()
        await operation()
        return (time.perf_counter() - start) * 1000.0

    async def _run(self, result: BenchmarkResult, count: int, operation) -> BenchmarkResult:
        start = time.perf_counter()
        for i in range(count):
            try:
                result.latencies_ms.append(await self._time_operation(lambda i=i: operation(i)))
                result.operation_count += 1
            except Exception:
                result.error_count += 1

        elapsed = time.perf_counter() - start
        result.total_time_ms = elapsed * 1000
        result.throughput_ops_sec = count / elapsed if elapsed > 0 else 0
        return result

    async def benchmark_cold_vs_cached(self, rows: int = 5_000, reads: int = 200) -> List[BenchmarkResult]:
        """Disk loads until the table turns hot, then cache hits."""
        print(f"Benchmarking cold vs cached reads ({rows} rows)...")

        await self.store.file_store.store("cold", make_rows(rows))
        threshold = self.store.hot_data_threshold

        cold = await self._run(
            BenchmarkResult(name="Cold GET (disk)"), threshold, lambda i: self.store.get("cold")
        )
        cached = await self._run(
            BenchmarkResult(name="Cached GET"), reads, lambda i: self.store.get("cold")
        )
        cached.notes["speedup_vs_cold"] = round(
            cold.avg_latency_ms / cached.avg_latency_ms, 1
        ) if cached.avg_latency_ms else None
        return [cold, cached]

    async def benchmark_write_burst(self, writes: int = 1_000, rows: int = 100) -> BenchmarkResult:
        """Many replacements of one table inside one debounce window."""
        print(f"Benchmarking write burst ({writes} puts)...")

        base = make_rows(rows)
        result = await self._run(
            BenchmarkResult(name="PUT burst (one table)"),
            writes,
            lambda i: self.store.put("burst", base + [{"id": rows + 1, "seq": i}]),
        )

        before = self.store.file_store.get_stats()["stores"]
        await self.store.flush()
        result.notes["disk_writes"] = self.store.file_store.get_stats()["stores"] - before
        return result

    async def benchmark_fan_in(self, readers: int = 500, rows: int = 5_000) -> BenchmarkResult:
        """Concurrent readers of one uncached table."""
        print(f"Benchmarking fan-in reads ({readers} concurrent readers)...")

        await self.store.file_store.store("fanin", make_rows(rows))
        loads_before = self.store.info()["disk_loads"]

        result = BenchmarkResult(name="Concurrent GET fan-in")
        start = time.perf_counter()
        await asyncio.gather(*(self.store.get("fanin") for _ in range(readers)))
        elapsed = time.perf_counter() - start

        result.operation_count = readers
        result.total_time_ms = elapsed * 1000
        result.throughput_ops_sec = readers / elapsed if elapsed > 0 else 0
        result.notes["disk_loads"] = self.store.info()["disk_loads"] - loads_before
        return result

    async def benchmark_range(self, rows: int = 20_000, queries: int = 200) -> List[BenchmarkResult]:
        """Indexed range queries vs the scan fallback."""
        print(f"Benchmarking range queries ({rows} rows)...")

        await self.store.put("ranged", make_rows(rows))
        await self.store.flush()
        await self.store.create_index("ranged", "price")

        indexed = await self._run(
            BenchmarkResult(name="RANGE via index"),
            queries,
            lambda i: self.store.query_range("ranged", "price", i % 900, i % 900 + 50),
        )

        await self.store.drop_index("ranged", "price")
        scanned = await self._run(
            BenchmarkResult(name="RANGE via scan"),
            queries,
            lambda i: self.store.query_range("ranged", "price", i % 900, i % 900 + 50),
        )
        return [indexed, scanned]

    async def run_all(self) -> None:
        """Run every benchmark."""
        print("=" * 60)
        print("TableDB Benchmark Suite")
        print("=" * 60)

        await self.setup()
        try:
            self.results.extend(await self.benchmark_cold_vs_cached())
            self.results.append(await self.benchmark_write_burst())
            self.results.append(await self.benchmark_fan_in())
            self.results.extend(await self.benchmark_range())
        finally:
            await self.teardown()

        self._print_summary()
        self._save_results()

    def _print_summary(self) -> None:
        """Print benchmark summary."""
        print()
        print("=" * 60)
        print("Benchmark Results Summary")
        print("=" * 60)
        print()

        for result in self.results:
            print(f"Test: {result.name}")
            print(f"  Operations: {result.operation_count:,}")
            print(f"  Total Time: {result.total_time_ms:.2f}ms")
            print(f"  Throughput: {result.throughput_ops_sec:,.0f} ops/sec")
            print(f"  Latency (avg): {result.avg_latency_ms:.3f}ms")
            print(f"  Latency (p95): {result.p95_latency_ms:.3f}ms")
            for key, value in result.notes.items():
                print(f"  {key}: {value}")
            if result.error_count > 0:
                print(f"  Errors: {result.error_count}")
            print()

    def _save_results(self) -> None:
        """Save results to JSON file."""
        output_data = {
            "timestamp": time.strftime("%Y-%m-%d %H:%M:%S"),
            "results": [r.to_dict() for r in self.results],
        }

        with open(self.output_file, "w") as f:
            json.dump(output_data, f, indent=2)

        print(f"Results saved to {self.output_file}")


if __name__ == "__main__":
    asyncio.run(BenchmarkSuite().run_all())
