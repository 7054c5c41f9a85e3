"""
TableDB Observability & Metrics

Metrics collection and Prometheus export for the table store:
- Command-level latency tracking (GET, PUT, RANGE, INDEX)
- Real-time throughput measurement
- Cache hit/miss, promotion and eviction counts
- Flush batch and write failure counts
- Structured JSON logging
"""

import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class CommandMetrics:
    """Metrics for a specific command type."""
    name: str
    count: int = 0
    total_latency_ms: float = 0.0
    min_latency_ms: float = float('inf')
    max_latency_ms: float = 0.0
    error_count: int = 0

    @property
    def avg_latency_ms(self) -> float:
        """Average latency in milliseconds."""
        if self.count == 0:
            return 0.0
        return self.total_latency_ms / self.count

    def record(self, latency_ms: float, error: bool = False):
        """Record a command execution."""
        self.count += 1
        self.total_latency_ms += latency_ms
        self.min_latency_ms = min(self.min_latency_ms, latency_ms)
        self.max_latency_ms = max(self.max_latency_ms, latency_ms)
        if error:
            self.error_count += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON export."""
        return {
            "name": self.name,
            "count": self.count,
            "error_count": self.error_count,
            "avg_latency_ms": round(self.avg_latency_ms, 3),
            "min_latency_ms": round(self.min_latency_ms, 3) if self.min_latency_ms != float('inf') else 0,
            "max_latency_ms": round(self.max_latency_ms, 3),
        }


class MetricsCollector:
    """
    Centralized metrics collection and aggregation.

    Tracks:
    - Per-command latency
    - Throughput (ops/sec)
    - Flush outcomes per table
    """

    def __init__(self):
        self.command_metrics: Dict[str, CommandMetrics] = {}
        self.metrics_lock = threading.RLock()

        # Time window for throughput calculation (last 60 seconds)
        self.throughput_window_secs = 60
        self.operation_timestamps: deque = deque()

        self.start_time = time.time()
        self.tables_flushed = 0
        self.flush_failures = 0

    def record_command(
        self,
        command_name: str,
        latency_ms: float,
        error: bool = False
    ) -> None:
        """
        Record a command execution.

        Args:
            command_name: Command name (GET, PUT, RANGE, INDEX)
            latency_ms: Execution time in milliseconds
            error: Whether command resulted in error
        """
        with self.metrics_lock:
            if command_name not in self.command_metrics:
                self.command_metrics[command_name] = CommandMetrics(command_name)

            self.command_metrics[command_name].record(latency_ms, error)
            self.operation_timestamps.append(time.time())

            # Trim old timestamps
            current_time = time.time()
            while self.operation_timestamps and \
                  (current_time - self.operation_timestamps[0]) > self.throughput_window_secs:
                self.operation_timestamps.popleft()

    def record_flush(self, table: str, error: Optional[BaseException] = None) -> None:
        """Count one table's flush outcome."""
        with self.metrics_lock:
            if error is None:
                self.tables_flushed += 1
            else:
                self.flush_failures += 1

    def get_throughput_ops_sec(self) -> float:
        """Get current throughput in operations per second."""
        with self.metrics_lock:
            if len(self.operation_timestamps) > 1:
                time_diff = self.operation_timestamps[-1] - self.operation_timestamps[0]
                if time_diff > 0:
                    return len(self.operation_timestamps) / time_diff

        return 0.0

    def get_command_metrics(self, command: str = None) -> Dict[str, Any]:
        """
        Get metrics for a specific command or all commands.

        Args:
            command: Command name, or None for all
        """
        with self.metrics_lock:
            if command:
                if command in self.command_metrics:
                    return self.command_metrics[command].to_dict()
                return {}

            return {
                cmd: metrics.to_dict()
                for cmd, metrics in self.command_metrics.items()
            }

    def export_prometheus(self, provider: Any) -> str:
        """
        Export metrics in Prometheus format.

        Args:
            provider: Storage provider whose info() describes current state

        Returns:
            Prometheus-format metrics string
        """
        info = provider.info()
        cache = info.get("cache", {})
        queue = info.get("write_queue", {})
        throughput = self.get_throughput_ops_sec()
        uptime = time.time() - self.start_time

        def metric(name: str, kind: str, help_text: str, value: Any):
            return [
                f"# HELP tabledb_{name} {help_text}",
                f"# TYPE tabledb_{name} {kind}",
                f"tabledb_{name} {value}",
                "",
            ]

        prometheus_lines = [
            "# HELP tabledb_info General server info",
            "# TYPE tabledb_info gauge",
            f"tabledb_info{{backend=\"{info.get('backend', 'unknown')}\"}} 1",
            "",
        ]
        prometheus_lines += metric("uptime_seconds", "counter", "Server uptime in seconds", uptime)
        prometheus_lines += metric("write_version", "counter", "Process-wide write version", info.get("version", 0))
        prometheus_lines += metric("operations_per_sec", "gauge", "Current throughput", f"{throughput:.2f}")
        prometheus_lines += metric("cached_tables", "gauge", "Tables resident in the cache", cache.get("cached_tables", 0))
        prometheus_lines += metric("cache_hits_total", "counter", "Reads served from cache", cache.get("hits", 0))
        prometheus_lines += metric("cache_misses_total", "counter", "Reads that missed the cache", cache.get("misses", 0))
        prometheus_lines += metric("cache_evictions_total", "counter", "Tables evicted from cache", cache.get("evictions_total", 0))
        prometheus_lines += metric("disk_loads_total", "counter", "Table loads from disk", info.get("disk_loads", 0))
        prometheus_lines += metric("coalesced_reads_total", "counter", "Reads that joined an in-flight load", info.get("coalesced_reads", 0))
        prometheus_lines += metric("pending_writes", "gauge", "Tables waiting for a flush", queue.get("pending_tables", 0))
        prometheus_lines += metric("flushes_total", "counter", "Flush batches executed", queue.get("flushes", 0))
        prometheus_lines += metric("tables_written_total", "counter", "Table files written", queue.get("tables_written", 0))
        prometheus_lines += metric("write_failures_total", "counter", "Table writes that failed", queue.get("write_failures", 0))

        # Command-specific metrics
        with self.metrics_lock:
            for cmd_name, cmd_metrics in self.command_metrics.items():
                cmd_lower = cmd_name.lower()
                prometheus_lines += metric(f"cmd_{cmd_lower}_count", "counter", "Total executions", cmd_metrics.count)
                prometheus_lines += metric(
                    f"cmd_{cmd_lower}_latency_ms", "gauge", "Average latency",
                    f"{cmd_metrics.avg_latency_ms:.3f}",
                )

        return "\n".join(prometheus_lines)

    def export_json(self, provider: Any) -> str:
        """Export metrics as JSON."""
        metrics_dict = {
            "timestamp": datetime.now().isoformat(),
            "uptime_seconds": time.time() - self.start_time,
            "store": provider.info(),
            "throughput": {
                "ops_per_sec": self.get_throughput_ops_sec(),
                "window_secs": self.throughput_window_secs,
            },
            "flushes": {
                "tables_flushed": self.tables_flushed,
                "flush_failures": self.flush_failures,
            },
            "commands": self.get_command_metrics(),
        }

        return json.dumps(metrics_dict, indent=2, default=str)


class StructuredLogger:
    """
    Structured JSON logging for production observability.

    Logs important events in JSON format for easy parsing by log aggregation.
    """

    def __init__(self, name: str = "tabledb"):
        self.logger = logging.getLogger(name)

    def _emit(self, level: int, log_entry: Dict[str, Any]) -> None:
        log_entry["timestamp"] = datetime.now().isoformat()
        self.logger.log(level, json.dumps(log_entry, default=str))

    def log_command(
        self,
        command: str,
        table: str,
        status: str,
        latency_ms: float,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log a command execution.

        Args:
            command: Command name
            table: Table involved
            status: "success" or "error"
            latency_ms: Execution time
            details: Optional additional details
        """
        log_entry = {
            "event": "command_executed",
            "command": command,
            "table": table,
            "status": status,
            "latency_ms": round(latency_ms, 3),
        }

        if details:
            log_entry.update(details)

        self._emit(logging.INFO, log_entry)

    def log_flush(self, table: str, error: Optional[BaseException] = None) -> None:
        """Log one table's flush outcome."""
        log_entry = {
            "event": "table_flushed" if error is None else "table_flush_failed",
            "table": table,
        }
        if error is not None:
            log_entry["error"] = str(error)
            self._emit(logging.ERROR, log_entry)
        else:
            self._emit(logging.DEBUG, log_entry)

    def log_startup(self, config: Dict[str, Any]) -> None:
        """Log startup event."""
        self._emit(logging.INFO, {"event": "server_started", "config": config})

    def log_shutdown(self, reason: str, final_stats: Dict[str, Any]) -> None:
        """Log shutdown event."""
        self._emit(logging.INFO, {
            "event": "server_shutdown",
            "reason": reason,
            "final_stats": final_stats,
        })
