"""Application metrics for observability.

Prometheus-compatible metrics for:
- HTTP request counts and latencies
- Tool call and resource read outcomes and latencies
- Registry size (services and exposed tools)
"""

from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


@dataclass
class Histogram:
    """Cumulative-bucket histogram for latency tracking."""

    buckets: tuple[float, ...] = DEFAULT_BUCKETS
    counts: dict[float, int] = field(default_factory=lambda: defaultdict(int))
    sum: float = 0.0
    count: int = 0

    def observe(self, value: float) -> None:
        self.sum += value
        self.count += 1
        for bound in self.buckets:
            if value <= bound:
                self.counts[bound] += 1

    def to_prometheus(self, name: str, labels: str = "") -> str:
        """Render ``_bucket``, ``_sum`` and ``_count`` series."""
        extra = f",{labels}" if labels else ""
        lines = [f'{name}_bucket{{le="{bound}"{extra}}} {self.counts[bound]}' for bound in self.buckets]
        lines.append(f'{name}_bucket{{le="+Inf"{extra}}} {self.count}')
        suffix = f"{{{labels}}}" if labels else ""
        lines.append(f"{name}_sum{suffix} {self.sum}")
        lines.append(f"{name}_count{suffix} {self.count}")
        return "\n".join(lines)


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


class MetricsRegistry:
    """Thread-safe store of counters, gauges and histograms keyed by label set."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._gauges: dict[str, dict[str, float]] = defaultdict(dict)
        self._histograms: dict[str, dict[str, Histogram]] = defaultdict(dict)

    @staticmethod
    def _key(labels: dict[str, str] | None) -> str:
        if not labels:
            return ""
        return ",".join(f'{k}="{_escape(str(v))}"' for k, v in sorted(labels.items()))

    def inc_counter(self, name: str, labels: dict[str, str] | None = None, value: int = 1) -> None:
        key = self._key(labels)
        with self._lock:
            self._counters[name][key] += value

    def set_gauge(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._gauges[name][key] = value

    def observe_histogram(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._histograms[name].setdefault(key, Histogram()).observe(value)

    def counter_value(self, name: str, labels: dict[str, str] | None = None) -> int:
        """Current value of a counter series (0 if never incremented)."""
        with self._lock:
            return self._counters.get(name, {}).get(self._key(labels), 0)

    def reset(self) -> None:
        """Drop every series."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()

    def to_prometheus(self) -> str:
        """Render the Prometheus text exposition format."""
        lines: list[str] = []
        with self._lock:
            for kind, series in (("counter", self._counters), ("gauge", self._gauges)):
                for name, values in series.items():
                    lines.append(f"# TYPE {name} {kind}")
                    for key, value in values.items():
                        lines.append(f"{name}{{{key}}} {value}" if key else f"{name} {value}")
                    lines.append("")
            for name, histograms in self._histograms.items():
                lines.append(f"# TYPE {name} histogram")
                lines.extend(h.to_prometheus(name, key) for key, h in histograms.items())
                lines.append("")
        return "\n".join(lines)

    def get_stats(self) -> dict[str, Any]:
        """Snapshot as plain dicts (for the JSON endpoint)."""
        with self._lock:
            return {
                "counters": {name: dict(values) for name, values in self._counters.items()},
                "gauges": {name: dict(values) for name, values in self._gauges.items()},
                "histograms": {
                    name: {key: {"count": h.count, "sum": h.sum} for key, h in histograms.items()}
                    for name, histograms in self._histograms.items()
                },
            }


# Global metrics registry
metrics = MetricsRegistry()


def record_request(method: str, path: str, status_code: int, duration: float) -> None:
    """Record an HTTP request."""
    labels = {"method": method, "path": path, "status": str(status_code)}
    metrics.inc_counter("toolproxy_http_requests_total", labels)
    metrics.observe_histogram("toolproxy_http_request_duration_seconds", duration, labels)


def record_tool_call(tool_name: str, outcome: str, duration: float) -> None:
    """Record a dispatched tool call and how it ended."""
    metrics.inc_counter("toolproxy_tool_calls_total", {"tool": tool_name, "outcome": outcome})
    metrics.observe_histogram("toolproxy_tool_call_duration_seconds", duration, {"tool": tool_name})


def record_resource_read(resource: str, outcome: str, duration: float) -> None:
    """Record a resource read and how it ended."""
    metrics.inc_counter("toolproxy_resource_reads_total", {"resource": resource, "outcome": outcome})
    metrics.observe_histogram("toolproxy_resource_read_duration_seconds", duration, {"resource": resource})


def record_rpc(method: str, outcome: str) -> None:
    """Record a JSON-RPC message handled by the protocol adapter."""
    metrics.inc_counter("toolproxy_rpc_messages_total", {"method": method, "outcome": outcome})


def record_registry_size(services: int, tools: int) -> None:
    """Publish the current number of services and exposed tools."""
    metrics.set_gauge("toolproxy_registered_services", services)
    metrics.set_gauge("toolproxy_registered_tools", tools)
