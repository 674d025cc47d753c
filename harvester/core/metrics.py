"""
Metrics Collection Module
-------------------------
In-process counters, gauges and duration samples for claims, swap orders,
optimizer decisions and task runs, served as JSON on /metrics.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Optional


Tags = Optional[Dict[str, str]]


@dataclass
class Histogram:
    """Bounded window of samples."""
    name: str
    tags: Dict[str, str] = field(default_factory=dict)
    samples: Deque[float] = field(default_factory=lambda: deque(maxlen=1000))

    def summary(self) -> Dict[str, float]:
        ordered = sorted(self.samples)
        if not ordered:
            return {"count": 0, "min": 0, "max": 0, "avg": 0, "p50": 0, "p95": 0}

        n = len(ordered)
        return {
            "count": n,
            "min": ordered[0],
            "max": ordered[-1],
            "avg": sum(ordered) / n,
            "p50": ordered[n // 2],
            "p95": ordered[min(n - 1, int(n * 0.95))],
        }


def metric_key(name: str, tags: Tags) -> str:
    """`name{k=v,...}` with tags sorted, or just `name`."""
    if not tags:
        return name
    return name + "{" + ",".join(f"{k}={v}" for k, v in sorted(tags.items())) + "}"


class MetricsCollector:
    """Metrics shared by all periodic tasks; every method takes the lock."""

    def __init__(self) -> None:
        self._counters: Dict[str, tuple[str, Dict[str, str], int]] = {}
        self._gauges: Dict[str, tuple[str, Dict[str, str], float]] = {}
        self._histograms: Dict[str, Histogram] = {}
        self._lock = threading.Lock()
        self.start_time = time.time()

    def increment_counter(self, name: str, amount: int = 1, tags: Tags = None) -> None:
        key = metric_key(name, tags)
        with self._lock:
            _, _, value = self._counters.get(key, (name, tags or {}, 0))
            self._counters[key] = (name, tags or {}, value + amount)

    def set_gauge(self, name: str, value: float, tags: Tags = None) -> None:
        with self._lock:
            self._gauges[metric_key(name, tags)] = (name, tags or {}, value)

    def record_histogram(self, name: str, value: float, tags: Tags = None) -> None:
        key = metric_key(name, tags)
        with self._lock:
            histogram = self._histograms.setdefault(key, Histogram(name=name, tags=tags or {}))
            histogram.samples.append(value)

    def get_counter(self, name: str, tags: Tags = None) -> int:
        with self._lock:
            entry = self._counters.get(metric_key(name, tags))
        return entry[2] if entry else 0

    def get_all_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "uptime_seconds": time.time() - self.start_time,
                "counters": {
                    key: {"name": name, "value": value, "tags": tags}
                    for key, (name, tags, value) in self._counters.items()
                },
                "gauges": {
                    key: {"name": name, "value": value, "tags": tags}
                    for key, (name, tags, value) in self._gauges.items()
                },
                "histograms": {
                    key: {"name": h.name, "stats": h.summary(), "tags": h.tags}
                    for key, h in self._histograms.items()
                },
            }


_metrics_instance: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Process-wide collector, created on first use."""
    global _metrics_instance
    if _metrics_instance is None:
        _metrics_instance = MetricsCollector()
    return _metrics_instance


def record_claim(token: str, usd_value: float) -> None:
    metrics = get_metrics_collector()
    metrics.increment_counter("claims_total", tags={"token": token})
    metrics.record_histogram("claim_value_usd", usd_value, tags={"token": token})


def record_swap_order(token: str, submitted: bool) -> None:
    outcome = "submitted" if submitted else "skipped"
    get_metrics_collector().increment_counter("swap_orders_total", tags={"token": token, "outcome": outcome})


def record_rebalance(action: str) -> None:
    get_metrics_collector().increment_counter("optimizer_decisions_total", tags={"action": action})


def record_apy_snapshot(market_apy: float, vault_apy: float) -> None:
    metrics = get_metrics_collector()
    metrics.set_gauge("apy_percent", market_apy, tags={"source": "market"})
    metrics.set_gauge("apy_percent", vault_apy, tags={"source": "vault"})


def record_idle_deposit() -> None:
    get_metrics_collector().increment_counter("idle_deposits_total")


def record_task_run(task: str, duration: float, failed: bool) -> None:
    metrics = get_metrics_collector()
    metrics.increment_counter("task_runs_total", tags={"task": task, "failed": str(failed).lower()})
    metrics.record_histogram("task_duration_seconds", duration, tags={"task": task})


def record_error(component: str, error_type: str) -> None:
    get_metrics_collector().increment_counter("errors_total", tags={"component": component, "type": error_type})
