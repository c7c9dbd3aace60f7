"""
photoauth Metrics.

Provides Prometheus-compatible metrics for monitoring authentication,
embedding and verification outcomes and latencies.
"""

import time
import logging
from typing import Optional, Dict, Any
from contextlib import contextmanager
import threading

logger = logging.getLogger(__name__)

# Try to import prometheus_client, but don't fail if not installed
try:
    from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest

    PROMETHEUS_AVAILABLE = True
except ImportError:
    PROMETHEUS_AVAILABLE = False


class PhotoAuthMetrics:
    """
    Metrics collector for photoauth operations.

    Provides both Prometheus-compatible metrics (if prometheus_client
    is installed) and a simple in-memory metrics store.

    Example:
        >>> metrics = PhotoAuthMetrics()
        >>> metrics.record_authentication(success=True)
        >>> metrics.record_verification('tampered')
        >>> with metrics.timer('verify'):
        ...     outcome = verifier.verify(data)
        >>> print(metrics.get_stats())
    """

    def __init__(
        self,
        namespace: str = "photoauth",
        enable_prometheus: bool = True,
        registry: Optional[Any] = None,
    ):
        """
        Initialize metrics collector.

        Args:
            namespace: Metric name prefix.
            enable_prometheus: Whether to register Prometheus metrics.
            registry: Optional Prometheus registry (a private one is created if None).
        """
        self._namespace = namespace
        self._lock = threading.Lock()

        self._counters: Dict[str, float] = {}
        self._histograms: Dict[str, list] = {}

        self._prom_metrics = {}
        self._registry = None
        if PROMETHEUS_AVAILABLE and enable_prometheus:
            self._setup_prometheus_metrics(registry)

    def _setup_prometheus_metrics(self, registry: Optional[Any] = None):
        """Setup Prometheus metrics."""
        reg = registry or CollectorRegistry()
        self._registry = reg

        self._prom_metrics["authentications_total"] = Counter(
            f"{self._namespace}_authentications_total",
            "Total number of authentication attempts",
            ["status"],
            registry=reg,
        )

        self._prom_metrics["embeddings_total"] = Counter(
            f"{self._namespace}_embeddings_total",
            "Total number of metadata embedding attempts",
            ["status"],
            registry=reg,
        )

        self._prom_metrics["verifications_total"] = Counter(
            f"{self._namespace}_verifications_total",
            "Total number of verifications by outcome",
            ["outcome"],
            registry=reg,
        )

        self._prom_metrics["duration"] = Histogram(
            f"{self._namespace}_operation_duration_seconds",
            "Operation latency in seconds",
            ["operation"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
            registry=reg,
        )

    def _inc(self, key: str) -> None:
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + 1

    def record_authentication(self, success: bool) -> None:
        """Record an authentication (signing) attempt."""
        status = "success" if success else "failure"
        self._inc(f"authentications_{status}")
        if "authentications_total" in self._prom_metrics:
            self._prom_metrics["authentications_total"].labels(status=status).inc()

    def record_embedding(self, success: bool) -> None:
        """Record a metadata embedding attempt."""
        status = "success" if success else "failure"
        self._inc(f"embeddings_{status}")
        if "embeddings_total" in self._prom_metrics:
            self._prom_metrics["embeddings_total"].labels(status=status).inc()

    def record_verification(self, outcome: str) -> None:
        """Record a verification outcome (no_record/tampered/invalid_signature/valid)."""
        self._inc(f"verifications_{outcome}")
        if "verifications_total" in self._prom_metrics:
            self._prom_metrics["verifications_total"].labels(outcome=outcome).inc()

    def record_duration(self, operation: str, duration_seconds: float) -> None:
        """Record operation latency."""
        with self._lock:
            self._histograms.setdefault(f"{operation}_durations", []).append(duration_seconds)

        if "duration" in self._prom_metrics:
            self._prom_metrics["duration"].labels(operation=operation).observe(duration_seconds)

    @contextmanager
    def timer(self, operation: str):
        """Context manager for timing an operation."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_duration(operation, time.perf_counter() - start)

    def get_stats(self) -> Dict[str, Any]:
        """Get current metrics as a dictionary."""
        with self._lock:
            stats = dict(self._counters)

            for name, values in self._histograms.items():
                if values:
                    stats[f"{name}_avg"] = sum(values) / len(values)
                    stats[f"{name}_count"] = len(values)
                    stats[f"{name}_p99"] = (
                        sorted(values)[int(len(values) * 0.99)]
                        if len(values) > 100
                        else max(values)
                    )

            return stats

    def get_prometheus_metrics(self) -> Optional[bytes]:
        """Get metrics in Prometheus text format."""
        if self._registry is not None:
            return generate_latest(self._registry)
        return None


# Global metrics instance
_global_metrics: Optional[PhotoAuthMetrics] = None


def get_metrics() -> PhotoAuthMetrics:
    """Get or create the global metrics instance."""
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = PhotoAuthMetrics()
    return _global_metrics
