import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.utils.logging import get_logger

logger = get_logger(__name__)

MAX_HISTORY = 1000


class MetricsCollector:
    """Simple in-memory metrics collector."""

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self):
        """Drop everything collected so far."""
        with self._lock:
            self.metrics = {
                "latency": [],
                "cache_hits": 0,
                "cache_misses": 0,
                "errors": {},
                "categories": {},
                "context_decisions": {"used": 0, "skipped": 0},
            }

    def record_latency(
        self, operation: str, duration: float, metadata: Optional[Dict] = None
    ):
        """Record operation latency."""
        with self._lock:
            self.metrics["latency"].append(
                {
                    "operation": operation,
                    "duration": duration,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "metadata": metadata or {},
                }
            )

            # Keep only last entries to prevent memory issues
            if len(self.metrics["latency"]) > MAX_HISTORY:
                self.metrics["latency"] = self.metrics["latency"][-MAX_HISTORY:]

    def increment_cache_hit(self):
        """Increment cache hit counter."""
        with self._lock:
            self.metrics["cache_hits"] += 1

    def increment_cache_miss(self):
        """Increment cache miss counter."""
        with self._lock:
            self.metrics["cache_misses"] += 1

    def record_error(self, error_type: str, details: Optional[str] = None):
        """Record error occurrence."""
        with self._lock:
            errors = self.metrics["errors"]
            errors[error_type] = errors.get(error_type, 0) + 1

        logger.error(
            "Error recorded",
            extra_fields={"error_type": error_type, "details": details},
        )

    def record_category(self, category: str):
        """Record query category occurrence."""
        with self._lock:
            categories = self.metrics["categories"]
            categories[category] = categories.get(category, 0) + 1

    def record_context_decision(self, requires_context: bool):
        with self._lock:
            key = "used" if requires_context else "skipped"
            self.metrics["context_decisions"][key] += 1

    def get_analysis_summary(self) -> Dict[str, Any]:
        """Average analysis time, context usage rate and query count."""
        with self._lock:
            durations = [
                entry["duration"]
                for entry in self.metrics["latency"]
                if entry["operation"] == "query_analysis"
            ]
            decisions = dict(self.metrics["context_decisions"])

        total = decisions["used"] + decisions["skipped"]
        return {
            "average_analysis_time_ms": (sum(durations) / len(durations) * 1000) if durations else 0.0,
            "context_usage_rate": decisions["used"] / total if total > 0 else 0.0,
            "total_queries": total,
        }

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get summary of collected metrics."""
        with self._lock:
            durations = sorted(entry["duration"] for entry in self.metrics["latency"])
            hits = self.metrics["cache_hits"]
            misses = self.metrics["cache_misses"]
            errors = dict(self.metrics["errors"])
            categories = dict(self.metrics["categories"])

        if durations:
            p50 = durations[len(durations) // 2]
            p95 = durations[min(int(len(durations) * 0.95), len(durations) - 1)]
            avg = sum(durations) / len(durations)
        else:
            p50 = p95 = avg = 0

        total_cache = hits + misses
        cache_hit_rate = hits / total_cache if total_cache > 0 else 0

        return {
            "latency": {"p50": p50, "p95": p95, "avg": avg, "count": len(durations)},
            "cache": {
                "hits": hits,
                "misses": misses,
                "hit_rate": cache_hit_rate,
            },
            "errors": errors,
            "categories": categories,
            "analysis": self.get_analysis_summary(),
        }


# Global metrics collector
metrics = MetricsCollector()


@contextmanager
def track_latency(operation: str, metadata: Optional[Dict] = None):
    """Context manager to track operation latency."""
    start_time = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start_time
        metrics.record_latency(operation, duration, metadata)
        logger.debug(
            "Operation completed",
            extra_fields={
                "operation": operation,
                "duration_ms": duration * 1000,
                "metadata": metadata or {},
            },
        )


def track_metric(metric_name: str, value: Any, metadata: Optional[Dict] = None):
    """Track a custom metric."""
    logger.info(
        "Metric tracked",
        extra_fields={
            "metric": metric_name,
            "value": value,
            "metadata": metadata or {},
        },
    )


def track_event(event_name: str, metadata: Optional[Dict] = None):
    """Track a custom event."""
    logger.info(
        "Event tracked", extra_fields={"event": event_name, "metadata": metadata or {}}
    )
