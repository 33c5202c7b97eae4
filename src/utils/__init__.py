from .logging import configure_logging, get_logger, set_analysis_debug
from .observability import metrics, track_event, track_latency, track_metric

__all__ = [
    "get_logger",
    "configure_logging",
    "set_analysis_debug",
    "metrics",
    "track_latency",
    "track_metric",
    "track_event",
]
