from .metrics import (
    format_prometheus_metrics,
    get_metrics_summary,
    get_registry,
    init_metrics,
    shutdown_metrics,
)

__all__ = [
    "format_prometheus_metrics",
    "get_metrics_summary",
    "get_registry",
    "init_metrics",
    "shutdown_metrics",
]
