"""Metrics collaborators evaluated on finished job output."""
from .text_metrics import (
    DEFAULT_METRICS,
    METRIC_INFO,
    MetricContext,
    MetricsCollaborator,
    TextMetrics,
)

__all__ = ["DEFAULT_METRICS", "METRIC_INFO", "MetricContext", "MetricsCollaborator", "TextMetrics"]
