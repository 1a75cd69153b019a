"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from cmdqueue.observability.logging import get_logger, job_log_context, setup_logging
from cmdqueue.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from cmdqueue.observability.tracing import get_tracer, job_span, setup_tracing

__all__ = [
    "setup_logging",
    "get_logger",
    "job_log_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
    "job_span",
]
