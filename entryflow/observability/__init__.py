"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from entryflow.observability.logging import (
    bind_context,
    setup_logging,
    unbind_context,
)
from entryflow.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from entryflow.observability.tracing import get_tracer, setup_tracing

__all__ = [
    "setup_logging",
    "bind_context",
    "unbind_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
]
