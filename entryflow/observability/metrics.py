"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from entryflow.constants import (
    METRIC_ENTRIES_CREATED,
    METRIC_ENTRIES_FINISHED,
    METRIC_ENTRIES_RESUMED,
    METRIC_LEASE_ACQUIRED,
    METRIC_LEASE_CONTENTION,
    METRIC_LEASE_LOST,
    METRIC_STAGE_DURATION,
    METRIC_STAGE_TRANSITIONS,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for entry processing.

    Collects metrics for:
    - Entry creation and terminal outcomes
    - Lease acquisition, contention and loss
    - Stage transitions and stage execution duration
    - Entries re-dispatched by the sweeper
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.entries_created = Counter(
            METRIC_ENTRIES_CREATED,
            "Total number of entries created",
            registry=self._registry,
        )

        self.entries_finished = Counter(
            METRIC_ENTRIES_FINISHED,
            "Total number of entries that reached a terminal status",
            ["status"],
            registry=self._registry,
        )

        self.lease_acquired = Counter(
            METRIC_LEASE_ACQUIRED,
            "Total number of entry leases acquired",
            ["worker_id"],
            registry=self._registry,
        )

        self.lease_contention = Counter(
            METRIC_LEASE_CONTENTION,
            "Total number of stage claims that found a live lease",
            ["stage"],
            registry=self._registry,
        )

        self.lease_lost = Counter(
            METRIC_LEASE_LOST,
            "Total number of stage writes rejected because the lease was lost",
            ["stage"],
            registry=self._registry,
        )

        self.stage_transitions = Counter(
            METRIC_STAGE_TRANSITIONS,
            "Total number of persisted stage transitions",
            ["status"],
            registry=self._registry,
        )

        self.stage_duration = Histogram(
            METRIC_STAGE_DURATION,
            "Stage execution duration in seconds",
            ["stage"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.entries_resumed = Counter(
            METRIC_ENTRIES_RESUMED,
            "Total number of entries re-dispatched by the sweeper",
            registry=self._registry,
        )

    def record_entry_created(self) -> None:
        """Record an entry creation."""
        self.entries_created.inc()

    def record_entry_finished(self, status: str) -> None:
        """Record an entry reaching COMPLETED or FAILED."""
        self.entries_finished.labels(status=status).inc()

    def record_lease_acquired(self, worker_id: str) -> None:
        """Record lease acquisition."""
        self.lease_acquired.labels(worker_id=worker_id).inc()

    def record_lease_contention(self, stage: str) -> None:
        """Record a claim that lost to a live lease."""
        self.lease_contention.labels(stage=stage).inc()

    def record_lease_lost(self, stage: str) -> None:
        """Record a stage write that matched no row."""
        self.lease_lost.labels(stage=stage).inc()

    def record_stage_transition(self, status: str, duration_seconds: float) -> None:
        """Record a persisted stage transition and how long its work took."""
        self.stage_transitions.labels(status=status).inc()
        self.stage_duration.labels(stage=status).observe(duration_seconds)

    def record_entries_resumed(self, count: int) -> None:
        """Record entries re-dispatched by the sweeper."""
        self.entries_resumed.inc(count)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
