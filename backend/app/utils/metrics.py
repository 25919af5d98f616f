"""Prometheus metrics for collaboration operations."""

from prometheus_client import Counter

events_appended_total = Counter(
    "collab_events_appended_total",
    "Total events appended to the event log",
    ["type"],
)

fanout_failures_total = Counter(
    "collab_fanout_failures_total",
    "Total best-effort event deliveries that failed",
    ["type"],
)

sessions_created_total = Counter(
    "collab_sessions_created_total",
    "Total collaboration sessions created",
    ["type"],
)

sessions_ended_total = Counter(
    "collab_sessions_ended_total",
    "Total collaboration sessions ended",
)

presence_swept_total = Counter(
    "collab_presence_swept_total",
    "Total presence records forced offline by the staleness sweep",
)

versions_created_total = Counter(
    "collab_versions_created_total",
    "Total document versions written",
    ["change_type"],
)


class PrometheusCollaborationMetrics:
    """Prometheus-based collaboration metrics implementation."""

    def inc_event(self, event_type: str) -> None:
        """Increment appended events counter."""
        events_appended_total.labels(type=event_type).inc()

    def inc_fanout_failure(self, event_type: str) -> None:
        """Increment fan-out failure counter."""
        fanout_failures_total.labels(type=event_type).inc()

    def inc_session_created(self, session_type: str) -> None:
        """Increment created sessions counter."""
        sessions_created_total.labels(type=session_type).inc()

    def inc_session_ended(self) -> None:
        """Increment ended sessions counter."""
        sessions_ended_total.inc()

    def inc_presence_swept(self, count: int) -> None:
        """Add swept presence records."""
        if count:
            presence_swept_total.inc(count)

    def inc_version(self, change_type: str) -> None:
        """Increment written versions counter."""
        versions_created_total.labels(change_type=change_type).inc()
