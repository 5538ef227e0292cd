"""
Metrics collection and emission for observability.

This module provides metrics tracking for:
- Build event processing time
- Number of release PRs created and failed
- API call latency per external service
"""

import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from contextlib import contextmanager

from release_flow.utils.logging import get_logger

logger = get_logger(__name__)


class MetricsCollector:
    """
    Collects metrics while one build event is processed.

    Tracks:
    - Processing start/end time
    - Release PRs created and failed
    - API call counts and latency
    - Final status and error
    """

    def __init__(self, build_id: str, trigger_id: Optional[str] = None):
        self.build_id = build_id
        self.trigger_id = trigger_id

        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self.duration_ms: Optional[int] = None

        self.prs_created: int = 0
        self.prs_failed: int = 0

        self.api_calls: Dict[str, int] = {}
        self.api_latencies: Dict[str, list[float]] = {}

        self.status: str = "running"
        self.error_message: Optional[str] = None

    def start(self) -> None:
        """Mark processing start."""
        self.start_time = datetime.now(timezone.utc)
        self.status = "running"

    def complete(self, status: str = "completed", error_message: Optional[str] = None) -> None:
        """
        Mark processing completion and log the collected metrics.

        Args:
            status: Final status ('completed', 'ignored', 'failed')
            error_message: Error message if failed
        """
        self.end_time = datetime.now(timezone.utc)
        self.status = status
        self.error_message = error_message

        if self.start_time:
            duration = (self.end_time - self.start_time).total_seconds()
            self.duration_ms = int(duration * 1000)

        logger.info(
            f"Build {self.build_id} processing {self.status}",
            extra=self.get_metrics_summary(),
        )

    def record_pull_request(self, success: bool) -> None:
        if success:
            self.prs_created += 1
        else:
            self.prs_failed += 1

    def record_api_call(self, service: str, duration_ms: float) -> None:
        """
        Record API call and latency.

        Args:
            service: Service name (e.g., 'github', 'slack')
            duration_ms: Call duration in milliseconds
        """
        self.api_calls[service] = self.api_calls.get(service, 0) + 1
        self.api_latencies.setdefault(service, []).append(duration_ms)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """
        Get summary of collected metrics.

        Returns:
            Dictionary of metrics
        """
        summary = {
            "build_id": self.build_id,
            "trigger_id": self.trigger_id,
            "status": self.status,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "prs_created": self.prs_created,
            "prs_failed": self.prs_failed,
            "api_calls": self.api_calls,
        }

        if self.api_latencies:
            latency_stats = {}
            for service, latencies in self.api_latencies.items():
                if latencies:
                    latency_stats[service] = {
                        "count": len(latencies),
                        "min_ms": round(min(latencies), 2),
                        "max_ms": round(max(latencies), 2),
                        "avg_ms": round(sum(latencies) / len(latencies), 2),
                    }
            summary["api_latencies"] = latency_stats

        if self.error_message:
            summary["error_message"] = self.error_message

        return summary


@contextmanager
def track_api_call(metrics_collector: Optional[MetricsCollector], service: str):
    """
    Context manager to record API call latency on a collector.

    Per-request logging is done by the clients themselves.

    Usage:
        with track_api_call(metrics, "github"):
            url = git_client.create_release_pr(release)
    """
    start_time = time.time()
    try:
        yield
    finally:
        if metrics_collector:
            metrics_collector.record_api_call(service, (time.time() - start_time) * 1000)


def emit_metric(metric_name: str, value: float, **tags: Any) -> None:
    """
    Emit a metric as a structured log line.

    Args:
        metric_name: Metric name
        value: Metric value
        **tags: Metric tags/labels
    """
    logger.info(
        f"Metric: {metric_name}",
        extra={
            "metric_name": metric_name,
            "metric_value": value,
            "metric_tags": tags,
        }
    )
