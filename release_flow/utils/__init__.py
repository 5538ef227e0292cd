"""
Utility modules for the release flow service.
"""

from release_flow.utils.logging import (
    get_logger,
    setup_logging,
    log_build_event,
    log_release_outcome,
    log_api_call,
    log_error_with_context,
)
from release_flow.utils.metrics import (
    MetricsCollector,
    track_api_call,
    emit_metric,
)
from release_flow.utils.resilience import (
    TransientError,
    retry_with_backoff,
    handle_partial_failure,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "log_build_event",
    "log_release_outcome",
    "log_api_call",
    "log_error_with_context",
    "MetricsCollector",
    "track_api_call",
    "emit_metric",
    "TransientError",
    "retry_with_backoff",
    "handle_partial_failure",
]
