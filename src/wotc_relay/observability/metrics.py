"""Prometheus metrics for wotc-relay.

This module provides Prometheus metrics for monitoring:
- Submission jobs (terminal status counts, retries, jobs in flight)
- Channel adapter calls (latency by channel and outcome)
- Credential vault (rotations, integrity failures)
- Determination capture and notification delivery
"""

from __future__ import annotations

import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

if TYPE_CHECKING:
    from collections.abc import Generator

__all__ = [
    "MetricsConfig",
    "MetricsManager",
    "SUBMISSION_JOBS_TOTAL",
    "SUBMISSION_RETRIES_TOTAL",
    "SUBMISSION_CONFLICTS_TOTAL",
    "SUBMISSIONS_IN_PROGRESS",
    "ADAPTER_CALL_DURATION",
    "CREDENTIAL_ROTATIONS_TOTAL",
    "VAULT_DECRYPT_FAILURES_TOTAL",
    "DETERMINATIONS_CAPTURED_TOTAL",
    "NOTIFICATION_FAILURES_TOTAL",
    "observe_adapter_call",
    "get_metrics",
    "create_metrics_manager",
]


@dataclass
class MetricsConfig:
    """Configuration for Prometheus metrics.

    Attributes:
        enabled: Whether metrics collection is enabled.
        prefix: Prefix for all metric names.
    """

    enabled: bool = True
    prefix: str = "wotc_relay"

    @classmethod
    def from_env(cls) -> MetricsConfig:
        """Create configuration from environment variables."""
        return cls(
            enabled=os.getenv("METRICS_ENABLED", "true").lower() == "true",
            prefix=os.getenv("METRICS_PREFIX", "wotc_relay"),
        )


# Default configuration
_config = MetricsConfig()

# ============================================================================
# Submission Metrics
# ============================================================================

SUBMISSION_JOBS_TOTAL = Counter(
    f"{_config.prefix}_submission_jobs_total",
    "Submission jobs reaching a terminal status",
    ["state_code", "status"],
)

SUBMISSION_RETRIES_TOTAL = Counter(
    f"{_config.prefix}_submission_retries_total",
    "Transient submission failures scheduled for retry",
    ["state_code"],
)

SUBMISSION_CONFLICTS_TOTAL = Counter(
    f"{_config.prefix}_submission_conflicts_total",
    "Jobs left pending because their (employer, state) pair was busy",
    ["state_code"],
)

SUBMISSIONS_IN_PROGRESS = Gauge(
    f"{_config.prefix}_submissions_in_progress",
    "Submission jobs currently processing",
)

# ============================================================================
# Channel Adapter Metrics
# ============================================================================

ADAPTER_CALL_DURATION = Histogram(
    f"{_config.prefix}_adapter_call_duration_seconds",
    "Duration of channel adapter calls",
    ["channel", "operation", "outcome"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 180.0, 300.0),
)

# ============================================================================
# Vault Metrics
# ============================================================================

CREDENTIAL_ROTATIONS_TOTAL = Counter(
    f"{_config.prefix}_credential_rotations_total",
    "Completed credential rotations",
    ["state_code", "rotation_type"],
)

VAULT_DECRYPT_FAILURES_TOTAL = Counter(
    f"{_config.prefix}_vault_decrypt_failures_total",
    "Stored secrets that failed the integrity check",
    ["state_code"],
)

# ============================================================================
# Determination and Notification Metrics
# ============================================================================

DETERMINATIONS_CAPTURED_TOTAL = Counter(
    f"{_config.prefix}_determinations_captured_total",
    "Determination records created by capture",
    ["state_code", "status"],
)

NOTIFICATION_FAILURES_TOTAL = Counter(
    f"{_config.prefix}_notification_failures_total",
    "Notification events that could not be delivered",
    ["event"],
)

# Service info
SERVICE_INFO = Info(
    f"{_config.prefix}_service",
    "Service information",
)


class MetricsManager:
    """Manages Prometheus metrics configuration and export."""

    def __init__(
        self,
        config: MetricsConfig | None = None,
        registry: CollectorRegistry | None = None,
    ) -> None:
        self.config = config or MetricsConfig()
        self.registry = registry or REGISTRY
        self._initialized = False

    def initialize(
        self,
        service_name: str = "wotc-relay",
        service_version: str = "0.1.0",
        environment: str = "development",
    ) -> None:
        """Publish service information once."""
        if self._initialized or not self.config.enabled:
            return

        SERVICE_INFO.info(
            {
                "name": service_name,
                "version": service_version,
                "environment": environment,
            }
        )

        self._initialized = True

    def get_metrics(self) -> bytes:
        """Generate metrics output in Prometheus format."""
        return generate_latest(self.registry)


# Global metrics manager
_metrics_manager: MetricsManager | None = None


def get_metrics_manager() -> MetricsManager:
    """Get the global metrics manager instance."""
    global _metrics_manager
    if _metrics_manager is None:
        _metrics_manager = MetricsManager(MetricsConfig.from_env())
    return _metrics_manager


def create_metrics_manager(
    config: MetricsConfig | None = None,
    registry: CollectorRegistry | None = None,
) -> MetricsManager:
    """Create and register a new metrics manager."""
    global _metrics_manager
    _metrics_manager = MetricsManager(config, registry)
    return _metrics_manager


def get_metrics() -> bytes:
    """Get current metrics in Prometheus format."""
    return get_metrics_manager().get_metrics()


# ============================================================================
# Convenience Functions for Recording Metrics
# ============================================================================


@contextmanager
def observe_adapter_call(channel: str, operation: str) -> Generator[dict[str, Any], None, None]:
    """Context manager for observing an adapter call.

    Args:
        channel: Channel type (browser, sftp, vendor_portal).
        operation: submit, test_credentials or capture.

    Yields:
        Context dict; set ``outcome`` before leaving the block.
    """
    context: dict[str, Any] = {"outcome": "success"}
    start_time = time.perf_counter()

    try:
        yield context
    except BaseException:
        context["outcome"] = "error"
        raise
    finally:
        ADAPTER_CALL_DURATION.labels(
            channel=channel, operation=operation, outcome=context["outcome"]
        ).observe(time.perf_counter() - start_time)


def record_job_terminal(state_code: str, status: str) -> None:
    """Count a job reaching succeeded or failed."""
    SUBMISSION_JOBS_TOTAL.labels(state_code=state_code, status=status).inc()


def record_job_retry(state_code: str) -> None:
    SUBMISSION_RETRIES_TOTAL.labels(state_code=state_code).inc()


def record_job_conflict(state_code: str) -> None:
    SUBMISSION_CONFLICTS_TOTAL.labels(state_code=state_code).inc()


def record_rotation(state_code: str, rotation_type: str) -> None:
    CREDENTIAL_ROTATIONS_TOTAL.labels(state_code=state_code, rotation_type=rotation_type).inc()


def record_decrypt_failure(state_code: str) -> None:
    VAULT_DECRYPT_FAILURES_TOTAL.labels(state_code=state_code).inc()


def record_determination(state_code: str, status: str) -> None:
    DETERMINATIONS_CAPTURED_TOTAL.labels(state_code=state_code, status=status).inc()


def record_notification_failure(event: str) -> None:
    NOTIFICATION_FAILURES_TOTAL.labels(event=event).inc()
