"""Submission job orchestration."""

from .batching import plan_batches
from .locks import JobLockRegistry, PairLease, PairLockManager, RedisJobLock
from .orchestrator import SubmissionOrchestrator
from .types import (
    VAULT_ERROR_KIND,
    ConcurrencyConflictError,
    DispatchReport,
    JobNotFoundError,
    JobNotRetryableError,
    PlannedBatch,
)

__all__ = [
    "VAULT_ERROR_KIND",
    "ConcurrencyConflictError",
    "DispatchReport",
    "JobLockRegistry",
    "JobNotFoundError",
    "JobNotRetryableError",
    "PairLease",
    "PairLockManager",
    "PlannedBatch",
    "RedisJobLock",
    "SubmissionOrchestrator",
    "plan_batches",
]
