"""Repositories for wotc-relay persistence."""

from .base import BaseRepository
from .determination import DeterminationRepository
from .portal import PortalRepository, RotationHistoryRepository
from .submission import SubmissionJobRepository

__all__ = [
    "BaseRepository",
    "DeterminationRepository",
    "PortalRepository",
    "RotationHistoryRepository",
    "SubmissionJobRepository",
]
