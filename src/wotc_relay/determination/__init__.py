"""Agency determination capture."""

from .capture import CaptureSummary, DeterminationCapture, normalize_status

__all__ = ["CaptureSummary", "DeterminationCapture", "normalize_status"]
