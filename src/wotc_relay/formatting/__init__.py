"""Record formatter: agency file layouts for certified screenings."""

from .certlink import fix_signator_rows
from .errors import RecordFormatError, UnsupportedLayoutError
from .formatter import format_records, layout_for_state, mask_ssn, preview, supported_states
from .types import (
    EmployerProfile,
    FormatOptions,
    FormattedPayload,
    LayoutKind,
    NothingToSend,
    Preview,
    SubmissionRecord,
)

__all__ = [
    "format_records",
    "preview",
    "layout_for_state",
    "supported_states",
    "mask_ssn",
    "fix_signator_rows",
    "EmployerProfile",
    "FormatOptions",
    "FormattedPayload",
    "LayoutKind",
    "NothingToSend",
    "Preview",
    "SubmissionRecord",
    "RecordFormatError",
    "UnsupportedLayoutError",
]
