"""Record formatter: renders certified records into an agency's file layout.

The layout is chosen from the state code alone, via a lookup table built
from the registered layouts. Formatting is pure: identical inputs produce
byte-identical output.
"""

from typing import Protocol

import structlog

from wotc_relay.db.models.portal import ChannelType

from .certlink import CERTLINK_STATES, CertLinkCsvLayout
from .errors import UnsupportedLayoutError
from .fields import digits_only
from .fixed_width import STATE_DEFAULTS, FixedWidthLayout
from .texas import TexasCsvLayout
from .types import (
    FormatOptions,
    FormattedPayload,
    LayoutKind,
    NothingToSend,
    Preview,
    SubmissionRecord,
)

logger = structlog.get_logger()

PREVIEW_LINES = 5


class Layout(Protocol):
    """An agency file layout."""

    has_header: bool
    encoding: str

    def supports(self, state_code: str) -> bool: ...

    def filename(self, state_code: str) -> str: ...

    def remote_path(self, state_code: str) -> str | None: ...

    def render(
        self, state_code: str, records: list[SubmissionRecord], options: FormatOptions
    ) -> list[str]: ...


LAYOUTS: dict[LayoutKind, Layout] = {
    LayoutKind.FIXED_WIDTH: FixedWidthLayout(),
    LayoutKind.TEXAS_CSV: TexasCsvLayout(),
    LayoutKind.CERTLINK_CSV: CertLinkCsvLayout(),
}


def layout_for_state(state_code: str) -> LayoutKind:
    """Look up the layout registered for a state.

    Raises:
        UnsupportedLayoutError: If no layout supports the state
    """
    code = state_code.upper()
    for kind, layout in LAYOUTS.items():
        if layout.supports(code):
            return kind
    raise UnsupportedLayoutError(code)


def supported_states() -> dict[str, LayoutKind]:
    """Every state with a registered layout."""
    states = {code: LayoutKind.FIXED_WIDTH for code in STATE_DEFAULTS}
    states["TX"] = LayoutKind.TEXAS_CSV
    states.update({code: LayoutKind.CERTLINK_CSV for code in CERTLINK_STATES})
    return dict(sorted(states.items()))


def format_records(
    channel: ChannelType,
    state_code: str,
    records: list[SubmissionRecord],
    options: FormatOptions,
) -> FormattedPayload | NothingToSend:
    """Render records for transmission to a state.

    Args:
        channel: Channel that will carry the file (for logging)
        state_code: Target state
        records: Certified records, in submission order
        options: Employer and per-state settings

    Returns:
        The rendered payload, or NothingToSend for an empty batch

    Raises:
        UnsupportedLayoutError: No layout for the state
        RecordFormatError: Records violate the layout's limits
    """
    code = state_code.upper()
    kind = layout_for_state(code)
    if not records:
        return NothingToSend(state_code=code)

    layout = LAYOUTS[kind]
    lines = layout.render(code, list(records), options)
    payload = FormattedPayload(
        content="\n".join(lines).encode(layout.encoding),
        filename=layout.filename(code),
        record_count=len(records),
        layout=kind,
        state_code=code,
        remote_path=layout.remote_path(code),
        has_header=layout.has_header,
        encoding=layout.encoding,
    )
    logger.debug(
        "records_formatted",
        state_code=code,
        channel=channel.value,
        layout=kind.value,
        record_count=payload.record_count,
    )
    return payload


def mask_ssn(ssn: str) -> str:
    digits = digits_only(ssn)
    return f"***-**-{digits[-4:]}" if len(digits) >= 4 else "***-**-****"


def preview(
    channel: ChannelType,
    state_code: str,
    records: list[SubmissionRecord],
    options: FormatOptions,
) -> Preview:
    """First rendered lines of the file with SSNs masked."""
    code = state_code.upper()
    result = format_records(channel, code, records, options)
    if isinstance(result, NothingToSend):
        layout = LAYOUTS[layout_for_state(code)]
        return Preview(
            lines=[],
            record_count=0,
            filename=layout.filename(code),
            remote_path=layout.remote_path(code),
        )

    lines = result.text.split("\n")[:PREVIEW_LINES]
    fixed_width = result.layout is LayoutKind.FIXED_WIDTH
    for record in records:
        digits = digits_only(record.ssn)
        if not digits:
            continue
        masked = mask_ssn(record.ssn)
        # Keep fixed-width columns aligned: a 9-digit SSN sits in a 19-wide field
        needle = digits + " " * (len(masked) - len(digits)) if fixed_width else digits
        lines = [line.replace(needle, masked) for line in lines]

    return Preview(
        lines=lines,
        record_count=result.record_count,
        filename=result.filename,
        remote_path=result.remote_path,
    )
