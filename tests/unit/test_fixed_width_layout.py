"""Unit tests for the fixed-width vendor layout."""

from decimal import Decimal

import pytest

from wotc_relay.config.channels import StateChannelConfig
from wotc_relay.db.models.portal import ChannelType
from wotc_relay.formatting.fixed_width import COLUMNS, LINE_LENGTH, STATE_DEFAULTS
from wotc_relay.formatting.formatter import format_records
from wotc_relay.formatting.types import FormatOptions, LayoutKind


def column(line: str, name: str) -> str:
    offset = 0
    for col, width in COLUMNS:
        if col == name:
            return line[offset : offset + width]
        offset += width
    raise KeyError(name)


@pytest.fixture
def options(employer) -> FormatOptions:
    return FormatOptions(employer=employer)


class TestFixedWidthLayout:
    """Tests for rendering the vendor's fixed-width file."""

    def test_one_line_per_record_without_header(self, options, record_factory):
        records = [record_factory(i) for i in range(1, 4)]

        payload = format_records(ChannelType.SFTP, "AL", records, options)

        lines = payload.text.split("\n")
        assert LINE_LENGTH == 1051
        assert len(lines) == 3
        assert all(len(line) == LINE_LENGTH for line in lines)
        assert payload.layout is LayoutKind.FIXED_WIDTH
        assert payload.has_header is False

    def test_filenames_and_remote_path(self, options, record_factory):
        al = format_records(ChannelType.SFTP, "AL", [record_factory(1)], options)
        ga = format_records(ChannelType.SFTP, "GA", [record_factory(1)], options)

        assert al.filename == "ALNOVELEVENTXT.txt"
        assert al.remote_path == "AL.DIR;1/ALNOVELEVENTXT.txt"
        assert ga.filename == "GANOELEVENTXT.txt"
        assert ga.remote_path == "GA.DIR;1/GANOELEVENTXT.txt"

    def test_field_values(self, options, record_factory):
        line = format_records(ChannelType.SFTP, "AL", [record_factory(1)], options).text

        assert column(line, "consultant_id").rstrip() == "ROCKERBOX"
        assert column(line, "fein") == "123456789"
        assert column(line, "ssn").rstrip() == "123456001"
        assert column(line, "last_name").rstrip() == "Lopez1"
        assert column(line, "state") == "TX"
        assert column(line, "date_of_birth").rstrip() == "04121990"
        assert column(line, "date_started_job").rstrip() == "03042024"
        assert column(line, "wage_dollars") == "15"
        assert column(line, "wage_cents") == "50"
        assert column(line, "snap") == "Y    "
        assert column(line, "primary_recipient_name").rstrip() == "Maria Lopez1"
        assert column(line, "representative").rstrip() == "Young"
        assert column(line, "first_name").rstrip() == "Maria"

    def test_start_date_falls_back_to_hire_date(self, options, record_factory):
        record = record_factory(1, start_date=None)

        line = format_records(ChannelType.SFTP, "AL", [record], options).text

        assert column(line, "date_started_job").rstrip() == "03012024"
        assert column(line, "date_hired").rstrip() == "03012024"

    def test_default_wage_per_state(self, options, record_factory):
        """A missing wage falls back to the state default."""
        line = format_records(
            ChannelType.SFTP, "AL", [record_factory(1, hourly_wage=None)], options
        ).text

        assert STATE_DEFAULTS["AL"].default_hourly_wage == Decimal("7.25")
        assert column(line, "wage_dollars") == "7 "
        assert column(line, "wage_cents") == "25"

    def test_channel_config_overrides_defaults(self, employer, record_factory):
        options = FormatOptions(
            employer=employer,
            channel_config=StateChannelConfig(
                consultant_id="ACME", representative="JSMITH", default_hourly_wage=9.5
            ),
        )

        line = format_records(
            ChannelType.SFTP, "GA", [record_factory(1, hourly_wage=None)], options
        ).text

        assert column(line, "consultant_id").rstrip() == "ACME"
        assert column(line, "representative").rstrip() == "JSMITH"
        assert column(line, "wage_dollars") == "9 "
        assert column(line, "wage_cents") == "50"

    def test_long_values_are_truncated(self, options, record_factory):
        record = record_factory(1, city="Llanfairpwllgwyngyllgogerychwyrndrobwll")

        line = format_records(ChannelType.SFTP, "AL", [record], options).text

        assert len(line) == LINE_LENGTH
        assert column(line, "city") == "Llanfairpwllgwyngyll"

    def test_non_benefit_record_has_no_recipient(self, options, record_factory):
        line = format_records(
            ChannelType.SFTP, "CO", [record_factory(1, target_groups=("SSI",))], options
        ).text

        assert column(line, "snap") == "N    "
        assert column(line, "ssi") == "Y"
        assert column(line, "primary_recipient_name").strip() == ""
