"""Fixed-width vendor file layout.

Used by the states whose WOTC intake runs through the shared SFTP vendor.
One 1,051-character line per record, no header.
"""

from dataclasses import dataclass
from decimal import Decimal

from .errors import UnsupportedLayoutError
from .fields import digits_only, has_group_word, mmddyyyy, pad_field, split_wage, state_abbr
from .types import FormatOptions, SubmissionRecord


@dataclass(frozen=True)
class VendorStateDefaults:
    consultant_id: str
    representative: str
    default_hourly_wage: Decimal


STATE_DEFAULTS: dict[str, VendorStateDefaults] = {
    "AL": VendorStateDefaults("ROCKERBOX", "Young", Decimal("7.25")),
    "AR": VendorStateDefaults("ROCKERBOX", "DYOUNG", Decimal("11.00")),
    "CO": VendorStateDefaults("ROCKERBOX", "GRinehart", Decimal("15.50")),
    "GA": VendorStateDefaults("SCREEN", "PHILIPW", Decimal("11.50")),
    "ID": VendorStateDefaults("ROCKERBOX", "PCALHOUN", Decimal("11.50")),
    "OK": VendorStateDefaults("ROCKERBOX", "DYOUNG", Decimal("11.50")),
    "OR": VendorStateDefaults("ROCKERBOX", "DYOUNG", Decimal("16.00")),
    "SC": VendorStateDefaults("ROCKERBOX", "DAVIDYOUNG", Decimal("11.50")),
    "VT": VendorStateDefaults("ROCKERBOX", "DAVIDY", Decimal("14.50")),
    "WV": VendorStateDefaults("SCREENTECH", "DYOUNG", Decimal("11.50")),
}

# (column, width) in file order
COLUMNS: tuple[tuple[str, int], ...] = (
    ("consultant_id", 12),
    ("fein", 9),
    ("ssn", 19),
    ("middle_initial", 1),
    ("last_name", 19),
    ("address", 30),
    ("city", 20),
    ("state", 2),
    ("zip_code", 5),
    ("phone", 10),
    ("date_of_birth", 90),
    ("pin_or_password", 20),
    ("signature_on_file", 1),
    ("date_of_signature", 8),
    ("targeted_group", 1),
    ("date_gave_info", 8),
    ("date_offered_job", 8),
    ("date_hired", 8),
    ("date_started_job", 31),
    ("date_part2_signature", 8),
    ("wage_dollars", 2),
    ("wage_cents", 2),
    ("occupation_code", 2),
    ("is_rehire", 5),
    ("snap", 5),
    ("tanf_9_18", 1),
    ("tanf_last_18", 3),
    ("primary_recipient_name", 50),
    ("primary_recipient_state", 2),
    ("felony", 1),
    ("conviction_date", 8),
    ("release_date", 8),
    ("empowerment_zone", 1),
    ("rural_renewal", 21),
    ("ssi", 1),
    ("eligibility_line1", 80),
    ("eligibility_line2", 80),
    ("eligibility_line3", 80),
    ("eligibility_line4", 80),
    ("completed_by", 1),
    ("date_of_9061", 28),
    ("out_of_state_benefits", 2),
    ("representative", 15),
    ("version_8850", 2),
    ("version_icf", 2),
    ("is_9062", 1),
    ("q2", 1),
    ("q3", 1),
    ("q4", 1),
    ("q5", 1),
    ("q6", 1),
    ("conviction_type", 1),
    ("conviction_state", 4),
    ("category_f", 1),
    ("mail_date", 8),
    ("ltur", 2),
    ("q7", 1),
    ("ltur_state", 29),
    ("first_name", 20),
    ("veteran", 1),
    ("work_release", 1),
    ("voc_rehab", 185),
)

LINE_LENGTH = sum(width for _, width in COLUMNS)


def _yn(flag: bool) -> str:
    return "Y" if flag else "N"


class FixedWidthLayout:
    """Renders the vendor's fixed-width intake file."""

    has_header = False
    encoding = "ascii"

    def supports(self, state_code: str) -> bool:
        return state_code in STATE_DEFAULTS

    def filename(self, state_code: str) -> str:
        # The vendor spells Georgia's file differently
        if state_code == "GA":
            return "GANOELEVENTXT.txt"
        return f"{state_code}NOVELEVENTXT.txt"

    def remote_path(self, state_code: str) -> str:
        return f"{state_code}.DIR;1/{self.filename(state_code)}"

    def render(
        self, state_code: str, records: list[SubmissionRecord], options: FormatOptions
    ) -> list[str]:
        defaults = STATE_DEFAULTS.get(state_code)
        if defaults is None:
            raise UnsupportedLayoutError(state_code)
        config = options.channel_config
        consultant_id = config.consultant_id or defaults.consultant_id
        representative = config.representative or defaults.representative
        default_wage = (
            Decimal(str(config.default_hourly_wage))
            if config.default_hourly_wage
            else defaults.default_hourly_wage
        )

        return [
            self._line(
                self._fields(record, options, consultant_id, representative, default_wage)
            )
            for record in records
        ]

    def _fields(
        self,
        record: SubmissionRecord,
        options: FormatOptions,
        consultant_id: str,
        representative: str,
        default_wage: Decimal,
    ) -> dict[str, str]:
        groups = record.target_groups
        is_snap = has_group_word(groups, "SNAP")
        is_tanf = has_group_word(groups, "TANF")
        is_ltanf = has_group_word(groups, "LTANF")
        is_ssi = has_group_word(groups, "SSI")
        benefit_recipient = is_tanf or is_snap

        employee_state = state_abbr(record.state)
        started = record.effective_start_date
        gave_info = mmddyyyy(record.date_gave_info)

        wage = record.hourly_wage if record.hourly_wage and record.hourly_wage > 0 else default_wage
        dollars, cents = split_wage(wage) if wage > 0 else ("", "")

        return {
            "consultant_id": consultant_id,
            "fein": digits_only(options.employer.ein),
            "ssn": digits_only(record.ssn),
            "last_name": record.last_name,
            "address": record.address,
            "city": record.city,
            "state": employee_state,
            "zip_code": digits_only(record.zip_code)[:5],
            "date_of_birth": mmddyyyy(record.date_of_birth),
            "pin_or_password": options.pin_or_password,
            "signature_on_file": "N",
            "date_of_signature": gave_info,
            "date_gave_info": gave_info,
            "date_offered_job": mmddyyyy(record.date_offered_job or started),
            "date_hired": mmddyyyy(record.hire_date or started),
            "date_started_job": mmddyyyy(started),
            "date_part2_signature": gave_info,
            "wage_dollars": dollars,
            "wage_cents": cents,
            "occupation_code": record.occupation_code,
            "is_rehire": "N",
            "snap": _yn(is_snap),
            "tanf_9_18": _yn(is_tanf),
            "tanf_last_18": _yn(is_tanf),
            "primary_recipient_name": record.full_name if benefit_recipient else "",
            "primary_recipient_state": employee_state if benefit_recipient else "",
            "felony": "N",
            "empowerment_zone": "N",
            "rural_renewal": "N",
            "ssi": _yn(is_ssi),
            "completed_by": "C",
            "date_of_9061": gave_info,
            "representative": representative,
            "version_8850": "23",
            "version_icf": "23",
            "is_9062": "N",
            "q2": "Y",
            "q3": "N",
            "q4": "N",
            "q5": "N",
            "q6": _yn(is_ltanf),
            "category_f": "N",
            "ltur": "N",
            "q7": "N",
            "first_name": record.first_name,
            "veteran": "N",
            "work_release": "N",
            "voc_rehab": "N",
        }

    def _line(self, fields: dict[str, str]) -> str:
        return "".join(pad_field(fields.get(name, ""), width) for name, width in COLUMNS)
