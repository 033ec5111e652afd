"""Texas Workforce Commission bulk upload CSV.

Header plus at most 998 data rows. No quoting: commas inside values become
spaces and quote characters are dropped.
"""

from decimal import Decimal

from .errors import RecordFormatError
from .fields import digits_only, has_group_match, yyyymmdd
from .types import FormatOptions, SubmissionRecord

DEFAULT_CONSULTANT_EIN = "861505473"
MAX_ROWS = 998

HEADERS: tuple[str, ...] = (
    "cein", "fein", "ssn", "dob", "hireDate", "startDate", "lastName", "firstName",
    "address", "city", "state", "zip", "startingWage", "jobOnetCode", "q1_condCert",
    "q2_metConditions", "q3_uVet6", "q4_dVet", "q5_dUVet6", "q6_tanfPayments",
    "q7_u27", "qualifiedIva", "qualifiedIvaState", "qualifiedVet", "qualifiedVetState",
    "uVet4Weeks", "uVet6Months", "dVet", "dUVet6Months", "exFelon",
    "exFelonTypeFederal", "exFelonTypeState", "dcr", "dcrResidesInRRC",
    "dcrResidesInEZ", "vocRehab", "summerYouth", "snap", "snapState", "ssi",
    "ltfar", "ltfarState", "ltu", "lturState", "sourceDocs",
)  # fmt: skip


def clean_field(value: str | None) -> str:
    if not value:
        return ""
    return value.replace(",", " ").replace('"', "").replace("'", "").strip()


def format_wage(wage: Decimal | None) -> str:
    if wage is None or wage <= 0:
        return "0.00"
    return f"{wage:.2f}"


def onet_prefix(code: str | None) -> str:
    if not code or len(code) < 2:
        return ""
    prefix = code[:2]
    return prefix if prefix.isdigit() else ""


def _yn(flag: bool) -> str:
    return "Y" if flag else "N"


class TexasCsvLayout:
    """Renders the Texas bulk upload file."""

    has_header = True
    encoding = "utf-8"

    def supports(self, state_code: str) -> bool:
        return state_code == "TX"

    def filename(self, state_code: str) -> str:
        return f"{state_code}_WOTC_BULK.csv"

    def remote_path(self, state_code: str) -> str | None:
        return None

    def render(
        self, state_code: str, records: list[SubmissionRecord], options: FormatOptions
    ) -> list[str]:
        if len(records) > MAX_ROWS:
            raise RecordFormatError(
                f"Texas bulk upload is limited to {MAX_ROWS} records per file, got {len(records)}",
                state_code=state_code,
            )
        cein = (
            options.consultant_ein
            or options.channel_config.consultant_ein
            or DEFAULT_CONSULTANT_EIN
        )
        fein = clean_field(options.employer.ein).replace("-", "")

        lines = [",".join(HEADERS)]
        lines.extend(",".join(self._row(record, cein, fein)) for record in records)
        return lines

    def _row(self, record: SubmissionRecord, cein: str, fein: str) -> list[str]:
        groups = record.target_groups
        is_tanf = has_group_match(groups, "TANF")
        is_ltanf = has_group_match(groups, "LTANF", "LTFAR")
        is_snap = has_group_match(groups, "SNAP")
        is_ssi = has_group_match(groups, "SSI")
        is_vet = has_group_match(groups, "Vet", "VETERAN")
        is_felon = has_group_match(groups, "Felon", "EXFELON")
        is_disabled_vet = has_group_match(groups, "VETERAN_DISABLED", "DV")

        return [
            cein,
            fein,
            digits_only(clean_field(record.ssn)),
            yyyymmdd(record.date_of_birth),
            yyyymmdd(record.hire_date),
            yyyymmdd(record.effective_start_date),
            clean_field(record.last_name),
            clean_field(record.first_name),
            clean_field(record.address),
            clean_field(record.city),
            "TX",
            clean_field(record.zip_code).replace("-", ""),
            format_wage(record.hourly_wage),
            onet_prefix(record.occupation_code),
            "N",  # q1_condCert
            _yn(is_snap or is_ssi or is_tanf),
            "N",  # q3_uVet6
            _yn(is_disabled_vet),
            "N",  # q5_dUVet6
            _yn(is_tanf or is_ltanf),
            "N",  # q7_u27
            _yn(is_tanf),
            "TX" if is_tanf else "",
            _yn(is_vet),
            "",  # qualifiedVetState
            "N",  # uVet4Weeks
            "N",  # uVet6Months
            "N",  # dVet
            "N",  # dUVet6Months
            _yn(is_felon),
            "",  # exFelonTypeFederal
            "",  # exFelonTypeState
            "N",  # dcr
            "",  # dcrResidesInRRC
            "",  # dcrResidesInEZ
            "N",  # vocRehab
            "N",  # summerYouth
            _yn(is_snap),
            "TX" if is_snap else "",
            _yn(is_ssi),
            _yn(is_ltanf),
            "TX" if is_ltanf else "",
            "N",  # ltu
            "",  # lturState
            "N",  # sourceDocs
        ]
