"""CertLink batch upload CSV (FormVersion 9).

Shared by the state portals hosted on the CertLink vendor platform. Values
are quoted only when they contain a comma, quote or newline.
"""

import csv
import io
from dataclasses import dataclass

from .errors import UnsupportedLayoutError
from .fields import age_on, digits_only, mmddyyyy, state_abbr
from .types import FormatOptions, SubmissionRecord

FORM_VERSION = "9"
SIGNATOR_COLUMN = "ICF_SignatorName"


@dataclass(frozen=True)
class SignatorConfig:
    candidates: tuple[str, ...]
    default: str


CERTLINK_STATES: dict[str, SignatorConfig] = {
    "AZ": SignatorConfig(("David Young", "Philip Wentworth, CEO"), "David Young"),
    "IL": SignatorConfig(("Garrett Rinehart", "Philip Wentworth, CEO"), "Garrett Rinehart"),
    "KS": SignatorConfig(("David Young", "Philip Wentworth"), "David Young"),
    "ME": SignatorConfig(("Philip Wentworth", "David Young"), "Philip Wentworth"),
}

PORTAL_URLS: dict[str, str] = {
    "AZ": "https://wotc.azdes.gov/Account/Login",
    "IL": "https://illinoiswotc.com/",
    "KS": "https://kansaswotc.com/",
    "ME": "https://wotc.maine.gov/Account/Login",
}

HEADERS: tuple[str, ...] = (
    "General_FormVersionID",
    "General_YourSystemsRecordIdentifier",
    "Form8850_ApplicantFirstName",
    "Form8850_ApplicantMiddleName",
    "Form8850_ApplicantLastName",
    "Form8850_ApplicantSuffix",
    "Form8850_ApplicantSSN",
    "Form8850_ApplicantAddressLine1",
    "Form8850_ApplicantCity",
    "Form8850_ApplicantStateCd",
    "Form8850_ApplicantZipCode",
    "Form8850_ApplicantCounty",
    "Form8850_ApplicantPhone",
    "Form8850_ApplicantDOB",
    "Form8850_Checkbox1",
    "Form8850_Checkbox2",
    "Form8850_Checkbox3",
    "Form8850_Checkbox4",
    "Form8850_Checkbox5",
    "Form8850_Checkbox6",
    "Form8850_Checkbox7",
    "Form8850_EmployeeSignatureDate",
    "Form8850_EmployerName",
    "Form8850_EmployerPhone",
    "Form8850_EmployerFEIN",
    "Form8850_EmployerAddressLine1",
    "Form8850_EmployerCity",
    "Form8850_EmployerStateCd",
    "Form8850_EmployerZipcode",
    "Form8850_ContactFirstName",
    "Form8850_ContactLastName",
    "Form8850_ContactPhone",
    "Form8850_ContactAddressLine1",
    "Form8850_ContactCity",
    "Form8850_ContactStateCd",
    "Form8850_ContactZipcode",
    "Form8850_GroupNumber",
    "Form8850_GaveInformationDate",
    "Form8850_OfferedJobDate",
    "Form8850_EmployeeDateHired",
    "Form8850_EmployeeStartDate",
    "ICF_Rehire",
    "ICF_StartingWage",
    "ICF_OccupationID",
    "ICF_IVA",
    "ICF_IVAName",
    "ICF_IVACity",
    "ICF_IVAStateCd",
    "ICF_IVAAdditionalCity",
    "ICF_IVAAdditionalStateCd",
    "ICF_Veteran",
    "ICF_VeteranSNAPName",
    "ICF_VeteranSNAPCity",
    "ICF_VeteranSNAPStateCd",
    "ICF_VeteranSNAPAdditionalCity",
    "ICF_VeteranSNAPAdditionalStateCd",
    "ICF_Felon",
    "ICF_Felon_WorkRelease",
    "ICF_FelonDateConviction",
    "ICF_FelonDateRelease",
    "ICF_FelonType",
    "ICF_FelonStateCd",
    "ICF_DCR_RRC",
    "ICF_DCR_EZ",
    "ICF_VR",
    "ICF_SummerYouth",
    "ICF_SNAP",
    "ICF_SNAPName",
    "ICF_SNAPCity",
    "ICF_SNAPStateCd",
    "ICF_SNAPAdditionalCity",
    "ICF_SNAPAdditionalStateCd",
    "ICF_SSI",
    "ICF_TANF",
    "ICF_TANFName",
    "ICF_TANFCity",
    "ICF_TANFStateCd",
    "ICF_TANFAdditionalCity",
    "ICF_TANFAdditionalStateCd",
    "ICF_LTUR",
    "ICF_LTURCity",
    "ICF_LTURStateCd",
    "ICF_LTURAdditionalCity",
    "ICF_LTURAdditionalStateCd",
    "ICF_EligibilitySources",
    SIGNATOR_COLUMN,
)

# Columns that are always FALSE on this form
_FALSE_COLUMNS = (
    "Form8850_Checkbox1",
    "Form8850_Checkbox3",
    "Form8850_Checkbox4",
    "Form8850_Checkbox5",
    "Form8850_Checkbox7",
    "ICF_Rehire",
    "ICF_IVA",
    "ICF_Veteran",
    "ICF_Felon",
    "ICF_Felon_WorkRelease",
    "ICF_DCR_RRC",
    "ICF_DCR_EZ",
    "ICF_VR",
    "ICF_SummerYouth",
    "ICF_LTUR",
)


def csv_line(values: list[str] | tuple[str, ...]) -> str:
    """One CSV record without its terminator; quotes only where needed."""
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(values)
    return buffer.getvalue()[:-1]


def _bool(flag: bool) -> str:
    return "TRUE" if flag else "FALSE"


def _join(row: dict[str, str]) -> str:
    return csv_line([row.get(header, "") for header in HEADERS])


def signator_config(state_code: str, options: FormatOptions | None = None) -> SignatorConfig:
    """Signator candidates for a state, honoring channel configuration overrides."""
    base = CERTLINK_STATES.get(state_code)
    config = options.channel_config if options else None
    if config and config.signator_candidates:
        candidates = tuple(config.signator_candidates)
        return SignatorConfig(candidates, config.default_signator or candidates[0])
    if base is None:
        raise UnsupportedLayoutError(state_code)
    if config and config.default_signator:
        return SignatorConfig(base.candidates, config.default_signator)
    return base


class CertLinkCsvLayout:
    """Renders the CertLink batch file."""

    has_header = True
    encoding = "utf-8"

    def supports(self, state_code: str) -> bool:
        return state_code in CERTLINK_STATES

    def filename(self, state_code: str) -> str:
        return f"{state_code}_CERTLINK_BATCH.csv"

    def remote_path(self, state_code: str) -> str | None:
        return None

    def render(
        self, state_code: str, records: list[SubmissionRecord], options: FormatOptions
    ) -> list[str]:
        signator = signator_config(state_code, options).default
        lines = [csv_line(HEADERS)]
        lines.extend(_join(self._row(record, options, signator)) for record in records)
        return lines

    def _row(
        self, record: SubmissionRecord, options: FormatOptions, signator: str
    ) -> dict[str, str]:
        groups = " ".join(record.target_groups).upper()
        has_ltanf = "LTANF" in groups
        is_tanf = "TANF" in groups

        started = record.hire_date or record.start_date
        age = age_on(record.date_of_birth, started)
        is_snap = age is not None and age <= 39
        is_ssi = age is not None and age >= 40

        full_name = record.full_name
        city = record.city.strip()
        state = state_abbr(record.state, passthrough=True)
        employer = options.employer

        row = {column: "FALSE" for column in _FALSE_COLUMNS}
        row.update(
            {
                "General_FormVersionID": FORM_VERSION,
                "General_YourSystemsRecordIdentifier": record.employee_id.split("-")[0],
                "Form8850_ApplicantFirstName": record.first_name.strip(),
                "Form8850_ApplicantLastName": record.last_name.strip(),
                "Form8850_ApplicantSSN": digits_only(record.ssn),
                "Form8850_ApplicantAddressLine1": record.address.strip(),
                "Form8850_ApplicantCity": city,
                "Form8850_ApplicantStateCd": state,
                "Form8850_ApplicantZipCode": digits_only(record.zip_code),
                "Form8850_ApplicantCounty": record.county.strip(),
                "Form8850_ApplicantPhone": digits_only(record.phone),
                "Form8850_ApplicantDOB": mmddyyyy(record.date_of_birth, "/"),
                "Form8850_Checkbox2": "TRUE",
                "Form8850_Checkbox6": _bool(has_ltanf),
                "Form8850_EmployeeSignatureDate": mmddyyyy(started, "/"),
                "Form8850_EmployerName": employer.name.strip(),
                "Form8850_EmployerPhone": digits_only(employer.phone),
                "Form8850_EmployerFEIN": employer.ein.strip(),
                "Form8850_EmployerAddressLine1": employer.address.strip(),
                "Form8850_EmployerCity": employer.city.strip(),
                "Form8850_EmployerStateCd": state_abbr(employer.state, passthrough=True),
                "Form8850_EmployerZipcode": employer.zip_code.strip(),
                "Form8850_GaveInformationDate": mmddyyyy(record.date_gave_info, "/"),
                "Form8850_OfferedJobDate": mmddyyyy(record.date_offered_job, "/"),
                "Form8850_EmployeeDateHired": mmddyyyy(started, "/"),
                "Form8850_EmployeeStartDate": mmddyyyy(started, "/"),
                "ICF_StartingWage": str(record.hourly_wage) if record.hourly_wage else "",
                "ICF_OccupationID": record.occupation_code,
                "ICF_SNAP": _bool(is_snap),
                "ICF_SNAPName": full_name if is_snap else "",
                "ICF_SNAPCity": city if is_snap else "",
                "ICF_SNAPStateCd": state if is_snap else "",
                "ICF_SSI": _bool(is_ssi),
                "ICF_TANF": _bool(is_tanf),
                "ICF_TANFName": full_name if is_tanf else "",
                "ICF_TANFCity": city if is_tanf else "",
                "ICF_TANFStateCd": state if is_tanf else "",
                SIGNATOR_COLUMN: signator,
            }
        )
        return row


def parse_csv(content: str) -> tuple[list[str], list[dict[str, str]]]:
    """Split a CertLink CSV into its header and rows of column -> value.

    Quoted fields may span lines; blank records are skipped.
    """
    records = [row for row in csv.reader(io.StringIO(content)) if any(cell.strip() for cell in row)]
    if len(records) < 2:
        return [], []

    headers = [h.strip() for h in records[0]]
    rows = [
        {h: values[i].strip() if i < len(values) else "" for i, h in enumerate(headers)}
        for values in records[1:]
    ]
    return headers, rows


def fix_signator_rows(
    content: str,
    fix_rows: set[int] | list[int],
    remove_rows: set[int] | list[int],
    candidates: list[str] | tuple[str, ...],
) -> str:
    """Rewrite a rejected batch for another upload attempt.

    Rows are numbered from 1 (first data row). Rows in ``remove_rows`` are
    dropped; rows in ``fix_rows`` get the next signator candidate. Fixes are
    skipped when fewer than two candidates exist.

    Returns:
        The rewritten CSV, or "" when no rows remain
    """
    _, rows = parse_csv(content)
    if not rows:
        return content

    remove = set(remove_rows)
    fix = set(fix_rows)
    kept: list[dict[str, str]] = []
    for number, row in enumerate(rows, start=1):
        if number in remove:
            continue
        if number in fix and len(candidates) >= 2:
            current = row.get(SIGNATOR_COLUMN, "")
            index = candidates.index(current) if current in candidates else -1
            row[SIGNATOR_COLUMN] = candidates[1 if index < 0 else (index + 1) % len(candidates)]
        kept.append(row)

    if not kept:
        return ""
    return "\n".join([csv_line(HEADERS), *(_join(row) for row in kept)])


def submitted_records(content: str) -> list[tuple[str, str]]:
    """(employer FEIN, applicant SSN) pairs present in a batch file."""
    _, rows = parse_csv(content)
    return [
        (row.get("Form8850_EmployerFEIN", "").strip(), row.get("Form8850_ApplicantSSN", "").strip())
        for row in rows
    ]
