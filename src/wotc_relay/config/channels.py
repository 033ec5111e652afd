"""Per-state channel configuration.

Each StatePortalConfig row carries one StateChannelConfig in its
``channel_config`` JSON column. State quirks are explicit fields here so
adapters and the formatter never branch on a state code string.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SignatureRequirement(str, Enum):
    """How the agency expects the employer signature."""

    NONE = "none"
    ELECTRONIC = "electronic"
    WET = "wet"
    SIGNATOR_ON_FILE = "signator_on_file"


class BrowserSelectors(BaseModel):
    """CSS selector overrides for a browser portal.

    Defaults match the common state portal login form.
    """

    model_config = ConfigDict(extra="forbid")

    username: str = 'input[name="username"], input[id="username"], #loginUsername'
    password: str = 'input[name="password"], input[id="password"], #loginPassword'
    submit: str = 'button[type="submit"]'
    login_error: str = ".alert-danger, .error-message, .validation-summary-errors"
    mfa_input: str = 'input[name="otp"], input[name="code"], #mfaCode'
    mfa_submit: str = 'button[type="submit"]'
    mfa_error: str = ".mfa-error, .otp-error"
    challenge_question: str = ".security-question, label[for='answer']"
    challenge_answer: str = 'input[name="answer"], #securityAnswer'
    bulk_upload_link: str = "text=Submit a Bulk File"
    file_input: str = 'input[type="file"]'
    next_button: str = 'button:has-text("NEXT")'
    agreement_checkbox: str = 'input[type="checkbox"]'
    submit_button: str = 'button:has-text("SUBMIT")'
    results_rows: str = "table tbody tr"


class StateChannelConfig(BaseModel):
    """Tagged per-state configuration record."""

    model_config = ConfigDict(extra="ignore")

    signature_requirement: SignatureRequirement = SignatureRequirement.NONE
    missing_electronic_submittal: bool = False
    long_approval_duration: bool = False
    expected_processing_days: int | None = None
    max_batch_size: int = Field(default=100, ge=1)
    automation_enabled: bool = True

    # Browser portals
    bulk_upload_url: str | None = None
    results_url: str | None = None
    selectors: BrowserSelectors = Field(default_factory=BrowserSelectors)
    min_agreement_checkboxes: int = 2

    # SFTP drop
    sftp_host: str | None = None
    sftp_port: int | None = None
    remote_dir: str | None = None

    # Vendor portal signators, in rotation order
    signator_candidates: list[str] = Field(default_factory=list)
    default_signator: str | None = None

    # Fixed-width vendor file
    consultant_id: str | None = None
    representative: str | None = None
    default_hourly_wage: float | None = None

    # Texas CSV
    consultant_ein: str | None = None
