"""Record formatter exceptions."""

from wotc_relay.utils.exceptions import ValidationError


class RecordFormatError(ValidationError):
    """Records cannot be rendered into the agency layout.

    Attributes:
        state_code: Target state
    """

    def __init__(self, message: str, *, state_code: str | None = None):
        super().__init__(message)
        self.state_code = state_code


class UnsupportedLayoutError(RecordFormatError):
    """No agency layout is registered for the state."""

    def __init__(self, state_code: str):
        super().__init__(f"No file layout registered for state: {state_code}", state_code=state_code)
