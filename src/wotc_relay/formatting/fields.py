"""Field helpers shared by the agency layouts."""

import re
import unicodedata
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

STATE_NAME_TO_ABBR = {
    "Alabama": "AL", "Alaska": "AK", "Arizona": "AZ", "Arkansas": "AR",
    "California": "CA", "Colorado": "CO", "Connecticut": "CT", "Delaware": "DE",
    "Florida": "FL", "Georgia": "GA", "Hawaii": "HI", "Idaho": "ID",
    "Illinois": "IL", "Indiana": "IN", "Iowa": "IA", "Kansas": "KS",
    "Kentucky": "KY", "Louisiana": "LA", "Maine": "ME", "Maryland": "MD",
    "Massachusetts": "MA", "Michigan": "MI", "Minnesota": "MN", "Mississippi": "MS",
    "Missouri": "MO", "Montana": "MT", "Nebraska": "NE", "Nevada": "NV",
    "New Hampshire": "NH", "New Jersey": "NJ", "New Mexico": "NM", "New York": "NY",
    "North Carolina": "NC", "North Dakota": "ND", "Ohio": "OH", "Oklahoma": "OK",
    "Oregon": "OR", "Pennsylvania": "PA", "Rhode Island": "RI", "South Carolina": "SC",
    "South Dakota": "SD", "Tennessee": "TN", "Texas": "TX", "Utah": "UT",
    "Vermont": "VT", "Virginia": "VA", "Washington": "WA", "West Virginia": "WV",
    "Wisconsin": "WI", "Wyoming": "WY",
}  # fmt: skip

_NON_DIGITS = re.compile(r"[^0-9]")


def digits_only(value: str | None) -> str:
    if not value:
        return ""
    return _NON_DIGITS.sub("", str(value).strip())


def state_abbr(value: str | None, *, passthrough: bool = False) -> str:
    """Two-letter code for a state code or full name.

    Unknown names become "" unless ``passthrough`` keeps them upper-cased.
    """
    if not value:
        return ""
    trimmed = value.strip()
    if len(trimmed) == 2:
        return trimmed.upper()
    if trimmed in STATE_NAME_TO_ABBR:
        return STATE_NAME_TO_ABBR[trimmed]
    return trimmed.upper() if passthrough else ""


def mmddyyyy(value: date | None, sep: str = "") -> str:
    if value is None:
        return ""
    return f"{value.month:02d}{sep}{value.day:02d}{sep}{value.year:04d}"


def yyyymmdd(value: date | None) -> str:
    if value is None:
        return ""
    return f"{value.year:04d}{value.month:02d}{value.day:02d}"


def fold_ascii(value: str) -> str:
    """Strip accents (``Muñoz`` to ``Munoz``); characters with no ASCII base become ``?``."""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.encode("ascii", errors="replace").decode("ascii")


def pad_field(value: str, width: int) -> str:
    """Fold to ASCII, truncate to ``width``, then pad right with spaces."""
    return fold_ascii(value)[:width].ljust(width)


def split_wage(wage: Decimal) -> tuple[str, str]:
    """Split an hourly wage into whole dollars and two-digit cents.

    Cents round half up; 99.5 cents carries into the dollars.
    """
    dollars = int(wage)
    cents = int(((wage - dollars) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents >= 100:
        dollars += 1
        cents = 0
    return str(dollars), f"{cents:02d}"


def has_group_word(groups: tuple[str, ...], *keywords: str) -> bool:
    """True if any keyword appears as a whole word in the target groups."""
    joined = " ".join(groups)
    return any(re.search(rf"\b{re.escape(kw)}\b", joined, re.IGNORECASE) for kw in keywords)


def has_group_match(groups: tuple[str, ...], *patterns: str) -> bool:
    """True if any pattern occurs anywhere in any target group (case-insensitive)."""
    return any(
        re.search(pattern, group, re.IGNORECASE) for pattern in patterns for group in groups
    )


def age_on(birth: date | None, on: date | None) -> int | None:
    """Whole years between ``birth`` and ``on``."""
    if birth is None or on is None:
        return None
    age = on.year - birth.year
    if (on.month, on.day) < (birth.month, birth.day):
        age -= 1
    return age
