"""
Identifiers -- statutory identifier formats and country normalisation.

Responsibility:
    Validates the identifiers every engine consumes (GSTIN, PAN, TAN,
    GST state codes) and normalises country spellings so that "India",
    "IND" and " in " are treated as the same domestic jurisdiction.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - Malformed identifiers are rejected with InvalidIdentifierError before
      any computation uses them. Normalisation is limited to trimming
      whitespace and upper-casing.
    - A GSTIN is 15 characters: 2-digit state code, 10-character PAN,
      entity number, the literal ``Z`` and a check character.

Usage:
    from tax_kernel.domain.identifiers import require_gstin, is_domestic_country

    gstin = require_gstin(raw_value, "recipient_gstin")
    if not is_domestic_country(vendor.country):
        ...
"""

from __future__ import annotations

import re

from tax_kernel.exceptions import InvalidIdentifierError, MissingFieldError

GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][0-9A-Z]Z[0-9A-Z]$")
PAN_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
TAN_PATTERN = re.compile(r"^[A-Z]{4}[0-9]{5}[A-Z]$")

DOMESTIC_COUNTRY = "IN"
DOMESTIC_COUNTRY_ALIASES: frozenset[str] = frozenset({"IN", "IND", "INDIA", "BHARAT"})

# Place-of-supply code for supplies made outside India
OUTSIDE_INDIA_STATE_CODE = "96"

STATE_CODES: dict[str, str] = {
    "01": "Jammu and Kashmir",
    "02": "Himachal Pradesh",
    "03": "Punjab",
    "04": "Chandigarh",
    "05": "Uttarakhand",
    "06": "Haryana",
    "07": "Delhi",
    "08": "Rajasthan",
    "09": "Uttar Pradesh",
    "10": "Bihar",
    "11": "Sikkim",
    "12": "Arunachal Pradesh",
    "13": "Nagaland",
    "14": "Manipur",
    "15": "Mizoram",
    "16": "Tripura",
    "17": "Meghalaya",
    "18": "Assam",
    "19": "West Bengal",
    "20": "Jharkhand",
    "21": "Odisha",
    "22": "Chhattisgarh",
    "23": "Madhya Pradesh",
    "24": "Gujarat",
    "25": "Daman and Diu",
    "26": "Dadra and Nagar Haveli and Daman and Diu",
    "27": "Maharashtra",
    "28": "Andhra Pradesh (Old)",
    "29": "Karnataka",
    "30": "Goa",
    "31": "Lakshadweep",
    "32": "Kerala",
    "33": "Tamil Nadu",
    "34": "Puducherry",
    "35": "Andaman and Nicobar Islands",
    "36": "Telangana",
    "37": "Andhra Pradesh",
    "38": "Ladakh",
    "96": "Other Country",
    "97": "Other Territory",
    "99": "Centre Jurisdiction",
}


def _normalize(value: str | None) -> str:
    return value.strip().upper() if isinstance(value, str) else ""


def is_valid_gstin(value: str | None) -> bool:
    """True if ``value`` matches the 15-character GSTIN format."""
    return bool(GSTIN_PATTERN.match(_normalize(value)))


def is_valid_pan(value: str | None) -> bool:
    """True if ``value`` matches the 10-character PAN format."""
    return bool(PAN_PATTERN.match(_normalize(value)))


def is_valid_tan(value: str | None) -> bool:
    """True if ``value`` matches the 10-character TAN format."""
    return bool(TAN_PATTERN.match(_normalize(value)))


def _require(kind: str, pattern: re.Pattern[str], value: str | None, field_name: str) -> str:
    if value is None or not str(value).strip():
        raise MissingFieldError(field_name)
    normalized = _normalize(value)
    if not pattern.match(normalized):
        raise InvalidIdentifierError(kind, value, field_name)
    return normalized


def require_gstin(value: str | None, field_name: str = "gstin") -> str:
    """Return the normalised GSTIN or raise.

    Raises:
        MissingFieldError: value is None or blank.
        InvalidIdentifierError: value does not match the GSTIN format.
    """
    return _require("GSTIN", GSTIN_PATTERN, value, field_name)


def require_pan(value: str | None, field_name: str = "pan") -> str:
    """Return the normalised PAN or raise (see ``require_gstin``)."""
    return _require("PAN", PAN_PATTERN, value, field_name)


def require_tan(value: str | None, field_name: str = "tan") -> str:
    """Return the normalised TAN or raise (see ``require_gstin``)."""
    return _require("TAN", TAN_PATTERN, value, field_name)


def optional_gstin(value: str | None, field_name: str = "gstin") -> str | None:
    """Validate a GSTIN that may legitimately be absent (unregistered party).

    None and blank strings mean "no registration"; anything else must be a
    well-formed GSTIN.
    """
    if value is None or not str(value).strip():
        return None
    return require_gstin(value, field_name)


def gstin_state_code(gstin: str) -> str:
    """State code (first two digits) of a GSTIN."""
    return require_gstin(gstin)[:2]


def pan_from_gstin(gstin: str) -> str:
    """The PAN embedded in characters 3-12 of a GSTIN."""
    return require_gstin(gstin)[2:12]


def require_state_code(value: str | None, field_name: str = "state_code") -> str:
    """Return a two-digit GST state code or raise InvalidIdentifierError.

    Single digits are zero-padded ("7" -> "07").
    """
    if value is None or not str(value).strip():
        raise MissingFieldError(field_name)
    code = str(value).strip()
    if code.isdigit() and len(code) == 1:
        code = f"0{code}"
    if code not in STATE_CODES:
        raise InvalidIdentifierError("state code", value, field_name)
    return code


def normalize_country(value: str | None) -> str | None:
    """Canonical country code: domestic spellings collapse to ``"IN"``.

    Returns None for a missing or blank country.
    """
    normalized = _normalize(value)
    if not normalized:
        return None
    if normalized in DOMESTIC_COUNTRY_ALIASES:
        return DOMESTIC_COUNTRY
    return normalized


def is_domestic_country(value: str | None) -> bool:
    """True if ``value`` names India in any accepted spelling."""
    return normalize_country(value) == DOMESTIC_COUNTRY
