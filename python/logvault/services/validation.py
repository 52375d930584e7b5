"""Input validation for archive parameters.

Every external value passes through validate() before it reaches a query.
Values are then bound as statement parameters, never spliced into SQL, so
validation is a typed-parameter boundary rather than an escaping step:

- integer: non-empty string of ASCII digits (or a non-negative int) -> int
- date: "YYYY-MM-DD"-shaped, three all-digit components -> str
- text: any str -> str (unchanged)

Dates are checked for shape only. "2023-02-30" is accepted; it names a shard
that will simply not exist. That matches what the archive has always done.

validate() never raises. A failure is returned as a Fault value so callers
can record it on the session and report failure.
"""

import re
from enum import Enum

from logvault.errors import Fault, FaultKind

_DIGITS_RE = re.compile(r"[0-9]+")

LIKE_ESCAPE_CHAR = "\\"


class ParamKind(str, Enum):
    """Kinds of validated parameters."""

    integer = "integer"
    text = "text"
    date = "date"


def _fault(kind: ParamKind, label: str | None, reason: str) -> Fault:
    return Fault(FaultKind.validation, f"Invalid {kind.value}: {reason}", label)


def validate_integer(value: object, label: str | None = None) -> int | Fault:
    """Validate an identifier-like integer."""
    if isinstance(value, bool):
        return _fault(ParamKind.integer, label, "boolean is not an integer")
    if isinstance(value, int):
        if value < 0:
            return _fault(ParamKind.integer, label, "negative value")
        return value
    if isinstance(value, str) and _DIGITS_RE.fullmatch(value):
        return int(value)
    return _fault(ParamKind.integer, label, "expected decimal digits only")


def validate_owner_id(value: object, label: str | None = "owner_id") -> int | Fault:
    """Validate an archive owner id. Zero is not a valid owner."""
    owner_id = validate_integer(value, label)
    if owner_id == 0:
        return _fault(ParamKind.integer, label, "owner id must be positive")
    return owner_id


def validate_date(value: object, label: str | None = None) -> str | Fault:
    """Validate a date partition key (shape only, no calendar check)."""
    if not isinstance(value, str):
        return _fault(ParamKind.date, label, "expected a YYYY-MM-DD string")
    parts = value.split("-")
    if len(parts) != 3 or not all(_DIGITS_RE.fullmatch(part) for part in parts):
        return _fault(ParamKind.date, label, "expected three digit groups separated by '-'")
    return value


def validate_text(value: object, label: str | None = None) -> str | Fault:
    """Validate free text. Bound as a parameter, so content is not altered."""
    if not isinstance(value, str):
        return _fault(ParamKind.text, label, "expected a string")
    if "\x00" in value:
        return _fault(ParamKind.text, label, "NUL byte not allowed")
    return value


_VALIDATORS = {
    ParamKind.integer: validate_integer,
    ParamKind.date: validate_date,
    ParamKind.text: validate_text,
}


def validate(value: object, kind: ParamKind | str, label: str | None = None) -> int | str | Fault:
    """Validate a value of the given kind.

    Args:
        value: Raw external input.
        kind: One of ParamKind (or its string value).
        label: Parameter name, recorded on the fault for diagnostics.

    Returns:
        The sanitized value, or a Fault describing the violation.
    """
    try:
        kind = ParamKind(kind)
    except ValueError:
        return Fault(FaultKind.validation, f"Unknown parameter kind: {kind!r}", label)
    return _VALIDATORS[kind](value, label)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so value matches literally (use ESCAPE '\\')."""
    return (
        value.replace(LIKE_ESCAPE_CHAR, LIKE_ESCAPE_CHAR * 2)
        .replace("%", LIKE_ESCAPE_CHAR + "%")
        .replace("_", LIKE_ESCAPE_CHAR + "_")
    )
