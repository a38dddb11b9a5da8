"""Date resolution across the several shapes a case date can take.

Case dates arrive as ISO strings, ISO timestamps, Brazilian ``DD/MM/YYYY``
strings, native date objects, or buried in the nested payload document.
:func:`normalize_date` turns one raw value into a :class:`datetime.date`;
:func:`resolve_date` walks an ordered list of accessors and returns the
first value that normalizes. The accessor order is the precedence contract.
"""

import re
from datetime import date, datetime
from typing import Any, Callable, Optional, Sequence

from dateutil import parser as date_parser

from ..domain.models import CaseSnapshot

FieldAccessor = Callable[[CaseSnapshot], Any]

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_ISO_PREFIX = re.compile(r"^(\d{4})-(\d{2})-(\d{2})[T ]")
_BR_DATE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")

_EMPTY_MARKERS = {"", "null", "undefined", "none", "n/a"}


def _build(year: str, month: str, day: str) -> Optional[date]:
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def normalize_date(value: Any) -> Optional[date]:
    """Normalize one raw date value.

    Rules, first match wins:

    1. ``date``/``datetime`` objects are used as-is (time truncated)
    2. ``YYYY-MM-DD`` is accepted verbatim
    3. ISO 8601 with a time component is truncated to its date part
    4. ``DD/MM/YYYY`` is rewritten to ``YYYY-MM-DD``
    5. anything else goes through a generic day-first parse

    Args:
        value: Raw value from a case field

    Returns:
        Calendar date, or None when the value is empty or not a valid date

    Example:
        >>> normalize_date("21/01/2025")
        datetime.date(2025, 1, 21)
        >>> normalize_date("2025-01-06T03:00:28.000Z")
        datetime.date(2025, 1, 6)
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if text.lower() in _EMPTY_MARKERS:
        return None

    match = _ISO_DATE.match(text)
    if match:
        return _build(*match.groups())

    match = _ISO_PREFIX.match(text)
    if match:
        return _build(*match.groups())

    match = _BR_DATE.match(text)
    if match:
        day, month, year = match.groups()
        return _build(year, month, day)

    try:
        return date_parser.parse(text, dayfirst=True).date()
    except (date_parser.ParserError, ValueError, OverflowError):
        return None


def resolve_date(case: CaseSnapshot, accessors: Sequence[FieldAccessor]) -> Optional[date]:
    """Return the first candidate that normalizes to a valid date.

    Args:
        case: Case to read from
        accessors: Field accessors in precedence order

    Returns:
        Resolved date, or None when every candidate is missing or invalid
    """
    for accessor in accessors:
        resolved = normalize_date(accessor(case))
        if resolved is not None:
            return resolved
    return None


def _payload_field(key: str) -> FieldAccessor:
    def accessor(case: CaseSnapshot) -> Any:
        return case.payload.get(key)

    accessor.__name__ = f"payload_{key}"
    return accessor


CREATION_DATE_ACCESSORS: Sequence[FieldAccessor] = (
    lambda case: case.creation_date_iso,
    lambda case: case.creation_date,
    _payload_field("data_da_criacao"),
)

COMPLETION_DATE_ACCESSORS: Sequence[FieldAccessor] = (
    lambda case: case.completion_date_iso,
    lambda case: case.completion_date,
    _payload_field("data_da_conclusao"),
)


def resolve_creation_date(case: CaseSnapshot) -> Optional[date]:
    """Creation date: ISO column, then legacy column, then payload."""
    return resolve_date(case, CREATION_DATE_ACCESSORS)


def resolve_completion_date(case: CaseSnapshot) -> Optional[date]:
    """Completion date, same precedence as the creation date."""
    return resolve_date(case, COMPLETION_DATE_ACCESSORS)
