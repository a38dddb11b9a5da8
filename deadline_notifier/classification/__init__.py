"""Date resolution and deadline classification."""

from .classifier import DeadlineClassifier, SelectionStats
from .dates import (
    COMPLETION_DATE_ACCESSORS,
    CREATION_DATE_ACCESSORS,
    normalize_date,
    resolve_completion_date,
    resolve_creation_date,
    resolve_date,
)
from .fields import (
    is_closed,
    resolve_department,
    resolve_manifestation_type,
    resolve_protocol,
    resolve_status,
    resolve_subject,
)

__all__ = [
    "DeadlineClassifier",
    "SelectionStats",
    "normalize_date",
    "resolve_date",
    "resolve_creation_date",
    "resolve_completion_date",
    "CREATION_DATE_ACCESSORS",
    "COMPLETION_DATE_ACCESSORS",
    "is_closed",
    "resolve_protocol",
    "resolve_department",
    "resolve_manifestation_type",
    "resolve_subject",
    "resolve_status",
]
