"""Recipient resolution for department notifications."""

from .exceptions import RecipientResolutionError
from .resolver import (
    RecipientResolver,
    extract_addresses,
    match_name,
    strip_department_prefix,
)
from .static_directory import DEFAULT_STATIC_DIRECTORY

__all__ = [
    "RecipientResolver",
    "RecipientResolutionError",
    "extract_addresses",
    "match_name",
    "strip_department_prefix",
    "DEFAULT_STATIC_DIRECTORY",
]
