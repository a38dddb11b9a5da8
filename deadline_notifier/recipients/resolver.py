"""Department name to delivery address resolution.

Lookup chain, first non-empty result wins:

1. department directory, exact case-insensitive name match
2. department directory, first entry whose name and the query contain one
   another (also tried with the ``Secretaria [Municipal] de`` prefix removed)
3. static name to address table, exact then plain containment
4. configured default address

Address fields may hold several addresses separated by ``;`` or ``,``.
"""

import re
from typing import Iterable, List, Mapping, Optional, Tuple

from ..domain.models import DirectoryEntry
from ..logging import get_logger
from ..sources.base import DepartmentDirectory
from ..sources.exceptions import SourceError
from .exceptions import RecipientResolutionError

logger = get_logger(__name__, component="recipients")

_ADDRESS_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PREFIX_PATTERN = re.compile(r"^secretaria (municipal )?de ", re.IGNORECASE)
_NO_DEPARTMENT = {"", "n/a"}


def extract_addresses(*fields: Optional[str]) -> List[str]:
    """Split, clean, validate and de-duplicate address fields.

    Each candidate is cut at its first whitespace; candidates that do not
    look like ``local@domain.tld`` or that start with ``http`` are dropped.

    Example:
        >>> extract_addresses("smsdc@x.gov; backup@x.gov", "smsdc@x.gov")
        ['smsdc@x.gov', 'backup@x.gov']
    """
    addresses: List[str] = []
    for value in fields:
        if not value:
            continue
        for part in re.split(r"[;,]", value):
            part = part.strip()
            if not part:
                continue
            candidate = part.split()[0]
            if candidate.lower().startswith("http"):
                continue
            if _ADDRESS_PATTERN.match(candidate) and candidate not in addresses:
                addresses.append(candidate)
    return addresses


def strip_department_prefix(name: str) -> str:
    """Remove a leading ``Secretaria de`` / ``Secretaria Municipal de``."""
    return _PREFIX_PATTERN.sub("", name.strip(), count=1).strip()


def _query_variants(name: str) -> Tuple[str, ...]:
    lowered = name.strip().lower()
    stripped = strip_department_prefix(name).lower()
    if stripped and stripped != lowered:
        return (lowered, stripped)
    return (lowered,)


def match_name(query: str, names: Iterable[str], strip_prefix: bool = False) -> Optional[str]:
    """Return the first name matching ``query`` exactly, else by containment.

    Containment is checked both ways. With ``strip_prefix`` the query is also
    tried with the department prefix removed.
    """
    names = list(names)
    target = query.strip().lower()
    for name in names:
        if name.strip().lower() == target:
            return name

    variants = _query_variants(query) if strip_prefix else (target,)
    for name in names:
        candidate = name.strip().lower()
        if not candidate:
            continue
        for variant in variants:
            if variant in candidate or candidate in variant:
                return name
    return None


class RecipientResolver:
    """Resolves the address list for a department. Never returns an empty list."""

    def __init__(
        self,
        default_address: str,
        static_directory: Optional[Mapping[str, str]] = None,
        directory: Optional[DepartmentDirectory] = None,
    ):
        """
        Args:
            default_address: Last-resort recipient
            static_directory: Fallback department name to address table
            directory: External department directory, if one is available
        """
        self.default_addresses = extract_addresses(default_address)
        self.static_directory = dict(static_directory or {})
        self.directory = directory

    def resolve_addresses(self, department: str) -> List[str]:
        """Resolve delivery addresses for ``department``.

        Returns:
            Non-empty list of addresses

        Raises:
            RecipientResolutionError: If not even the default address is usable
        """
        addresses, origin = self._resolve(department or "")

        if not addresses:
            raise RecipientResolutionError(
                department, "no address found and the default address is invalid"
            )

        logger.debug(
            "Recipients resolved",
            extra={
                "event": "recipients.resolved",
                "department": department,
                "origin": origin,
                "address_count": len(addresses),
            },
        )
        return addresses

    def _resolve(self, department: str) -> Tuple[List[str], str]:
        if department.strip().lower() in _NO_DEPARTMENT:
            return list(self.default_addresses), "default"

        if self.directory is not None:
            try:
                entry = self._directory_lookup(department)
            except SourceError as e:
                logger.warning(
                    f"Department directory unavailable, using static table: {e}",
                    extra={
                        "event": "recipients.directory_failed",
                        "department": department,
                    },
                )
                entry = None

            if entry is not None:
                addresses = extract_addresses(entry.email, entry.alternate_email)
                if addresses:
                    return addresses, "directory"

        static_name = match_name(department, self.static_directory.keys())
        if static_name is not None:
            addresses = extract_addresses(self.static_directory[static_name])
            if addresses:
                return addresses, "static"

        logger.info(
            "No address found for department, using default",
            extra={"event": "recipients.default_used", "department": department},
        )
        return list(self.default_addresses), "default"

    def _directory_lookup(self, department: str) -> Optional[DirectoryEntry]:
        entry = self.directory.find_exact(department)
        if entry is not None:
            return entry

        entries = self.directory.list_with_addresses()
        matched = match_name(department, (e.name for e in entries), strip_prefix=True)
        if matched is None:
            return None
        return next(e for e in entries if e.name == matched)
