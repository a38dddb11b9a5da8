"""Read-only interfaces to the externally owned case store and directory.

The notifier never writes cases or directory entries. Implementations must
raise :class:`~deadline_notifier.sources.exceptions.SourceError` on read
failures so callers can tell storage problems from empty results.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from ..domain.models import CaseSnapshot, DirectoryEntry


class CaseSource(ABC):
    """Provides case snapshots for classification."""

    @abstractmethod
    def fetch_cases(self) -> Iterable[CaseSnapshot]:
        """Return every case that may still be open.

        Closed cases may be included; the classifier filters them out.

        Raises:
            SourceError: If the store cannot be read
        """


class DepartmentDirectory(ABC):
    """Looks up department contact addresses."""

    @abstractmethod
    def find_exact(self, name: str) -> Optional[DirectoryEntry]:
        """Return the entry whose name equals ``name`` ignoring case.

        Only entries with at least one non-empty address field qualify.

        Raises:
            SourceError: If the directory cannot be read
        """

    @abstractmethod
    def list_with_addresses(self) -> List[DirectoryEntry]:
        """Return every entry that has at least one non-empty address field.

        Raises:
            SourceError: If the directory cannot be read
        """
