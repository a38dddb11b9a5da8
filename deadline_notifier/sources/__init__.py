"""Read-only access to the case store and the department directory."""

from .base import CaseSource, DepartmentDirectory
from .exceptions import SourceError
from .sql import (
    CaseRecordModel,
    DepartmentInfoModel,
    SourceBase,
    SqlCaseSource,
    SqlDepartmentDirectory,
)

__all__ = [
    "CaseSource",
    "DepartmentDirectory",
    "SourceError",
    "SqlCaseSource",
    "SqlDepartmentDirectory",
    "SourceBase",
    "CaseRecordModel",
    "DepartmentInfoModel",
]
