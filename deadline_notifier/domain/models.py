"""Core domain models for cases, deadline buckets, and the notification ledger.

This module defines the data structures used throughout the application:
- CaseSnapshot: a case as read from the external case store, raw fields intact
- Bucket: the deadline-relative notification windows
- Classification / ClassifiedCase: a case placed in a bucket for a given day
- DirectoryEntry: a department and its contact address fields
- NotificationRecord: one ledger row per case, bucket and send attempt
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class Bucket(str, Enum):
    """Deadline-relative notification windows."""

    DUE_IN_15 = "due-in-15"
    DUE_TODAY = "due-today"
    OVERDUE_60 = "overdue-60"


# Execution order of a full run.
BUCKET_ORDER = (Bucket.DUE_IN_15, Bucket.DUE_TODAY, Bucket.OVERDUE_60)


class NotificationStatus(str, Enum):
    """Outcome of a notification attempt."""

    SENT = "sent"
    ERROR = "error"


class CaseSnapshot(BaseModel):
    """Raw view of an ombudsman case.

    Dates and descriptive fields can live in several places: a direct ISO
    column, a legacy flat column, or the nested ``payload`` document the
    ingestion process stores verbatim. Field resolution happens in
    :mod:`deadline_notifier.classification`, never here.
    """

    protocol: Optional[str] = Field(None, description="Case protocol number")
    creation_date_iso: Any = Field(None, description="Normalized creation date column")
    creation_date: Any = Field(None, description="Legacy creation date column")
    completion_date_iso: Any = Field(None, description="Normalized completion date column")
    completion_date: Any = Field(None, description="Legacy completion date column")
    manifestation_type: Optional[str] = Field(None, description="Manifestation type text")
    department: Optional[str] = Field(None, description="Owning department name")
    status: Optional[str] = Field(None, description="Case status text")
    status_demand: Optional[str] = Field(None, description="Secondary status text")
    subject: Optional[str] = Field(None, description="Case subject")
    payload: Dict[str, Any] = Field(
        default_factory=dict, description="Nested source document"
    )

    @field_validator("payload", mode="before")
    @classmethod
    def default_payload(cls, v: Any) -> Dict[str, Any]:
        """Treat a missing or non-mapping payload as empty."""
        if isinstance(v, dict):
            return v
        return {}


class Classification(BaseModel):
    """Bucket placement of a case for a given day."""

    bucket: Bucket
    due_date: date
    days_remaining: int = Field(..., description="Signed whole days until the due date")
    sla_days: int = Field(..., description="Service-level deadline applied (20 or 30)")


class ClassifiedCase(BaseModel):
    """A case eligible for a bucket, with its descriptive fields resolved."""

    protocol: str
    department: str
    manifestation_type: str
    subject: str
    creation_date: date
    due_date: date
    days_remaining: int
    sla_days: int
    bucket: Bucket


class DirectoryEntry(BaseModel):
    """Department directory row. Both address fields may hold several addresses."""

    name: str
    email: Optional[str] = None
    alternate_email: Optional[str] = None


class NotificationRecord(BaseModel):
    """Ledger entry for one case, bucket and send attempt.

    Records are append-only: once written they are never updated.
    """

    protocol: str = Field(..., min_length=1)
    department: str
    recipients: str = Field(..., description="Resolved addresses joined with ', '")
    bucket: Bucket
    due_date: Optional[date] = None
    days_remaining: Optional[int] = None
    message_id: Optional[str] = Field(None, description="Provider message id")
    status: NotificationStatus
    error_message: Optional[str] = None
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("sent_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Ensure datetime is timezone-aware and in UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    model_config = {"json_schema_extra": {"example": {
        "protocol": "2025.000123",
        "department": "Secretaria Municipal de Saúde",
        "recipients": "smsdc@duquedecaxias.rj.gov.br",
        "bucket": "due-today",
        "due_date": "2025-01-21",
        "days_remaining": 0,
        "message_id": "18c2f0a1b2c3d4e5",
        "status": "sent",
        "error_message": None,
        "sent_at": "2025-01-21T11:00:04Z",
    }}}
