"""Database schema definition and ORM models for the notification ledger.

The ``notifications`` table is append-only. A partial unique index on
(protocol, bucket_type) restricted to ``status = 'sent'`` guarantees at
most one successful notification per case and bucket, across processes.
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, Integer, String, Text, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from ..domain.models import Bucket, NotificationRecord, NotificationStatus
from ..logging import get_logger

logger = get_logger(__name__, component="database")

Base = declarative_base()

_SENT_ONLY = text("status = 'sent'")


class NotificationModel(Base):
    """ORM model for the notifications table."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)

    protocol = Column(String(64), nullable=False)
    department = Column(String(255), nullable=False)
    recipients = Column(Text, nullable=False)
    bucket_type = Column(String(20), nullable=False)

    # Dates stored as ISO 8601 strings
    due_date = Column(String(10), nullable=True)
    days_remaining = Column(Integer, nullable=True)

    message_id = Column(String(255), nullable=True)
    status = Column(String(10), nullable=False)
    error_message = Column(Text, nullable=True)
    sent_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index(
            "uq_notifications_sent",
            "protocol",
            "bucket_type",
            unique=True,
            sqlite_where=_SENT_ONLY,
            postgresql_where=_SENT_ONLY,
        ),
        Index("idx_notifications_key", "protocol", "bucket_type"),
        Index("idx_notifications_sent_at", "sent_at"),
        Index("idx_notifications_department", "department"),
    )

    def to_domain(self) -> NotificationRecord:
        return NotificationRecord(
            protocol=self.protocol,
            department=self.department,
            recipients=self.recipients,
            bucket=Bucket(self.bucket_type),
            due_date=date.fromisoformat(self.due_date) if self.due_date else None,
            days_remaining=self.days_remaining,
            message_id=self.message_id,
            status=NotificationStatus(self.status),
            error_message=self.error_message,
            sent_at=parse_datetime(self.sent_at),
        )

    @classmethod
    def from_domain(cls, record: NotificationRecord) -> "NotificationModel":
        return cls(
            protocol=record.protocol,
            department=record.department,
            recipients=record.recipients,
            bucket_type=record.bucket.value,
            due_date=record.due_date.isoformat() if record.due_date else None,
            days_remaining=record.days_remaining,
            message_id=record.message_id,
            status=record.status.value,
            error_message=record.error_message,
            sent_at=format_datetime(record.sent_at),
        )


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as a fixed-width ISO 8601 UTC string.

    Fixed width keeps lexical order equal to chronological order, which
    the range queries rely on.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a string written by :func:`format_datetime`."""
    if not dt_str:
        return None

    dt_str = dt_str.rstrip("Z")
    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    Base.metadata.create_all(engine, checkfirst=True)

    tables = inspect(engine).get_table_names()
    logger.info(
        f"Database schema ready. Tables: {', '.join(tables)}",
        extra={"event": "database.schema_ready"},
    )
