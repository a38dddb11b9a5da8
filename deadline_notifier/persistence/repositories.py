"""Data access layer for the notifications table.

The repository works inside a caller-provided session and returns domain
models rather than ORM models. Transaction boundaries belong to the caller
(see :class:`~deadline_notifier.persistence.ledger.NotificationLedger`).
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.models import Bucket, NotificationRecord, NotificationStatus
from ..logging import get_logger
from ..utils.timestamps import utc_now
from .exceptions import DuplicateNotificationError, PersistenceError
from .schema import NotificationModel, format_datetime

logger = get_logger(__name__, component="ledger")

# Bound for IN (...) clauses; SQLite's default variable limit is 999.
_IN_CHUNK = 500


@dataclass
class HistoryPage:
    """One page of ledger history, newest first."""

    records: List[NotificationRecord]
    total: int
    limit: int
    offset: int


@dataclass
class LedgerStats:
    """Aggregate counts over a trailing window."""

    period_days: int
    total: int = 0
    by_bucket: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)
    top_departments: List[Tuple[str, int]] = field(default_factory=list)


class NotificationRepository:
    """Repository for notification ledger rows."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def has_been_sent(self, protocol: str, bucket: Bucket) -> bool:
        """Check whether a ``sent`` record exists for this protocol and bucket.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                select(NotificationModel.id)
                .where(
                    NotificationModel.protocol == protocol,
                    NotificationModel.bucket_type == bucket.value,
                    NotificationModel.status == NotificationStatus.SENT.value,
                )
                .limit(1)
            )
            return self.session.execute(stmt).first() is not None

        except SQLAlchemyError as e:
            logger.error(
                f"Error checking notification status for {protocol}/{bucket.value}: {e}",
                exc_info=True,
                extra={"event": "ledger.lookup_failed"},
            )
            raise PersistenceError(f"Failed to check notification status: {e}") from e

    def sent_protocols(self, bucket: Bucket, protocols: Iterable[str]) -> Set[str]:
        """Return the subset of ``protocols`` already notified for ``bucket``.

        Raises:
            PersistenceError: If database error occurs
        """
        wanted = list(dict.fromkeys(protocols))
        found: Set[str] = set()

        try:
            for start in range(0, len(wanted), _IN_CHUNK):
                chunk = wanted[start : start + _IN_CHUNK]
                stmt = select(NotificationModel.protocol).where(
                    NotificationModel.bucket_type == bucket.value,
                    NotificationModel.status == NotificationStatus.SENT.value,
                    NotificationModel.protocol.in_(chunk),
                )
                found.update(self.session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            logger.error(
                f"Error checking notification status for bucket {bucket.value}: {e}",
                exc_info=True,
                extra={"event": "ledger.lookup_failed"},
            )
            raise PersistenceError(f"Failed to check notification status: {e}") from e

        return found

    def add(self, record: NotificationRecord) -> NotificationRecord:
        """Insert one record and flush so constraint violations surface here.

        Raises:
            DuplicateNotificationError: If a ``sent`` record already exists for the key
            PersistenceError: If database error occurs
        """
        try:
            self.session.add(NotificationModel.from_domain(record))
            self.session.flush()
            return record

        except IntegrityError as e:
            raise DuplicateNotificationError(record.protocol, record.bucket.value) from e
        except SQLAlchemyError as e:
            logger.error(
                f"Error recording notification for {record.protocol}: {e}",
                exc_info=True,
                extra={"event": "ledger.write_failed"},
            )
            raise PersistenceError(f"Failed to record notification: {e}") from e

    def history(
        self,
        protocol: Optional[str] = None,
        department: Optional[str] = None,
        bucket: Optional[Bucket] = None,
        status: Optional[NotificationStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> HistoryPage:
        """List records newest first with optional filters.

        Args:
            protocol: Exact protocol
            department: Case-insensitive substring of the department name
            bucket: Bucket filter
            status: Status filter
            limit: Page size
            offset: Rows to skip

        Raises:
            PersistenceError: If database error occurs
        """
        conditions = []
        if protocol:
            conditions.append(NotificationModel.protocol == protocol)
        if department:
            conditions.append(NotificationModel.department.ilike(f"%{department}%"))
        if bucket is not None:
            conditions.append(NotificationModel.bucket_type == bucket.value)
        if status is not None:
            conditions.append(NotificationModel.status == status.value)

        try:
            total = self.session.execute(
                select(func.count(NotificationModel.id)).where(*conditions)
            ).scalar_one()

            stmt = (
                select(NotificationModel)
                .where(*conditions)
                .order_by(NotificationModel.sent_at.desc(), NotificationModel.id.desc())
                .limit(limit)
                .offset(offset)
            )
            models = self.session.execute(stmt).scalars().all()

        except SQLAlchemyError as e:
            logger.error(
                f"Error querying notification history: {e}",
                exc_info=True,
                extra={"event": "ledger.history_failed"},
            )
            raise PersistenceError(f"Failed to query notification history: {e}") from e

        return HistoryPage(
            records=[model.to_domain() for model in models],
            total=total,
            limit=limit,
            offset=offset,
        )

    def stats(self, days: int = 30, now: Optional[datetime] = None) -> LedgerStats:
        """Count records written during the last ``days`` days.

        Raises:
            PersistenceError: If database error occurs
        """
        cutoff = format_datetime((now or utc_now()) - timedelta(days=days))
        in_window = NotificationModel.sent_at >= cutoff

        try:
            total = self.session.execute(
                select(func.count(NotificationModel.id)).where(in_window)
            ).scalar_one()

            by_bucket = self.session.execute(
                select(NotificationModel.bucket_type, func.count(NotificationModel.id))
                .where(in_window)
                .group_by(NotificationModel.bucket_type)
            ).all()

            by_status = self.session.execute(
                select(NotificationModel.status, func.count(NotificationModel.id))
                .where(in_window)
                .group_by(NotificationModel.status)
            ).all()

            count_column = func.count(NotificationModel.id).label("total")
            top_departments = self.session.execute(
                select(NotificationModel.department, count_column)
                .where(in_window)
                .group_by(NotificationModel.department)
                .order_by(count_column.desc(), NotificationModel.department)
                .limit(10)
            ).all()

        except SQLAlchemyError as e:
            logger.error(
                f"Error computing notification stats: {e}",
                exc_info=True,
                extra={"event": "ledger.stats_failed"},
            )
            raise PersistenceError(f"Failed to compute notification stats: {e}") from e

        return LedgerStats(
            period_days=days,
            total=total,
            by_bucket={bucket_type: count for bucket_type, count in by_bucket},
            by_status={status: count for status, count in by_status},
            top_departments=[(name, count) for name, count in top_departments],
        )
