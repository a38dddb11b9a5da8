"""Notification ledger: idempotency checks and append-only outcome records.

Each public call runs in its own transaction. Uniqueness of ``sent``
records is enforced by the database index, so two processes racing on the
same case and bucket cannot both succeed; the loser sees
:class:`DuplicateNotificationError`.
"""

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence, Set

from sqlalchemy.orm import Session

from ..domain.models import Bucket, NotificationRecord, NotificationStatus
from ..logging import get_logger
from .database import get_session
from .exceptions import DuplicateNotificationError
from .repositories import HistoryPage, LedgerStats, NotificationRepository

logger = get_logger(__name__, component="ledger")

SessionFactory = Callable[[], AbstractContextManager[Session]]


@dataclass
class BatchRecordResult:
    """Outcome of :meth:`NotificationLedger.record_batch`."""

    recorded: List[NotificationRecord] = field(default_factory=list)
    duplicates: List[NotificationRecord] = field(default_factory=list)


class NotificationLedger:
    """Append-only store of notification attempts keyed by (protocol, bucket)."""

    def __init__(self, session_factory: SessionFactory = get_session):
        """
        Args:
            session_factory: Context manager factory yielding a transactional
                session (commit on exit, rollback on error)
        """
        self._session_factory = session_factory

    def already_notified(self, protocol: str, bucket: Bucket) -> bool:
        """True iff a ``sent`` record exists for (protocol, bucket)."""
        with self._session_factory() as session:
            return NotificationRepository(session).has_been_sent(protocol, bucket)

    def filter_pending(self, bucket: Bucket, protocols: Iterable[str]) -> Set[str]:
        """Return the protocols that have no ``sent`` record for ``bucket``."""
        wanted = set(protocols)
        if not wanted:
            return set()
        with self._session_factory() as session:
            done = NotificationRepository(session).sent_protocols(bucket, wanted)
        return wanted - done

    def record(self, entry: NotificationRecord) -> None:
        """Append one record.

        Raises:
            DuplicateNotificationError: A ``sent`` record already exists for
                the key. Treat as already handled, never retry.
            PersistenceError: On any other storage failure
        """
        with self._session_factory() as session:
            NotificationRepository(session).add(entry)

    def record_batch(self, entries: Sequence[NotificationRecord]) -> BatchRecordResult:
        """Append a department's records in one transaction.

        When the transaction is rejected because another run already
        recorded one of the keys, the entries are written one per
        transaction instead, so each remaining case still gets its record
        and the rejected keys are reported as duplicates.

        Raises:
            PersistenceError: On storage failures other than duplicates
        """
        result = BatchRecordResult()
        if not entries:
            return result

        try:
            with self._session_factory() as session:
                repo = NotificationRepository(session)
                for entry in entries:
                    repo.add(entry)
            result.recorded.extend(entries)
            return result
        except DuplicateNotificationError as e:
            logger.info(
                "Batch write hit an existing sent record, retrying entry by entry",
                extra={
                    "event": "ledger.batch_fallback",
                    "protocol": e.protocol,
                    "bucket": e.bucket,
                    "batch_size": len(entries),
                },
            )

        for entry in entries:
            try:
                self.record(entry)
                result.recorded.append(entry)
            except DuplicateNotificationError:
                logger.info(
                    "Notification already recorded by another run",
                    extra={
                        "event": "ledger.duplicate",
                        "protocol": entry.protocol,
                        "bucket": entry.bucket.value,
                    },
                )
                result.duplicates.append(entry)

        return result

    def history(
        self,
        protocol: Optional[str] = None,
        department: Optional[str] = None,
        bucket: Optional[Bucket] = None,
        status: Optional[NotificationStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> HistoryPage:
        """Filtered ledger listing, newest first."""
        with self._session_factory() as session:
            return NotificationRepository(session).history(
                protocol=protocol,
                department=department,
                bucket=bucket,
                status=status,
                limit=limit,
                offset=offset,
            )

    def stats(self, days: int = 30, now: Optional[datetime] = None) -> LedgerStats:
        """Counts over the last ``days`` days."""
        with self._session_factory() as session:
            return NotificationRepository(session).stats(days=days, now=now)
