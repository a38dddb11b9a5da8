"""Unit tests for the persistence layer and the notification ledger."""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import inspect

from deadline_notifier.domain.models import Bucket, NotificationRecord, NotificationStatus
from deadline_notifier.persistence import (
    DatabaseConnectionError,
    DuplicateNotificationError,
    NotificationLedger,
    NotificationRepository,
    close_database,
    get_engine,
    get_session,
    init_database,
    redact_url,
)
from deadline_notifier.persistence.schema import format_datetime, parse_datetime


@pytest.fixture
def temp_database():
    """Create a temporary in-memory database for testing."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture
def ledger(temp_database):
    return NotificationLedger()


def make_record(
    protocol="2025.000001",
    bucket=Bucket.DUE_TODAY,
    status=NotificationStatus.SENT,
    department="Secretaria Municipal de Saúde",
    sent_at=None,
    **kwargs,
):
    fields = dict(
        protocol=protocol,
        department=department,
        recipients="smsdc@x.gov",
        bucket=bucket,
        due_date=date(2025, 1, 21),
        days_remaining=0,
        message_id="msg-1" if status is NotificationStatus.SENT else None,
        status=status,
        error_message=None if status is NotificationStatus.SENT else "boom",
    )
    if sent_at is not None:
        fields["sent_at"] = sent_at
    fields.update(kwargs)
    return NotificationRecord(**fields)


class TestDatabaseInitialization:
    """Tests for database initialization."""

    def test_init_database_creates_parent_directories(self, tmp_path):
        """Test initialization creates parent directories if missing."""
        db_file = tmp_path / "subdir" / "nested" / "notifications.db"

        init_database(f"sqlite:///{db_file}")
        try:
            assert db_file.exists()
            assert "notifications" in inspect(get_engine()).get_table_names()
        finally:
            close_database()

    def test_init_database_invalid_url_raises_error(self):
        with pytest.raises(DatabaseConnectionError):
            init_database("")

    def test_session_before_init_raises(self):
        close_database()
        with pytest.raises(DatabaseConnectionError):
            with get_session():
                pass

    def test_schema_is_idempotent(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'ledger.db'}"
        init_database(url)
        close_database()
        init_database(url)
        close_database()

    def test_sent_index_is_unique(self, temp_database):
        indexes = {i["name"]: i for i in inspect(get_engine()).get_indexes("notifications")}

        assert indexes["uq_notifications_sent"]["unique"]

    def test_redact_url(self):
        assert redact_url("postgresql://reader:s3cret@db:5432/cases") == (
            "postgresql://reader:***@db:5432/cases"
        )
        assert redact_url("sqlite:///./data/notifications.db") == "sqlite:///./data/notifications.db"


class TestDatetimeStorage:
    """Tests for the fixed-width timestamp format."""

    def test_round_trip_preserves_instant(self):
        moment = datetime(2025, 1, 21, 11, 0, 4, 120000, tzinfo=timezone.utc)

        assert parse_datetime(format_datetime(moment)) == moment

    def test_fixed_width_sorts_chronologically(self):
        earlier = format_datetime(datetime(2025, 1, 21, 9, 0, tzinfo=timezone.utc))
        later = format_datetime(datetime(2025, 1, 21, 10, 0, 0, 1, tzinfo=timezone.utc))

        assert len(earlier) == len(later)
        assert earlier < later


class TestNotificationRepository:
    """Tests for NotificationRepository."""

    def test_add_and_has_been_sent(self, temp_database):
        with get_session() as session:
            NotificationRepository(session).add(make_record())

        with get_session() as session:
            repo = NotificationRepository(session)
            assert repo.has_been_sent("2025.000001", Bucket.DUE_TODAY)
            assert not repo.has_been_sent("2025.000001", Bucket.DUE_IN_15)
            assert not repo.has_been_sent("2025.999999", Bucket.DUE_TODAY)

    def test_duplicate_sent_raises(self, temp_database):
        with get_session() as session:
            NotificationRepository(session).add(make_record())

        with pytest.raises(DuplicateNotificationError) as exc_info:
            with get_session() as session:
                NotificationRepository(session).add(make_record(message_id="msg-2"))

        assert exc_info.value.protocol == "2025.000001"
        assert exc_info.value.bucket == "due-today"

    def test_sent_protocols_in_chunks(self, temp_database):
        protocols = [f"2025.{i:06d}" for i in range(1200)]
        with get_session() as session:
            repo = NotificationRepository(session)
            for protocol in protocols[::100]:
                repo.add(make_record(protocol=protocol))

        with get_session() as session:
            found = NotificationRepository(session).sent_protocols(Bucket.DUE_TODAY, protocols)

        assert found == set(protocols[::100])


class TestNotificationLedger:
    """Tests for NotificationLedger."""

    def test_error_records_do_not_block_sent(self, ledger):
        """Test that failed attempts are audit entries, not idempotency keys."""
        ledger.record(make_record(status=NotificationStatus.ERROR))
        ledger.record(make_record(status=NotificationStatus.ERROR))

        assert not ledger.already_notified("2025.000001", Bucket.DUE_TODAY)

        ledger.record(make_record())

        assert ledger.already_notified("2025.000001", Bucket.DUE_TODAY)

    def test_each_bucket_is_independent(self, ledger):
        ledger.record(make_record(bucket=Bucket.DUE_IN_15))

        ledger.record(make_record(bucket=Bucket.DUE_TODAY))

        assert ledger.already_notified("2025.000001", Bucket.DUE_IN_15)
        assert ledger.already_notified("2025.000001", Bucket.DUE_TODAY)

    def test_at_most_one_sent_per_key(self, ledger):
        ledger.record(make_record())

        with pytest.raises(DuplicateNotificationError):
            ledger.record(make_record())

        page = ledger.history(protocol="2025.000001", status=NotificationStatus.SENT)
        assert page.total == 1

    def test_filter_pending(self, ledger):
        ledger.record(make_record(protocol="A"))
        ledger.record(make_record(protocol="B", status=NotificationStatus.ERROR))

        assert ledger.filter_pending(Bucket.DUE_TODAY, ["A", "B", "C"]) == {"B", "C"}
        assert ledger.filter_pending(Bucket.DUE_TODAY, []) == set()

    def test_record_batch_single_transaction(self, ledger):
        result = ledger.record_batch([make_record(protocol="A"), make_record(protocol="B")])

        assert [r.protocol for r in result.recorded] == ["A", "B"]
        assert result.duplicates == []

    def test_record_batch_falls_back_on_duplicate(self, ledger):
        """Test that one already-sent key does not cost the others their record."""
        ledger.record(make_record(protocol="B"))

        result = ledger.record_batch(
            [make_record(protocol="A"), make_record(protocol="B"), make_record(protocol="C")]
        )

        assert sorted(r.protocol for r in result.recorded) == ["A", "C"]
        assert [r.protocol for r in result.duplicates] == ["B"]
        assert ledger.history(status=NotificationStatus.SENT).total == 3

    def test_record_batch_empty(self, ledger):
        result = ledger.record_batch([])

        assert result.recorded == [] and result.duplicates == []

    def test_history_filters_and_order(self, ledger):
        base = datetime(2025, 1, 21, 11, 0, tzinfo=timezone.utc)
        ledger.record(make_record(protocol="A", sent_at=base))
        ledger.record(make_record(protocol="B", sent_at=base + timedelta(minutes=1),
                                  department="Secretaria Municipal de Educação"))
        ledger.record(make_record(protocol="C", sent_at=base + timedelta(minutes=2),
                                  status=NotificationStatus.ERROR))

        page = ledger.history()
        assert [r.protocol for r in page.records] == ["C", "B", "A"]
        assert page.total == 3

        by_department = ledger.history(department="educação")
        assert [r.protocol for r in by_department.records] == ["B"]

        errors = ledger.history(status=NotificationStatus.ERROR)
        assert [r.protocol for r in errors.records] == ["C"]
        assert errors.records[0].error_message == "boom"

        second_page = ledger.history(limit=1, offset=1)
        assert [r.protocol for r in second_page.records] == ["B"]
        assert second_page.total == 3

    def test_history_round_trips_fields(self, ledger):
        ledger.record(make_record())

        record = ledger.history().records[0]

        assert record.bucket is Bucket.DUE_TODAY
        assert record.status is NotificationStatus.SENT
        assert record.due_date == date(2025, 1, 21)
        assert record.sent_at.tzinfo == timezone.utc

    def test_stats(self, ledger):
        now = datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)
        ledger.record(make_record(protocol="A", sent_at=now - timedelta(days=1)))
        ledger.record(make_record(protocol="B", bucket=Bucket.OVERDUE_60, sent_at=now - timedelta(days=2)))
        ledger.record(make_record(protocol="C", status=NotificationStatus.ERROR,
                                  department="Secretaria Municipal de Obras",
                                  sent_at=now - timedelta(days=3)))
        ledger.record(make_record(protocol="D", sent_at=now - timedelta(days=45)))

        stats = ledger.stats(days=30, now=now)

        assert stats.period_days == 30
        assert stats.total == 3
        assert stats.by_bucket == {"due-today": 2, "overdue-60": 1}
        assert stats.by_status == {"sent": 2, "error": 1}
        assert stats.top_departments == [
            ("Secretaria Municipal de Saúde", 2),
            ("Secretaria Municipal de Obras", 1),
        ]
