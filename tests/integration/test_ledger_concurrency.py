"""Two writers racing on one SQLite file must not both mark a case sent."""

import threading
from contextlib import contextmanager

import pytest
from sqlalchemy.orm import sessionmaker

from deadline_notifier.domain.models import Bucket, NotificationRecord, NotificationStatus
from deadline_notifier.persistence import (
    DuplicateNotificationError,
    NotificationLedger,
    close_database,
    create_database_engine,
    init_database,
)


@pytest.fixture
def database_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'ledger.db'}"
    init_database(url)
    yield url
    close_database()


def separate_ledger(url):
    """A ledger on its own engine, as a second process would have."""
    engine = create_database_engine(url)
    factory = sessionmaker(bind=engine, expire_on_commit=False)

    @contextmanager
    def session_scope():
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return NotificationLedger(session_scope), engine


def sent_record(message_id):
    return NotificationRecord(
        protocol="2025.000010",
        department="Secretaria Municipal de Saúde",
        recipients="smsdc@example.gov.br",
        bucket=Bucket.DUE_TODAY,
        message_id=message_id,
        status=NotificationStatus.SENT,
    )


def test_racing_writers_record_one_sent(database_url):
    first = NotificationLedger()
    second, engine = separate_ledger(database_url)
    barrier = threading.Barrier(2)
    outcomes = {}

    def write(name, ledger):
        barrier.wait()
        try:
            ledger.record(sent_record(f"msg-{name}"))
            outcomes[name] = "recorded"
        except DuplicateNotificationError:
            outcomes[name] = "duplicate"

    threads = [
        threading.Thread(target=write, args=("a", first)),
        threading.Thread(target=write, args=("b", second)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    try:
        assert sorted(outcomes.values()) == ["duplicate", "recorded"]
        assert first.history(status=NotificationStatus.SENT).total == 1
        assert second.already_notified("2025.000010", Bucket.DUE_TODAY)
    finally:
        engine.dispose()


def test_error_records_from_both_writers_are_kept(database_url):
    first = NotificationLedger()
    second, engine = separate_ledger(database_url)
    try:
        for ledger in (first, second):
            record = sent_record(None).model_copy(
                update={"status": NotificationStatus.ERROR, "error_message": "timeout"}
            )
            ledger.record(record)

        assert first.history().total == 2
        assert first.filter_pending(Bucket.DUE_TODAY, ["2025.000010"]) == {"2025.000010"}
    finally:
        engine.dispose()
