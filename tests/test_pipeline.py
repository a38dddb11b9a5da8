"""Unit tests for the pipeline runner.

Tests the NotificationPipeline orchestration including:
- A full run across the three buckets
- Idempotency across runs
- Error isolation between buckets
- Lock behavior (prevents concurrent runs)
- The digest runs for due-today only and never affects the ledger
- Credential failures and exit codes
"""

from datetime import date
from unittest.mock import Mock

import pytest

from deadline_notifier.classification import DeadlineClassifier
from deadline_notifier.domain.models import Bucket, NotificationStatus
from deadline_notifier.notifications import DeliveryError, ErrorKind
from deadline_notifier.persistence import NotificationLedger, close_database, init_database
from deadline_notifier.pipeline import Dispatcher, EscalationSummarizer, NotificationPipeline
from deadline_notifier.recipients import RecipientResolver
from deadline_notifier.sources import SourceError
from tests.helpers import (
    FakeCredentials,
    FakeTransport,
    InMemoryCaseSource,
    make_case,
    make_delivery,
)

TODAY = date(2025, 1, 31)
OVERSIGHT = ["gabinete@x.gov"]
STATIC = {
    "Secretaria Municipal de Saúde": "smsdc@x.gov",
    "Secretaria Municipal de Obras": "obras@x.gov",
}


@pytest.fixture
def temp_database():
    """Create a temporary in-memory database for testing."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture
def cases():
    """One case per bucket on 2025-01-31, plus one that falls in none."""
    return [
        make_case("TODAY-1", created="2025-01-01"),
        make_case("IN15-1", created="2025-01-16", department="Secretaria Municipal de Obras"),
        make_case("OVER-1", created="2024-11-01"),
        make_case("NONE-1", created="2025-01-20"),
    ]


class Stack:
    """A pipeline wired over fakes, with handles on each part."""

    def __init__(self, case_source, transport=None, summarizer=None):
        self.case_source = case_source
        self.transport = transport or FakeTransport()
        self.credentials = FakeCredentials()
        self.ledger = NotificationLedger()
        delivery = make_delivery(self.credentials, self.transport)
        self.dispatcher = Dispatcher(
            resolver=RecipientResolver("ouvidoria@example.gov.br", static_directory=STATIC),
            delivery=delivery,
            ledger=self.ledger,
            max_workers=2,
        )
        self.summarizer = summarizer or EscalationSummarizer(delivery, OVERSIGHT)
        self.pipeline = NotificationPipeline(
            case_source=case_source,
            classifier=DeadlineClassifier(),
            ledger=self.ledger,
            dispatcher=self.dispatcher,
            summarizer=self.summarizer,
            credentials=self.credentials,
            today_provider=lambda: TODAY,
        )

    def sent_to(self):
        return sorted(m["to"] for m in self.transport.sent)


def test_full_run(temp_database, cases):
    stack = Stack(InMemoryCaseSource(cases))

    result = stack.pipeline.run_once()

    assert not result.skipped
    assert result.today == TODAY
    assert [b.bucket for b in result.buckets] == [Bucket.DUE_IN_15, Bucket.DUE_TODAY, Bucket.OVERDUE_60]
    assert [b.sent_count for b in result.buckets] == [1, 1, 1]
    assert result.total_sent == 3
    assert result.exit_code == 0
    assert stack.sent_to() == ["gabinete@x.gov", "obras@x.gov", "smsdc@x.gov", "smsdc@x.gov"]

    due_today = result.buckets[1]
    assert due_today.digest.delivered.keys() == {"gabinete@x.gov"}
    assert result.buckets[0].digest is None
    assert result.buckets[2].digest is None
    assert stack.case_source.calls == 3

    assert stack.ledger.already_notified("TODAY-1", Bucket.DUE_TODAY)
    assert stack.ledger.already_notified("IN15-1", Bucket.DUE_IN_15)
    assert stack.ledger.already_notified("OVER-1", Bucket.OVERDUE_60)
    assert stack.ledger.history().total == 3


def test_second_run_sends_nothing(temp_database, cases):
    stack = Stack(InMemoryCaseSource(cases))
    stack.pipeline.run_once()
    stack.transport.sent.clear()

    result = stack.pipeline.run_once()

    assert result.total_sent == 0
    assert [b.already_notified_count for b in result.buckets] == [1, 1, 1]
    assert stack.transport.sent == []
    assert result.buckets[1].digest.attempted is False


def test_selected_buckets_only(temp_database, cases):
    stack = Stack(InMemoryCaseSource(cases))

    result = stack.pipeline.run_once(buckets=[Bucket.DUE_IN_15])

    assert [b.bucket for b in result.buckets] == [Bucket.DUE_IN_15]
    assert stack.sent_to() == ["obras@x.gov"]


def test_explicit_today(temp_database):
    stack = Stack(InMemoryCaseSource([make_case("A", created="2025-01-01")]))

    result = stack.pipeline.run_once(buckets=[Bucket.DUE_IN_15], today=date(2025, 1, 16))

    assert result.today == date(2025, 1, 16)
    assert result.total_sent == 1


def test_source_failure_is_isolated_per_bucket(temp_database, cases):
    class FlakySource(InMemoryCaseSource):
        def fetch_cases(self):
            if self.calls == 0:
                self.calls += 1
                raise SourceError("connection reset", source="cases")
            return super().fetch_cases()

    stack = Stack(FlakySource(cases))

    result = stack.pipeline.run_once()

    first, second, third = result.buckets
    assert first.had_errors
    assert "connection reset" in first.error_message
    assert second.sent_count == 1
    assert third.sent_count == 1
    assert result.exit_code == 1


def test_repeated_protocols_notified_once(temp_database):
    case = make_case("TODAY-1", created="2025-01-01")
    stack = Stack(InMemoryCaseSource([case, case]))

    result = stack.pipeline.run_once(buckets=[Bucket.DUE_TODAY])

    assert result.total_sent == 1
    assert result.buckets[0].selected_count == 2
    assert stack.ledger.history().total == 1


def test_digest_failure_does_not_affect_ledger(temp_database, cases):
    summarizer = Mock()
    summarizer.summarize.side_effect = RuntimeError("digest crashed")
    stack = Stack(InMemoryCaseSource(cases), summarizer=summarizer)

    result = stack.pipeline.run_once(buckets=[Bucket.DUE_TODAY])

    bucket = result.buckets[0]
    assert bucket.had_errors
    assert bucket.sent_count == 1
    assert stack.ledger.already_notified("TODAY-1", Bucket.DUE_TODAY)
    assert result.exit_code == 1


def test_failed_delivery_leaves_case_eligible(temp_database):
    transport = FakeTransport({"smsdc@x.gov": [DeliveryError("bad request", kind=ErrorKind.OTHER)]})
    stack = Stack(InMemoryCaseSource([make_case("TODAY-1", created="2025-01-01")]), transport=transport)

    first = stack.pipeline.run_once(buckets=[Bucket.DUE_TODAY])
    second = stack.pipeline.run_once(buckets=[Bucket.DUE_TODAY])

    assert first.total_errors == 1
    assert second.total_sent == 1
    statuses = [r.status for r in stack.ledger.history(protocol="TODAY-1").records]
    assert statuses == [NotificationStatus.SENT, NotificationStatus.ERROR]


def test_reauthorization_required(temp_database, cases):
    fatal = DeliveryError("401", kind=ErrorKind.FATAL, status_code=401)
    transport = FakeTransport({"obras@x.gov": [fatal]})
    stack = Stack(InMemoryCaseSource(cases), transport=transport)

    result = stack.pipeline.run_once()

    assert result.reauthorization_required
    assert result.exit_code == 2
    assert result.total_sent == 0
    assert stack.ledger.filter_pending(Bucket.DUE_TODAY, ["TODAY-1"]) == {"TODAY-1"}

    result = stack.pipeline.run_once()

    assert stack.credentials.resets == 2
    assert result.total_sent == 3


def test_concurrent_run_is_skipped(temp_database, cases):
    stack = Stack(InMemoryCaseSource(cases))
    stack.pipeline._lock.acquire()
    try:
        assert stack.pipeline.is_running()

        result = stack.pipeline.run_once()
    finally:
        stack.pipeline._lock.release()

    assert result.skipped
    assert result.buckets == []
    assert stack.case_source.calls == 0
    assert not stack.pipeline.is_running()


def test_request_stop_reaches_dispatcher(temp_database, cases):
    stack = Stack(InMemoryCaseSource(cases))

    stack.pipeline.request_stop()

    assert stack.dispatcher._stop.is_set()
