"""Pipeline orchestration for one deadline notification run."""

import threading
import time
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional
from uuid import uuid4

from ..classification.classifier import DeadlineClassifier, SelectionStats
from ..domain.models import BUCKET_ORDER, Bucket, ClassifiedCase
from ..logging import get_logger
from ..logging.context import log_context
from ..notifications.credentials import CredentialManager
from ..persistence.ledger import NotificationLedger
from ..sources.base import CaseSource
from ..utils.timestamps import local_today, utc_now
from .batching import group_by_department
from .dispatcher import Dispatcher
from .escalation import EscalationSummarizer
from .models import BucketResult, RunResult

logger = get_logger(__name__, component="pipeline")


class NotificationPipeline:
    """
    Runs the deadline buckets for one day.

    Each bucket goes through: fetch cases → classify → drop already
    notified → group by department → dispatch → (due-today only) digest.
    Buckets run sequentially and independently; a failure in one is
    captured in its result and the next bucket still runs.
    """

    def __init__(
        self,
        case_source: CaseSource,
        classifier: DeadlineClassifier,
        ledger: NotificationLedger,
        dispatcher: Dispatcher,
        summarizer: EscalationSummarizer,
        credentials: Optional[CredentialManager] = None,
        timezone: str = "America/Sao_Paulo",
        today_provider: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            case_source: Read-only case store
            classifier: Bucket classifier
            ledger: Notification ledger
            dispatcher: Department batch dispatcher
            summarizer: Oversight digest sender
            credentials: Shared credential manager, reset at the start of
                each run so an earlier credential failure is retried
            timezone: IANA zone that defines "today"
            today_provider: Overrides the local date (tests)
        """
        self.case_source = case_source
        self.classifier = classifier
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.summarizer = summarizer
        self.credentials = credentials
        self.timezone = timezone
        self._today_provider = today_provider or (lambda: local_today(self.timezone))
        self._lock = threading.Lock()

    def request_stop(self) -> None:
        """Let in-flight department batches finish; start nothing new."""
        self.dispatcher.request_stop()

    def is_running(self) -> bool:
        return self._lock.locked()

    def run_once(
        self,
        buckets: Optional[Iterable[Bucket]] = None,
        today: Optional[date] = None,
    ) -> RunResult:
        """
        Execute one run.

        Args:
            buckets: Buckets to process (default: all three, in order)
            today: Evaluation date (default: today in the configured zone)

        Returns:
            RunResult with per-bucket results. If another run holds the
            lock, returns immediately with ``skipped=True``.
        """
        run_started_at = utc_now()
        run_id = uuid4().hex
        today = today or self._today_provider()
        selected = tuple(buckets) if buckets else BUCKET_ORDER

        if not self._lock.acquire(blocking=False):
            with log_context(run_id=run_id):
                logger.warning(
                    "Run skipped: previous run still in progress",
                    extra={"event": "pipeline.run.skipped", "reason": "lock_held"},
                )
            return RunResult(
                run_id=run_id,
                today=today,
                run_started_at=run_started_at,
                run_finished_at=utc_now(),
                skipped=True,
            )

        try:
            with log_context(run_id=run_id):
                self.dispatcher.clear_stop()
                if self.credentials is not None:
                    self.credentials.reset()

                logger.info(
                    "Run started",
                    extra={
                        "event": "pipeline.run.started",
                        "today": today,
                        "buckets": [b.value for b in selected],
                    },
                )

                bucket_results: List[BucketResult] = []
                for bucket in selected:
                    bucket_results.append(self._process_bucket(bucket, today))

                result = RunResult(
                    run_id=run_id,
                    today=today,
                    run_started_at=run_started_at,
                    run_finished_at=utc_now(),
                    buckets=bucket_results,
                )

                logger.info(
                    "Run completed",
                    extra={
                        "event": "pipeline.run.completed",
                        "duration_ms": int(result.total_duration_seconds * 1000),
                        "total_sent": result.total_sent,
                        "total_errors": result.total_errors,
                        "total_duplicates": result.total_duplicates,
                        "had_errors": result.had_errors,
                        "reauthorization_required": result.reauthorization_required,
                        "per_bucket": {
                            b.bucket.value: {"sent": b.sent_count, "errors": b.error_count}
                            for b in bucket_results
                        },
                    },
                )
                return result

        finally:
            self._lock.release()

    def _process_bucket(self, bucket: Bucket, today: date) -> BucketResult:
        bucket_start = time.time()
        result = BucketResult(bucket=bucket)

        with log_context(bucket=bucket.value):
            logger.info(f"Processing bucket {bucket.value}", extra={"event": "bucket.started"})

            try:
                cases = self.case_source.fetch_cases()

                stats = SelectionStats()
                selected = self.classifier.select(cases, bucket, today, stats)
                result.examined_count = stats.examined
                result.closed_count = stats.closed
                result.undated_count = stats.undated
                result.selected_count = len(selected)

                pending = self._pending(bucket, selected)
                result.already_notified_count = len(selected) - len(pending)

                batches = group_by_department(pending)
                result.dispatch = self.dispatcher.dispatch(bucket, batches, today)

                if bucket is Bucket.DUE_TODAY:
                    self._send_digest(result, batches, today)

                result.had_errors = bool(
                    result.had_errors
                    or result.dispatch.error_count
                    or result.reauthorization_required
                    or (result.digest and result.digest.failed)
                )

            except Exception as e:
                result.had_errors = True
                result.error_message = str(e)
                logger.error(
                    f"Bucket {bucket.value} failed: {e}",
                    exc_info=True,
                    extra={"event": "bucket.failed", "error_type": type(e).__name__},
                )

            finally:
                result.duration_seconds = time.time() - bucket_start

            logger.info(
                f"Bucket {bucket.value}: {result.sent_count} sent, {result.error_count} errors",
                extra={
                    "event": "bucket.completed",
                    "examined": result.examined_count,
                    "closed": result.closed_count,
                    "undated": result.undated_count,
                    "selected": result.selected_count,
                    "already_notified": result.already_notified_count,
                    "sent": result.sent_count,
                    "errors": result.error_count,
                    "duplicates": result.duplicate_count,
                    "skipped_departments": len(result.dispatch.skipped_departments),
                    "duration_seconds": round(result.duration_seconds, 3),
                },
            )

        return result

    def _pending(self, bucket: Bucket, selected: List[ClassifiedCase]) -> List[ClassifiedCase]:
        """Drop cases already notified for ``bucket`` and repeated protocols."""
        pending_protocols = self.ledger.filter_pending(bucket, (c.protocol for c in selected))

        pending: List[ClassifiedCase] = []
        seen = set()
        for case in selected:
            if case.protocol in pending_protocols and case.protocol not in seen:
                seen.add(case.protocol)
                pending.append(case)

        repeated = sum(1 for c in selected if c.protocol in pending_protocols) - len(pending)
        if repeated:
            logger.warning(
                "Case source returned repeated protocols; notifying each once",
                extra={"event": "bucket.repeated_protocols", "repeated": repeated},
            )
        return pending

    def _send_digest(
        self, result: BucketResult, batches: Dict[str, List[ClassifiedCase]], today: date
    ) -> None:
        """Digest failures are logged and flagged, never raised."""
        try:
            result.digest = self.summarizer.summarize(batches, today)
        except Exception as e:
            result.had_errors = True
            logger.error(
                f"Digest failed: {e}",
                exc_info=True,
                extra={"event": "digest.failed", "error_type": type(e).__name__},
            )
