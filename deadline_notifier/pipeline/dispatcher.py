"""Concurrent delivery of department batches with ledger recording.

Department batches run on a bounded thread pool. Workers resolve
addresses, render and send; they never touch the ledger. Outcomes are
written from the submitting thread as each worker finishes, one
transaction per department.

A credential failure stops the bucket: batches not yet started are
cancelled, batches already in flight finish and are recorded. A stop
request (service shutdown) does the same.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence

from ..domain.models import Bucket, ClassifiedCase, NotificationRecord, NotificationStatus
from ..logging import get_logger
from ..logging.context import bind_log_context, log_context
from ..notifications.delivery import DeliveryClient
from ..notifications.models import (
    DeliveryError,
    NotificationTemplateError,
    ReauthorizationRequired,
)
from ..notifications.payloads import build_department_context
from ..notifications.templates import TemplateRenderer
from ..persistence.ledger import NotificationLedger
from ..recipients.resolver import RecipientResolver
from .models import DepartmentResult, DispatchResult

logger = get_logger(__name__, component="dispatch")


@dataclass
class _Delivery:
    """What a worker did for one department, before anything is recorded."""

    department: str
    cases: Sequence[ClassifiedCase]
    recipients: List[str] = field(default_factory=list)
    delivered_to: List[str] = field(default_factory=list)
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    reauthorization_required: bool = False
    skipped: bool = False


class Dispatcher:
    """Sends one message per department batch to every resolved address."""

    def __init__(
        self,
        resolver: RecipientResolver,
        delivery: DeliveryClient,
        ledger: NotificationLedger,
        renderer: Optional[TemplateRenderer] = None,
        sender_name: str = "",
        max_workers: int = 5,
    ):
        """
        Args:
            resolver: Department -> addresses
            delivery: Shared delivery client (thread-safe)
            ledger: Notification ledger
            renderer: Template renderer (default: package templates)
            sender_name: Signature shown in message bodies
            max_workers: Department batches in flight at once
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.resolver = resolver
        self.delivery = delivery
        self.ledger = ledger
        self.renderer = renderer or TemplateRenderer()
        self.sender_name = sender_name
        self.max_workers = max_workers
        self._stop = threading.Event()

    def request_stop(self) -> None:
        """Start no further department batches; in-flight ones finish."""
        self._stop.set()

    def clear_stop(self) -> None:
        self._stop.clear()

    def dispatch(
        self,
        bucket: Bucket,
        batches: Mapping[str, Sequence[ClassifiedCase]],
        today: date,
    ) -> DispatchResult:
        """Deliver and record every department batch of ``bucket``.

        Raises:
            PersistenceError: A ledger write failed for a reason other than
                a duplicate; remaining batches are cancelled
        """
        result = DispatchResult()
        if not batches:
            return result

        logger.info(
            f"Dispatching {len(batches)} department batches",
            extra={
                "event": "dispatch.started",
                "department_count": len(batches),
                "case_count": sum(len(cases) for cases in batches.values()),
                "max_workers": self.max_workers,
            },
        )

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="dispatch"
        ) as executor:
            futures: Dict[Future, str] = {}
            for department in sorted(batches):
                with log_context(department=department):
                    task = bind_log_context(self._deliver)
                future = executor.submit(task, bucket, department, batches[department], today)
                futures[future] = department

            try:
                for future in as_completed(futures):
                    if future.cancelled():
                        continue
                    department = futures[future]
                    delivery = self._delivery_outcome(future, department, batches[department])
                    if delivery.skipped:
                        result.skipped_departments.append(department)
                        continue
                    department_result = self._record(bucket, delivery)
                    result.departments.append(department_result)

                    if delivery.reauthorization_required and not result.reauthorization_required:
                        result.reauthorization_required = True
                        result.skipped_departments.extend(
                            futures[f] for f in futures if f.cancel()
                        )
                        if result.skipped_departments:
                            logger.error(
                                "Credential failure; remaining departments not dispatched",
                                extra={
                                    "event": "dispatch.aborted",
                                    "skipped_departments": result.skipped_departments,
                                },
                            )
            except Exception:
                for f in futures:
                    f.cancel()
                raise

        logger.info(
            f"Dispatch finished: {result.sent_count} sent, {result.error_count} errors",
            extra={
                "event": "dispatch.completed",
                "sent": result.sent_count,
                "errors": result.error_count,
                "duplicates": result.duplicate_count,
                "skipped_departments": len(result.skipped_departments),
                "reauthorization_required": result.reauthorization_required,
            },
        )
        return result

    def _delivery_outcome(
        self, future: Future, department: str, cases: Sequence[ClassifiedCase]
    ) -> _Delivery:
        try:
            return future.result()
        except Exception as e:
            logger.error(
                f"Unexpected error dispatching {department}: {e}",
                exc_info=True,
                extra={"event": "dispatch.department.crashed", "department": department},
            )
            return _Delivery(department=department, cases=cases, error_message=str(e))

    def _deliver(
        self,
        bucket: Bucket,
        department: str,
        cases: Sequence[ClassifiedCase],
        today: date,
    ) -> _Delivery:
        """Worker body: resolve, render once, send to each address."""
        outcome = _Delivery(department=department, cases=cases)
        if self._stop.is_set():
            outcome.skipped = True
            return outcome

        try:
            outcome.recipients = self.resolver.resolve_addresses(department)
        except Exception as e:
            outcome.error_message = f"Recipient resolution failed: {e}"
            logger.error(
                outcome.error_message,
                extra={"event": "dispatch.department.unresolved", "case_count": len(cases)},
            )
            return outcome

        try:
            message = self.renderer.render(
                "department",
                build_department_context(bucket, department, cases, today, self.sender_name),
            )
        except NotificationTemplateError as e:
            outcome.error_message = str(e)
            return outcome

        for address in outcome.recipients:
            try:
                sent = self.delivery.send(
                    address, message.subject, message.html_body, message.text_body
                )
            except ReauthorizationRequired as e:
                outcome.error_message = str(e)
                outcome.reauthorization_required = True
                break
            except DeliveryError as e:
                outcome.error_message = str(e)
                logger.warning(
                    f"Delivery to {address} failed: {e}",
                    extra={"event": "dispatch.address.failed", "address": address},
                )
                continue

            outcome.delivered_to.append(address)
            if outcome.message_id is None:
                outcome.message_id = sent.message_id

        return outcome

    def _record(self, bucket: Bucket, delivery: _Delivery) -> DepartmentResult:
        """Write one record per case for a finished department."""
        status = NotificationStatus.SENT if delivery.message_id else NotificationStatus.ERROR
        error_message = None if delivery.message_id else (
            delivery.error_message or "No recipient accepted the message"
        )
        recipients = ", ".join(delivery.recipients)

        entries = [
            NotificationRecord(
                protocol=case.protocol,
                department=delivery.department,
                recipients=recipients,
                bucket=bucket,
                due_date=case.due_date,
                days_remaining=case.days_remaining,
                message_id=delivery.message_id,
                status=status,
                error_message=error_message,
            )
            for case in delivery.cases
        ]
        written = self.ledger.record_batch(entries)

        department_result = DepartmentResult(
            department=delivery.department,
            case_count=len(delivery.cases),
            recipients=list(delivery.recipients),
            delivered_to=list(delivery.delivered_to),
            message_id=delivery.message_id,
            error_message=delivery.error_message,
            duplicate_count=len(written.duplicates),
            reauthorization_required=delivery.reauthorization_required,
        )
        if status is NotificationStatus.SENT:
            department_result.sent_count = len(written.recorded)
        else:
            department_result.error_count = len(written.recorded)

        with log_context(department=delivery.department):
            if status is NotificationStatus.SENT:
                logger.info(
                    f"Notified {delivery.department}: {len(delivery.cases)} cases",
                    extra={
                        "event": "dispatch.department.sent",
                        "case_count": len(delivery.cases),
                        "delivered_to": delivery.delivered_to,
                        "message_id": delivery.message_id,
                        "duplicates": department_result.duplicate_count,
                    },
                )
            else:
                logger.error(
                    f"Could not notify {delivery.department}: {error_message}",
                    extra={
                        "event": "dispatch.department.failed",
                        "case_count": len(delivery.cases),
                        "recipients": delivery.recipients,
                        "reauthorization_required": delivery.reauthorization_required,
                    },
                )

        return department_result
