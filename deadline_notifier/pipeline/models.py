"""Data models for dispatch, digest and run results."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from ..domain.models import Bucket


@dataclass
class DepartmentResult:
    """
    Outcome of one department batch.

    Attributes:
        department: Department name as grouped
        case_count: Cases in the batch
        recipients: Addresses the message was addressed to (empty when
            resolution failed)
        delivered_to: Addresses that accepted the message
        message_id: Provider id of the first successful send
        error_message: Last failure, when nothing was delivered or some
            addresses failed
        sent_count: ``sent`` records written
        error_count: ``error`` records written
        duplicate_count: Records rejected because another run already
            recorded the key
        reauthorization_required: Delivery stopped on a credential failure
    """

    department: str
    case_count: int
    recipients: List[str] = field(default_factory=list)
    delivered_to: List[str] = field(default_factory=list)
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    sent_count: int = 0
    error_count: int = 0
    duplicate_count: int = 0
    reauthorization_required: bool = False

    @property
    def delivered(self) -> bool:
        return self.message_id is not None


@dataclass
class DispatchResult:
    """
    Aggregate of one bucket's department batches.

    ``skipped_departments`` lists batches never started because a
    credential failure stopped the bucket; their cases got no ledger
    record and stay eligible.
    """

    departments: List[DepartmentResult] = field(default_factory=list)
    skipped_departments: List[str] = field(default_factory=list)
    reauthorization_required: bool = False

    @property
    def sent_count(self) -> int:
        return sum(d.sent_count for d in self.departments)

    @property
    def error_count(self) -> int:
        return sum(d.error_count for d in self.departments)

    @property
    def duplicate_count(self) -> int:
        return sum(d.duplicate_count for d in self.departments)

    @property
    def aborted(self) -> bool:
        return bool(self.skipped_departments)


@dataclass
class DigestResult:
    """
    Outcome of the oversight digest.

    Attributes:
        attempted: False when there was nothing to summarize or nobody to send to
        total_cases: Cases listed in the digest
        department_count: Departments listed in the digest
        delivered: Address -> provider message id
        failed: Address -> error message
        reauthorization_required: Delivery stopped on a credential failure
    """

    attempted: bool = False
    total_cases: int = 0
    department_count: int = 0
    delivered: Dict[str, str] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)
    reauthorization_required: bool = False


@dataclass
class BucketResult:
    """
    Results for one bucket within a run.

    Attributes:
        bucket: Bucket processed
        examined_count: Cases read from the case source
        closed_count: Cases skipped as closed
        undated_count: Cases skipped for lack of a creation date
        selected_count: Cases that fell in the bucket today
        already_notified_count: Selected cases with a ``sent`` record already
        dispatch: Per-department results
        digest: Oversight digest (due-today only)
        duration_seconds: Time spent on this bucket
        had_errors: Whether any error occurred
        error_message: Bucket-level failure that stopped processing
    """

    bucket: Bucket
    examined_count: int = 0
    closed_count: int = 0
    undated_count: int = 0
    selected_count: int = 0
    already_notified_count: int = 0
    dispatch: DispatchResult = field(default_factory=DispatchResult)
    digest: Optional[DigestResult] = None
    duration_seconds: float = 0.0
    had_errors: bool = False
    error_message: Optional[str] = None

    @property
    def sent_count(self) -> int:
        return self.dispatch.sent_count

    @property
    def error_count(self) -> int:
        return self.dispatch.error_count

    @property
    def duplicate_count(self) -> int:
        return self.dispatch.duplicate_count

    @property
    def reauthorization_required(self) -> bool:
        return self.dispatch.reauthorization_required or bool(
            self.digest and self.digest.reauthorization_required
        )


@dataclass
class RunResult:
    """
    Aggregate results from one run over one or more buckets.

    Attributes:
        run_id: Identifier stamped on every log record of the run
        today: Local calendar date the buckets were evaluated for
        run_started_at: UTC timestamp when the run began
        run_finished_at: UTC timestamp when the run completed
        buckets: Per-bucket results, in execution order
        skipped: Whether the run was skipped because another was in progress
    """

    run_id: str
    today: date
    run_started_at: datetime
    run_finished_at: datetime
    buckets: List[BucketResult] = field(default_factory=list)
    skipped: bool = False
    total_duration_seconds: float = 0.0

    def __post_init__(self):
        if self.total_duration_seconds == 0.0:
            delta = self.run_finished_at - self.run_started_at
            self.total_duration_seconds = delta.total_seconds()

    @property
    def total_sent(self) -> int:
        return sum(b.sent_count for b in self.buckets)

    @property
    def total_errors(self) -> int:
        return sum(b.error_count for b in self.buckets)

    @property
    def total_duplicates(self) -> int:
        return sum(b.duplicate_count for b in self.buckets)

    @property
    def had_errors(self) -> bool:
        return any(b.had_errors for b in self.buckets)

    @property
    def reauthorization_required(self) -> bool:
        return any(b.reauthorization_required for b in self.buckets)

    @property
    def exit_code(self) -> int:
        """0 success, 1 finished with errors, 2 reauthorization required."""
        if self.reauthorization_required:
            return 2
        if self.had_errors:
            return 1
        return 0
