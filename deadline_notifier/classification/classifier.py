"""Deadline classification of open cases into notification buckets."""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence

from ..config.models import DEFAULT_INFORMATION_REQUEST_TERMS, DeadlineConfig
from ..domain.models import Bucket, CaseSnapshot, Classification, ClassifiedCase
from ..logging import get_logger
from .dates import resolve_creation_date
from .fields import (
    is_closed,
    resolve_department,
    resolve_manifestation_type,
    resolve_protocol,
    resolve_subject,
)

logger = get_logger(__name__, component="classification")


@dataclass
class SelectionStats:
    """Counters for one bucket selection pass."""

    examined: int = 0
    closed: int = 0
    undated: int = 0
    selected: int = 0
    undated_protocols: List[str] = field(default_factory=list)


class DeadlineClassifier:
    """Places cases into deadline buckets relative to a given day.

    ``classify`` is pure: same case and same ``today`` always yield the
    same answer, and nothing is read from the clock.
    """

    def __init__(
        self,
        information_request_days: int = 20,
        default_days: int = 30,
        information_request_terms: Sequence[str] = DEFAULT_INFORMATION_REQUEST_TERMS,
        early_warning_days: int = 15,
        overdue_days: int = 60,
    ):
        self.information_request_days = information_request_days
        self.default_days = default_days
        self.information_request_terms = tuple(t.lower() for t in information_request_terms)
        self.early_warning_days = early_warning_days
        self.overdue_days = overdue_days

    @classmethod
    def from_config(cls, config: DeadlineConfig) -> "DeadlineClassifier":
        return cls(
            information_request_days=config.information_request_days,
            default_days=config.default_days,
            information_request_terms=config.information_request_terms,
            early_warning_days=config.early_warning_days,
            overdue_days=config.overdue_days,
        )

    def sla_days(self, manifestation_type: Optional[str]) -> int:
        """Deadline in days: shorter for information requests.

        Example:
            >>> DeadlineClassifier().sla_days("Pedido de Informação")
            20
            >>> DeadlineClassifier().sla_days("Reclamação")
            30
        """
        text = (manifestation_type or "").lower()
        if any(term in text for term in self.information_request_terms):
            return self.information_request_days
        return self.default_days

    def bucket_for(self, days_remaining: int) -> Optional[Bucket]:
        if days_remaining == self.early_warning_days:
            return Bucket.DUE_IN_15
        if days_remaining == 0:
            return Bucket.DUE_TODAY
        if days_remaining <= -self.overdue_days:
            return Bucket.OVERDUE_60
        return None

    def classify(self, case: CaseSnapshot, today: date) -> Optional[Classification]:
        """Classify one case for ``today``.

        Args:
            case: Case snapshot
            today: Local calendar date of the run

        Returns:
            Classification, or None when the case is closed, undated,
            or outside every bucket
        """
        if is_closed(case):
            return None

        created = resolve_creation_date(case)
        if created is None:
            return None

        sla = self.sla_days(resolve_manifestation_type(case))
        try:
            due = created + timedelta(days=sla)
        except OverflowError:
            return None

        days_remaining = (due - today).days
        bucket = self.bucket_for(days_remaining)
        if bucket is None:
            return None

        return Classification(
            bucket=bucket, due_date=due, days_remaining=days_remaining, sla_days=sla
        )

    def select(
        self,
        cases: Iterable[CaseSnapshot],
        bucket: Bucket,
        today: date,
        stats: Optional[SelectionStats] = None,
    ) -> List[ClassifiedCase]:
        """Return the cases that fall in ``bucket`` on ``today``.

        Cases without a resolvable creation date are skipped and logged.
        """
        stats = stats if stats is not None else SelectionStats()
        selected: List[ClassifiedCase] = []

        for case in cases:
            stats.examined += 1

            if is_closed(case):
                stats.closed += 1
                continue

            created = resolve_creation_date(case)
            if created is None:
                stats.undated += 1
                stats.undated_protocols.append(resolve_protocol(case))
                continue

            classification = self.classify(case, today)
            if classification is None or classification.bucket != bucket:
                continue

            selected.append(
                ClassifiedCase(
                    protocol=resolve_protocol(case),
                    department=resolve_department(case),
                    manifestation_type=resolve_manifestation_type(case),
                    subject=resolve_subject(case),
                    creation_date=created,
                    due_date=classification.due_date,
                    days_remaining=classification.days_remaining,
                    sla_days=classification.sla_days,
                    bucket=classification.bucket,
                )
            )

        stats.selected = len(selected)

        if stats.undated:
            logger.warning(
                "Skipped cases without a resolvable creation date",
                extra={
                    "event": "classification.undated_skipped",
                    "bucket": bucket.value,
                    "undated_count": stats.undated,
                    "sample_protocols": stats.undated_protocols[:10],
                },
            )

        logger.debug(
            "Bucket selection complete",
            extra={
                "event": "classification.selected",
                "bucket": bucket.value,
                "examined": stats.examined,
                "closed": stats.closed,
                "selected": stats.selected,
            },
        )
        return selected
