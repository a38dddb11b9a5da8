"""Pipeline orchestration: batching, dispatch, escalation and runs."""

from .batching import group_by_department
from .dispatcher import Dispatcher
from .escalation import EscalationSummarizer
from .models import BucketResult, DepartmentResult, DigestResult, DispatchResult, RunResult
from .runner import NotificationPipeline

__all__ = [
    "group_by_department",
    "Dispatcher",
    "EscalationSummarizer",
    "NotificationPipeline",
    "BucketResult",
    "DepartmentResult",
    "DigestResult",
    "DispatchResult",
    "RunResult",
]
