"""Domain models for the deadline notifier."""

from .models import (
    BUCKET_ORDER,
    Bucket,
    CaseSnapshot,
    Classification,
    ClassifiedCase,
    DirectoryEntry,
    NotificationRecord,
    NotificationStatus,
)

__all__ = [
    "Bucket",
    "BUCKET_ORDER",
    "CaseSnapshot",
    "Classification",
    "ClassifiedCase",
    "DirectoryEntry",
    "NotificationRecord",
    "NotificationStatus",
]
