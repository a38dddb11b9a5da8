"""Scheduling module for the daily notification run."""

from .service import SchedulerService

__all__ = [
    "SchedulerService",
]
