"""Test helpers for the deadline notifier tests."""

from .fakes import (
    FakeCredentials,
    FakeTransport,
    InMemoryCaseSource,
    InMemoryDirectory,
    make_case,
    make_classified,
    make_delivery,
)

__all__ = [
    "FakeCredentials",
    "FakeTransport",
    "InMemoryCaseSource",
    "InMemoryDirectory",
    "make_case",
    "make_classified",
    "make_delivery",
]
