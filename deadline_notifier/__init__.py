"""Deadline notification engine for municipal ombudsman cases."""

__version__ = "1.0.0"
