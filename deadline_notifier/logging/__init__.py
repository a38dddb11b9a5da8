"""Structured logging helpers for the deadline notifier.

Every module obtains its logger through :func:`get_logger`, naming the
component it belongs to (``pipeline``, ``dispatch``, ``delivery`` ...).
The component travels as an ``extra`` field so both the JSON and the
key-value formatter can render it.
"""

import logging
from typing import Optional, Union


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges the component field with per-call extras."""

    def process(self, msg, kwargs):
        """Merge adapter extras under the caller's extras (caller wins)."""
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(
    name: str, component: Optional[str] = None
) -> Union[logging.Logger, ComponentLoggerAdapter]:
    """Return a logger that stamps ``component`` on every record.

    Args:
        name: Logger name (typically ``__name__``)
        component: Component label injected into all records

    Returns:
        Plain logger when no component is given, otherwise an adapter

    Example:
        >>> logger = get_logger(__name__, component="dispatch")
        >>> logger.info("Batch sent", extra={"event": "dispatch.department.sent"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger
