"""Scoped logging context built on contextvars.

A run pushes ``run_id``; each bucket pushes ``bucket``; each department
batch pushes ``department``. Records emitted inside those scopes pick the
fields up through :class:`~deadline_notifier.logging.config.ContextualFilter`.

Thread pools do not inherit contextvars, so the dispatcher wraps work
items with :func:`bind_log_context` before submitting them.
"""

import contextvars
from contextvars import ContextVar, Token
from typing import Any, Callable, Dict, Optional, TypeVar

T = TypeVar("T")

LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the active logging context."""
    return LogContextVar.get().copy()


def push_log_context(**fields: Any) -> Token:
    """Merge ``fields`` into the active context.

    Returns:
        Token for :func:`pop_log_context`
    """
    return LogContextVar.set({**LogContextVar.get(), **fields})


def pop_log_context(token: Token) -> None:
    """Restore the context captured by ``token``."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Drop every context field. Used by tests."""
    LogContextVar.set({})


def bind_log_context(func: Callable[..., T]) -> Callable[..., T]:
    """Wrap ``func`` so it runs inside a snapshot of the caller's context.

    Example:
        >>> with log_context(run_id="abc"):
        ...     executor.submit(bind_log_context(work), batch)
    """
    snapshot = contextvars.copy_context()

    def runner(*args: Any, **kwargs: Any) -> T:
        return snapshot.run(func, *args, **kwargs)

    return runner


class log_context:
    """Context manager that scopes extra logging fields.

    Example:
        >>> with log_context(run_id="abc123", bucket="due-today"):
        ...     logger.info("Bucket started")
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
        return False
