"""Data models and exceptions for the notification layer.

Delivery failures are classified once, where the provider response or
transport exception is first seen, into a closed set of kinds. The retry
loop switches on that kind and never inspects error text.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """How the retry loop must treat a delivery failure."""

    FATAL = "fatal"  # credential unusable; reauthorization required
    RETRYABLE = "retryable"  # rate limit, timeout, 5xx, network
    OTHER = "other"  # anything else; surfaced immediately


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when template rendering fails due to configuration or missing variables."""

    pass


class DeliveryError(NotificationError):
    """A send attempt failed.

    Attributes:
        kind: Classification driving the retry decision
        status_code: Provider HTTP status, when there was a response
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.OTHER,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)


class ReauthorizationRequired(DeliveryError):
    """The stored credential is invalid, expired beyond refresh, or revoked.

    An operator has to run the authorization flow again; no send can
    succeed until then.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, kind=ErrorKind.FATAL, status_code=status_code)


@dataclass
class SendResult:
    """Successful delivery of one message to one address."""

    message_id: str
    attempts: int


@dataclass
class RenderedMessage:
    """Subject and bodies ready for delivery."""

    subject: str
    html_body: str
    text_body: str
