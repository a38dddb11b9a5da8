"""Email delivery: credentials, Gmail transport, retry policy and templates."""

from .credentials import AccessToken, CredentialManager
from .delivery import DeliveryClient
from .gmail_client import GmailTransport, build_message, classify_response, encode_raw
from .models import (
    DeliveryError,
    ErrorKind,
    NotificationError,
    NotificationTemplateError,
    ReauthorizationRequired,
    RenderedMessage,
    SendResult,
)
from .payloads import build_department_context, build_digest_context
from .templates import TemplateRenderer

__all__ = [
    "AccessToken",
    "CredentialManager",
    "DeliveryClient",
    "GmailTransport",
    "build_message",
    "classify_response",
    "encode_raw",
    "DeliveryError",
    "ErrorKind",
    "NotificationError",
    "NotificationTemplateError",
    "ReauthorizationRequired",
    "RenderedMessage",
    "SendResult",
    "build_department_context",
    "build_digest_context",
    "TemplateRenderer",
]
