"""Gmail REST transport and MIME message construction.

The transport performs exactly one HTTP call per method and converts
every failure into a :class:`DeliveryError` whose ``kind`` says whether
retrying can help. Retrying itself is the delivery client's job.
"""

import base64
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, Dict, Optional, Sequence

import requests

from ..logging import get_logger
from .models import DeliveryError, ErrorKind

logger = get_logger(__name__, component="delivery")

GMAIL_API = "https://gmail.googleapis.com/gmail/v1/users/me"
SEND_URL = f"{GMAIL_API}/messages/send"
PROFILE_URL = f"{GMAIL_API}/profile"

RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})
RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded"})


def build_message(
    sender_address: str,
    sender_name: str,
    to: Sequence[str],
    subject: str,
    html_body: str,
    text_body: str,
) -> EmailMessage:
    """Build a multipart/alternative message (plain text first, then HTML).

    Non-ASCII subjects and display names are RFC 2047 encoded on
    serialization.
    """
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = formataddr((sender_name, sender_address))
    message["To"] = ", ".join(to)
    message["Message-ID"] = make_msgid(domain=sender_address.rsplit("@", 1)[-1])

    message.set_content(text_body)
    message.add_alternative(html_body, subtype="html")
    return message


def encode_raw(message: EmailMessage) -> str:
    """Encode a message as the base64url ``raw`` field the API expects."""
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


def _error_details(response: requests.Response) -> tuple[str, str]:
    """Return (error code/reason, message) from a Google error body."""
    try:
        body = response.json()
    except ValueError:
        return "", response.text[:200]

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, str):
        return error, body.get("error_description", "")
    if isinstance(error, dict):
        reasons = [e.get("reason", "") for e in error.get("errors", []) if isinstance(e, dict)]
        return (reasons[0] if reasons else error.get("status", "")), error.get("message", "")
    return "", ""


def classify_response(status_code: int, reason: str = "") -> ErrorKind:
    """Map a failed HTTP response to an :class:`ErrorKind`.

    Example:
        >>> classify_response(429)
        <ErrorKind.RETRYABLE: 'retryable'>
        >>> classify_response(401)
        <ErrorKind.FATAL: 'fatal'>
    """
    if status_code == 401:
        return ErrorKind.FATAL
    if status_code == 400 and reason == "invalid_grant":
        return ErrorKind.FATAL
    if status_code == 403:
        if reason in RATE_LIMIT_REASONS:
            return ErrorKind.RETRYABLE
        return ErrorKind.FATAL
    if status_code in RETRYABLE_STATUS or status_code >= 500:
        return ErrorKind.RETRYABLE
    return ErrorKind.OTHER


def classify_exception(exc: requests.RequestException) -> ErrorKind:
    """Network-level failures are retryable; malformed requests are not."""
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return ErrorKind.RETRYABLE
    return ErrorKind.OTHER


class GmailTransport:
    """Thin client for the two Gmail endpoints the notifier uses."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = 30):
        self._session = session or requests.Session()
        self.timeout = timeout

    def send_raw(self, access_token: str, raw: str) -> str:
        """Send an encoded message and return the provider message id.

        Raises:
            DeliveryError: With ``kind`` set from the response or exception
        """
        payload = self._request("POST", SEND_URL, access_token, json={"raw": raw})
        message_id = payload.get("id")
        if not message_id:
            raise DeliveryError("Send response has no message id", kind=ErrorKind.OTHER)
        return message_id

    def get_profile(self, access_token: str) -> Dict[str, Any]:
        """Return the mailbox profile (``emailAddress``, ``messagesTotal`` ...)."""
        return self._request("GET", PROFILE_URL, access_token)

    def _request(
        self,
        method: str,
        url: str,
        access_token: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = self._session.request(
                method,
                url,
                headers={"Authorization": f"Bearer {access_token}"},
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            kind = classify_exception(e)
            raise DeliveryError(f"{type(e).__name__}: {e}", kind=kind) from e

        if response.status_code >= 400:
            reason, detail = _error_details(response)
            kind = classify_response(response.status_code, reason)
            raise DeliveryError(
                f"Gmail API error {response.status_code}"
                + (f" ({reason})" if reason else "")
                + (f": {detail}" if detail else ""),
                kind=kind,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise DeliveryError(
                "Gmail API returned invalid JSON", kind=ErrorKind.OTHER,
                status_code=response.status_code,
            ) from e
