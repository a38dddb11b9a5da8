"""Email delivery with credential refresh and bounded retry.

Retry policy, switched on :class:`ErrorKind`:

- ``FATAL``: the credential is revoked for the rest of the run and
  :class:`ReauthorizationRequired` is raised without retrying
- ``RETRYABLE``: wait ``min(base * 2**(n-1), max)`` seconds after the
  n-th failure, drop the cached credential, try again, up to
  ``max_attempts`` attempts in total
- ``OTHER``: raised immediately

Backoff sleeps block the calling worker; no extra attempts run in parallel.
"""

import time
from typing import Any, Callable, Dict, Optional, Sequence

from ..config.models import DeliveryConfig
from ..logging import get_logger
from .credentials import CredentialManager
from .gmail_client import GmailTransport, build_message, encode_raw
from .models import (
    DeliveryError,
    ErrorKind,
    ReauthorizationRequired,
    SendResult,
)

logger = get_logger(__name__, component="delivery")


class DeliveryClient:
    """Sends one message at a time through the provider."""

    def __init__(
        self,
        credentials: CredentialManager,
        transport: Optional[GmailTransport] = None,
        sender_address: str = "",
        sender_name: str = "",
        max_attempts: int = 4,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            credentials: Shared credential manager
            transport: Provider transport (default: Gmail REST)
            sender_address: From address
            sender_name: From display name
            max_attempts: Total attempts per send, first one included
            base_delay: Delay after the first failure, in seconds
            max_delay: Ceiling for any single delay, in seconds
            sleep: Blocking sleep (injected in tests)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.credentials = credentials
        self.transport = transport or GmailTransport()
        self.sender_address = sender_address
        self.sender_name = sender_name
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: DeliveryConfig,
        credentials: CredentialManager,
        transport: Optional[GmailTransport] = None,
    ) -> "DeliveryClient":
        return cls(
            credentials=credentials,
            transport=transport or GmailTransport(timeout=config.request_timeout),
            sender_address=config.sender_address,
            sender_name=config.sender_name,
            max_attempts=config.max_attempts,
            base_delay=config.base_delay_seconds,
            max_delay=config.max_delay_seconds,
        )

    def backoff_delay(self, failures: int) -> float:
        """Delay to wait after ``failures`` consecutive failures.

        Example:
            >>> client.backoff_delay(1), client.backoff_delay(2), client.backoff_delay(3)
            (1.0, 2.0, 4.0)
        """
        return min(self.base_delay * (2 ** (failures - 1)), self.max_delay)

    def send(
        self,
        to: Sequence[str] | str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> SendResult:
        """Deliver one message.

        Args:
            to: Recipient address or addresses (all in the ``To`` header)
            subject: Subject line
            html_body: HTML alternative
            text_body: Plain text body

        Returns:
            SendResult with the provider message id and attempt count

        Raises:
            ReauthorizationRequired: The credential cannot be used or refreshed
            DeliveryError: Non-retryable failure, or retries exhausted
        """
        recipients = [to] if isinstance(to, str) else list(to)
        raw = encode_raw(
            build_message(
                self.sender_address,
                self.sender_name,
                recipients,
                subject,
                html_body,
                text_body,
            )
        )

        last_error: Optional[DeliveryError] = None

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                delay = self.backoff_delay(attempt - 1)
                logger.warning(
                    f"Retrying delivery (attempt {attempt}/{self.max_attempts}) "
                    f"after {delay:.1f}s delay",
                    extra={
                        "event": "delivery.retry",
                        "attempt": attempt,
                        "delay_seconds": delay,
                        "recipients": recipients,
                    },
                )
                self._sleep(delay)
                self.credentials.invalidate()

            try:
                access_token = self.credentials.get_access_token()
                message_id = self.transport.send_raw(access_token, raw)

            except ReauthorizationRequired as e:
                self._report_reauthorization(e, recipients)
                raise

            except DeliveryError as e:
                if e.kind is ErrorKind.FATAL:
                    self.credentials.revoke(str(e))
                    error = ReauthorizationRequired(str(e), status_code=e.status_code)
                    self._report_reauthorization(error, recipients)
                    raise error from e

                if e.kind is ErrorKind.OTHER:
                    logger.error(
                        f"Delivery failed with non-retryable error: {e}",
                        extra={
                            "event": "delivery.failed",
                            "attempt": attempt,
                            "status_code": e.status_code,
                            "error_kind": e.kind,
                            "recipients": recipients,
                        },
                    )
                    raise

                last_error = e
                retry_remaining = attempt < self.max_attempts
                logger.warning(
                    f"Transient delivery failure (attempt {attempt}/{self.max_attempts}): {e}",
                    extra={
                        "event": "delivery.transient_failure",
                        "attempt": attempt,
                        "status_code": e.status_code,
                        "retry_remaining": retry_remaining,
                    },
                )
                continue

            logger.info(
                "Message delivered",
                extra={
                    "event": "delivery.sent",
                    "attempt": attempt,
                    "message_id": message_id,
                    "recipients": recipients,
                },
            )
            return SendResult(message_id=message_id, attempts=attempt)

        logger.error(
            f"Delivery failed after {self.max_attempts} attempts: {last_error}",
            extra={
                "event": "delivery.exhausted",
                "attempts": self.max_attempts,
                "recipients": recipients,
            },
        )
        raise last_error

    def auth_status(self) -> Dict[str, Any]:
        """Check that the credential works and report the mailbox address.

        Returns:
            ``{"authorized": bool, "email_address": str|None, "error": str|None,
            "reauthorization_required": bool}``
        """
        try:
            profile = self.transport.get_profile(self.credentials.get_access_token())
        except ReauthorizationRequired as e:
            return {
                "authorized": False,
                "email_address": None,
                "error": str(e),
                "reauthorization_required": True,
            }
        except DeliveryError as e:
            return {
                "authorized": False,
                "email_address": None,
                "error": str(e),
                "reauthorization_required": e.kind is ErrorKind.FATAL,
            }

        return {
            "authorized": True,
            "email_address": profile.get("emailAddress"),
            "error": None,
            "reauthorization_required": False,
        }

    def _report_reauthorization(self, error: ReauthorizationRequired, recipients) -> None:
        logger.error(
            f"Reauthorization required: {error}",
            extra={
                "event": "delivery.reauthorization_required",
                "status_code": error.status_code,
                "recipients": recipients,
            },
        )
