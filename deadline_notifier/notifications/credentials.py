"""OAuth credential management for the Gmail API.

A single :class:`CredentialManager` is shared by every dispatch worker.
All reads and refreshes go through one lock, so at most one worker
refreshes at a time and the others wait for, then reuse, its result. The
refreshed token is written back to the token file under the same lock.
"""

import json
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import requests

from ..logging import get_logger
from ..utils.timestamps import unix_to_timestamp, utc_now
from .models import DeliveryError, ErrorKind, ReauthorizationRequired

logger = get_logger(__name__, component="credentials")

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"


@dataclass
class AccessToken:
    """In-memory access token and its expiry (UTC)."""

    value: str
    expires_at: Optional[datetime]

    def expires_within(self, margin: timedelta, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= now + margin


class CredentialManager:
    """Loads, refreshes and persists the OAuth token used for delivery.

    Args:
        credentials_path: OAuth client JSON (``installed`` or ``web`` section)
        token_path: Token JSON holding ``access_token``, ``refresh_token``
            and ``expiry_date`` (milliseconds since the epoch)
        refresh_margin_seconds: Refresh tokens that expire within this window
        request_timeout: Timeout for the token endpoint, in seconds
        session: HTTP session (injected in tests)
        clock: Returns the current UTC time (injected in tests)
    """

    def __init__(
        self,
        credentials_path: Path,
        token_path: Path,
        refresh_margin_seconds: int = 60,
        request_timeout: int = 30,
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.credentials_path = Path(credentials_path)
        self.token_path = Path(token_path)
        self.refresh_margin = timedelta(seconds=refresh_margin_seconds)
        self.request_timeout = request_timeout
        self._session = session or requests.Session()
        self._clock = clock

        self._lock = threading.Lock()
        self._token: Optional[AccessToken] = None
        self._revoked_reason: Optional[str] = None

    def get_access_token(self) -> str:
        """Return a usable access token, refreshing it first if needed.

        Raises:
            ReauthorizationRequired: The credential is missing, revoked, or
                was rejected earlier in this run
            DeliveryError: The token endpoint failed transiently
        """
        with self._lock:
            if self._revoked_reason is not None:
                raise ReauthorizationRequired(self._revoked_reason)

            try:
                if self._token is None:
                    self._token = self._load_token()

                if not self._token.value or self._token.expires_within(
                    self.refresh_margin, self._clock()
                ):
                    self._token = self._refresh()
            except ReauthorizationRequired as e:
                self._token = None
                self._revoked_reason = str(e)
                logger.error(
                    "Credential cannot be refreshed; reauthorization required",
                    extra={"event": "credentials.revoked", "reason": str(e)},
                )
                raise

            return self._token.value

    def invalidate(self) -> None:
        """Drop the cached token; the next call reloads it from disk."""
        with self._lock:
            self._token = None

    def revoke(self, reason: str) -> None:
        """Mark the credential unusable for the rest of the run."""
        with self._lock:
            self._token = None
            self._revoked_reason = reason
        logger.error(
            "Credential rejected by provider; reauthorization required",
            extra={"event": "credentials.revoked", "reason": reason},
        )

    def reset(self) -> None:
        """Forget cached state so a new run starts from the token file."""
        with self._lock:
            self._token = None
            self._revoked_reason = None

    @property
    def is_revoked(self) -> bool:
        return self._revoked_reason is not None

    def _load_client(self) -> Dict[str, Any]:
        try:
            data = json.loads(self.credentials_path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise ReauthorizationRequired(
                f"OAuth client credentials not found at {self.credentials_path}"
            ) from e
        except (OSError, ValueError) as e:
            raise ReauthorizationRequired(
                f"OAuth client credentials unreadable at {self.credentials_path}: {e}"
            ) from e

        client = data.get("installed") or data.get("web") or data
        if not client.get("client_id") or not client.get("client_secret"):
            raise ReauthorizationRequired(
                f"OAuth client credentials at {self.credentials_path} lack client_id/client_secret"
            )
        return client

    def _read_token_file(self) -> Dict[str, Any]:
        try:
            data = json.loads(self.token_path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise ReauthorizationRequired(
                f"No stored token at {self.token_path}; authorize the mailbox first"
            ) from e
        except (OSError, ValueError) as e:
            raise ReauthorizationRequired(
                f"Stored token unreadable at {self.token_path}: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ReauthorizationRequired(f"Stored token at {self.token_path} is malformed")
        return data

    def _load_token(self) -> AccessToken:
        data = self._read_token_file()
        expiry_ms = data.get("expiry_date")
        return AccessToken(
            value=data.get("access_token") or "",
            expires_at=unix_to_timestamp(expiry_ms / 1000) if expiry_ms else None,
        )

    def _refresh(self) -> AccessToken:
        stored = self._read_token_file()
        refresh_token = stored.get("refresh_token")
        if not refresh_token:
            raise ReauthorizationRequired(
                "Stored token has no refresh_token; authorize the mailbox again"
            )

        client = self._load_client()
        token_uri = client.get("token_uri") or DEFAULT_TOKEN_URI

        logger.info("Refreshing access token", extra={"event": "credentials.refreshing"})

        try:
            response = self._session.post(
                token_uri,
                data={
                    "client_id": client["client_id"],
                    "client_secret": client["client_secret"],
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
                timeout=self.request_timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise DeliveryError(
                f"Token refresh failed: {e}", kind=ErrorKind.RETRYABLE
            ) from e
        except requests.RequestException as e:
            raise DeliveryError(f"Token refresh failed: {e}", kind=ErrorKind.OTHER) from e

        if response.status_code != 200:
            raise self._refresh_error(response)

        try:
            payload = response.json()
        except ValueError as e:
            raise DeliveryError(
                "Token endpoint returned invalid JSON", kind=ErrorKind.RETRYABLE
            ) from e

        access_token = payload.get("access_token")
        if not access_token:
            raise DeliveryError(
                "Token endpoint response has no access_token", kind=ErrorKind.OTHER
            )

        expires_at = self._clock() + timedelta(seconds=int(payload.get("expires_in", 3600)))

        merged = {**stored, "access_token": access_token}
        merged["expiry_date"] = int(expires_at.timestamp() * 1000)
        if payload.get("refresh_token"):
            merged["refresh_token"] = payload["refresh_token"]
        for key in ("scope", "token_type"):
            if payload.get(key):
                merged[key] = payload[key]

        self._persist(merged)

        logger.info(
            "Access token refreshed",
            extra={"event": "credentials.refreshed", "expires_at": expires_at},
        )
        return AccessToken(value=access_token, expires_at=expires_at)

    def _refresh_error(self, response: requests.Response) -> DeliveryError:
        try:
            error_code = response.json().get("error", "")
        except ValueError:
            error_code = ""

        status = response.status_code
        if error_code in ("invalid_grant", "invalid_client", "unauthorized_client") or status == 401:
            return ReauthorizationRequired(
                f"Refresh token rejected ({error_code or status})", status_code=status
            )
        if status in (408, 429) or status >= 500:
            return DeliveryError(
                f"Token endpoint error {status}", kind=ErrorKind.RETRYABLE, status_code=status
            )
        return DeliveryError(
            f"Token endpoint error {status} {error_code}".strip(),
            kind=ErrorKind.OTHER,
            status_code=status,
        )

    def _persist(self, token: Dict[str, Any]) -> None:
        """Write the token file atomically (temp file, then rename)."""
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.token_path.parent), prefix=".token-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(token, f, indent=2)
            os.replace(tmp_name, self.token_path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.error(
                f"Failed to persist refreshed token: {e}",
                extra={"event": "credentials.persist_failed"},
            )
