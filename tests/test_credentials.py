"""Unit tests for OAuth credential loading, refresh and persistence."""

import json
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
import requests

from deadline_notifier.notifications import (
    CredentialManager,
    DeliveryError,
    ErrorKind,
    ReauthorizationRequired,
)
from tests.helpers import FakeTransport, make_delivery

NOW = datetime(2025, 1, 21, 11, 0, tzinfo=timezone.utc)


def ms(moment):
    return int(moment.timestamp() * 1000)


@pytest.fixture
def credentials_file(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text(
        json.dumps(
            {
                "installed": {
                    "client_id": "client-123",
                    "client_secret": "shh",
                    "token_uri": "https://oauth2.example.com/token",
                }
            }
        )
    )
    return path


def write_token(path, **fields):
    data = {"access_token": "old-token", "refresh_token": "refresh-1", "expiry_date": ms(NOW + timedelta(hours=1))}
    data.update(fields)
    path.write_text(json.dumps(data))
    return path


def token_response(status=200, body=None):
    response = Mock()
    response.status_code = status
    response.json.return_value = body if body is not None else {}
    return response


def make_manager(credentials_file, token_path, session=None):
    return CredentialManager(
        credentials_path=credentials_file,
        token_path=token_path,
        refresh_margin_seconds=60,
        session=session or Mock(),
        clock=lambda: NOW,
    )


def test_valid_token_is_used_without_refresh(credentials_file, tmp_path):
    token_path = write_token(tmp_path / "token.json")
    session = Mock()
    manager = make_manager(credentials_file, token_path, session)

    assert manager.get_access_token() == "old-token"
    assert manager.get_access_token() == "old-token"
    session.post.assert_not_called()


def test_expiring_token_is_refreshed_and_persisted(credentials_file, tmp_path):
    """Test that a token inside the margin is refreshed and written back."""
    token_path = write_token(tmp_path / "token.json", expiry_date=ms(NOW + timedelta(seconds=30)))
    session = Mock()
    session.post.return_value = token_response(body={"access_token": "new-token", "expires_in": 3599})
    manager = make_manager(credentials_file, token_path, session)

    assert manager.get_access_token() == "new-token"

    url = session.post.call_args[0][0]
    form = session.post.call_args[1]["data"]
    assert url == "https://oauth2.example.com/token"
    assert form["grant_type"] == "refresh_token"
    assert form["refresh_token"] == "refresh-1"
    assert form["client_id"] == "client-123"

    stored = json.loads(token_path.read_text())
    assert stored["access_token"] == "new-token"
    assert stored["refresh_token"] == "refresh-1"
    assert stored["expiry_date"] == ms(NOW + timedelta(seconds=3599))


def test_rotated_refresh_token_is_kept(credentials_file, tmp_path):
    token_path = write_token(tmp_path / "token.json", access_token="")
    session = Mock()
    session.post.return_value = token_response(
        body={"access_token": "new-token", "expires_in": 3600, "refresh_token": "refresh-2"}
    )

    make_manager(credentials_file, token_path, session).get_access_token()

    assert json.loads(token_path.read_text())["refresh_token"] == "refresh-2"


def test_missing_token_file_requires_reauthorization(credentials_file, tmp_path):
    manager = make_manager(credentials_file, tmp_path / "missing.json")

    with pytest.raises(ReauthorizationRequired):
        manager.get_access_token()


def test_missing_refresh_token_requires_reauthorization(credentials_file, tmp_path):
    token_path = write_token(tmp_path / "token.json", access_token="", refresh_token=None)

    with pytest.raises(ReauthorizationRequired):
        make_manager(credentials_file, token_path).get_access_token()


def test_invalid_grant_requires_reauthorization(credentials_file, tmp_path):
    token_path = write_token(tmp_path / "token.json", expiry_date=ms(NOW - timedelta(hours=1)))
    session = Mock()
    session.post.return_value = token_response(status=400, body={"error": "invalid_grant"})

    with pytest.raises(ReauthorizationRequired) as exc_info:
        make_manager(credentials_file, token_path, session).get_access_token()

    assert exc_info.value.kind is ErrorKind.FATAL
    assert exc_info.value.status_code == 400


def test_rejected_refresh_revokes_for_the_rest_of_the_run(credentials_file, tmp_path):
    """Test that a dead refresh token hits the token endpoint only once."""
    token_path = write_token(tmp_path / "token.json", expiry_date=ms(NOW - timedelta(hours=1)))
    session = Mock()
    session.post.return_value = token_response(status=400, body={"error": "invalid_grant"})
    manager = make_manager(credentials_file, token_path, session)
    client = make_delivery(manager, FakeTransport())

    for _ in range(3):
        with pytest.raises(ReauthorizationRequired):
            client.send(["smsdc@x.gov"], "assunto", "<p>corpo</p>", "corpo")

    assert session.post.call_count == 1
    assert manager.is_revoked


def test_missing_token_file_revokes(credentials_file, tmp_path):
    manager = make_manager(credentials_file, tmp_path / "absent.json")

    with pytest.raises(ReauthorizationRequired):
        manager.get_access_token()

    assert manager.is_revoked

    write_token(tmp_path / "absent.json")
    with pytest.raises(ReauthorizationRequired):
        manager.get_access_token()

    manager.reset()
    assert manager.get_access_token() == "old-token"


@pytest.mark.parametrize("status", [429, 500, 503])
def test_transient_token_endpoint_error_is_retryable(credentials_file, tmp_path, status):
    token_path = write_token(tmp_path / "token.json", access_token="")
    session = Mock()
    session.post.return_value = token_response(status=status, body={})

    with pytest.raises(DeliveryError) as exc_info:
        make_manager(credentials_file, token_path, session).get_access_token()

    assert not isinstance(exc_info.value, ReauthorizationRequired)
    assert exc_info.value.kind is ErrorKind.RETRYABLE


def test_network_error_is_retryable(credentials_file, tmp_path):
    token_path = write_token(tmp_path / "token.json", access_token="")
    session = Mock()
    session.post.side_effect = requests.ConnectionError("unreachable")

    with pytest.raises(DeliveryError) as exc_info:
        make_manager(credentials_file, token_path, session).get_access_token()

    assert exc_info.value.kind is ErrorKind.RETRYABLE


def test_missing_client_secret_requires_reauthorization(tmp_path):
    client = tmp_path / "credentials.json"
    client.write_text(json.dumps({"web": {"client_id": "only-id"}}))
    token_path = write_token(tmp_path / "token.json", access_token="")

    with pytest.raises(ReauthorizationRequired):
        make_manager(client, token_path).get_access_token()


def test_revoke_blocks_until_reset(credentials_file, tmp_path):
    token_path = write_token(tmp_path / "token.json")
    manager = make_manager(credentials_file, token_path)

    manager.revoke("401 from provider")

    assert manager.is_revoked
    with pytest.raises(ReauthorizationRequired):
        manager.get_access_token()

    manager.reset()

    assert not manager.is_revoked
    assert manager.get_access_token() == "old-token"


def test_invalidate_reloads_from_disk(credentials_file, tmp_path):
    token_path = write_token(tmp_path / "token.json")
    manager = make_manager(credentials_file, token_path)
    manager.get_access_token()

    write_token(token_path, access_token="rotated-elsewhere")
    manager.invalidate()

    assert manager.get_access_token() == "rotated-elsewhere"


def test_concurrent_callers_share_one_refresh(credentials_file, tmp_path):
    """Test that many workers needing a refresh trigger exactly one."""
    token_path = write_token(tmp_path / "token.json", access_token="")
    session = Mock()
    session.post.return_value = token_response(body={"access_token": "new-token", "expires_in": 3600})
    manager = make_manager(credentials_file, token_path, session)
    results = []

    threads = [threading.Thread(target=lambda: results.append(manager.get_access_token())) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == ["new-token"] * 8
    assert session.post.call_count == 1
