"""Tests for the shared REST client wrapper."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prdecorator.errors import ApiError, AuthenticationError
from prdecorator.models import AuthToken
from prdecorator.rest import RestClient

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _response(status_code: int, payload=None, text: str = ""):
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.headers = {}
    response.json.return_value = payload
    return response


def _session(*responses):
    session = Mock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return session


def test_request_resolves_relative_paths_and_sends_bearer_token():
    """Verify relative paths hit the base URL with the bearer header and fixed timeouts."""
    session = _session(_response(200, {"ok": True}))
    client = RestClient("https://api.example.com/", token=AuthToken("secret"), session=session, clock=lambda: NOW)

    assert client.get_json("/repos/owner/repo") == {"ok": True}

    args, kwargs = session.request.call_args
    assert args == ("GET", "https://api.example.com/repos/owner/repo")
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert kwargs["timeout"] == (10, 30)


def test_absolute_urls_pass_through_unchanged():
    """Verify absolute URLs from pagination links are not re-rooted."""
    client = RestClient("https://api.example.com", session=_session())

    assert client.build_url("https://other.example.com/page?2") == "https://other.example.com/page?2"


def test_non_success_status_raises_api_error_with_details():
    """Verify non-2xx responses surface method, URL, and status."""
    session = _session(_response(404, text="Not Found"))
    client = RestClient("https://api.example.com", session=session)

    with pytest.raises(ApiError) as exc_info:
        client.delete("items/7")

    assert exc_info.value.status_code == 404
    assert exc_info.value.method == "DELETE"
    assert exc_info.value.url == "https://api.example.com/items/7"


def test_transport_failure_raises_api_error():
    """Verify requests exceptions are wrapped into ApiError."""
    session = Mock()
    session.headers = {}
    session.request.side_effect = requests.ConnectionError("boom")
    client = RestClient("https://api.example.com", session=session)

    with pytest.raises(ApiError, match="Request failed: GET"):
        client.get_json("items")


def test_invalid_json_raises_api_error():
    """Verify undecodable bodies are reported as API errors."""
    response = _response(200)
    response.json.side_effect = ValueError("no json")
    client = RestClient("https://api.example.com", session=_session(response))

    with pytest.raises(ApiError, match="invalid JSON"):
        client.get_json("items")


def test_expired_token_is_refused_before_any_call():
    """Verify an expired token raises AuthenticationError without contacting the host."""
    session = _session(_response(200, {}))
    token = AuthToken("secret", expires_at=NOW - timedelta(seconds=1))
    client = RestClient("https://api.example.com", token=token, session=session, clock=lambda: NOW)

    with pytest.raises(AuthenticationError):
        client.get_json("items")

    session.request.assert_not_called()
