"""
UNIT TESTS - HTTP RETRY
========================
Tests fuer shared/http_retry.py
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from unittest.mock import MagicMock

import pytest
import requests

from shared.http_retry import (
    backoff_delay,
    get_json,
    get_with_retry,
    is_retryable_status,
)


def response(status, payload=None, headers=None):
    mock = MagicMock()
    mock.status_code = status
    mock.headers = headers or {}
    if isinstance(payload, Exception):
        mock.json.side_effect = payload
    else:
        mock.json.return_value = payload
    return mock


def session_returning(*results):
    session = MagicMock()
    session.get.side_effect = list(results)
    return session


class TestGetWithRetry:

    def test_success_first_try(self):
        session = session_returning(response(200, {"ok": True}))
        sleeps = []

        result = get_with_retry("http://x", session=session, sleep=sleeps.append)

        assert result.status_code == 200
        assert session.get.call_count == 1
        assert sleeps == []

    def test_retries_server_error(self):
        session = session_returning(response(503), response(200))
        sleeps = []

        result = get_with_retry("http://x", session=session, sleep=sleeps.append)

        assert result.status_code == 200
        assert session.get.call_count == 2
        assert len(sleeps) == 1

    def test_rate_limit_honours_retry_after(self):
        session = session_returning(response(429, headers={"Retry-After": "7"}), response(200))
        sleeps = []

        get_with_retry("http://x", session=session, sleep=sleeps.append)

        assert sleeps == [7.0]

    def test_client_error_not_retried(self):
        session = session_returning(response(404))
        result = get_with_retry("http://x", session=session, sleep=lambda s: None)
        assert result.status_code == 404
        assert session.get.call_count == 1

    def test_last_retryable_response_returned(self):
        session = session_returning(response(500), response(500), response(500))
        result = get_with_retry("http://x", max_retries=2, session=session, sleep=lambda s: None)
        assert result.status_code == 500
        assert session.get.call_count == 3

    def test_network_errors_exhausted(self):
        error = requests.exceptions.ConnectionError("down")
        session = session_returning(error, error)

        with pytest.raises(RuntimeError, match="after 2 attempts"):
            get_with_retry("http://x", max_retries=1, session=session, sleep=lambda s: None)

    def test_network_error_then_success(self):
        session = session_returning(requests.exceptions.Timeout("slow"), response(200))
        result = get_with_retry("http://x", session=session, sleep=lambda s: None)
        assert result.status_code == 200

    def test_user_agent_sent(self):
        session = session_returning(response(200))
        get_with_retry("http://x", session=session)
        headers = session.get.call_args.kwargs["headers"]
        assert "User-Agent" in headers


class TestGetJson:

    def test_decodes_payload(self):
        session = session_returning(response(200, {"list": []}))
        assert get_json("http://x", session=session) == {"list": []}

    def test_http_error_raises(self):
        session = session_returning(response(401))
        with pytest.raises(RuntimeError, match="HTTP 401"):
            get_json("http://x", session=session)

    def test_invalid_json_raises(self):
        session = session_returning(response(200, ValueError("bad json")))
        with pytest.raises(RuntimeError, match="Invalid JSON"):
            get_json("http://x", session=session)


def test_backoff_delay_grows_and_caps():
    assert backoff_delay(0, rand=lambda: 1.0) == 1.0
    assert backoff_delay(2, rand=lambda: 1.0) == 4.0
    assert backoff_delay(2, rand=lambda: 0.0) == 2.0
    assert backoff_delay(10, rand=lambda: 1.0) == 30.0


def test_retryable_statuses():
    assert is_retryable_status(429)
    assert is_retryable_status(502)
    assert not is_retryable_status(404)
    assert not is_retryable_status(200)
