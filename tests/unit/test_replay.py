"""
Unit tests for live replay (backcompat/runner/replay.py)

The network is never touched: sessions are replaced with mocks returning
hand-built requests.Response objects.
"""

import threading
from unittest.mock import Mock

import pytest
import requests
from requests.structures import CaseInsensitiveDict
from urllib3._collections import HTTPHeaderDict

from backcompat.domain.http_message import Headers, HTTPRequest
from backcompat.exceptions import NetworkError
from backcompat.runner.replay import (
    Replayer,
    TargetEndpoint,
    replay_headers,
    response_from_requests,
)


def live_response(status=200, body=b"{}", headers=(), reason="OK"):
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response._content = body
    raw_headers = HTTPHeaderDict()
    for name, value in headers:
        raw_headers.add(name, value)
    response.headers = CaseInsensitiveDict(raw_headers)
    response.raw = Mock(headers=raw_headers)
    return response


def make_request(headers=None, body=b""):
    return HTTPRequest(
        method="POST",
        target="/users?page=2",
        headers=Headers(headers or [("Host", "recorded.example.com")]),
        body=body,
    )


class TestTargetEndpoint:
    """Tests for endpoint URLs."""

    def test_http(self):
        endpoint = TargetEndpoint("localhost:8080")
        assert endpoint.url_for("/a?b=1") == "http://localhost:8080/a?b=1"
        assert str(endpoint) == "http://localhost:8080"

    def test_https(self):
        endpoint = TargetEndpoint("api.example.com", use_https=True)
        assert endpoint.url_for("a") == "https://api.example.com/a"


class TestReplayHeaders:
    """Tests for outgoing header preparation."""

    def test_framing_and_host_dropped(self):
        request = make_request(
            [
                ("Host", "recorded.example.com"),
                ("Content-Length", "3"),
                ("Transfer-Encoding", "chunked"),
                ("Accept", "application/json"),
            ]
        )

        assert replay_headers(request) == {"Accept": "application/json"}

    def test_repeated_headers_folded(self):
        request = make_request([("Accept", "a"), ("accept", "b"), ("X-Id", "1")])

        assert replay_headers(request) == {"Accept": "a, b", "X-Id": "1"}


class TestResponseFromRequests:
    """Tests for converting live responses."""

    def test_repeated_headers_kept(self):
        live = live_response(headers=[("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")])

        response = response_from_requests(live)

        assert response.headers.get_all("set-cookie") == ["a=1", "b=2"]
        assert response.status == 200
        assert response.reason == "OK"

    def test_decoded_codings_dropped(self):
        live = live_response(
            body=b"decoded body",
            headers=[
                ("Content-Encoding", "gzip"),
                ("Content-Length", "5"),
                ("Content-Type", "text/plain"),
            ],
        )

        response = response_from_requests(live)

        assert "Content-Encoding" not in response.headers
        assert response.headers.get("Content-Length") == "12"
        assert response.headers.get("Content-Type") == "text/plain"

    def test_plain_content_length_untouched(self):
        live = live_response(body=b"abc", headers=[("Content-Length", "3")])

        assert response_from_requests(live).headers.get("Content-Length") == "3"


class TestReplayer:
    """Tests for the session-per-thread replayer."""

    def test_replay_sends_recorded_request(self):
        session = Mock()
        session.request.return_value = live_response(status=201)
        replayer = Replayer(timeout=7, session_factory=lambda: session)

        response = replayer.replay(
            make_request(body=b'{"a":1}'), TargetEndpoint("localhost:9000")
        )

        assert response.status == 201
        session.headers.clear.assert_called_once()
        session.request.assert_called_once_with(
            "POST",
            "http://localhost:9000/users?page=2",
            headers={},
            data=b'{"a":1}',
            timeout=7,
            allow_redirects=False,
        )

    def test_one_session_per_thread(self):
        sessions = []

        def factory():
            session = Mock()
            session.request.return_value = live_response()
            sessions.append(session)
            return session

        replayer = Replayer(session_factory=factory)
        endpoint = TargetEndpoint("localhost")
        replayer.replay(make_request(), endpoint)
        replayer.replay(make_request(), endpoint)

        thread = threading.Thread(target=replayer.replay, args=(make_request(), endpoint))
        thread.start()
        thread.join()

        assert len(sessions) == 2

    def test_timeout_becomes_network_error(self):
        session = Mock()
        session.request.side_effect = requests.exceptions.ReadTimeout("slow")
        replayer = Replayer(timeout=0.5, session_factory=lambda: session)

        with pytest.raises(NetworkError, match="timed out after 0.5s") as exc_info:
            replayer.replay(make_request(), TargetEndpoint("slow.example.com"))

        assert exc_info.value.host == "slow.example.com"

    def test_connection_error_becomes_network_error(self):
        session = Mock()
        session.request.side_effect = requests.exceptions.ConnectionError("refused")
        replayer = Replayer(session_factory=lambda: session)

        with pytest.raises(NetworkError, match="refused"):
            replayer.replay(make_request(), TargetEndpoint("localhost:1"))
