"""
Unit tests for ad-hoc fixture capture (backcompat/capture.py)
"""

from unittest.mock import Mock

import pytest

from backcompat.capture import (
    CaptureRequest,
    capture,
    merge_data,
    parse_header_argument,
    read_data_argument,
)
from backcompat.domain.http_message import Headers, HTTPResponse
from backcompat.exceptions import ConfigError, NetworkError
from backcompat.fixtures.store import FixtureStore


class TestHeaderArguments:
    """Tests for -H parsing."""

    def test_name_and_value(self):
        assert parse_header_argument("Accept:  application/json ") == (
            "Accept",
            "application/json",
        )

    def test_value_may_contain_colons(self):
        assert parse_header_argument("X-Url: http://a:8080/") == ("X-Url", "http://a:8080/")

    def test_empty_value(self):
        assert parse_header_argument("X-Empty:") == ("X-Empty", "")

    @pytest.mark.parametrize("argument", ["Accept", ": value", "Bad Name: x"])
    def test_invalid(self, argument):
        with pytest.raises(ConfigError, match="invalid header"):
            parse_header_argument(argument)


class TestDataArguments:
    """Tests for -d / --data-raw resolution."""

    def test_literal(self):
        assert read_data_argument("a=1") == b"a=1"

    def test_file(self, tmp_path):
        body = tmp_path / "body.json"
        body.write_bytes(b'{"a": 1}')

        assert read_data_argument(f"@{body}") == b'{"a": 1}'

    def test_raw_keeps_at_sign(self, tmp_path):
        assert read_data_argument("@not-a-file", raw=True) == b"@not-a-file"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="cannot read data file"):
            read_data_argument(f"@{tmp_path / 'missing'}")

    def test_merge(self):
        assert merge_data([]) is None
        assert merge_data([b"a=1", b"b=2"]) == b"a=1&b=2"


class TestCaptureRequest:
    """Tests for building requests from curl-style arguments."""

    def test_get_by_default(self):
        request = CaptureRequest("http://localhost:8080/users?page=2").build()

        assert request.method == "GET"
        assert request.target == "/users?page=2"
        assert request.headers.items() == [("Host", "localhost:8080")]
        assert request.body == b""

    def test_post_when_data_given(self):
        request = CaptureRequest("https://api.example.com/items", data=b"a=1").build()

        assert request.method == "POST"
        assert request.headers.get("Content-Length") == "3"
        assert request.body == b"a=1"

    def test_explicit_method_and_headers(self):
        wanted = CaptureRequest(
            "http://localhost/",
            method="put",
            headers=["Accept: text/plain", "Host: virtual.example.com", "Accept: */*"],
            data=b"",
        )

        request = wanted.build()

        assert request.method == "PUT"
        assert request.headers.items() == [
            ("Host", "virtual.example.com"),
            ("Accept", "text/plain"),
            ("Accept", "*/*"),
        ]

    def test_endpoint(self):
        endpoint = CaptureRequest("https://api.example.com:8443/x").endpoint()

        assert endpoint.host == "api.example.com:8443"
        assert endpoint.use_https

    @pytest.mark.parametrize("url", ["localhost:8080/x", "ftp://host/x", "/relative"])
    def test_rejects_non_http_urls(self, url):
        with pytest.raises(ConfigError, match="absolute http"):
            CaptureRequest(url).build()


class TestCapture:
    """Tests for the capture operation."""

    @pytest.fixture
    def replayer(self):
        replayer = Mock()
        replayer.replay.return_value = HTTPResponse(
            status=200,
            reason="OK",
            headers=Headers([("Content-Type", "application/json")]),
            body=b'{"id": 1}',
        )
        return replayer

    def test_saves_exchange_under_path_name(self, tmp_path, replayer):
        wanted = CaptureRequest("http://localhost:9000/users/list?x=1")

        first = capture(wanted, str(tmp_path), replayer=replayer, store=FixtureStore())
        second = capture(wanted, str(tmp_path), replayer=replayer, store=FixtureStore())

        assert first == "-users-list_req.txt"
        assert second == "-users-list_req1.txt"
        assert (tmp_path / "-users-list_resp.txt").read_bytes().endswith(b'{"id": 1}')
        request, endpoint = replayer.replay.call_args[0]
        assert request.target == "/users/list?x=1"
        assert str(endpoint) == "http://localhost:9000"

    def test_explicit_name(self, tmp_path, replayer):
        wanted = CaptureRequest("http://localhost/a")

        assert capture(wanted, str(tmp_path), name="login", replayer=replayer) == "login_req.txt"

    def test_network_error_saves_nothing(self, tmp_path):
        replayer = Mock()
        replayer.replay.side_effect = NetworkError("refused", host="localhost")
        out_dir = tmp_path / "1.0.0"

        with pytest.raises(NetworkError):
            capture(CaptureRequest("http://localhost/a"), str(out_dir), replayer=replayer)

        assert not out_dir.exists()
