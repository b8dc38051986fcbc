"""
Unit tests for the HTTP/1.1 fixture text codec.
"""

import pytest

from backcompat.domain.http_message import Headers, HTTPRequest, HTTPResponse
from backcompat.exceptions import FixtureParseError
from backcompat.fixtures.codec import (
    parse_request,
    parse_response,
    serialize_request,
    serialize_response,
)


class TestParseRequest:
    """Tests for request parsing."""

    def test_crlf_request(self):
        data = (
            b"POST /users?active=1 HTTP/1.1\r\n"
            b"Host: api.example.com\r\n"
            b"Content-Type: application/json\r\n"
            b"Content-Length: 7\r\n"
            b"\r\n"
            b'{"a":1}'
        )

        request = parse_request(data)

        assert request.method == "POST"
        assert request.target == "/users?active=1"
        assert request.path == "/users"
        assert request.host == "api.example.com"
        assert request.url == "http://api.example.com/users?active=1"
        assert request.body == b'{"a":1}'

    def test_lf_only_request(self):
        """Test hand-edited files with bare LF line endings are accepted."""
        request = parse_request(b"GET /x HTTP/1.1\nHost: a\nAccept: */*\n\n")

        assert request.headers.items() == [("Host", "a"), ("Accept", "*/*")]
        assert request.body == b""

    def test_absolute_form_target(self):
        request = parse_request(b"GET http://example.com:8080/a?b=1 HTTP/1.1\r\n\r\n")

        assert request.target == "/a?b=1"
        assert request.host == "example.com:8080"

    def test_folded_header(self):
        request = parse_request(b"GET / HTTP/1.1\r\nX-Long: first\r\n  second\r\n\r\n")

        assert request.headers.get("x-long") == "first second"

    def test_repeated_headers_kept(self):
        request = parse_request(b"GET / HTTP/1.1\r\nAccept: a\r\nACCEPT: b\r\n\r\n")

        assert request.headers.get_all("accept") == ["a", "b"]

    def test_chunked_request_body(self):
        data = (
            b"POST /upload HTTP/1.1\r\n"
            b"Transfer-Encoding: chunked\r\n"
            b"\r\n"
            b"3\r\nabc\r\n2;ext=1\r\nde\r\n0\r\n\r\n"
        )

        assert parse_request(data).body == b"abcde"

    @pytest.mark.parametrize(
        "data",
        [
            b"",
            b"   \r\n",
            b"GET /\r\n\r\n",
            b"GET / HTTP/1.1 extra\r\n\r\n",
            b"GET / SPDY/3\r\n\r\n",
            b"GET / HTTP/1.1\r\nBad Header: x\r\n\r\n",
            b"GET / HTTP/1.1\r\nno-colon\r\n\r\n",
            b"GET / HTTP/1.1\r\n folded-first\r\n\r\n",
            b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc",
            b"POST / HTTP/1.1\r\nContent-Length: ten\r\n\r\nabc",
            b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\nzz\r\nabc\r\n0\r\n\r\n",
            b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n5\r\nabc",
        ],
    )
    def test_malformed_requests(self, data):
        with pytest.raises(FixtureParseError):
            parse_request(data, "fixture_req.txt")

    def test_error_names_file(self):
        with pytest.raises(FixtureParseError) as exc_info:
            parse_request(b"nonsense", "/tmp/1.0.0/-x_req.txt")

        assert exc_info.value.path == "/tmp/1.0.0/-x_req.txt"
        assert "/tmp/1.0.0/-x_req.txt" in str(exc_info.value)


class TestParseResponse:
    """Tests for response parsing."""

    def test_basic_response(self):
        data = b"HTTP/1.1 404 Not Found\r\nContent-Length: 5\r\n\r\nnope!trailing"

        response = parse_response(data)

        assert response.status == 404
        assert response.reason == "Not Found"
        assert response.status_line == "404 Not Found"
        assert response.body == b"nope!"

    def test_empty_reason(self):
        response = parse_response(b"HTTP/1.1 200\r\n\r\nok")

        assert response.reason == ""
        assert response.body == b"ok"

    @pytest.mark.parametrize("status", [101, 204, 304])
    def test_bodiless_statuses(self, status):
        data = f"HTTP/1.1 {status} X\r\nContent-Length: 3\r\n\r\n".encode("ascii")

        assert parse_response(data).body == b""

    def test_head_response_has_no_body(self):
        data = b"HTTP/1.1 200 OK\r\nContent-Length: 1234\r\n\r\n"

        assert parse_response(data, request_method="HEAD").body == b""

    @pytest.mark.parametrize(
        "data",
        [
            b"HTTP/1.1\r\n\r\n",
            b"HTTP/1.1 2000 OK\r\n\r\n",
            b"HTTP/1.1 abc OK\r\n\r\n",
            b"HTTX/1.1 200 OK\r\n\r\n",
        ],
    )
    def test_malformed_status_lines(self, data):
        with pytest.raises(FixtureParseError):
            parse_response(data)


class TestSerialize:
    """Tests for writing fixtures back out."""

    def test_request_round_trip(self):
        request = HTTPRequest(
            method="PUT",
            target="/items/1?dry=1",
            headers=Headers(
                [
                    ("Host", "localhost:8080"),
                    ("Accept", "a"),
                    ("accept", "b"),
                    ("Content-Length", "4"),
                ]
            ),
            body=b"\x00\x01\r\n",
        )

        data = serialize_request(request)
        parsed = parse_request(data)

        assert data.startswith(b"PUT /items/1?dry=1 HTTP/1.1\r\nHost: localhost:8080\r\n")
        assert parsed.method == request.method
        assert parsed.url == request.url
        assert parsed.headers == request.headers
        assert parsed.body == request.body

    def test_response_round_trip(self):
        response = HTTPResponse(
            status=201,
            reason="Created",
            headers=Headers([("Content-Type", "application/json"), ("Set-Cookie", "a=1")]),
            body=b'{"id": 1}',
        )

        parsed = parse_response(serialize_response(response))

        assert parsed.status == 201
        assert parsed.reason == "Created"
        assert parsed.headers == response.headers
        assert parsed.body == response.body

    def test_chunked_body_is_rechunked(self):
        response = HTTPResponse(
            status=200,
            reason="OK",
            headers=Headers([("Transfer-Encoding", "chunked")]),
            body=b"hello",
        )

        data = serialize_response(response)

        assert data.endswith(b"\r\n\r\n5\r\nhello\r\n0\r\n\r\n")
        assert parse_response(data).body == b"hello"

    def test_non_latin1_header_value_written_as_utf8(self):
        response = HTTPResponse(status=200, headers=Headers([("X-Name", "名前")]))

        assert "名前".encode("utf-8") in serialize_response(response)
