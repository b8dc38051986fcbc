"""
HTTP/1.1 text codec for fixture files.

Fixtures are plain HTTP messages (start line, header block, blank line, raw
body) so they stay readable and diff-able with ordinary text tools. Files are
written with CRLF line endings; LF-only files edited by hand are accepted.
"""

import re
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from backcompat.domain.http_message import Headers, HTTPRequest, HTTPResponse
from backcompat.exceptions import FixtureParseError

CRLF = b"\r\n"

_VERSION_RE = re.compile(r"^HTTP/\d+(\.\d+)?$")
_TOKEN_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_LINE_SPLIT_RE = re.compile(r"\r?\n")

# Responses to these never carry a body, whatever Content-Length says.
BODILESS_STATUSES = {204, 304}


def _split_head(data: bytes, path: Optional[str]) -> Tuple[List[str], bytes]:
    if not data.strip():
        raise FixtureParseError("empty HTTP message", path)

    candidates = [
        (index, len(separator))
        for separator in (b"\r\n\r\n", b"\n\n")
        for index in [data.find(separator)]
        if index >= 0
    ]
    if candidates:
        index, size = min(candidates)
        head, rest = data[:index], data[index + size :]
    else:
        head, rest = data, b""

    # Header bytes are ISO-8859-1 on the wire; latin-1 maps them 1:1 to str.
    lines = _LINE_SPLIT_RE.split(head.decode("latin-1").rstrip("\r\n"))
    return lines, rest


def _parse_headers(lines: List[str], path: Optional[str]) -> Headers:
    items: List[Tuple[str, str]] = []
    for line in lines:
        if not line:
            continue
        if line[0] in (" ", "\t"):
            if not items:
                raise FixtureParseError(f"continuation line without a header: {line!r}", path)
            name, value = items[-1]
            items[-1] = (name, f"{value} {line.strip()}".strip())
            continue

        name, sep, value = line.partition(":")
        if not sep or not _TOKEN_RE.match(name):
            raise FixtureParseError(f"malformed header line: {line!r}", path)
        items.append((name, value.strip()))
    return Headers(items)


def _decode_chunked(data: bytes, path: Optional[str]) -> bytes:
    body = bytearray()
    position = 0
    while True:
        line_end = data.find(b"\n", position)
        if line_end < 0:
            raise FixtureParseError("truncated chunked body", path)
        size_field = data[position:line_end].strip().split(b";", 1)[0]
        try:
            size = int(size_field, 16)
        except ValueError:
            raise FixtureParseError(f"invalid chunk size {size_field!r}", path)
        position = line_end + 1
        if size == 0:
            return bytes(body)
        chunk = data[position : position + size]
        if len(chunk) < size:
            raise FixtureParseError("truncated chunked body", path)
        body.extend(chunk)
        position += size
        if data.startswith(b"\r\n", position):
            position += 2
        elif data.startswith(b"\n", position):
            position += 1
        else:
            raise FixtureParseError("missing line break after chunk data", path)


def _read_body(
    headers: Headers, rest: bytes, path: Optional[str], bodiless: bool = False
) -> bytes:
    if bodiless:
        return b""

    transfer_encoding = (headers.get("Transfer-Encoding") or "").lower()
    if "chunked" in transfer_encoding:
        return _decode_chunked(rest, path)

    content_length = headers.get("Content-Length")
    if content_length is None:
        return rest

    try:
        length = int(content_length.strip())
    except ValueError:
        raise FixtureParseError(f"invalid Content-Length {content_length!r}", path)
    if length < 0:
        raise FixtureParseError(f"invalid Content-Length {content_length!r}", path)
    if len(rest) < length:
        raise FixtureParseError(
            f"body is {len(rest)} bytes but Content-Length declares {length}", path
        )
    return rest[:length]


def parse_request(data: bytes, path: Optional[str] = None) -> HTTPRequest:
    """
    Parse a textual HTTP request.

    Absolute-form targets (`GET http://host/x HTTP/1.1`) are split into a Host
    header and an origin-form target.

    Args:
        data: Raw file content
        path: File path, used in error messages

    Returns:
        Parsed HTTPRequest

    Raises:
        FixtureParseError: On malformed request line, headers or body framing
    """
    lines, rest = _split_head(data, path)
    request_line = lines[0]
    parts = request_line.split(" ")
    if len(parts) != 3 or not _TOKEN_RE.match(parts[0]) or not parts[1]:
        raise FixtureParseError(f"malformed request line: {request_line!r}", path)
    method, target, version = parts
    if not _VERSION_RE.match(version):
        raise FixtureParseError(f"unsupported HTTP version {version!r}", path)

    headers = _parse_headers(lines[1:], path)

    if target.startswith(("http://", "https://")):
        url = urlsplit(target)
        target = url.path or "/"
        if url.query:
            target = f"{target}?{url.query}"
        if "Host" not in headers and url.netloc:
            headers = Headers([("Host", url.netloc)] + headers.items())

    body = _read_body(headers, rest, path)
    return HTTPRequest(method=method, target=target, headers=headers, body=body, version=version)


def parse_response(
    data: bytes, path: Optional[str] = None, request_method: Optional[str] = None
) -> HTTPResponse:
    """
    Parse a textual HTTP response.

    Args:
        data: Raw file content
        path: File path, used in error messages
        request_method: Method of the matching request; HEAD responses have
            no body regardless of Content-Length

    Returns:
        Parsed HTTPResponse

    Raises:
        FixtureParseError: On malformed status line, headers or body framing
    """
    lines, rest = _split_head(data, path)
    status_line = lines[0]
    parts = status_line.split(" ", 2)
    if len(parts) < 2 or not _VERSION_RE.match(parts[0]):
        raise FixtureParseError(f"malformed status line: {status_line!r}", path)
    version, code = parts[0], parts[1]
    if len(code) != 3 or not code.isdigit():
        raise FixtureParseError(f"invalid status code {code!r}", path)
    status = int(code)
    reason = parts[2] if len(parts) > 2 else ""

    headers = _parse_headers(lines[1:], path)
    bodiless = (
        status in BODILESS_STATUSES
        or 100 <= status < 200
        or (request_method or "").upper() == "HEAD"
    )
    body = _read_body(headers, rest, path, bodiless=bodiless)
    return HTTPResponse(status=status, reason=reason, headers=headers, body=body, version=version)


def _encode_text(text: str) -> bytes:
    try:
        return text.encode("latin-1")
    except UnicodeEncodeError:
        return text.encode("utf-8")


def _encode_headers_and_body(headers: Headers, body: bytes) -> bytes:
    out = bytearray()
    for name, value in headers:
        out.extend(_encode_text(f"{name}: {value}"))
        out.extend(CRLF)
    out.extend(CRLF)

    if "chunked" in (headers.get("Transfer-Encoding") or "").lower():
        # Keep the declared framing readable on the way back in.
        if body:
            out.extend(f"{len(body):x}".encode("ascii") + CRLF + body + CRLF)
        out.extend(b"0" + CRLF + CRLF)
    else:
        out.extend(body)
    return bytes(out)


def serialize_request(request: HTTPRequest) -> bytes:
    start = _encode_text(f"{request.method} {request.target} {request.version}") + CRLF
    return start + _encode_headers_and_body(request.headers, request.body)


def serialize_response(response: HTTPResponse) -> bytes:
    start = _encode_text(f"{response.version} {response.status_line}") + CRLF
    return start + _encode_headers_and_body(response.headers, response.body)
