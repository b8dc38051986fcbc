"""
HAR archive import.

Transcodes HTTP Archive (HAR 1.2) session recordings, as exported by browser
dev tools and proxies, into fixture pairs.
"""

import base64
import binascii
import json
from typing import Any, Dict, Iterator, List, Tuple
from urllib.parse import urlsplit

from backcompat.domain.http_message import Headers, HTTPRequest, HTTPResponse
from backcompat.exceptions import FixtureParseError
from backcompat.fixtures.store import FixtureStore, normalize_name, request_filename
from backcompat.utils.logger import get_logger, log_operation

logger = get_logger(__name__)

# Framing is recomputed from the stored body; HAR bodies are already decoded.
_DROPPED_RESPONSE_HEADERS = {"transfer-encoding", "content-encoding"}


def _headers(entries: List[Dict[str, Any]], dropped=frozenset()) -> Headers:
    headers = Headers()
    for header in entries or []:
        name = str(header.get("name", ""))
        # HTTP/2 pseudo headers (":authority", ":path") are not HTTP/1.1 fields.
        if not name or name.startswith(":") or name.lower() in dropped:
            continue
        headers.add(name, str(header.get("value", "")))
    return headers


def entry_to_request(entry: Dict[str, Any]) -> HTTPRequest:
    """Build the request of one HAR entry."""
    har_request = entry["request"]
    url = urlsplit(har_request["url"])
    target = url.path or "/"
    if url.query:
        target = f"{target}?{url.query}"

    headers = _headers(har_request.get("headers"), dropped={"host"})
    headers = Headers([("Host", url.netloc)] + headers.items())

    post_data = har_request.get("postData") or {}
    body = str(post_data.get("text") or "").encode("utf-8")
    if "Content-Length" in headers:
        headers.set("Content-Length", str(len(body)))

    return HTTPRequest(
        method=str(har_request.get("method") or "GET").upper(),
        target=target,
        headers=headers,
        body=body,
    )


def entry_to_response(entry: Dict[str, Any]) -> HTTPResponse:
    """Build the response of one HAR entry."""
    har_response = entry["response"]
    headers = _headers(har_response.get("headers"), dropped=_DROPPED_RESPONSE_HEADERS)

    content = har_response.get("content") or {}
    text = content.get("text") or ""
    if content.get("encoding") == "base64":
        body = base64.b64decode(text, validate=True)
    else:
        body = str(text).encode("utf-8")

    if "Content-Length" in headers:
        headers.set("Content-Length", str(len(body)))

    return HTTPResponse(
        status=int(har_response["status"]),
        reason=str(har_response.get("statusText") or ""),
        headers=headers,
        body=body,
    )


def _is_aborted(entry: Dict[str, Any]) -> bool:
    # Browsers record blocked or cancelled requests with status 0.
    try:
        return int(entry["response"]["status"]) == 0
    except (KeyError, TypeError, ValueError):
        return False


def iter_har_entries(data: bytes, source: str) -> Iterator[Tuple[str, HTTPRequest, HTTPResponse]]:
    """
    Yield (fixture name, request, response) for every entry of a HAR document.

    Raises:
        FixtureParseError: If the document or an entry is malformed
    """
    try:
        document = json.loads(data)
        entries = document["log"]["entries"]
    except (ValueError, KeyError, TypeError) as e:
        raise FixtureParseError(f"not a HAR document: {e}", source) from e

    for position, entry in enumerate(entries):
        if _is_aborted(entry):
            logger.warning(
                f"Skipping HAR entry #{position}: no response was received",
                operation="import_har",
                context={"archive": source, "entry": position},
            )
            continue
        try:
            request = entry_to_request(entry)
            response = entry_to_response(entry)
        except (KeyError, TypeError, ValueError, binascii.Error) as e:
            raise FixtureParseError(f"malformed entry #{position}: {e!r}", source) from e
        yield normalize_name(request.path), request, response


@log_operation("import_har")
def import_har_file(path: str, out_dir: str, store: FixtureStore) -> List[str]:
    """
    Import every entry of a HAR file into *out_dir*.

    Args:
        path: HAR file path
        out_dir: Directory receiving the fixture files
        store: FixtureStore performing the writes

    Returns:
        Request file names written, in archive order

    Raises:
        FixtureParseError: If the archive is malformed
        SaveError: If a fixture cannot be written
    """
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise FixtureParseError(f"cannot read archive: {e.strerror or e}", path) from e

    written = []
    for name, request, response in iter_har_entries(data, path):
        index = store.save_fixture(out_dir, name, request, response)
        written.append(request_filename(name, index))
    logger.info(
        f"Imported {len(written)} fixture(s)",
        operation="import_har",
        context={"archive": path, "out_dir": out_dir},
    )
    return written
