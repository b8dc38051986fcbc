"""
Live replay of recorded requests.

Sends a fixture's request to a base or target host with `requests` and turns
the live answer back into an HTTPResponse that can be compared with (or
saved as) a fixture.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import requests

from backcompat.config.settings import DEFAULT_TIMEOUT
from backcompat.domain.http_message import Headers, HTTPRequest, HTTPResponse
from backcompat.exceptions import NetworkError
from backcompat.utils.logger import get_logger, redact_header_value

logger = get_logger(__name__)


# Recomputed by requests for the endpoint and the body actually sent.
_DROPPED_REQUEST_HEADERS = {"host", "content-length", "transfer-encoding"}
# requests undoes both codings before handing out .content.
_DECODED_RESPONSE_HEADERS = {"transfer-encoding", "content-encoding"}


@dataclass(frozen=True)
class TargetEndpoint:
    """
    Where a request gets replayed.

    Attributes:
        host: Host name, optionally with ":port"
        use_https: Use https instead of http
    """

    host: str
    use_https: bool = False

    @property
    def scheme(self) -> str:
        return "https" if self.use_https else "http"

    def url_for(self, target: str) -> str:
        if not target.startswith("/"):
            target = "/" + target
        return f"{self.scheme}://{self.host}{target}"

    def __str__(self) -> str:
        return f"{self.scheme}://{self.host}"


def replay_headers(request: HTTPRequest) -> Dict[str, str]:
    """Fold the request's header multimap into what requests accepts."""
    folded: Dict[str, str] = {}
    spelling: Dict[str, str] = {}
    for name, value in request.headers:
        lowered = name.lower()
        if lowered in _DROPPED_REQUEST_HEADERS:
            continue
        if lowered in spelling:
            folded[spelling[lowered]] += f", {value}"
        else:
            spelling[lowered] = name
            folded[name] = value
    return folded


def response_from_requests(live: requests.Response) -> HTTPResponse:
    """
    Convert a requests.Response into an HTTPResponse.

    Repeated headers are kept as separate values. Because `live.content` is
    already de-chunked and decompressed, Transfer-Encoding and
    Content-Encoding are dropped and Content-Length describes the decoded body.
    """
    body = live.content or b""
    raw_headers = getattr(live.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "iteritems"):
        pairs = list(raw_headers.iteritems())
    else:
        pairs = list(live.headers.items())

    headers = Headers()
    decoded = False
    for name, value in pairs:
        if name.lower() in _DECODED_RESPONSE_HEADERS:
            decoded = True
            continue
        headers.add(name, value)
    if decoded and "Content-Length" in headers:
        headers.set("Content-Length", str(len(body)))

    return HTTPResponse(
        status=live.status_code,
        reason=live.reason or "",
        headers=headers,
        body=body,
    )


class Replayer:
    """
    Replays HTTPRequests against endpoints.

    Each worker thread gets its own requests.Session (sessions are not
    thread-safe). Sessions carry no default headers, so only the recorded
    headers are sent, and redirects are returned as-is.

    Args:
        timeout: Per-request timeout in seconds
        session_factory: Builds sessions; injectable for tests
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.timeout = timeout
        self._session_factory = session_factory
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session: Optional[requests.Session] = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            session.headers.clear()
            self._local.session = session
        return session

    def replay(self, request: HTTPRequest, endpoint: TargetEndpoint) -> HTTPResponse:
        """
        Send *request* to *endpoint* and return the live response.

        Raises:
            NetworkError: On connection failure, timeout or unreadable response
        """
        url = endpoint.url_for(request.target)
        headers = replay_headers(request)
        context = {
            "method": request.method,
            "url": url,
            "headers": {name: redact_header_value(name, value) for name, value in headers.items()},
        }
        logger.debug("Replaying request", operation="replay", context=context)

        start = time.time()
        try:
            live = self._session().request(
                request.method,
                url,
                headers=headers,
                data=request.body or None,
                timeout=self.timeout,
                allow_redirects=False,
            )
            response = response_from_requests(live)
        except requests.exceptions.Timeout as e:
            raise NetworkError(
                f"{request.method} {url} timed out after {self.timeout}s", host=endpoint.host
            ) from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"{request.method} {url} failed: {e}", host=endpoint.host) from e

        logger.info(
            "Replayed request",
            operation="replay",
            context={"method": request.method, "url": url, "status": response.status},
            duration_ms=(time.time() - start) * 1000,
        )
        return response
