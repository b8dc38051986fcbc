"""
Ad-hoc fixture capture.

Builds a request from curl-style arguments, sends it to the live host and
stores the request together with the live response as a fixture pair.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from backcompat.domain.http_message import Headers, HTTPRequest
from backcompat.exceptions import ConfigError
from backcompat.fixtures.store import FixtureStore, normalize_name, request_filename
from backcompat.runner.replay import Replayer, TargetEndpoint
from backcompat.utils.logger import get_logger, log_operation

logger = get_logger(__name__)


def parse_header_argument(argument: str) -> Tuple[str, str]:
    """
    Split a `-H "Name: value"` argument.

    Raises:
        ConfigError: If there is no colon or the name is empty
    """
    name, sep, value = argument.partition(":")
    name = name.strip()
    if not sep or not name or any(c.isspace() for c in name):
        raise ConfigError(f"invalid header {argument!r}, expected 'Name: value'")
    return name, value.strip()


def read_data_argument(argument: str, raw: bool = False) -> bytes:
    """
    Resolve a data argument to body bytes.

    "@file" reads the file unless *raw* is set, in which case the value is
    always taken literally (curl's --data-raw).

    Raises:
        ConfigError: If the referenced file cannot be read
    """
    if raw or not argument.startswith("@"):
        return argument.encode("utf-8")
    filename = argument[1:]
    try:
        with open(filename, "rb") as f:
            return f.read()
    except OSError as e:
        raise ConfigError(f"cannot read data file {filename!r}: {e.strerror or e}") from e


@dataclass
class CaptureRequest:
    """
    A curl-style request description.

    Attributes:
        url: Absolute http(s) URL
        method: Request method; None means POST when there is data, GET otherwise
        headers: Raw "-H" arguments in command-line order
        data: Body bytes, or None when no data was given
    """

    url: str
    method: Optional[str] = None
    headers: List[str] = field(default_factory=list)
    data: Optional[bytes] = None

    def endpoint(self) -> TargetEndpoint:
        parts = urlsplit(self.url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ConfigError(f"expected an absolute http(s) URL, got {self.url!r}")
        return TargetEndpoint(host=parts.netloc, use_https=parts.scheme == "https")

    def build(self) -> HTTPRequest:
        """
        Raises:
            ConfigError: If the URL or a header argument is malformed
        """
        endpoint = self.endpoint()
        parts = urlsplit(self.url)
        target = parts.path or "/"
        if parts.query:
            target = f"{target}?{parts.query}"

        headers = Headers([("Host", endpoint.host)])
        for argument in self.headers:
            name, value = parse_header_argument(argument)
            if name.lower() == "host":
                headers.set("Host", value)
            else:
                headers.add(name, value)

        body = self.data or b""
        if body and "Content-Length" not in headers:
            headers.add("Content-Length", str(len(body)))

        method = self.method or ("POST" if self.data is not None else "GET")
        return HTTPRequest(method=method.upper(), target=target, headers=headers, body=body)


@log_operation("capture")
def capture(
    wanted: CaptureRequest,
    out_dir: str,
    name: Optional[str] = None,
    replayer: Optional[Replayer] = None,
    store: Optional[FixtureStore] = None,
) -> str:
    """
    Send *wanted* live and save the exchange into *out_dir*.

    Args:
        wanted: Request description
        out_dir: Directory receiving the fixture files
        name: Fixture name; defaults to the normalized URL path
        replayer: Performs the live request
        store: FixtureStore performing the writes

    Returns:
        The request file name written

    Raises:
        ConfigError: If the request description is invalid
        NetworkError: If the host cannot be reached
        SaveError: If the fixture cannot be written
    """
    request = wanted.build()
    replayer = replayer or Replayer()
    store = store or FixtureStore()

    response = replayer.replay(request, wanted.endpoint())
    fixture_name = name or normalize_name(request.path)
    index = store.save_fixture(out_dir, fixture_name, request, response)
    return request_filename(fixture_name, index)


def merge_data(chunks: Sequence[bytes]) -> Optional[bytes]:
    """Join repeated data arguments with "&" the way curl does."""
    if not chunks:
        return None
    return b"&".join(chunks)
