"""
HTTP message domain model.

Requests and responses are kept exactly as recorded: header order, name
spelling and repeated values survive a load/save round trip, while lookups
are case-insensitive as HTTP requires.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
from urllib.parse import urlsplit


class Headers:
    """
    Ordered multimap of HTTP header fields.

    Stores (name, value) pairs in insertion order. Name comparisons are
    case-insensitive; the spelling used on insertion is what gets written back.
    """

    def __init__(self, items: Optional[Iterable[Tuple[str, str]]] = None):
        self._items: List[Tuple[str, str]] = []
        for name, value in items or ():
            self.add(name, value)

    def add(self, name: str, value: str) -> None:
        self._items.append((name, value))

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first value for *name*, or *default*."""
        lowered = name.lower()
        for key, value in self._items:
            if key.lower() == lowered:
                return value
        return default

    def get_all(self, name: str) -> List[str]:
        lowered = name.lower()
        return [value for key, value in self._items if key.lower() == lowered]

    def remove(self, name: str) -> None:
        lowered = name.lower()
        self._items = [(key, value) for key, value in self._items if key.lower() != lowered]

    def set(self, name: str, value: str) -> None:
        """Replace every value of *name* with a single value."""
        lowered = name.lower()
        for index, (key, _) in enumerate(self._items):
            if key.lower() == lowered:
                rest = [item for item in self._items[index + 1 :] if item[0].lower() != lowered]
                self._items = self._items[:index] + [(key, value)] + rest
                return
        self._items.append((name, value))

    def names(self) -> List[str]:
        """Distinct header names (first spelling seen), in order of first appearance."""
        seen: Dict[str, str] = {}
        for key, _ in self._items:
            seen.setdefault(key.lower(), key)
        return list(seen.values())

    def items(self) -> List[Tuple[str, str]]:
        return list(self._items)

    def copy(self) -> "Headers":
        return Headers(self._items)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        lowered = name.lower()
        return any(key.lower() == lowered for key, _ in self._items)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"Headers({self._items!r})"


@dataclass
class HTTPRequest:
    """
    Recorded HTTP request.

    Attributes:
        method: Request method, e.g. "GET"
        target: Origin-form request target (path plus optional query)
        headers: Header multimap; the Host header names the recorded host
        body: Raw body bytes (empty when there is none)
        version: HTTP version from the request line
    """

    method: str
    target: str
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def host(self) -> Optional[str]:
        return self.headers.get("Host")

    @property
    def path(self) -> str:
        """URL path without the query string."""
        return urlsplit(self.target).path or "/"

    @property
    def url(self) -> str:
        """Absolute URL when a Host header is known, otherwise the bare target."""
        if self.host:
            return f"http://{self.host}{self.target}"
        return self.target


@dataclass
class HTTPResponse:
    """
    Recorded or live HTTP response.

    Attributes:
        status: Numeric status code
        reason: Reason phrase (may be empty)
        headers: Header multimap
        body: Raw body bytes (empty when there is none)
        version: HTTP version from the status line
    """

    status: int
    reason: str = ""
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "") or ""

    @property
    def status_line(self) -> str:
        return f"{self.status} {self.reason}".rstrip()
