"""
Per-path comparison policy resolution.

A policy says which response headers may differ between base and target for
requests whose path matches a glob. All matching policies accumulate on top
of a default layer; nothing is ever overridden, only added.
"""

from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from functools import lru_cache
from typing import FrozenSet, Iterable, Optional, Sequence, Tuple
from urllib.parse import urlsplit

DEFAULT_IGNORE = ("Connection",)
DEFAULT_IGNORE_CONTENT = (
    "Age",
    "Content-MD5",
    "Content-Range",
    "Date",
    "Expires",
    "Last-Modified",
    "Public-Key-Pins",
    "Server",
    "Set-Cookie",
    "ETag",
    "Retry-After",
    "X-*",
    "Content-Length",
)


@dataclass(frozen=True)
class PathPolicy:
    """
    Header comparison rules for paths matching a glob.

    Attributes:
        path: Glob over the URL path; "**" spans any number of segments,
            "*" and "?" stay within one segment
        ignore: Header-name patterns skipped entirely
        ignore_content: Header-name patterns compared on presence only
    """

    path: str
    ignore: Tuple[str, ...] = ()
    ignore_content: Tuple[str, ...] = ()


def default_policies() -> Tuple[PathPolicy, ...]:
    """Built-in layer merged beneath user configuration."""
    return (
        PathPolicy(path="**", ignore=DEFAULT_IGNORE, ignore_content=DEFAULT_IGNORE_CONTENT),
    )


def match_header(pattern: str, name: str) -> bool:
    """
    Case-insensitive header-name match; a trailing "*" makes *pattern* a prefix.
    """
    pattern = pattern.lower()
    name = name.lower()
    if pattern.endswith("*"):
        return name.startswith(pattern[:-1])
    return name == pattern


def _segments(path: str) -> Tuple[str, ...]:
    return tuple(segment for segment in path.strip("/").split("/") if segment)


@lru_cache(maxsize=1024)
def _match_segments(pattern: Tuple[str, ...], path: Tuple[str, ...]) -> bool:
    if not pattern:
        return not path
    head, rest = pattern[0], pattern[1:]
    if head == "**":
        # Zero or more whole segments.
        return any(_match_segments(rest, path[skip:]) for skip in range(len(path) + 1))
    if not path:
        return False
    return fnmatchcase(path[0], head) and _match_segments(rest, path[1:])


def match_path(pattern: str, path: str) -> bool:
    """
    Match a URL path (query string ignored) against a policy glob.

    Examples:
        >>> match_path("/api/**", "/api/v1/users")
        True
        >>> match_path("/api/*", "/api/v1/users")
        False
    """
    path = urlsplit(path).path
    return _match_segments(_segments(pattern), _segments(path))


@dataclass(frozen=True)
class EffectivePolicy:
    """Accumulated header rules for one request path."""

    ignore: FrozenSet[str] = field(default_factory=frozenset)
    ignore_content: FrozenSet[str] = field(default_factory=frozenset)

    def is_ignored(self, header: str) -> bool:
        return any(match_header(pattern, header) for pattern in self.ignore)

    def is_presence_only(self, header: str) -> bool:
        """True when only presence matters; ignored headers are not presence-only."""
        if self.is_ignored(header):
            return False
        return any(match_header(pattern, header) for pattern in self.ignore_content)


class PolicyMatcher:
    """
    Resolves the effective policy for request paths.

    Immutable after construction and safe to share between worker threads.

    Args:
        policies: User policies in configuration order
        defaults: Base layer; pass an empty sequence to drop the built-in defaults
    """

    def __init__(
        self,
        policies: Iterable[PathPolicy] = (),
        defaults: Optional[Sequence[PathPolicy]] = None,
    ):
        if defaults is None:
            defaults = default_policies()
        self._layers: Tuple[PathPolicy, ...] = tuple(defaults) + tuple(policies)

    @property
    def layers(self) -> Tuple[PathPolicy, ...]:
        return self._layers

    def resolve(self, path: str) -> EffectivePolicy:
        ignore = set()
        ignore_content = set()
        for policy in self._layers:
            if match_path(policy.path, path):
                ignore.update(policy.ignore)
                ignore_content.update(policy.ignore_content)
        return EffectivePolicy(ignore=frozenset(ignore), ignore_content=frozenset(ignore_content))
