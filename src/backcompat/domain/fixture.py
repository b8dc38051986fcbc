"""
Fixture addressing model.

A FixtureKey names one recorded request/response pair inside a version
generation. Keys are totally ordered so run reports come out in the same
order no matter which worker finished first.
"""

from dataclasses import dataclass
from functools import total_ordering
from typing import Any, Optional, Tuple

from semver import Version


@total_ordering
@dataclass(frozen=True)
class FixtureKey:
    """
    Identity of one fixture.

    Attributes:
        version: Version generation the fixture belongs to (None outside a
            versioned corpus, e.g. freshly imported files)
        name: Normalized path name (path separators escaped)
        index: Disambiguation index, 0 for the unsuffixed file
    """

    version: Optional[Version]
    name: str
    index: int = 0

    def sort_key(self) -> Tuple[Any, ...]:
        # Unversioned fixtures sort before any version.
        if self.version is None:
            return (0, (), self.name, self.index)
        return (1, self.version, self.name, self.index)

    def __lt__(self, other: "FixtureKey") -> bool:
        if not isinstance(other, FixtureKey):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        suffix = f"[{self.index}]" if self.index else ""
        if self.version is None:
            return f"{self.name}{suffix}"
        return f"{self.version}/{self.name}{suffix}"


@dataclass(frozen=True)
class FixtureRef:
    """
    Pointer to a stored fixture.

    Attributes:
        key: Fixture identity
        location: Storage-specific handle (request file path for the
            filesystem repository, an opaque label for the in-memory one)
    """

    key: FixtureKey
    location: str
