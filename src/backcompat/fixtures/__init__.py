"""Fixture storage - text codec, flat-directory store, versioned repositories, HAR import."""

from .repository import (
    FilesystemFixtureRepository,
    InMemoryFixtureRepository,
    VersionedFixtureRepository,
)
from .store import FixtureStore, normalize_name

__all__ = [
    "FilesystemFixtureRepository",
    "FixtureStore",
    "InMemoryFixtureRepository",
    "VersionedFixtureRepository",
    "normalize_name",
]
