"""
Versioned fixture repositories.

The runner only talks to VersionedFixtureRepository, so the same engine runs
against a tests root on disk or against an in-memory corpus in tests.
"""

import os
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from semver import Version

from backcompat.domain.fixture import FixtureKey, FixtureRef
from backcompat.domain.http_message import HTTPRequest, HTTPResponse
from backcompat.exceptions import FixtureParseError, SaveError
from backcompat.fixtures.store import (
    MAX_FIXTURE_INDEX,
    FixtureStore,
    parse_request_filename,
    request_filename,
)
from backcompat.versions import VersionConstraint, VersionResolver


class VersionedFixtureRepository(ABC):
    """Storage of fixture generations keyed by semantic version."""

    @abstractmethod
    def list_versions(self, constraint: Optional[VersionConstraint] = None) -> List[Version]:
        """Versions allowed by *constraint*, ascending."""

    @abstractmethod
    def open_fixtures_for_version(self, version: Version) -> List[FixtureRef]:
        """Fixtures of one version in deterministic order."""

    @abstractmethod
    def load_request(self, ref: FixtureRef) -> HTTPRequest:
        """Parse the stored request; raises FixtureParseError when malformed."""

    @abstractmethod
    def load_response(self, ref: FixtureRef) -> Optional[HTTPResponse]:
        """Parse the stored response, or None when it was never recorded."""

    @abstractmethod
    def write_fixture(
        self, version: Version, name: str, request: HTTPRequest, response: HTTPResponse
    ) -> FixtureKey:
        """Add a fixture under the lowest free index; raises SaveError on failure."""

    @abstractmethod
    def remove_fixture(self, ref: FixtureRef) -> None:
        """Delete a stored fixture; raises SaveError when it cannot be deleted."""


class FilesystemFixtureRepository(VersionedFixtureRepository):
    """
    Repository backed by `<tests_root>/<version>/` directories.

    Args:
        tests_root: Directory holding one subdirectory per version
        store: FixtureStore used for file access (shared so directory locks are shared)
    """

    def __init__(self, tests_root: str, store: Optional[FixtureStore] = None):
        self.tests_root = tests_root
        self.store = store or FixtureStore()
        self.resolver = VersionResolver(tests_root)
        self._directories: Dict[Version, str] = {}

    def list_versions(self, constraint: Optional[VersionConstraint] = None) -> List[Version]:
        selected = self.resolver.resolve(constraint)
        for directory in selected:
            self._directories[directory.version] = directory.path
        return [directory.version for directory in selected]

    def directory_for(self, version: Version) -> str:
        """Existing directory for *version*, or the canonical path a save would create."""
        if version not in self._directories:
            for directory in self.resolver.scan():
                self._directories.setdefault(directory.version, directory.path)
        return self._directories.get(version) or os.path.join(self.tests_root, str(version))

    def open_fixtures_for_version(self, version: Version) -> List[FixtureRef]:
        refs = []
        for path in self.store.enumerate_fixtures(self.directory_for(version)):
            name, index = parse_request_filename(os.path.basename(path))
            refs.append(FixtureRef(key=FixtureKey(version, name, index), location=path))
        return refs

    def load_request(self, ref: FixtureRef) -> HTTPRequest:
        return self.store.load_request(ref.location)

    def load_response(self, ref: FixtureRef) -> Optional[HTTPResponse]:
        return self.store.load_response(ref.location)

    def write_fixture(
        self, version: Version, name: str, request: HTTPRequest, response: HTTPResponse
    ) -> FixtureKey:
        directory = self.directory_for(version)
        index = self.store.save_fixture(directory, name, request, response)
        self._directories.setdefault(version, directory)
        return FixtureKey(version, name, index)

    def remove_fixture(self, ref: FixtureRef) -> None:
        self.store.remove_fixture(ref.location)


class InMemoryFixtureRepository(VersionedFixtureRepository):
    """
    Repository kept entirely in memory, with the same naming rules as disk.

    Stored values may be malformed bytes instead of parsed messages, which lets
    tests exercise parse-error handling without touching the filesystem.
    """

    def __init__(self, max_index: int = MAX_FIXTURE_INDEX):
        self.max_index = max_index
        self._fixtures: Dict[Version, Dict[Tuple[str, int], Tuple[object, object]]] = {}
        self._lock = threading.Lock()

    def add_version(self, version: Version) -> None:
        with self._lock:
            self._fixtures.setdefault(version, {})

    def list_versions(self, constraint: Optional[VersionConstraint] = None) -> List[Version]:
        constraint = constraint or VersionConstraint.any()
        with self._lock:
            versions = list(self._fixtures)
        return sorted(v for v in versions if constraint.allows(v))

    def open_fixtures_for_version(self, version: Version) -> List[FixtureRef]:
        with self._lock:
            keys = list(self._fixtures.get(version, {}))
        # Same order the filesystem store yields: by request file name.
        keys.sort(key=lambda item: request_filename(*item))
        return [
            FixtureRef(
                key=FixtureKey(version, name, index),
                location=f"memory://{version}/{request_filename(name, index)}",
            )
            for name, index in keys
        ]

    def _entry(self, ref: FixtureRef) -> Tuple[object, object]:
        key = ref.key
        with self._lock:
            try:
                return self._fixtures[key.version][(key.name, key.index)]
            except KeyError:
                raise FixtureParseError("fixture does not exist", ref.location)

    def load_request(self, ref: FixtureRef) -> HTTPRequest:
        request, _ = self._entry(ref)
        if not isinstance(request, HTTPRequest):
            raise FixtureParseError("malformed stored request", ref.location)
        return request

    def load_response(self, ref: FixtureRef) -> Optional[HTTPResponse]:
        _, response = self._entry(ref)
        if response is None:
            return None
        if not isinstance(response, HTTPResponse):
            raise FixtureParseError("malformed stored response", ref.location)
        return response

    def put(
        self,
        version: Version,
        name: str,
        index: int,
        request: object,
        response: object = None,
    ) -> FixtureKey:
        """Store an entry at an explicit index, bypassing the free-index search."""
        with self._lock:
            self._fixtures.setdefault(version, {})[(name, index)] = (request, response)
        return FixtureKey(version, name, index)

    def write_fixture(
        self, version: Version, name: str, request: HTTPRequest, response: HTTPResponse
    ) -> FixtureKey:
        with self._lock:
            entries = self._fixtures.setdefault(version, {})
            for index in range(self.max_index + 1):
                if (name, index) not in entries:
                    entries[(name, index)] = (request, response)
                    return FixtureKey(version, name, index)
        raise SaveError(f"no free fixture index for {name!r} in version {version}")

    def remove_fixture(self, ref: FixtureRef) -> None:
        key = ref.key
        with self._lock:
            entries = self._fixtures.get(key.version, {})
            if entries.pop((key.name, key.index), None) is None:
                raise SaveError(f"fixture {key} does not exist")
