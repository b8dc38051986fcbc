"""
Custom exception hierarchy for compatibility test runs.

Configuration errors abort a run before any fixture is replayed; fixture,
network and save errors are contained to the fixture (or save) that raised
them so the rest of the batch keeps going.
"""

from typing import Iterable, Optional


class BackcompatError(Exception):
    """
    Base exception for all backcompat errors.
    """

    pass


class ConfigError(BackcompatError):
    """
    Raised for invalid run configuration: bad version constraints, malformed
    policy files, invalid save versions or malformed command-line values.

    Always surfaced before any fixture runs.
    """

    pass


class DuplicateVersionError(ConfigError):
    """
    Raised when two fixture directories parse to the same semantic version.

    There is no meaningful tie-break between `1.2` and `1.2.0` (or between two
    build variants of one release), so the corpus is rejected instead.
    """

    def __init__(self, version: str, directories: Iterable[str]) -> None:
        self.version = version
        self.directories = sorted(directories)
        super().__init__(
            f"Directories {', '.join(repr(d) for d in self.directories)} "
            f"all resolve to version {version}"
        )


class FixtureParseError(BackcompatError):
    """
    Raised when a stored request or response fixture is not a valid HTTP message.

    Fatal to that fixture only; the runner reports it with an ERROR verdict.
    """

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class NetworkError(BackcompatError):
    """
    Raised when a live replay fails: unreachable host, timeout, or a response
    that cannot be read.
    """

    def __init__(self, message: str, host: Optional[str] = None) -> None:
        self.host = host
        super().__init__(message)


class SaveError(BackcompatError):
    """
    Raised when a fixture cannot be written, or when no free disambiguation
    index is left for its name.

    Previously written fixtures are untouched because every artifact is
    written atomically and independently.
    """

    pass
