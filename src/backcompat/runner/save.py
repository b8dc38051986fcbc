"""Persisting target responses as a new fixture generation."""

from typing import Optional

from semver import Version

from backcompat.domain.fixture import FixtureKey
from backcompat.domain.http_message import HTTPRequest, HTTPResponse
from backcompat.exceptions import ConfigError
from backcompat.fixtures.repository import VersionedFixtureRepository
from backcompat.versions import parse_version


class SaveUpdater:
    """
    Writes replayed requests and target responses under one version tag.

    Purely additive: the repository picks a fresh index for every save, so
    existing fixtures, including those of the same version, are never touched.
    """

    def __init__(self, repository: VersionedFixtureRepository, version: Version):
        self.repository = repository
        self.version = version

    @classmethod
    def for_tag(
        cls, repository: VersionedFixtureRepository, tag: Optional[str]
    ) -> Optional["SaveUpdater"]:
        """
        Build an updater from a --save tag, or None when no tag was given.

        Raises:
            ConfigError: If the tag is not a semantic version
        """
        if not tag:
            return None
        version = parse_version(tag)
        if version is None:
            raise ConfigError(f"save version {tag!r} is not a semantic version")
        return cls(repository, version)

    def save(self, name: str, request: HTTPRequest, response: HTTPResponse) -> FixtureKey:
        """Raises SaveError when the repository cannot write the pair."""
        return self.repository.write_fixture(self.version, name, request, response)
