"""
Copying and moving fixtures between version generations.

Every fixture is written into the destination through the repository's normal
save path, so it lands under the lowest free index and never replaces an
existing file. A move deletes the source pair only after both destination
files exist.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from semver import Version

from backcompat.domain.fixture import FixtureKey
from backcompat.exceptions import ConfigError, FixtureParseError, SaveError
from backcompat.fixtures.repository import VersionedFixtureRepository
from backcompat.fixtures.store import normalize_name
from backcompat.utils.logger import get_logger, log_operation

logger = get_logger(__name__)


@dataclass
class TransferResult:
    """
    Outcome for one source fixture.

    Attributes:
        source: Fixture that was copied or moved
        destination: Key written in the destination version, if the write happened
        error: Why the fixture was not transferred completely
    """

    source: FixtureKey
    destination: Optional[FixtureKey] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _wanted_names(names: Optional[Iterable[str]]) -> Optional[set]:
    if not names:
        return None
    # URL paths are accepted as well as fixture names.
    return {normalize_name(name) if name.startswith("/") else name for name in names}


@log_operation("transfer_fixtures")
def transfer_fixtures(
    repository: VersionedFixtureRepository,
    source: Version,
    destination: Version,
    names: Optional[Iterable[str]] = None,
    move: bool = False,
) -> List[TransferResult]:
    """
    Copy (or move) fixtures from one version to another.

    Args:
        repository: Repository holding both versions
        source: Version to read from; it must exist
        destination: Version to write into; created when missing
        names: Only transfer fixtures with these names (all when empty)
        move: Delete each source fixture once its copy is written

    Returns:
        One TransferResult per selected source fixture, in source order

    Raises:
        ConfigError: If the versions are equal or the source version does not exist
    """
    if source == destination:
        raise ConfigError(f"source and destination are the same version ({source})")
    if source not in repository.list_versions():
        raise ConfigError(f"no fixtures directory for version {source}")

    wanted = _wanted_names(names)
    refs = [
        ref
        for ref in repository.open_fixtures_for_version(source)
        if wanted is None or ref.key.name in wanted
    ]

    results = []
    for ref in refs:
        try:
            request = repository.load_request(ref)
            response = repository.load_response(ref)
        except FixtureParseError as e:
            results.append(TransferResult(ref.key, error=str(e)))
            continue
        if response is None:
            results.append(TransferResult(ref.key, error="response missing"))
            continue

        try:
            key = repository.write_fixture(destination, ref.key.name, request, response)
        except SaveError as e:
            results.append(TransferResult(ref.key, error=str(e)))
            continue

        result = TransferResult(ref.key, destination=key)
        if move:
            try:
                repository.remove_fixture(ref)
            except SaveError as e:
                result.error = f"copied but source not removed: {e}"
        results.append(result)

    failed = [result for result in results if not result.ok]
    if failed:
        logger.warning(
            f"{len(failed)} fixture(s) not transferred cleanly",
            operation="transfer_fixtures",
            context={"source": str(source), "destination": str(destination)},
        )
    logger.info(
        f"{'Moved' if move else 'Copied'} {len(results) - len(failed)} fixture(s)",
        operation="transfer_fixtures",
        context={"source": str(source), "destination": str(destination), "move": move},
    )
    return results
