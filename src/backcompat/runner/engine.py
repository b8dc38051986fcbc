"""
Compatibility test orchestration.

Every fixture moves through LOADED -> BASE_RESOLVED -> TARGET_RESOLVED ->
COMPARED -> REPORTED. A stage that cannot complete sends the fixture straight
to REPORTED with an ERROR verdict; other fixtures are unaffected.

Fixtures run on a bounded thread pool. Network replay is the only blocking
work, and the only state shared between workers is the read-only policy
matcher and the result collector. Results are sorted by fixture key before
reporting, so output does not depend on completion order.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed, wait
from typing import Dict, List, Optional, Sequence

from backcompat.comparison.comparator import ResponseComparator
from backcompat.comparison.result import ComparisonResult, Stage, TestRunSummary
from backcompat.config.settings import DEFAULT_GRACE_PERIOD, default_worker_count
from backcompat.domain.fixture import FixtureKey, FixtureRef
from backcompat.domain.http_message import HTTPRequest, HTTPResponse
from backcompat.exceptions import FixtureParseError, NetworkError, SaveError
from backcompat.fixtures.repository import VersionedFixtureRepository
from backcompat.policy.matcher import PolicyMatcher
from backcompat.runner.replay import Replayer, TargetEndpoint
from backcompat.runner.save import SaveUpdater
from backcompat.utils.logger import get_logger
from backcompat.versions import VersionConstraint

logger = get_logger(__name__)


class ResultCollector:
    """Append-only, thread-safe store of results keyed by fixture."""

    def __init__(self):
        self._results: Dict[FixtureKey, ComparisonResult] = {}
        self._lock = threading.Lock()

    def add(self, result: ComparisonResult) -> None:
        with self._lock:
            # First result for a key wins; nothing is ever replaced.
            self._results.setdefault(result.key, result)

    def sorted_results(self) -> List[ComparisonResult]:
        with self._lock:
            return [self._results[key] for key in sorted(self._results)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)


class TestRunner:
    """
    Replays fixtures against base and target and aggregates verdicts.

    Args:
        repository: Source of fixtures (and stored base responses)
        target: Endpoint under test
        matcher: Policy matcher, loaded once per run
        base: Live reference endpoint; None compares against stored responses
        replayer: Performs live requests
        comparator: Diffs responses
        save_updater: Persists target responses when saving is requested
        workers: Thread pool size
        grace_period: Seconds to wait for in-flight fixtures after an interrupt
    """

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        repository: VersionedFixtureRepository,
        target: TargetEndpoint,
        matcher: PolicyMatcher,
        base: Optional[TargetEndpoint] = None,
        replayer: Optional[Replayer] = None,
        comparator: Optional[ResponseComparator] = None,
        save_updater: Optional[SaveUpdater] = None,
        workers: Optional[int] = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ):
        self.repository = repository
        self.target = target
        self.matcher = matcher
        self.base = base
        self.replayer = replayer or Replayer()
        self.comparator = comparator or ResponseComparator()
        self.save_updater = save_updater
        self.workers = max(1, workers or default_worker_count())
        self.grace_period = grace_period

    def collect_fixtures(self, constraint: Optional[VersionConstraint] = None) -> List[FixtureRef]:
        """
        Every fixture of every version allowed by *constraint*, in key order.

        The list is built up front, so fixtures saved during the run are
        never replayed by it.
        """
        refs: List[FixtureRef] = []
        for version in self.repository.list_versions(constraint):
            refs.extend(self.repository.open_fixtures_for_version(version))
        return refs

    def run(self, refs: Sequence[FixtureRef]) -> TestRunSummary:
        refs = list(refs)
        if not refs:
            logger.info("No fixtures to run", operation="run")
            return TestRunSummary(planned=0)

        collector = ResultCollector()
        stop = threading.Event()
        interrupted = False

        logger.info(
            f"Running {len(refs)} fixture(s)",
            operation="run",
            context={"workers": self.workers, "target": str(self.target), "base": str(self.base)},
        )

        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="backcompat")
        futures = [executor.submit(self.run_fixture, ref, stop) for ref in refs]
        try:
            for future in as_completed(futures):
                result = future.result()
                if result is not None:
                    collector.add(result)
        except KeyboardInterrupt:
            interrupted = True
            stop.set()
            for future in futures:
                future.cancel()
            logger.warning(
                "Interrupted; waiting for in-flight fixtures",
                operation="run",
                context={"grace_period": self.grace_period},
            )
            done, _ = wait(futures, timeout=self.grace_period)
            for future in done:
                if future.cancelled() or future.exception() is not None:
                    continue
                if future.result() is not None:
                    collector.add(future.result())
        finally:
            executor.shutdown(wait=not interrupted, cancel_futures=True)

        summary = TestRunSummary(
            results=collector.sorted_results(), planned=len(refs), interrupted=interrupted
        )
        logger.info(
            "Run finished",
            operation="run",
            context={
                "passed": summary.passed,
                "failed": summary.failed,
                "errored": summary.errored,
                "not_run": summary.not_run,
            },
        )
        return summary

    def run_fixture(
        self, ref: FixtureRef, stop: Optional[threading.Event] = None
    ) -> Optional[ComparisonResult]:
        """
        Take one fixture through every stage.

        Returns:
            The fixture's result, or None when the run was stopped before it started
        """
        if stop is not None and stop.is_set():
            return None

        stage = Stage.LOADED
        path = None
        try:
            request = self.repository.load_request(ref)
            path = request.path

            stage = Stage.BASE_RESOLVED
            base = self._resolve_base(ref, request)

            stage = Stage.TARGET_RESOLVED
            target = self.replayer.replay(request, self.target)
            save_error = self._save(ref, request, target)

            stage = Stage.COMPARED
            policy = self.matcher.resolve(request.target)
            result = self.comparator.compare(ref.key, base, target, policy, path=path)
            result.save_error = save_error
        except (FixtureParseError, NetworkError) as e:
            result = ComparisonResult.errored(ref.key, stage, str(e), path=path)
        except Exception as e:
            logger.error(
                "Unexpected failure while testing fixture",
                operation="run_fixture",
                context={"fixture": str(ref.key), "stage": stage.value},
                error=repr(e),
            )
            result = ComparisonResult.errored(ref.key, stage, f"unexpected error: {e!r}", path=path)

        logger.debug(
            "Fixture reported",
            operation="run_fixture",
            context={"fixture": str(ref.key), "verdict": result.verdict.value},
        )
        return result

    def _resolve_base(self, ref: FixtureRef, request: HTTPRequest) -> HTTPResponse:
        if self.base is not None:
            return self.replayer.replay(request, self.base)

        response = self.repository.load_response(ref)
        if response is None:
            raise FixtureParseError(
                "response fixture is missing and no base host is set", ref.location
            )
        return response

    def _save(self, ref: FixtureRef, request: HTTPRequest, target: HTTPResponse) -> Optional[str]:
        if self.save_updater is None:
            return None
        try:
            self.save_updater.save(ref.key.name, request, target)
        except SaveError as e:
            logger.error(
                "Could not save target response",
                operation="save_fixture",
                context={"fixture": str(ref.key), "version": str(self.save_updater.version)},
                error=str(e),
            )
            return str(e)
        return None
