"""
Comparison result types.

A ComparisonResult is produced for every fixture of a run, whatever happened
to it: PASS and FAIL come from the comparator, ERROR from the runner when a
stage before comparison could not complete.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from backcompat.domain.fixture import FixtureKey


class Verdict(Enum):
    """Outcome of one fixture."""

    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"


class Stage(Enum):
    """Per-fixture lifecycle stages, in order."""

    LOADED = "loaded"
    BASE_RESOLVED = "base_resolved"
    TARGET_RESOLVED = "target_resolved"
    COMPARED = "compared"
    REPORTED = "reported"


@dataclass
class Divergence:
    """
    One difference between base and target.

    Attributes:
        field: What differs: "status", "header:<Name>", "body" or "body$.<json path>"
        base_value: Value on the base side (None when absent)
        target_value: Value on the target side (None when absent)
        reason: Human-readable explanation
    """

    field: str
    base_value: Any
    target_value: Any
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ComparisonResult:
    """
    Outcome of one fixture.

    Attributes:
        key: Fixture identity
        verdict: PASS, FAIL or ERROR
        divergences: Every difference found, in discovery order
        error: Cause of an ERROR verdict
        failed_stage: Stage that could not be completed (ERROR only)
        save_error: Set when persisting the target response failed
        path: Request path, for reporting
    """

    key: FixtureKey
    verdict: Verdict
    divergences: List[Divergence] = field(default_factory=list)
    error: Optional[str] = None
    failed_stage: Optional[Stage] = None
    save_error: Optional[str] = None
    path: Optional[str] = None

    @classmethod
    def from_divergences(
        cls, key: FixtureKey, divergences: List[Divergence], path: Optional[str] = None
    ) -> "ComparisonResult":
        verdict = Verdict.PASS if not divergences else Verdict.FAIL
        return cls(key=key, verdict=verdict, divergences=list(divergences), path=path)

    @classmethod
    def errored(
        cls, key: FixtureKey, stage: Stage, error: str, path: Optional[str] = None
    ) -> "ComparisonResult":
        return cls(key=key, verdict=Verdict.ERROR, error=error, failed_stage=stage, path=path)

    @property
    def passed(self) -> bool:
        return self.verdict is Verdict.PASS

    def summary_line(self) -> str:
        """One-line cause for failing or erroring fixtures."""
        if self.verdict is Verdict.ERROR:
            stage = self.failed_stage.value if self.failed_stage else "unknown stage"
            return f"{stage}: {self.error}"
        if not self.divergences:
            return "ok"
        first = self.divergences[0]
        more = len(self.divergences) - 1
        line = f"{first.field}: {first.reason}"
        if more:
            line += f" (+{more} more)"
        return line

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fixture": str(self.key),
            "verdict": self.verdict.value,
            "divergences": [d.to_dict() for d in self.divergences],
            "error": self.error,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "save_error": self.save_error,
        }


@dataclass
class TestRunSummary:
    """
    Aggregate of one invocation; never persisted.

    Attributes:
        results: Every reported result, sorted by fixture key
        planned: Number of fixtures the run set out to test
        interrupted: True when the run was cancelled before finishing
    """

    __test__ = False  # not a pytest test class

    results: List[ComparisonResult] = field(default_factory=list)
    planned: int = 0
    interrupted: bool = False

    def _count(self, verdict: Verdict) -> int:
        return sum(1 for result in self.results if result.verdict is verdict)

    @property
    def passed(self) -> int:
        return self._count(Verdict.PASS)

    @property
    def failed(self) -> int:
        return self._count(Verdict.FAIL)

    @property
    def errored(self) -> int:
        return self._count(Verdict.ERROR)

    @property
    def save_failures(self) -> int:
        return sum(1 for result in self.results if result.save_error)

    @property
    def not_run(self) -> int:
        return max(self.planned - len(self.results), 0)

    @property
    def ok(self) -> bool:
        """True only when every planned fixture ran, passed, and saved cleanly."""
        return (
            not self.interrupted
            and self.not_run == 0
            and self.failed == 0
            and self.errored == 0
            and self.save_failures == 0
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "planned": self.planned,
            "passed": self.passed,
            "failed": self.failed,
            "errored": self.errored,
            "not_run": self.not_run,
            "save_failures": self.save_failures,
            "interrupted": self.interrupted,
            "results": [result.to_dict() for result in self.results],
        }
