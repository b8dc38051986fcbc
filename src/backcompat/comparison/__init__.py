"""Response comparison - divergence detection, results and reporting."""

from .comparator import ResponseComparator, is_json_media_type
from .reporter import ConsoleReporter, Verbosity
from .result import ComparisonResult, Divergence, Stage, TestRunSummary, Verdict

__all__ = [
    "ComparisonResult",
    "ConsoleReporter",
    "Divergence",
    "ResponseComparator",
    "Stage",
    "TestRunSummary",
    "Verbosity",
    "Verdict",
    "is_json_media_type",
]
