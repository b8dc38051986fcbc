"""Console reporting of run summaries at three verbosity levels."""

import json
import sys
from enum import Enum
from typing import Any, List, Optional, TextIO

from backcompat.comparison.result import ComparisonResult, TestRunSummary, Verdict

VALUE_PREVIEW_LENGTH = 120


class Verbosity(Enum):
    QUIET = "quiet"
    NORMAL = "normal"
    VERBOSE = "verbose"


def _format_value(value: Any) -> str:
    if value is None:
        return "(absent)"
    if isinstance(value, str):
        text = value
    else:
        text = json.dumps(value, ensure_ascii=False, default=str)
    if len(text) > VALUE_PREVIEW_LENGTH:
        text = text[:VALUE_PREVIEW_LENGTH] + "..."
    return text


class ConsoleReporter:
    """
    Writes human-readable run results.

    Quiet mode prints only the final tallies. Normal mode adds one line per
    failing or erroring fixture. Verbose mode lists every fixture and every
    divergence with both values.
    """

    def __init__(self, stream: Optional[TextIO] = None, verbosity: Verbosity = Verbosity.NORMAL):
        self.stream = stream or sys.stdout
        self.verbosity = verbosity

    def _write(self, line: str = "") -> None:
        self.stream.write(line + "\n")

    def format_result(self, result: ComparisonResult) -> List[str]:
        label = result.verdict.value.upper()
        lines = []
        if result.verdict is Verdict.PASS:
            lines.append(f"{label}  {result.key}")
        elif self.verbosity is Verbosity.VERBOSE and result.verdict is Verdict.FAIL:
            lines.append(f"{label}  {result.key}")
            for divergence in result.divergences:
                lines.append(f"      {divergence.field}: {divergence.reason}")
                lines.append(f"        base:   {_format_value(divergence.base_value)}")
                lines.append(f"        target: {_format_value(divergence.target_value)}")
        else:
            lines.append(f"{label}  {result.key}: {result.summary_line()}")

        if result.save_error:
            lines.append(f"      save failed: {result.save_error}")
        return lines

    def report(self, summary: TestRunSummary) -> None:
        if summary.planned == 0:
            self._write("no tests found")
            return

        if self.verbosity is not Verbosity.QUIET:
            for result in summary.results:
                if self.verbosity is Verbosity.NORMAL and result.passed and not result.save_error:
                    continue
                for line in self.format_result(result):
                    self._write(line)

        self._write(self.format_tallies(summary))
        if summary.interrupted:
            self._write(f"interrupted: {summary.not_run} fixture(s) did not run")

    @staticmethod
    def format_tallies(summary: TestRunSummary) -> str:
        line = (
            f"{summary.passed} passed, {summary.failed} failed, "
            f"{summary.errored} errored ({summary.planned} total)"
        )
        if summary.save_failures:
            line += f", {summary.save_failures} save failure(s)"
        return line
