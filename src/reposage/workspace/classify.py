"""Best-effort classification of human-readable tool output.

These are line-oriented regular expressions over console text, not a parser for any reporter format. Output that matches
none of them is `undetermined`, never `passed`."""

import re
from typing import Literal

from pydantic import BaseModel, Field

FAILED_PATTERNS = [re.compile(r"(\d+)\s*(?:tests?|specs?)?\s*failed", re.IGNORECASE), re.compile(r"✖\s*(\d+)")]
PASSED_PATTERNS = [re.compile(r"(\d+)\s*(?:tests?|specs?)?\s*passed", re.IGNORECASE), re.compile(r"✔\s*(\d+)")]
TOTAL_PATTERN = re.compile(r"(\d+)\s*total", re.IGNORECASE)

LINT_ERROR_MARKERS = ("error", "✖")

LINT_LOCATION_PATTERN = re.compile(r"(?P<file>[\w./\\-]+\.\w+)[:(](?P<line>\d+)(?:[:,]\d+)?\)?")

OutcomeStatus = Literal["passed", "failed", "undetermined"]


class Outcome(BaseModel):
    status: OutcomeStatus = Field(description="Whether the run passed, failed, or could not be classified.")
    passed_count: int = Field(default=0, description="The number of passing tests reported.")
    failed_count: int = Field(default=0, description="The number of failing tests reported.")
    total_count: int = Field(default=0, description="The total number of tests reported.")

    @property
    def passed(self) -> bool:
        return self.status == "passed"


def _first_count(patterns: list[re.Pattern[str]], text: str) -> int | None:
    for pattern in patterns:
        if match := pattern.search(text):
            return int(match.group(1))
    return None


def classify(raw_output: str) -> Outcome:
    failed: int | None = _first_count(FAILED_PATTERNS, raw_output)
    passed: int | None = _first_count(PASSED_PATTERNS, raw_output)

    total: int | None = None
    if match := TOTAL_PATTERN.search(raw_output):
        total = int(match.group(1))

    if failed is None and passed is None and total is None:
        return Outcome(status="undetermined")

    failed_count: int = failed or 0
    passed_count: int = passed or 0
    total_count: int = total if total is not None else failed_count + passed_count

    if failed_count > 0:
        status: OutcomeStatus = "failed"
    elif total_count > 0:
        status = "passed"
    else:
        status = "undetermined"

    return Outcome(status=status, passed_count=passed_count, failed_count=failed_count, total_count=total_count)


def find_lint_errors(output: str, limit: int | None = None) -> list[str]:
    """Lines of linter output that report an error."""

    lines: list[str] = [line.strip() for line in output.splitlines() if any(marker in line for marker in LINT_ERROR_MARKERS)]

    return lines if limit is None else lines[:limit]


def parse_lint_location(line: str) -> tuple[str | None, int | None]:
    """Extract `file` and `line` from a lint message like `src/app.ts:12:5 error ...`."""

    if match := LINT_LOCATION_PATTERN.search(line):
        return match.group("file"), int(match.group("line"))
    return None, None
