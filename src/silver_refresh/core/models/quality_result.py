"""
Quality check results.

A check passes when it returns no violating rows. Violations are data, not
errors: they are reported here and never raised.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class CheckResult(BaseModel):
    """
    Outcome of one quality check.

    Attributes:
        check_id: Stable check identifier (e.g. "CUST-02")
        relation: Silver relation that was inspected
        description: What the check asserts
        violations: Violating rows returned by the check query
        duration_ms: Query execution time
    """

    check_id: str
    relation: str
    description: str
    violations: list[dict[str, Any]] = Field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def passed(self) -> bool:
        return not self.violations

    @property
    def violation_count(self) -> int:
        return len(self.violations)


class QualityReport(BaseModel):
    """Results of a quality suite run."""

    started_at: datetime
    finished_at: datetime | None = None
    results: list[CheckResult] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(result.passed for result in self.results)

    @property
    def failed_checks(self) -> list[CheckResult]:
        return [result for result in self.results if not result.passed]

    def summary(self) -> dict[str, Any]:
        return {
            "checks_run": len(self.results),
            "checks_failed": len(self.failed_checks),
            "passed": self.passed,
            "violations": {r.check_id: r.violation_count for r in self.failed_checks},
        }
