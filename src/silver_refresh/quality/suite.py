"""
Quality suite runner.

Runs the check catalogue against the silver layer. Violations are returned
as data; only a check that cannot execute raises.
"""

import time
from datetime import datetime, timezone

import psycopg

from silver_refresh.core.errors import ValidationExecutionError
from silver_refresh.core.models import CheckResult, QualityReport
from silver_refresh.observability.logger import get_logger
from silver_refresh.observability.metrics import record_quality_check
from silver_refresh.warehouse.connection import DatabaseConnectionPool

from .checks import QualityCheck

logger = get_logger("silver-refresh.quality")


class QualitySuite:
    """
    Independent, read-only invariant checks over silver relations.

    Checks do not depend on each other or on the load orchestrator and can
    run at any time after a load.
    """

    def __init__(self, pool: DatabaseConnectionPool, checks: list[QualityCheck]):
        """
        Initialize quality suite.

        Args:
            pool: Database connection pool
            checks: Checks to run, in reporting order
        """
        ids = [check.check_id for check in checks]
        duplicates = sorted({check_id for check_id in ids if ids.count(check_id) > 1})
        if duplicates:
            raise ValueError(f"Duplicate check ids: {', '.join(duplicates)}")

        self.pool = pool
        self.checks = {check.check_id: check for check in checks}

    @property
    def check_ids(self) -> list[str]:
        return list(self.checks)

    def get_check(self, check_id: str) -> QualityCheck:
        try:
            return self.checks[check_id.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown check '{check_id}'. Expected one of: {', '.join(self.checks)}")

    def run_check(self, check_id: str) -> CheckResult:
        """
        Run one check.

        Args:
            check_id: Identifier of the check (case-insensitive)

        Returns:
            CheckResult with the violating rows

        Raises:
            ValueError: If the check id is unknown
            ValidationExecutionError: If the query cannot be executed
        """
        check = self.get_check(check_id)
        start = time.perf_counter()

        try:
            with self.pool.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(check.query, check.params or None)
                    violations = cur.fetchall()
        except psycopg.Error as e:
            raise ValidationExecutionError(check.check_id, str(e).strip(), e.sqlstate) from e

        duration = time.perf_counter() - start
        result = CheckResult(
            check_id=check.check_id,
            relation=check.relation,
            description=check.description,
            violations=[dict(row) for row in violations],
            duration_ms=duration * 1000,
        )
        record_quality_check(check.check_id, check.relation, result.violation_count, duration)

        log = logger.info if result.passed else logger.warning
        log(
            f"Quality check {'passed' if result.passed else 'failed'}: {check.check_id}",
            extra={
                "check_id": check.check_id,
                "relation": check.relation,
                "violations": result.violation_count,
                "duration_ms": round(result.duration_ms, 3),
            },
        )
        return result

    def run(self, check_ids: list[str] | None = None) -> QualityReport:
        """
        Run the suite (or a subset of it).

        Args:
            check_ids: Checks to run; None runs all of them

        Returns:
            QualityReport with one result per check

        Raises:
            ValidationExecutionError: On the first check that cannot execute
        """
        selected = [self.get_check(check_id).check_id for check_id in check_ids] if check_ids else self.check_ids
        report = QualityReport(started_at=datetime.now(timezone.utc))

        for check_id in selected:
            report.results.append(self.run_check(check_id))

        report.finished_at = datetime.now(timezone.utc)
        logger.info("Quality suite finished", extra=report.summary())
        return report
