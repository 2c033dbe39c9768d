"""
Command-line interface for the silver refresh engine.

Usage:
    silver-refresh refresh [--entities customer,product] [--dry-run]
    silver-refresh quality [--checks CUST-01,PROD-05] [--fail-on-violations]
    silver-refresh rules [--rules path/to/silver_rules.yaml]

Also available as ``python -m silver_refresh.cli.refresh_cli``.
"""

import argparse
import os
import sys

from dotenv import find_dotenv, load_dotenv
from psycopg import OperationalError

from silver_refresh.batch import LoadOrchestrator
from silver_refresh.core.errors import SilverRefreshError
from silver_refresh.core.rules import TransformationEvaluator, load_catalog
from silver_refresh.observability.logger import get_logger, setup_logger
from silver_refresh.observability.metrics import push_metrics
from silver_refresh.quality import QualitySuite, build_checks
from silver_refresh.utils.validation import ValidationError, schema_from_env, validate_chunk_size
from silver_refresh.warehouse.connection import DatabaseConnectionPool
from silver_refresh.warehouse.replace import ExtentReplacer
from silver_refresh.warehouse.snapshot import BronzeSnapshotReader

logger = get_logger("silver-refresh.cli")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_VIOLATIONS = 2


def split_list(value: str | None) -> list[str] | None:
    """Parse a comma-separated option into a list (None when not given)."""
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def create_pool(args) -> DatabaseConnectionPool | None:
    """
    Open a connection pool from CLI flags, falling back to DB_* environment variables.

    Returns:
        The open pool, or None (after printing the cause) when it cannot be opened
    """
    try:
        pool = DatabaseConnectionPool(
            host=args.db_host,
            port=args.db_port,
            database=args.db_name,
            user=args.db_user,
            password=args.db_password,
        )
        pool.open()
    except (ValueError, OperationalError) as e:
        logger.error(f"Cannot open database connection: {e}")
        print(f"\nError: {e}")
        return None
    return pool


def push_run_metrics() -> None:
    try:
        if push_metrics():
            logger.info("Pushed metrics to Pushgateway")
    except OSError as e:
        logger.warning(f"Could not push metrics: {e}")


def refresh_command(args) -> int:
    """
    Run a full refresh of the silver layer.

    Returns:
        0 when the batch completed, 1 when it was aborted
    """
    try:
        catalog = load_catalog(args.rules)
        chunk_size = validate_chunk_size(args.chunk_size) if args.chunk_size is not None else None
        entities = split_list(args.entities)
        LoadOrchestrator.resolve_entities(entities)
    except (SilverRefreshError, ValidationError, ValueError) as e:
        print(f"\nError: {e}")
        return EXIT_FAILURE

    pool = create_pool(args)
    if pool is None:
        return EXIT_FAILURE

    try:
        orchestrator = LoadOrchestrator(
            evaluator=TransformationEvaluator(catalog),
            reader=BronzeSnapshotReader(pool),
            replacer=ExtentReplacer(pool, chunk_size=chunk_size),
        )

        try:
            batch = orchestrator.run_batch(entities, dry_run=args.dry_run)
        except Exception as e:
            batch = orchestrator.last_batch
            print_batch(batch)
            print(f"\nBatch aborted: {e}")
            return EXIT_FAILURE

        print_batch(batch)
        return EXIT_OK
    finally:
        pool.close()
        push_run_metrics()


def print_batch(batch) -> None:
    if batch is None:
        return

    print(f"\n{'=' * 80}")
    print(f"SILVER REFRESH {'(DRY RUN) ' if batch.dry_run else ''}- batch {batch.batch_id}")
    print(f"{'=' * 80}\n")
    print(f"{'Entity':<22} {'Target':<32} {'Rows':>10} {'Duration (ms)':>14}  Status")
    print(f"{'-' * 80}")
    for result in batch.entity_results:
        print(
            f"{result.entity:<22} {result.target_relation:<32} "
            f"{result.rows_written:>10} {result.duration_ms:>14.1f}  {result.status}"
        )
    print(f"{'-' * 80}")
    print(f"State: {batch.state.value}    Rows: {batch.total_rows_written}    "
          f"Duration: {batch.total_duration_ms:.1f} ms")

    if batch.failure:
        failure = batch.failure
        print(f"\nFailed entity: {failure.entity}")
        print(f"  Error: {failure.error_type} ({failure.error_code})")
        if failure.rule_name:
            print(f"  Rule: {failure.rule_name}")
        if failure.record_key:
            print(f"  Record key: {failure.record_key}")
        print(f"  Message: {failure.message}")
    print()


def quality_command(args) -> int:
    """
    Run the quality suite.

    Returns:
        0 on success, 1 when a check cannot execute, 2 when violations were
        found and --fail-on-violations is set
    """
    try:
        catalog = load_catalog(args.rules)
        checks = build_checks(
            catalog,
            silver_schema=schema_from_env("SILVER_SCHEMA", "silver"),
            bronze_schema=schema_from_env("BRONZE_SCHEMA", "bronze"),
        )
    except (SilverRefreshError, ValidationError) as e:
        print(f"\nError: {e}")
        return EXIT_FAILURE

    pool = create_pool(args)
    if pool is None:
        return EXIT_FAILURE

    try:
        suite = QualitySuite(pool, checks)
        try:
            report = suite.run(split_list(args.checks))
        except (SilverRefreshError, ValueError) as e:
            print(f"\nError: {e}")
            return EXIT_FAILURE
    finally:
        pool.close()
        push_run_metrics()

    print(f"\n{'=' * 80}")
    print("SILVER QUALITY REPORT")
    print(f"{'=' * 80}\n")
    print(f"{'Check':<12} {'Relation':<30} {'Violations':>10}  Description")
    print(f"{'-' * 80}")
    for result in report.results:
        print(f"{result.check_id:<12} {result.relation:<30} {result.violation_count:>10}  {result.description}")
        for row in result.violations[:args.show_rows]:
            print(f"{'':<12} {row}")
    print(f"{'-' * 80}")
    print(f"Checks run: {len(report.results)}    Failed: {len(report.failed_checks)}\n")

    if args.fail_on_violations and not report.passed:
        return EXIT_VIOLATIONS
    return EXIT_OK


def rules_command(args) -> int:
    """Print the rule catalog summary. No database access."""
    try:
        catalog = load_catalog(args.rules)
        evaluator = TransformationEvaluator(catalog)
    except SilverRefreshError as e:
        print(f"\nError: {e}")
        return EXIT_FAILURE

    summary = evaluator.get_rule_summary()

    print(f"\n{'=' * 60}")
    print("RULE CATALOG")
    print(f"{'=' * 60}\n")
    print(f"Total rules: {summary['total_rules']}\n")
    for entity in catalog.entities:
        print(f"{entity.value}:")
        steps = evaluator.describe(entity)
        if not steps:
            print("  (pass-through)")
        for step in steps:
            print(f"  - {step['name']:<36} {step['type']:<20} {step['category']}")
        print()
    return EXIT_OK


def add_rules_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--rules",
        default=None,
        help="Path to rule catalog YAML (default: SILVER_RULES_PATH or the packaged catalog)"
    )


def add_db_arguments(parser: argparse.ArgumentParser) -> None:
    """Database flags; unset flags fall back to DB_* environment variables."""
    parser.add_argument("--db-host", default=None, help="Database host (default: DB_HOST or localhost)")
    parser.add_argument("--db-port", type=int, default=None, help="Database port (default: DB_PORT or 5432)")
    parser.add_argument("--db-name", default=None, help="Database name (default: DB_NAME or datawarehouse)")
    parser.add_argument("--db-user", default=None, help="Database user (default: DB_USER or pipeline)")
    parser.add_argument("--db-password", default=None, help="Database password (default: DB_PASSWORD)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="silver-refresh",
        description="Full-refresh bronze to silver transformation engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Refresh every silver extent
  silver-refresh refresh

  # Refresh two entities, transform only
  silver-refresh refresh --entities customer,product --dry-run

  # Run the quality suite and fail the job on violations
  silver-refresh quality --fail-on-violations

  # Show the rule catalog
  silver-refresh rules
        """
    )
    parser.add_argument("--env-file", default=None, help="Load environment variables from this file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    refresh_parser = subparsers.add_parser("refresh", help="Run a full refresh of the silver layer")
    refresh_parser.add_argument(
        "--entities",
        default=None,
        help="Comma-separated entity types in processing order (default: all)"
    )
    refresh_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Transform and count rows without replacing any extent"
    )
    refresh_parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Rows per insert round-trip (default: LOAD_CHUNK_SIZE or 1000)"
    )
    add_rules_argument(refresh_parser)
    add_db_arguments(refresh_parser)

    quality_parser = subparsers.add_parser("quality", help="Run the silver quality suite")
    quality_parser.add_argument(
        "--checks",
        default=None,
        help="Comma-separated check ids (default: all)"
    )
    quality_parser.add_argument(
        "--show-rows",
        type=int,
        default=5,
        help="Violating rows to print per failed check (default: 5)"
    )
    quality_parser.add_argument(
        "--fail-on-violations",
        action="store_true",
        help="Exit with status 2 when any check finds violations"
    )
    add_rules_argument(quality_parser)
    add_db_arguments(quality_parser)

    rules_parser = subparsers.add_parser("rules", help="Show the rule catalog")
    add_rules_argument(rules_parser)

    return parser


COMMANDS = {
    "refresh": refresh_command,
    "quality": quality_command,
    "rules": rules_command,
}


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    env_file = args.env_file or find_dotenv(usecwd=True)
    if env_file:
        load_dotenv(env_file, override=False)
    setup_logger(level=os.getenv("LOG_LEVEL"), format_type=os.getenv("LOG_FORMAT"))

    if not args.command:
        parser.print_help()
        return EXIT_FAILURE

    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
