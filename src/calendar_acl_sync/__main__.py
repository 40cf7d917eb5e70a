"""CLI entry point for Calendar ACL Sync application."""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

from .auth.wps_auth import WpsAuthProvider
from .config import AppConfig, SyncConfig, config, sync_config
from .models.calendar import CalendarMapping
from .readers.roster_reader import SqlMappingRepository, SqlParticipantSource
from .readers.store import SqlAlchemyStoreClient
from .sync.engine import BatchReconciler, Reconciler, SyncResult, summarize
from .utils.date_utils import utc_now
from .utils.exceptions import CalendarAclSyncError, ConfigurationError
from .utils.logging import setup_logging
from .writers.wps_acl_writer import WpsCalendarAclAdapter


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Calendar ACL Sync - Keep course calendar permissions in line with the roster"
    )
    parser.add_argument(
        "--list-mappings",
        action="store_true",
        help="List course calendar mappings eligible for sync",
    )
    parser.add_argument(
        "--sync",
        action="store_true",
        help="Sync participants of every eligible course",
    )
    parser.add_argument(
        "--course",
        type=str,
        help="Sync a single course (kkh); requires --calendar",
    )
    parser.add_argument(
        "--calendar",
        type=str,
        help="Calendar ID of the course given with --course",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute differences without changing calendar permissions",
    )
    parser.add_argument(
        "--apply-removals",
        action="store_true",
        help="Revoke permissions of users no longer on the roster (overrides config)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Courses synced in parallel (overrides config)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Verbose output",
    )
    return parser


def _print_results(results: list[SyncResult], started_at) -> None:
    for r in results:
        status = "OK" if r.success else "FAILED"
        print(
            f"  [{status}] {r.kkh} ({r.calendar_id}): "
            f"+{r.added_count} -{r.removed_count} "
            f"(planned +{r.planned_add_count} -{r.planned_remove_count}, "
            f"{r.role_mismatch_count} role mismatches)"
        )
        for err in r.errors:
            print(f"      {err.stage}: {err.message}")

    summary = summarize(results, started_at)
    print("\nSync Results:")
    print(f"  Courses: {summary.total}")
    print(f"  Succeeded: {summary.succeeded}")
    print(f"  Failed: {summary.failed}")
    print(f"  Permissions added: {summary.total_added}")
    print(f"  Permissions removed: {summary.total_removed}")


async def _run(
    args: argparse.Namespace,
    app_config: AppConfig,
    file_config: SyncConfig,
    logger: logging.Logger,
) -> int:
    if not app_config.database.url:
        raise ConfigurationError("DATABASE_URL is not configured")

    store = SqlAlchemyStoreClient(app_config.database.url, pool_size=app_config.database.pool_size)
    try:
        mapping_repository = SqlMappingRepository(store, logger=logger)

        if args.list_mappings:
            mappings = await mapping_repository.get_valid_calendar_mappings()
            print(f"Found {len(mappings)} mapping(s):")
            for m in mappings:
                print(f"  - {m.course_code} -> {m.calendar_id}")
            return 0

        policy = file_config.reconcile_policy(app_config)
        if args.apply_removals:
            policy = replace(policy, apply_removals=True)
        if args.dry_run:
            policy = replace(policy, dry_run=True)

        auth = WpsAuthProvider(app_config.wps)
        adapter = WpsCalendarAclAdapter(auth, app_config.wps)
        reconciler = Reconciler(
            adapter,
            SqlParticipantSource(store, logger=logger),
            policy=policy,
            logger=logger,
        )
        batch = BatchReconciler(
            reconciler,
            mapping_repository,
            max_concurrency=args.concurrency or file_config.max_concurrency_for(app_config),
            logger=logger,
        )

        started_at = utc_now()
        if args.course:
            if not args.calendar:
                logger.error("--course requires --calendar")
                return 1
            results = await batch.sync_multiple_courses(
                [CalendarMapping(course_code=args.course, calendar_id=args.calendar)]
            )
        else:
            mappings = await mapping_repository.get_valid_calendar_mappings()
            skipped = [m for m in mappings if m.course_code in file_config.skip_courses]
            if skipped:
                logger.info(f"Skipping {len(skipped)} course(s) listed in skip_courses")
            results = await batch.sync_multiple_courses(
                [m for m in mappings if m.course_code not in file_config.skip_courses]
            )

        if policy.dry_run:
            print("\nDry run - no calendar permissions were changed")
        _print_results(results, started_at)
        return 0 if all(r.success for r in results) else 1
    finally:
        await store.dispose()


def main() -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args()

    log_level = "DEBUG" if args.verbose else config.log_level
    logger = setup_logging(level=log_level, log_file=config.log_file)

    if not (args.list_mappings or args.sync or args.course):
        parser.print_help()
        return 0

    try:
        return asyncio.run(_run(args, config, sync_config, logger))
    except CalendarAclSyncError as e:
        logger.error(f"Calendar ACL sync error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
