"""Calendar participant reconciliation engine."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from ..models.calendar import CalendarMapping
from ..readers.base import MappingRepository, ParticipantSource
from ..utils.date_utils import elapsed_ms, utc_now
from ..utils.exceptions import ValidationError
from ..utils.logging import BoundLogger, bind_logger
from ..writers.base import CalendarAclAdapter
from .applier import BatchApplier
from .differ import diff
from .strategies import ReconcilePolicy

DEFAULT_MAX_CONCURRENCY = 5


@dataclass
class SyncError:
    """A failure recorded against one stage of a course sync."""

    stage: str
    message: str


@dataclass
class SyncResult:
    """Result of syncing the participants of one course."""

    kkh: str
    calendar_id: str
    success: bool = False
    added_count: int = 0
    removed_count: int = 0
    failed_count: int = 0
    role_mismatch_count: int = 0
    planned_add_count: int = 0
    planned_remove_count: int = 0
    errors: list[SyncError] = field(default_factory=list)
    duration_ms: int = 0


@dataclass
class SyncSummary:
    """Aggregate of a batch of course results."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    total_added: int = 0
    total_removed: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


def summarize(results: Sequence[SyncResult], started_at: Optional[datetime] = None) -> SyncSummary:
    """Aggregate per-course results into a SyncSummary."""
    succeeded = sum(1 for r in results if r.success)
    return SyncSummary(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        total_added=sum(r.added_count for r in results),
        total_removed=sum(r.removed_count for r in results),
        started_at=started_at,
        finished_at=utc_now(),
    )


class Reconciler:
    """Bring one course calendar's ACL in line with its roster."""

    def __init__(
        self,
        adapter: CalendarAclAdapter,
        participant_source: ParticipantSource,
        applier: Optional[BatchApplier] = None,
        policy: Optional[ReconcilePolicy] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the reconciler.

        Args:
            adapter: Calendar ACL adapter
            participant_source: Roster reader for desired participants
            applier: Change applier (defaults to a BatchApplier over adapter)
            policy: Removal / role-mismatch / dry-run toggles
            logger: Logger to use (defaults to the module logger)
        """
        self.adapter = adapter
        self.participant_source = participant_source
        self.logger: BoundLogger = bind_logger(logger, __name__)
        self.applier = applier or BatchApplier(adapter, logger=self.logger)
        self.policy = policy or ReconcilePolicy()

    async def sync_course_participants(self, course_code: str, calendar_id: str) -> SyncResult:
        """
        Sync the participants of a single course.

        Stages run strictly in order: fetch current permissions, fetch the
        roster, then diff and apply. Any exception ends the attempt and is
        returned as a failed result; nothing is re-raised.

        Args:
            course_code: Course identifier (kkh)
            calendar_id: Calendar bound to the course

        Returns:
            SyncResult for the course
        """
        started = time.monotonic()
        log = self.logger.child(kkh=course_code, calendar_id=calendar_id)
        result = SyncResult(kkh=course_code, calendar_id=calendar_id)
        stage = "fetch_current"

        try:
            log.info("Starting participant sync")

            current = await self.adapter.get_all_calendar_permissions(calendar_id)
            log.debug(f"Calendar has {len(current)} permissions")

            stage = "fetch_desired"
            desired = await self.participant_source.get_course_participants(course_code)
            log.debug(f"Roster has {len(desired)} participants")

            stage = "apply"
            changes = diff(current, desired)
            result.planned_add_count = len(changes.to_add)
            result.planned_remove_count = len(changes.to_remove)
            result.role_mismatch_count = len(changes.role_mismatches)
            log.info(
                f"Diff: {len(changes.to_add)} to add, {len(changes.to_remove)} to remove, "
                f"{len(changes.role_mismatches)} role mismatches"
            )

            if self.policy.reports_role_mismatches:
                for participant, perm in changes.role_mismatches:
                    log.warning(
                        f"Role mismatch for {participant.user_id}: roster {participant.role.value}, "
                        f"calendar {perm.role}"
                    )

            if self.policy.dry_run:
                log.info("Dry run - no changes made")
            else:
                added = await self.applier.apply_additions(calendar_id, changes.to_add)
                result.added_count = added.applied_count
                result.errors.extend(SyncError(stage, msg) for msg in added.errors)

                if self.policy.apply_removals and changes.to_remove:
                    removed = await self.applier.apply_removals(calendar_id, changes.to_remove)
                    result.removed_count = removed.applied_count
                    result.errors.extend(SyncError(stage, msg) for msg in removed.errors)

            result.success = True
            result.duration_ms = elapsed_ms(started)
            log.info(
                f"Participant sync complete: {result.added_count} added, "
                f"{result.removed_count} removed in {result.duration_ms}ms"
            )
            return result

        except Exception as e:
            log.error(f"Participant sync failed at {stage}: {e}")
            return SyncResult(
                kkh=course_code,
                calendar_id=calendar_id,
                success=False,
                failed_count=1,
                errors=[SyncError(stage, str(e) or type(e).__name__)],
                duration_ms=elapsed_ms(started),
            )


class BatchReconciler:
    """Run the reconciler over many courses without letting one failure stop the rest."""

    def __init__(
        self,
        reconciler: Reconciler,
        mapping_repository: Optional[MappingRepository] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        logger: Optional[logging.Logger] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.reconciler = reconciler
        self.mapping_repository = mapping_repository
        self.max_concurrency = max_concurrency
        self.logger: BoundLogger = bind_logger(logger, __name__)

    async def sync_all(self) -> list[SyncResult]:
        """
        Sync every course the mapping repository reports as valid.

        Raises:
            StoreError: If the mappings cannot be read
        """
        if self.mapping_repository is None:
            raise ValidationError("sync_all requires a mapping repository")
        mappings = await self.mapping_repository.get_valid_calendar_mappings()
        return await self.sync_multiple_courses(mappings)

    async def sync_multiple_courses(
        self, mappings: Sequence[Union[CalendarMapping, dict[str, Any]]]
    ) -> list[SyncResult]:
        """
        Sync a list of course mappings.

        Courses run concurrently up to ``max_concurrency``. ``results[i]`` always
        belongs to ``mappings[i]``.

        Args:
            mappings: CalendarMapping objects or ``{"kkh", "calendar_id"}`` dicts

        Returns:
            One SyncResult per mapping, in input order

        Raises:
            ValidationError: If the mappings argument is malformed
        """
        courses = _coerce_mappings(mappings)
        self.logger.info(f"Starting participant sync for {len(courses)} courses")
        started_at = utc_now()

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(mapping: CalendarMapping) -> SyncResult:
            async with semaphore:
                try:
                    return await self.reconciler.sync_course_participants(
                        mapping.course_code, mapping.calendar_id
                    )
                except Exception as e:
                    self.logger.error(f"Unexpected error syncing {mapping.course_code}: {e}")
                    return SyncResult(
                        kkh=mapping.course_code,
                        calendar_id=mapping.calendar_id,
                        failed_count=1,
                        errors=[SyncError("reconcile", str(e) or type(e).__name__)],
                    )

        results = list(await asyncio.gather(*(run(m) for m in courses)))

        summary = summarize(results, started_at)
        self.logger.info(
            f"Batch sync complete: {summary.succeeded}/{summary.total} succeeded, "
            f"{summary.total_added} added, {summary.total_removed} removed"
        )
        return results


def _coerce_mappings(
    mappings: Sequence[Union[CalendarMapping, dict[str, Any]]],
) -> list[CalendarMapping]:
    if mappings is None or isinstance(mappings, (str, bytes, dict)):
        raise ValidationError("mappings must be a list of course calendar mappings")
    try:
        items = list(mappings)
    except TypeError as e:
        raise ValidationError("mappings must be a list of course calendar mappings") from e

    courses = []
    for index, item in enumerate(items):
        if isinstance(item, CalendarMapping):
            courses.append(item)
            continue
        try:
            courses.append(CalendarMapping.model_validate(item))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid calendar mapping at index {index}: {e}") from e
    return courses
