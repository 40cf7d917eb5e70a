"""Tests for the reconciler and batch reconciler."""

import asyncio
import logging

import pytest

from calendar_acl_sync.models.calendar import CalendarMapping
from calendar_acl_sync.readers.base import MappingRepository
from calendar_acl_sync.sync.engine import BatchReconciler, Reconciler, SyncResult, summarize
from calendar_acl_sync.sync.strategies import ReconcilePolicy, RoleMismatchPolicy
from calendar_acl_sync.utils.exceptions import StoreError, ValidationError
from tests.fakes import FakeAclAdapter, FakeParticipantSource, permission, student, teacher


class StaticMappingRepository(MappingRepository):
    def __init__(self, mappings=None, error=None):
        self.mappings = mappings or []
        self.error = error

    async def get_valid_calendar_mappings(self):
        if self.error:
            raise self.error
        return list(self.mappings)


class SlowAdapter(FakeAclAdapter):
    """Adapter whose permission fetch finishes in reverse order of start."""

    def __init__(self, delays, **kwargs):
        super().__init__(**kwargs)
        self.delays = delays
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_all_calendar_permissions(self, calendar_id):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(calendar_id, 0))
            return await super().get_all_calendar_permissions(calendar_id)
        finally:
            self.in_flight -= 1


class ExplodingReconciler(Reconciler):
    async def sync_course_participants(self, course_code, calendar_id):
        if course_code == "BOOM":
            raise RuntimeError("unexpected")
        return await super().sync_course_participants(course_code, calendar_id)


class TestSyncCourseParticipants:
    @pytest.mark.asyncio
    async def test_adds_missing_participants(self):
        adapter = FakeAclAdapter({"cal-1": [permission("S1")]})
        source = FakeParticipantSource({"C1": [teacher("T1"), student("S1"), student("S2")]})

        result = await Reconciler(adapter, source).sync_course_participants("C1", "cal-1")

        assert result.success is True
        assert result.kkh == "C1"
        assert result.calendar_id == "cal-1"
        assert result.added_count == 2
        assert result.failed_count == 0
        assert result.errors == []
        assert adapter.create_calls == [
            ("cal-1", [{"user_id": "T1", "role": "writer"}, {"user_id": "S2", "role": "reader"}])
        ]

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self):
        adapter = FakeAclAdapter()
        source = FakeParticipantSource({"C1": [teacher("T1"), student("S1")]})
        reconciler = Reconciler(adapter, source)

        first = await reconciler.sync_course_participants("C1", "cal-1")
        second = await reconciler.sync_course_participants("C1", "cal-1")

        assert first.added_count == 2
        assert second.success is True
        assert second.added_count == 0
        assert len(adapter.create_calls) == 1

    @pytest.mark.asyncio
    async def test_acl_fetch_failure_is_contained(self):
        adapter = FakeAclAdapter(failing_fetch={"cal-1"})
        source = FakeParticipantSource({"C1": [teacher("T1")]})

        result = await Reconciler(adapter, source).sync_course_participants("C1", "cal-1")

        assert result.success is False
        assert result.failed_count == 1
        assert result.added_count == 0
        assert [e.stage for e in result.errors] == ["fetch_current"]
        # Later stages never start
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_roster_failure_is_contained(self):
        adapter = FakeAclAdapter()
        source = FakeParticipantSource(failing={"C1"})

        result = await Reconciler(adapter, source).sync_course_participants("C1", "cal-1")

        assert result.success is False
        assert result.failed_count == 1
        assert result.errors[0].stage == "fetch_desired"
        assert "roster query failed" in result.errors[0].message
        assert adapter.create_calls == []

    @pytest.mark.asyncio
    async def test_acl_and_roster_both_failing(self):
        adapter = FakeAclAdapter(failing_fetch={"cal-1"})
        source = FakeParticipantSource(failing={"C1"})

        result = await Reconciler(adapter, source).sync_course_participants("C1", "cal-1")

        assert result.success is False
        assert result.failed_count == 1
        assert len(result.errors) > 0

    @pytest.mark.asyncio
    async def test_apply_failure_is_contained(self):
        adapter = FakeAclAdapter({"cal-1": [permission("S1", "reader")]}, failing_create={"cal-1"})
        source = FakeParticipantSource({"C1": [teacher("S1"), student("S2")]})

        result = await Reconciler(adapter, source).sync_course_participants("C1", "cal-1")

        assert result.success is False
        assert result.failed_count == 1
        assert result.added_count == 0
        assert result.removed_count == 0
        assert result.planned_add_count == 0
        assert result.planned_remove_count == 0
        assert result.role_mismatch_count == 0
        assert [e.stage for e in result.errors] == ["apply"]

    @pytest.mark.asyncio
    async def test_empty_course_code_fails_course_without_raising(self):
        adapter = FakeAclAdapter()

        result = await Reconciler(adapter, FakeParticipantSource()).sync_course_participants(
            " ", "cal-1"
        )

        assert result.success is False
        assert result.errors[0].stage == "fetch_desired"

    @pytest.mark.asyncio
    async def test_removals_are_not_applied_by_default(self):
        adapter = FakeAclAdapter({"cal-1": [permission("GONE")]})
        source = FakeParticipantSource({"C1": []})

        result = await Reconciler(adapter, source).sync_course_participants("C1", "cal-1")

        assert result.success is True
        assert result.planned_remove_count == 1
        assert result.removed_count == 0
        assert adapter.delete_calls == []

    @pytest.mark.asyncio
    async def test_removals_applied_when_enabled(self):
        adapter = FakeAclAdapter({"cal-1": [permission("owner", "owner"), permission("GONE")]})
        source = FakeParticipantSource({"C1": [teacher("T1")]})
        policy = ReconcilePolicy(apply_removals=True)

        result = await Reconciler(adapter, source, policy=policy).sync_course_participants(
            "C1", "cal-1"
        )

        assert result.success is True
        assert result.added_count == 1
        assert result.removed_count == 1
        assert adapter.delete_calls == [("cal-1", "GONE")]

    @pytest.mark.asyncio
    async def test_failed_revocation_recorded_without_failing_course(self):
        adapter = FakeAclAdapter({"cal-1": [permission("GONE")]}, failing_delete={"GONE"})
        policy = ReconcilePolicy(apply_removals=True)

        result = await Reconciler(
            adapter, FakeParticipantSource({"C1": []}), policy=policy
        ).sync_course_participants("C1", "cal-1")

        assert result.success is True
        assert result.failed_count == 0
        assert result.removed_count == 0
        assert [e.stage for e in result.errors] == ["apply"]

    @pytest.mark.asyncio
    async def test_dry_run_makes_no_changes(self):
        adapter = FakeAclAdapter({"cal-1": [permission("GONE")]})
        source = FakeParticipantSource({"C1": [teacher("T1")]})
        policy = ReconcilePolicy(apply_removals=True, dry_run=True)

        result = await Reconciler(adapter, source, policy=policy).sync_course_participants(
            "C1", "cal-1"
        )

        assert result.success is True
        assert result.planned_add_count == 1
        assert result.planned_remove_count == 1
        assert result.added_count == 0
        assert adapter.create_calls == []
        assert adapter.delete_calls == []

    @pytest.mark.asyncio
    async def test_role_mismatch_reported_when_enabled(self, caplog):
        adapter = FakeAclAdapter({"cal-1": [permission("S1", "reader")]})
        source = FakeParticipantSource({"C1": [teacher("S1")]})
        policy = ReconcilePolicy(role_mismatch=RoleMismatchPolicy.REPORT)

        with caplog.at_level(logging.WARNING):
            result = await Reconciler(adapter, source, policy=policy).sync_course_participants(
                "C1", "cal-1"
            )

        assert result.role_mismatch_count == 1
        assert result.added_count == 0
        assert "Role mismatch for S1" in caplog.text
        assert "kkh=C1" in caplog.text

    @pytest.mark.asyncio
    async def test_logs_info_on_attempt_and_error_on_failure(self, caplog):
        adapter = FakeAclAdapter(failing_fetch={"cal-1"})

        with caplog.at_level(logging.INFO):
            await Reconciler(adapter, FakeParticipantSource()).sync_course_participants(
                "C1", "cal-1"
            )

        levels = [r.levelno for r in caplog.records]
        assert logging.INFO in levels
        assert logging.ERROR in levels


class TestSyncMultipleCourses:
    @pytest.mark.asyncio
    async def test_end_to_end_two_courses(self):
        adapter = FakeAclAdapter()
        source = FakeParticipantSource(
            {"COURSE001": [teacher("T001")], "COURSE002": [teacher("T002")]}
        )
        batch = BatchReconciler(Reconciler(adapter, source))

        results = await batch.sync_multiple_courses(
            [
                {"kkh": "COURSE001", "calendar_id": "cal-001"},
                {"kkh": "COURSE002", "calendar_id": "cal-002"},
            ]
        )

        assert len(results) == 2
        for result in results:
            assert result.success is True
            assert result.added_count == 1
            assert result.failed_count == 0

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_others(self):
        adapter = FakeAclAdapter(failing_fetch={"cal-1"})
        source = FakeParticipantSource({"C1": [teacher("T1")], "C2": [teacher("T2")]})
        batch = BatchReconciler(Reconciler(adapter, source))

        results = await batch.sync_multiple_courses(
            [
                CalendarMapping(course_code="C1", calendar_id="cal-1"),
                CalendarMapping(course_code="C2", calendar_id="cal-2"),
            ]
        )

        assert len(results) == 2
        assert results[0].success is False
        assert results[1].success is True

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_failed_result(self):
        adapter = FakeAclAdapter()
        source = FakeParticipantSource({"C1": [teacher("T1")]})
        batch = BatchReconciler(ExplodingReconciler(adapter, source))

        results = await batch.sync_multiple_courses(
            [{"kkh": "BOOM", "calendar_id": "cal-0"}, {"kkh": "C1", "calendar_id": "cal-1"}]
        )

        assert results[0].success is False
        assert results[0].failed_count == 1
        assert results[0].errors[0].stage == "reconcile"
        assert results[1].success is True

    @pytest.mark.asyncio
    async def test_results_keep_input_order_and_respect_concurrency(self):
        delays = {"cal-1": 0.05, "cal-2": 0.03, "cal-3": 0.01, "cal-4": 0.0}
        adapter = SlowAdapter(delays)
        source = FakeParticipantSource({f"C{i}": [student(f"S{i}")] for i in range(1, 5)})
        batch = BatchReconciler(Reconciler(adapter, source), max_concurrency=2)

        results = await batch.sync_multiple_courses(
            [{"kkh": f"C{i}", "calendar_id": f"cal-{i}"} for i in range(1, 5)]
        )

        assert [r.kkh for r in results] == ["C1", "C2", "C3", "C4"]
        assert all(r.success for r in results)
        assert adapter.max_in_flight <= 2

    @pytest.mark.asyncio
    async def test_empty_mappings(self):
        batch = BatchReconciler(Reconciler(FakeAclAdapter(), FakeParticipantSource()))

        assert await batch.sync_multiple_courses([]) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "mappings",
        [None, "COURSE001", {"kkh": "C1", "calendar_id": "cal"}, [{"kkh": "C1"}], [42]],
    )
    async def test_malformed_mappings_raise_before_processing(self, mappings):
        adapter = FakeAclAdapter()
        batch = BatchReconciler(Reconciler(adapter, FakeParticipantSource()))

        with pytest.raises(ValidationError):
            await batch.sync_multiple_courses(mappings)

        assert adapter.fetch_calls == []

    def test_rejects_non_positive_concurrency(self):
        with pytest.raises(ValueError):
            BatchReconciler(Reconciler(FakeAclAdapter(), FakeParticipantSource()), max_concurrency=0)


class TestSyncAll:
    @pytest.mark.asyncio
    async def test_syncs_repository_mappings(self):
        repository = StaticMappingRepository(
            [CalendarMapping(course_code="C1", calendar_id="cal-1")]
        )
        adapter = FakeAclAdapter()
        batch = BatchReconciler(
            Reconciler(adapter, FakeParticipantSource({"C1": [teacher("T1")]})), repository
        )

        results = await batch.sync_all()

        assert [(r.kkh, r.added_count) for r in results] == [("C1", 1)]

    @pytest.mark.asyncio
    async def test_mapping_store_error_propagates(self):
        repository = StaticMappingRepository(error=StoreError("db down"))
        batch = BatchReconciler(
            Reconciler(FakeAclAdapter(), FakeParticipantSource()), repository
        )

        with pytest.raises(StoreError):
            await batch.sync_all()


def test_summarize_counts_results():
    results = [
        SyncResult(kkh="C1", calendar_id="cal-1", success=True, added_count=3, removed_count=1),
        SyncResult(kkh="C2", calendar_id="cal-2", success=False, failed_count=1),
    ]

    summary = summarize(results)

    assert summary.total == 2
    assert summary.succeeded == 1
    assert summary.failed == 1
    assert summary.total_added == 3
    assert summary.total_removed == 1
    assert summary.finished_at is not None
