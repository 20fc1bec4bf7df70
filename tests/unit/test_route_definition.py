"""Tests for src/routing/route_definition.py"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from src.exceptions import RecordNotFoundError, RouteSequenceError
from src.models.route import (
    ExecutionRecord,
    ExecutionStatus,
    MoveDirection,
    OperationType,
    RouteStepCreate,
    RouteStepUpdate,
)
from src.routing.route_definition import RouteDefinition, check_sequence, evaluate_route_status
from tests.fixtures.sample_data import make_step, seed_route


def _sequences(steps):
    return [(s.operation_type.value, s.sequence_number) for s in steps]


class TestCheckSequence:
    def test_dense_sequence_is_valid(self):
        result = check_sequence([make_step(1, 1), make_step(2, 2), make_step(3, 3)])
        assert result.is_valid
        assert result.duplicates == []
        assert result.gaps == []

    def test_reports_duplicates_and_gaps(self):
        result = check_sequence([make_step(1, 1), make_step(2, 1), make_step(3, 4)])
        assert not result.is_valid
        assert result.duplicates == [1]
        assert result.gaps == [2, 3]

    def test_empty_route(self):
        assert check_sequence([]).is_valid


class TestEvaluateRouteStatus:
    """Observed executions against the planned order."""

    def test_out_of_sequence_when_mandatory_step_skipped(self):
        steps = [
            make_step(1, 1, "RAW_MATERIAL"),
            make_step(2, 2, "CNC"),
            make_step(3, 3, "PACKING"),
        ]
        executions = [
            ExecutionRecord(work_order_id="WO-1001", operation_type="RAW_MATERIAL", quantity=100),
            ExecutionRecord(work_order_id="WO-1001", operation_type="PACKING", quantity=40),
        ]
        result = evaluate_route_status(steps, executions)

        assert [r.status for r in result] == [
            ExecutionStatus.ACTIVITY_DETECTED,
            ExecutionStatus.PENDING,
            ExecutionStatus.OUT_OF_SEQUENCE,
        ]
        assert result[0].total_quantity == 100

    def test_optional_step_may_be_skipped(self):
        steps = [make_step(1, 1, "CNC"), make_step(2, 2, "QC", is_mandatory=False),
                 make_step(3, 3, "PACKING")]
        executions = [
            ExecutionRecord(work_order_id="WO-1001", operation_type="CNC"),
            ExecutionRecord(work_order_id="WO-1001", operation_type="PACKING"),
        ]
        result = evaluate_route_status(steps, executions)
        assert result[2].status == ExecutionStatus.ACTIVITY_DETECTED

    def test_process_name_must_match_when_named(self):
        steps = [make_step(1, 1, "EXTERNAL_PROCESS", process_name="Plating")]
        executions = [ExecutionRecord(work_order_id="WO-1001", operation_type="EXTERNAL_PROCESS",
                                      process_name="Anodizing")]
        assert evaluate_route_status(steps, executions)[0].status == ExecutionStatus.PENDING


class TestRouteDefinition:
    """Tests for RouteDefinition against a real SQLite file."""

    @pytest.mark.asyncio
    async def test_add_assigns_next_sequence(self, test_database, seeded_wo):
        routes = RouteDefinition(test_database)
        first = await routes.add_step(seeded_wo, RouteStepCreate(operation_type=OperationType.RAW_MATERIAL))
        second = await routes.add_step(seeded_wo, RouteStepCreate(operation_type=OperationType.CNC))

        assert first.sequence_number == 1
        assert second.sequence_number == 2

    @pytest.mark.asyncio
    async def test_add_to_missing_work_order(self, test_database):
        routes = RouteDefinition(test_database)
        with pytest.raises(RecordNotFoundError):
            await routes.add_step("NOPE", RouteStepCreate(operation_type=OperationType.CNC))

    @pytest.mark.asyncio
    async def test_concurrent_adds_never_share_a_sequence(self, test_database, seeded_wo):
        routes = RouteDefinition(test_database)
        await asyncio.gather(*[
            routes.add_step(seeded_wo, RouteStepCreate(operation_type=OperationType.QC))
            for _ in range(10)
        ])
        steps = await routes.list_steps(seeded_wo)
        assert sorted(s.sequence_number for s in steps) == list(range(1, 11))

    @pytest.mark.asyncio
    async def test_update_keeps_sequence(self, test_database, seeded_wo):
        step_ids = await seed_route(test_database, seeded_wo, ["CNC", "QC"])
        routes = RouteDefinition(test_database)

        updated = await routes.update_step(
            step_ids[1], RouteStepUpdate(process_name="CMM check", is_mandatory=False)
        )
        assert updated.process_name == "CMM check"
        assert updated.is_mandatory is False
        assert updated.sequence_number == 2

    @pytest.mark.asyncio
    async def test_delete_redensifies(self, test_database, seeded_wo):
        step_ids = await seed_route(test_database, seeded_wo, ["RAW_MATERIAL", "CNC", "QC", "PACKING"])
        routes = RouteDefinition(test_database)

        remaining = await routes.delete_step(step_ids[1])
        assert _sequences(remaining) == [("RAW_MATERIAL", 1), ("QC", 2), ("PACKING", 3)]

    @pytest.mark.asyncio
    async def test_move_swaps_neighbours(self, test_database, seeded_wo):
        step_ids = await seed_route(test_database, seeded_wo, ["RAW_MATERIAL", "CNC", "QC"])
        routes = RouteDefinition(test_database)

        steps = await routes.move_step(step_ids[2], MoveDirection.UP)
        assert _sequences(steps) == [("RAW_MATERIAL", 1), ("QC", 2), ("CNC", 3)]
        assert check_sequence(steps).is_valid

    @pytest.mark.asyncio
    async def test_move_past_either_end_is_noop(self, test_database, seeded_wo):
        step_ids = await seed_route(test_database, seeded_wo, ["CNC", "QC"])
        routes = RouteDefinition(test_database)

        assert _sequences(await routes.move_step(step_ids[0], MoveDirection.UP)) == [("CNC", 1), ("QC", 2)]
        assert _sequences(await routes.move_step(step_ids[1], MoveDirection.DOWN)) == [("CNC", 1), ("QC", 2)]

    @pytest.mark.asyncio
    async def test_repeated_concurrent_moves_stay_dense(self, test_database, seeded_wo):
        step_ids = await seed_route(test_database, seeded_wo, ["RAW_MATERIAL", "CNC", "QC", "PACKING"])
        routes = RouteDefinition(test_database)

        await asyncio.gather(
            routes.move_step(step_ids[1], MoveDirection.DOWN),
            routes.move_step(step_ids[3], MoveDirection.UP),
            routes.move_step(step_ids[0], MoveDirection.DOWN),
            return_exceptions=True,
        )
        steps = await routes.list_steps(seeded_wo)
        assert sorted(s.sequence_number for s in steps) == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_failed_swap_rolls_back(self, test_database, seeded_wo):
        """A stale read fails the swap and leaves both rows untouched."""
        step_ids = await seed_route(test_database, seeded_wo, ["CNC", "QC"])
        routes = RouteDefinition(test_database)
        stale = await routes.list_steps(seeded_wo)

        # Another writer renumbers the second row behind our back.
        await test_database.execute_write(
            "UPDATE operation_routes SET sequence_number = 7 WHERE id = ?", [step_ids[1]]
        )
        routes.reader.get_route_steps = AsyncMock(return_value=stale)

        with pytest.raises(RouteSequenceError):
            await routes.move_step(step_ids[0], MoveDirection.DOWN)

        rows = await test_database.execute_read(
            "SELECT id, sequence_number FROM operation_routes ORDER BY id"
        )
        assert [(r["id"], r["sequence_number"]) for r in rows] == [(step_ids[0], 1), (step_ids[1], 7)]

    @pytest.mark.asyncio
    async def test_writes_publish_changes(self, test_database, seeded_wo):
        feed = MagicMock()
        routes = RouteDefinition(test_database, change_feed=feed)
        await routes.add_step(seeded_wo, RouteStepCreate(operation_type=OperationType.CNC))
        feed.publish.assert_called_once_with("operation_routes", seeded_wo)

    @pytest.mark.asyncio
    async def test_status_report(self, test_database, seeded_wo):
        await seed_route(test_database, seeded_wo, ["RAW_MATERIAL", "CNC"])
        await test_database.execute_write(
            "INSERT INTO execution_records (work_order_id, operation_type, quantity) VALUES (?, ?, ?)",
            [seeded_wo, "CNC", 25],
        )
        report = await RouteDefinition(test_database).status_report(seeded_wo)

        assert report.has_out_of_sequence is True
        assert report.sequence.is_valid
        assert report.steps[1].status == ExecutionStatus.OUT_OF_SEQUENCE

    @pytest.mark.asyncio
    async def test_reads_during_moves_always_see_a_dense_route(self, test_database, seeded_wo):
        """Readers never observe a row parked mid-swap."""
        step_ids = await seed_route(test_database, seeded_wo, ["RAW_MATERIAL", "CNC", "QC", "PACKING"])
        routes = RouteDefinition(test_database)
        seen = []

        async def mover():
            for _ in range(20):
                await routes.move_step(step_ids[1], MoveDirection.DOWN)
                await routes.move_step(step_ids[1], MoveDirection.UP)

        async def watcher():
            for _ in range(200):
                steps = await routes.list_steps(seeded_wo)
                seen.append([s.sequence_number for s in steps])
                await asyncio.sleep(0)

        await asyncio.gather(mover(), watcher())

        assert seen
        assert all(sequences == [1, 2, 3, 4] for sequences in seen)

    @pytest.mark.asyncio
    async def test_idle_work_order_locks_are_released(self, test_database, seeded_wo):
        step_ids = await seed_route(test_database, seeded_wo, ["CNC", "QC"])
        routes = RouteDefinition(test_database)

        await asyncio.gather(
            routes.add_step(seeded_wo, RouteStepCreate(operation_type=OperationType.PACKING)),
            routes.move_step(step_ids[0], MoveDirection.DOWN),
            routes.delete_step(step_ids[1]),
            return_exceptions=True,
        )
        with pytest.raises(RecordNotFoundError):
            await routes.add_step("NOPE", RouteStepCreate(operation_type=OperationType.CNC))

        assert routes._locks == {}
        assert check_sequence(await routes.list_steps(seeded_wo)).is_valid


class TestRouteStepUpdate:
    """Columns that cannot hold NULL cannot be cleared through an update."""

    @pytest.mark.parametrize("field", ["operation_type", "is_external", "is_mandatory", "status"])
    def test_null_rejected(self, field):
        with pytest.raises(ValidationError):
            RouteStepUpdate.model_validate({field: None})

    def test_nullable_fields_can_be_cleared(self):
        update = RouteStepUpdate.model_validate({"process_name": None, "target_quantity": None})
        assert update.model_dump(exclude_unset=True) == {"process_name": None, "target_quantity": None}

    def test_omitted_fields_stay_unset(self):
        assert RouteStepUpdate(is_mandatory=False).model_dump(exclude_unset=True) == {
            "is_mandatory": False
        }
