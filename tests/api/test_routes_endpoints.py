"""Tests for operation route endpoints."""

import pytest

from tests.fixtures.auth import auth_headers
from tests.fixtures.sample_data import seed_route


class TestRouteEndpoints:
    """Route editing through /api/work-orders/{id}/routes and /api/routes/{id}."""

    @pytest.mark.asyncio
    async def test_add_and_list(self, client, seeded_wo):
        headers = auth_headers()
        for operation in ["RAW_MATERIAL", "CNC"]:
            response = await client.post(
                f"/api/work-orders/{seeded_wo}/routes",
                json={"operation_type": operation}, headers=headers,
            )
            assert response.status_code == 201

        response = await client.get(f"/api/work-orders/{seeded_wo}/routes", headers=headers)
        assert [(s["operation_type"], s["sequence_number"]) for s in response.json()] == [
            ("RAW_MATERIAL", 1), ("CNC", 2),
        ]

    @pytest.mark.asyncio
    async def test_add_unknown_operation(self, client, seeded_wo):
        response = await client.post(
            f"/api/work-orders/{seeded_wo}/routes",
            json={"operation_type": "WELDING"}, headers=auth_headers(),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_add_to_unknown_work_order(self, client):
        response = await client.post(
            "/api/work-orders/NOPE/routes", json={"operation_type": "CNC"}, headers=auth_headers()
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_move(self, client, test_database, seeded_wo):
        step_ids = await seed_route(test_database, seeded_wo, ["RAW_MATERIAL", "CNC", "QC"])
        response = await client.post(
            f"/api/routes/{step_ids[0]}/move", json={"direction": "down"}, headers=auth_headers()
        )

        assert response.status_code == 200
        assert [s["operation_type"] for s in response.json()] == ["CNC", "RAW_MATERIAL", "QC"]

    @pytest.mark.asyncio
    async def test_update(self, client, test_database, seeded_wo):
        step_ids = await seed_route(test_database, seeded_wo, ["EXTERNAL_PROCESS"])
        response = await client.patch(
            f"/api/routes/{step_ids[0]}",
            json={"process_name": "Plating", "is_external": True}, headers=auth_headers(),
        )
        assert response.status_code == 200
        assert response.json()["process_name"] == "Plating"
        assert response.json()["is_external"] is True

    @pytest.mark.asyncio
    async def test_delete(self, client, test_database, seeded_wo):
        step_ids = await seed_route(test_database, seeded_wo, ["RAW_MATERIAL", "CNC", "QC"])
        headers = auth_headers()

        response = await client.delete(f"/api/routes/{step_ids[0]}", headers=headers)
        assert response.status_code == 204

        steps = (await client.get(f"/api/work-orders/{seeded_wo}/routes", headers=headers)).json()
        assert [s["sequence_number"] for s in steps] == [1, 2]

    @pytest.mark.asyncio
    async def test_unknown_step(self, client):
        response = await client.delete("/api/routes/999", headers=auth_headers())
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_status(self, client, test_database, seeded_wo):
        await seed_route(test_database, seeded_wo, ["RAW_MATERIAL", "PACKING"])
        await test_database.execute_write(
            "INSERT INTO execution_records (work_order_id, operation_type, quantity) VALUES (?, ?, ?)",
            [seeded_wo, "PACKING", 10],
        )
        response = await client.get(
            f"/api/work-orders/{seeded_wo}/routes/status", headers=auth_headers()
        )
        data = response.json()
        assert data["has_out_of_sequence"] is True
        assert data["steps"][1]["status"] == "out_of_sequence"

    @pytest.mark.asyncio
    async def test_update_rejects_null_for_required_fields(self, client, test_database, seeded_wo):
        step_ids = await seed_route(test_database, seeded_wo, ["CNC"])
        headers = auth_headers()

        for field in ["operation_type", "is_external", "is_mandatory", "status"]:
            response = await client.patch(
                f"/api/routes/{step_ids[0]}", json={field: None}, headers=headers
            )
            assert response.status_code == 422

        step = (await client.get(f"/api/work-orders/{seeded_wo}/routes", headers=headers)).json()[0]
        assert step["operation_type"] == "CNC"
        assert step["is_mandatory"] is True


class TestRouteEditsRefreshState:
    """Route edits drop the cached work order state immediately."""

    async def _cached_state(self, client, wo_id, headers):
        await client.get(f"/api/work-orders/{wo_id}/state", headers=headers)
        state = (await client.get(f"/api/work-orders/{wo_id}/state", headers=headers)).json()
        assert state["data_source"] == "cache"
        return state

    @pytest.mark.asyncio
    async def test_move_refreshes_state(self, client, test_database, seeded_wo):
        step_ids = await seed_route(test_database, seeded_wo, ["RAW_MATERIAL", "CNC", "QC"])
        headers = auth_headers()
        await self._cached_state(client, seeded_wo, headers)

        await client.post(
            f"/api/routes/{step_ids[0]}/move", json={"direction": "down"}, headers=headers
        )

        state = (await client.get(f"/api/work-orders/{seeded_wo}/state", headers=headers)).json()
        assert state["data_source"] == "live"
        assert [s["operation_type"] for s in state["route_progress"]["steps"]] == [
            "CNC", "RAW_MATERIAL", "QC",
        ]

    @pytest.mark.asyncio
    async def test_add_update_delete_refresh_state(self, client, test_database, seeded_wo):
        step_ids = await seed_route(test_database, seeded_wo, ["RAW_MATERIAL", "CNC"])
        headers = auth_headers()

        await self._cached_state(client, seeded_wo, headers)
        await client.post(
            f"/api/work-orders/{seeded_wo}/routes", json={"operation_type": "QC"}, headers=headers
        )
        state = (await client.get(f"/api/work-orders/{seeded_wo}/state", headers=headers)).json()
        assert state["data_source"] == "live"
        assert len(state["route_progress"]["steps"]) == 3

        await self._cached_state(client, seeded_wo, headers)
        await client.patch(
            f"/api/routes/{step_ids[1]}", json={"process_name": "Turning"}, headers=headers
        )
        state = (await client.get(f"/api/work-orders/{seeded_wo}/state", headers=headers)).json()
        assert state["data_source"] == "live"
        assert state["route_progress"]["steps"][1]["process_name"] == "Turning"

        await self._cached_state(client, seeded_wo, headers)
        await client.delete(f"/api/routes/{step_ids[0]}", headers=headers)
        state = (await client.get(f"/api/work-orders/{seeded_wo}/state", headers=headers)).json()
        assert state["data_source"] == "live"
        assert [s["sequence_number"] for s in state["route_progress"]["steps"]] == [1, 2]
