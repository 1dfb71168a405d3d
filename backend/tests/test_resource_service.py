"""
Resource assignment tests.

Batches are all-or-nothing: when any resource in a batch cannot be assigned,
no assignment row is written and no resource changes status.
"""

import pytest
from sqlalchemy import func, select

from conftest import make_user
from medresponse.api.websocket.storage import SqlAlchemyRelayStorage
from medresponse.errors import InvalidStatusTransition, NotFoundError, ResourceUnavailableError
from medresponse.models.resource import (
    AssignmentStatus,
    EmergencyResource,
    EmergencyResourceAssignment,
    EmergencyResourceType,
    EmergencyTypeResource,
    ResourceStatus,
)
from medresponse.services import emergency_service, resource_service


async def _seed(factory, statuses=(ResourceStatus.AVAILABLE, ResourceStatus.AVAILABLE)):
    """Create a user, an alert, a resource type and one resource per status."""
    async with factory() as session:
        user = make_user()
        kind = EmergencyResourceType(name="Ambulance", category="medical")
        session.add_all([user, kind])
        await session.flush()
        resources = [
            EmergencyResource(type_id=kind.id, name=f"R{i}", status=status)
            for i, status in enumerate(statuses)
        ]
        session.add_all(resources)
        emergency = await emergency_service.create_emergency_alert(
            session, user_id=user.id, latitude=31.5, longitude=34.47, emergency_type="medical",
        )
        await session.commit()
        return emergency["id"], [r.id for r in resources]


async def _snapshot(factory, emergency_id):
    async with factory() as session:
        statuses = dict((await session.execute(select(EmergencyResource.id, EmergencyResource.status))).all())
        count = await session.scalar(select(func.count()).select_from(EmergencyResourceAssignment))
        emergency = await emergency_service.get_emergency(session, emergency_id)
        return statuses, count, emergency


class TestAssignResources:
    """Tests for resource_service.assign_resources"""

    def test_assigns_every_resource(self, run_db):
        async def scenario(factory):
            emergency_id, ids = await _seed(factory)
            async with factory() as session:
                assignments = await resource_service.assign_resources(session, emergency_id, ids)
                await session.commit()
            return ids, assignments, await _snapshot(factory, emergency_id)

        ids, assignments, (statuses, count, emergency) = run_db(scenario)
        assert [a["resource_id"] for a in assignments] == ids
        assert all(a["status"] == "assigned" for a in assignments)
        assert count == 2
        assert all(statuses[rid] == ResourceStatus.IN_USE for rid in ids)
        assert emergency["assigned_resources"] == ids
        assert emergency["assigned_at"] is not None

    def test_duplicate_ids_are_assigned_once(self, run_db):
        async def scenario(factory):
            emergency_id, ids = await _seed(factory)
            async with factory() as session:
                assignments = await resource_service.assign_resources(session, emergency_id, [ids[0], ids[0]])
                await session.commit()
            return assignments

        assert len(run_db(scenario)) == 1

    def test_unavailable_resource_writes_nothing(self, run_db):
        """Should refuse the whole batch when one resource is already in use"""
        async def scenario(factory):
            emergency_id, ids = await _seed(factory, (ResourceStatus.AVAILABLE, ResourceStatus.IN_USE))
            storage = SqlAlchemyRelayStorage(factory)
            with pytest.raises(ResourceUnavailableError) as exc_info:
                await storage.assign_resources(emergency_id, ids)
            return ids, exc_info.value, await _snapshot(factory, emergency_id)

        ids, error, (statuses, count, emergency) = run_db(scenario)
        assert error.resource_ids == [ids[1]]
        assert count == 0
        assert statuses[ids[0]] == ResourceStatus.AVAILABLE
        assert emergency["assigned_resources"] == []

    def test_missing_resource_writes_nothing(self, run_db):
        async def scenario(factory):
            emergency_id, ids = await _seed(factory)
            storage = SqlAlchemyRelayStorage(factory)
            with pytest.raises(NotFoundError):
                await storage.assign_resources(emergency_id, [ids[0], 999])
            return ids, await _snapshot(factory, emergency_id)

        ids, (statuses, count, _) = run_db(scenario)
        assert count == 0
        assert statuses[ids[0]] == ResourceStatus.AVAILABLE

    def test_empty_batch_is_rejected(self, run_db):
        async def scenario(factory):
            emergency_id, _ = await _seed(factory)
            async with factory() as session:
                await resource_service.assign_resources(session, emergency_id, [])

        with pytest.raises(ValueError):
            run_db(scenario)

    def test_resolved_emergency_is_rejected(self, run_db):
        async def scenario(factory):
            emergency_id, ids = await _seed(factory)
            async with factory() as session:
                await emergency_service.resolve_emergency(session, emergency_id)
                await resource_service.assign_resources(session, emergency_id, ids)

        with pytest.raises(InvalidStatusTransition):
            run_db(scenario)

    def test_unknown_emergency_is_not_found(self, run_db):
        async def scenario(factory):
            _, ids = await _seed(factory)
            async with factory() as session:
                await resource_service.assign_resources(session, 999, ids)

        with pytest.raises(NotFoundError):
            run_db(scenario)


class TestAssignmentStatus:
    """Tests for resource_service.update_assignment_status"""

    def test_completion_releases_resource(self, run_db):
        async def scenario(factory):
            emergency_id, ids = await _seed(factory, (ResourceStatus.AVAILABLE,))
            async with factory() as session:
                [assignment] = await resource_service.assign_resources(session, emergency_id, ids)
                await resource_service.update_assignment_status(session, assignment["id"], "en_route")
                done = await resource_service.update_assignment_status(
                    session, assignment["id"], AssignmentStatus.COMPLETED, notes="patient delivered",
                )
                await session.commit()
            statuses, _, _ = await _snapshot(factory, emergency_id)
            return done, statuses[ids[0]]

        done, resource_status = run_db(scenario)
        assert done["status"] == "completed"
        assert done["notes"] == "patient delivered"
        assert resource_status == ResourceStatus.AVAILABLE

    def test_moving_backwards_is_rejected(self, run_db):
        async def scenario(factory):
            emergency_id, ids = await _seed(factory, (ResourceStatus.AVAILABLE,))
            async with factory() as session:
                [assignment] = await resource_service.assign_resources(session, emergency_id, ids)
                await resource_service.update_assignment_status(session, assignment["id"], "on_scene")
                await resource_service.update_assignment_status(session, assignment["id"], "en_route")

        with pytest.raises(InvalidStatusTransition):
            run_db(scenario)

    def test_repeated_completion_keeps_reassigned_resource_in_use(self, run_db):
        """Should not release a resource that another emergency now holds"""

        async def scenario(factory):
            first_id, ids = await _seed(factory, (ResourceStatus.AVAILABLE,))
            async with factory() as session:
                [first] = await resource_service.assign_resources(session, first_id, ids)
                await resource_service.update_assignment_status(session, first["id"], "completed")
                first_emergency = await emergency_service.get_emergency(session, first_id)
                second = await emergency_service.create_emergency_alert(
                    session, user_id=first_emergency["user_id"], latitude=31.52, longitude=34.45,
                    emergency_type="medical",
                )
                [reassigned] = await resource_service.assign_resources(session, second["id"], ids)
                repeated = await resource_service.update_assignment_status(
                    session, first["id"], "completed", notes="double tap",
                )
                await session.commit()
            statuses, _, _ = await _snapshot(factory, first_id)
            return repeated, reassigned, statuses[ids[0]]

        repeated, reassigned, resource_status = run_db(scenario)
        assert repeated["status"] == "completed"
        assert repeated["notes"] == "double tap"
        assert reassigned["status"] == "assigned"
        assert resource_status == ResourceStatus.IN_USE


class TestCatalogue:
    """Tests for the resource read queries"""

    def test_available_resources_and_catalogue(self, run_db):
        async def scenario(factory):
            await _seed(factory, (ResourceStatus.AVAILABLE, ResourceStatus.MAINTENANCE))
            async with factory() as session:
                session.add(EmergencyTypeResource(emergency_type="cardiac", resource_type_id=1, priority=1, quantity=2))
                await session.commit()
                return (
                    await resource_service.get_available_resources(session),
                    await resource_service.get_resource_types(session),
                    await resource_service.get_emergency_type_resources(session),
                )

        available, types, mapping = run_db(scenario)
        assert [r["name"] for r in available] == ["R0"]
        assert types[0]["name"] == "Ambulance"
        assert mapping == [{"id": 1, "emergency_type": "cardiac", "resource_type_id": 1, "priority": 1, "quantity": 2}]
