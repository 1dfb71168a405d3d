"""
Emergency service tests against in-memory SQLite.
"""

import pytest

from conftest import make_user
from medresponse.errors import InvalidStatusTransition, NotFoundError, ResourceUnavailableError
from medresponse.models.ambulance import AmbulanceStatus, AmbulanceUnit
from medresponse.models.emergency_alert import EmergencyStatus
from medresponse.services import emergency_service
from medresponse.services.emergency_service import AlertOrigin, check_transition


async def _create(session, user_id, origin=AlertOrigin.REST, **overrides):
    fields = {
        "user_id": user_id,
        "latitude": 31.5,
        "longitude": 34.47,
        "emergency_type": "medical",
    }
    fields.update(overrides)
    return await emergency_service.create_emergency_alert(session, origin=origin, **fields)


async def _seed_user(factory, **kwargs):
    async with factory() as session:
        user = make_user(**kwargs)
        session.add(user)
        await session.commit()
        return user.id


class TestCreateEmergency:
    """Tests for create_emergency_alert"""

    @pytest.mark.parametrize("origin,expected", [
        (AlertOrigin.REALTIME, "active"),
        (AlertOrigin.LEGACY_REALTIME, "pending"),
        (AlertOrigin.REST, "pending"),
    ])
    def test_default_status_by_origin(self, run_db, origin, expected):
        async def scenario(factory):
            user_id = await _seed_user(factory)
            async with factory() as session:
                return await _create(session, user_id, origin=origin)

        emergency = run_db(scenario)
        assert emergency["status"] == expected
        assert emergency["id"] is not None
        assert emergency["created_at"] is not None

    def test_fields_are_stored(self, run_db):
        async def scenario(factory):
            user_id = await _seed_user(factory)
            async with factory() as session:
                created = await _create(
                    session, user_id,
                    accuracy=8.5, description="fall", priority="high", emergency_type="trauma",
                    required_resources=[1, 2],
                )
                await session.commit()
            async with factory() as session:
                return created, await emergency_service.get_emergency(session, created["id"])

        created, loaded = run_db(scenario)
        assert loaded == created
        assert loaded["priority"] == "high"
        assert loaded["emergency_type"] == "trauma"
        assert loaded["accuracy"] == 8.5
        assert loaded["description"] == "fall"
        assert loaded["required_resources"] == [1, 2]
        assert loaded["assigned_resources"] == []

    def test_invalid_priority_raises(self, run_db):
        async def scenario(factory):
            async with factory() as session:
                await _create(session, 1, priority="urgent")

        with pytest.raises(ValueError):
            run_db(scenario)


class TestQueries:
    """Tests for the dashboard read queries"""

    def test_active_excludes_in_progress_and_resolved(self, run_db):
        async def scenario(factory):
            user_id = await _seed_user(factory)
            async with factory() as session:
                pending = await _create(session, user_id)
                active = await _create(session, user_id, origin=AlertOrigin.REALTIME)
                resolved = await _create(session, user_id)
                await emergency_service.resolve_emergency(session, resolved["id"])
                await session.commit()
                listed = await emergency_service.get_active_emergencies(session)
            return pending, active, listed

        pending, active, listed = run_db(scenario)
        assert [e["id"] for e in listed] == [active["id"], pending["id"]]

    def test_recent_is_newest_first_and_limited(self, run_db):
        async def scenario(factory):
            user_id = await _seed_user(factory)
            async with factory() as session:
                ids = [(await _create(session, user_id))["id"] for _ in range(7)]
                await session.commit()
                recent = await emergency_service.get_recent_emergencies(session, limit=5)
            return ids, recent

        ids, recent = run_db(scenario)
        assert [e["id"] for e in recent] == list(reversed(ids))[:5]

    def test_user_history_only_includes_that_user(self, run_db):
        async def scenario(factory):
            first = await _seed_user(factory, username="first")
            second = await _seed_user(factory, username="second")
            async with factory() as session:
                await _create(session, first)
                await _create(session, second)
                await _create(session, first)
                await session.commit()
                return first, await emergency_service.get_user_emergency_history(session, first)

        first, history = run_db(scenario)
        assert len(history) == 2
        assert all(e["user_id"] == first for e in history)

    def test_missing_emergency_raises_not_found(self, run_db):
        async def scenario(factory):
            async with factory() as session:
                await emergency_service.get_emergency(session, 999)

        with pytest.raises(NotFoundError):
            run_db(scenario)


class TestStatusWorkflow:
    """Tests for status transitions and ambulance dispatch"""

    def test_check_transition(self):
        check_transition(EmergencyStatus.PENDING, EmergencyStatus.ACTIVE)
        check_transition(EmergencyStatus.ACTIVE, EmergencyStatus.RESOLVED)
        check_transition(EmergencyStatus.RESOLVED, EmergencyStatus.RESOLVED)
        with pytest.raises(InvalidStatusTransition):
            check_transition(EmergencyStatus.RESOLVED, EmergencyStatus.ACTIVE)
        with pytest.raises(InvalidStatusTransition):
            check_transition(EmergencyStatus.IN_PROGRESS, EmergencyStatus.PENDING)

    def test_resolve_sets_resolved_at(self, run_db):
        async def scenario(factory):
            user_id = await _seed_user(factory)
            async with factory() as session:
                created = await _create(session, user_id)
                return await emergency_service.resolve_emergency(session, created["id"])

        resolved = run_db(scenario)
        assert resolved["status"] == "resolved"
        assert resolved["resolved_at"] is not None

    def test_reopening_resolved_is_rejected(self, run_db):
        async def scenario(factory):
            user_id = await _seed_user(factory)
            async with factory() as session:
                created = await _create(session, user_id)
                await emergency_service.resolve_emergency(session, created["id"])
                await emergency_service.update_emergency_status(session, created["id"], "active")

        with pytest.raises(InvalidStatusTransition):
            run_db(scenario)

    def test_assign_ambulance_dispatches_and_resolve_releases(self, run_db):
        async def scenario(factory):
            user_id = await _seed_user(factory)
            async with factory() as session:
                unit = AmbulanceUnit(name="AMB-1", latitude=31.5, longitude=34.47)
                session.add(unit)
                await session.flush()
                created = await _create(session, user_id, origin=AlertOrigin.REALTIME)

                assigned = await emergency_service.assign_ambulance(session, created["id"], unit.id)
                dispatched = (unit.status, unit.current_emergency_id)

                await emergency_service.resolve_emergency(session, created["id"])
                released = (unit.status, unit.current_emergency_id)
                return created, unit.id, assigned, dispatched, released

        created, unit_id, assigned, dispatched, released = run_db(scenario)
        assert assigned["status"] == "in_progress"
        assert assigned["ambulance_id"] == unit_id
        assert assigned["assigned_at"] is not None
        assert dispatched == (AmbulanceStatus.DISPATCHED, created["id"])
        assert released == (AmbulanceStatus.AVAILABLE, None)

    def test_busy_ambulance_is_refused(self, run_db):
        async def scenario(factory):
            user_id = await _seed_user(factory)
            async with factory() as session:
                unit = AmbulanceUnit(name="AMB-2", status=AmbulanceStatus.DISPATCHED)
                session.add(unit)
                await session.flush()
                created = await _create(session, user_id)
                await emergency_service.assign_ambulance(session, created["id"], unit.id)

        with pytest.raises(ResourceUnavailableError):
            run_db(scenario)

    def test_unknown_ambulance_is_not_found(self, run_db):
        async def scenario(factory):
            user_id = await _seed_user(factory)
            async with factory() as session:
                created = await _create(session, user_id)
                await emergency_service.assign_ambulance(session, created["id"], 404)

        with pytest.raises(NotFoundError):
            run_db(scenario)
