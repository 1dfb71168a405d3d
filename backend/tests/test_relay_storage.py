"""
SQLAlchemy relay storage tests — each call commits on its own.
"""

from datetime import datetime

from conftest import make_user
from medresponse.api.websocket.storage import SqlAlchemyRelayStorage
from medresponse.services import emergency_service, location_service
from medresponse.services.emergency_service import AlertOrigin


class TestSqlAlchemyRelayStorage:

    def test_location_update_is_committed(self, run_db):
        async def scenario(factory):
            async with factory() as session:
                user = make_user()
                session.add(user)
                await session.commit()

            storage = SqlAlchemyRelayStorage(factory)
            stamp = datetime(2024, 5, 1, 12, 0, 0)
            stored = await storage.create_location_update({
                "subject_id": user.id,
                "latitude": 31.5,
                "longitude": 34.47,
                "accuracy": 5.0,
                "timestamp": stamp,
                "source": "ambulance",
            })
            async with factory() as session:
                latest = await location_service.get_latest_location(session, user.id)
            return stored, latest

        stored, latest = run_db(scenario)
        assert latest == stored
        assert latest["source"] == "ambulance"
        assert latest["timestamp"] == "2024-05-01T12:00:00"

    def test_emergency_alert_is_committed(self, run_db):
        async def scenario(factory):
            async with factory() as session:
                user = make_user()
                session.add(user)
                await session.commit()

            storage = SqlAlchemyRelayStorage(factory)
            created = await storage.create_emergency_alert({
                "user_id": user.id,
                "latitude": 31.5,
                "longitude": 34.47,
                "accuracy": None,
                "emergency_type": "medical",
                "description": "",
                "priority": "medium",
                "origin": AlertOrigin.REALTIME,
            })
            async with factory() as session:
                active = await emergency_service.get_active_emergencies(session)
            return created, active

        created, active = run_db(scenario)
        assert created["status"] == "active"
        assert [e["id"] for e in active] == [created["id"]]

    def test_location_history_is_append_only(self, run_db):
        async def scenario(factory):
            storage = SqlAlchemyRelayStorage(factory)
            for lat in (1.0, 2.0, 3.0):
                await storage.create_location_update({"subject_id": 9, "latitude": lat, "longitude": 0.0})
            async with factory() as session:
                return await location_service.list_location_history(session, 9)

        history = run_db(scenario)
        assert len(history) == 3
        assert history[0]["latitude"] == 3.0
        assert all(h["source"] == "user" for h in history)
