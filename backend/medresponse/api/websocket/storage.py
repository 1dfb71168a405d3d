"""
Persistence collaborator used by the relay.

The relay only depends on the ``RelayStorage`` protocol; the SQLAlchemy
implementation opens one session and one transaction per call so a relay
write never shares a transaction with anything else.
"""

from __future__ import annotations

from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medresponse.services import emergency_service, location_service, resource_service
from medresponse.services.emergency_service import AlertOrigin


class RelayStorage(Protocol):
    async def create_location_update(self, fields: dict[str, Any]) -> dict[str, Any]: ...

    async def create_emergency_alert(self, fields: dict[str, Any]) -> dict[str, Any]: ...

    async def assign_resources(self, emergency_id: int, resource_ids: list[int]) -> list[dict[str, Any]]: ...


class SqlAlchemyRelayStorage:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_location_update(self, fields: dict[str, Any]) -> dict[str, Any]:
        async with self._session_factory() as session:
            async with session.begin():
                return await location_service.create_location_update(
                    session,
                    user_id=fields["subject_id"],
                    latitude=fields["latitude"],
                    longitude=fields["longitude"],
                    accuracy=fields.get("accuracy"),
                    source=fields.get("source") or "user",
                    timestamp=fields.get("timestamp"),
                )

    async def create_emergency_alert(self, fields: dict[str, Any]) -> dict[str, Any]:
        async with self._session_factory() as session:
            async with session.begin():
                return await emergency_service.create_emergency_alert(
                    session,
                    user_id=fields["user_id"],
                    latitude=fields["latitude"],
                    longitude=fields["longitude"],
                    accuracy=fields.get("accuracy"),
                    emergency_type=fields["emergency_type"],
                    description=fields.get("description"),
                    priority=fields.get("priority"),
                    origin=AlertOrigin(fields.get("origin", AlertOrigin.REALTIME)),
                )

    async def assign_resources(self, emergency_id: int, resource_ids: list[int]) -> list[dict[str, Any]]:
        """All-or-nothing: any failure rolls back every row of the batch."""
        async with self._session_factory() as session:
            async with session.begin():
                return await resource_service.assign_resources(session, emergency_id, resource_ids)
