"""
Ambulance service — fleet listing, position/status updates and the radius
search dispatchers use to find the closest units.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medresponse.errors import NotFoundError
from medresponse.models.ambulance import AmbulanceUnit, AmbulanceStatus
from medresponse.services.geo import distance_m, within_radius

logger = logging.getLogger(__name__)


def ambulance_to_dict(unit: AmbulanceUnit, distance: float | None = None) -> dict[str, Any]:
    data = {
        "id": unit.id,
        "name": unit.name,
        "latitude": unit.latitude,
        "longitude": unit.longitude,
        "accuracy": unit.accuracy,
        "last_location_update": unit.last_location_update.isoformat() if unit.last_location_update else None,
        "status": unit.status.value if unit.status else None,
        "current_emergency_id": unit.current_emergency_id,
    }
    if distance is not None:
        data["distance_m"] = round(float(distance), 1)
    return data


async def list_ambulances(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(select(AmbulanceUnit).order_by(AmbulanceUnit.id))
    return [ambulance_to_dict(u) for u in result.scalars().all()]


async def list_available_ambulances(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(
        select(AmbulanceUnit)
        .where(AmbulanceUnit.status == AmbulanceStatus.AVAILABLE)
        .order_by(AmbulanceUnit.id)
    )
    return [ambulance_to_dict(u) for u in result.scalars().all()]


def nearby_ambulances_query(latitude: float, longitude: float, radius_m: float):
    distance_expr = distance_m(AmbulanceUnit.longitude, AmbulanceUnit.latitude, longitude, latitude)
    return (
        select(AmbulanceUnit, distance_expr.label("distance_m"))
        .where(
            AmbulanceUnit.latitude.is_not(None),
            AmbulanceUnit.longitude.is_not(None),
            within_radius(AmbulanceUnit.longitude, AmbulanceUnit.latitude, longitude, latitude, radius_m),
        )
        .order_by(distance_expr)
    )


async def find_nearby_ambulances(
    db: AsyncSession,
    latitude: float,
    longitude: float,
    radius_m: float = 10_000,
) -> list[dict[str, Any]]:
    """Units within *radius_m* metres, closest first. Requires PostGIS."""
    result = await db.execute(nearby_ambulances_query(latitude, longitude, radius_m))
    return [ambulance_to_dict(unit, dist) for unit, dist in result.all()]


async def update_ambulance_location(
    db: AsyncSession,
    ambulance_id: int,
    latitude: float,
    longitude: float,
    accuracy: float | None = None,
) -> dict[str, Any]:
    result = await db.execute(select(AmbulanceUnit).where(AmbulanceUnit.id == ambulance_id))
    unit = result.scalar_one_or_none()
    if unit is None:
        raise NotFoundError("Ambulance unit", ambulance_id)
    unit.latitude = latitude
    unit.longitude = longitude
    unit.accuracy = accuracy
    unit.last_location_update = datetime.utcnow()
    await db.flush()
    return ambulance_to_dict(unit)


async def update_ambulance_status(
    db: AsyncSession,
    ambulance_id: int,
    status: str | AmbulanceStatus,
) -> dict[str, Any]:
    result = await db.execute(select(AmbulanceUnit).where(AmbulanceUnit.id == ambulance_id))
    unit = result.scalar_one_or_none()
    if unit is None:
        raise NotFoundError("Ambulance unit", ambulance_id)
    unit.status = AmbulanceStatus(status)
    if unit.status == AmbulanceStatus.AVAILABLE:
        unit.current_emergency_id = None
    await db.flush()
    logger.info("Ambulance %s status -> %s", unit.id, unit.status.value)
    return ambulance_to_dict(unit)
