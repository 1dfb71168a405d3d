"""
Facility service — medical facility listing and radius search.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medresponse.models.facility import MedicalFacility
from medresponse.services.geo import distance_m, within_radius


def facility_to_dict(facility: MedicalFacility, distance: float | None = None) -> dict[str, Any]:
    data = {
        "id": facility.id,
        "name": facility.name,
        "type": facility.type,
        "address": facility.address,
        "latitude": facility.latitude,
        "longitude": facility.longitude,
        "phone": facility.phone,
        "open_hours": facility.open_hours,
        "rating": facility.rating,
        "capacity": facility.capacity,
        "current_occupancy": facility.current_occupancy,
    }
    if distance is not None:
        data["distance_m"] = round(float(distance), 1)
    return data


async def list_facilities(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(select(MedicalFacility).order_by(MedicalFacility.name))
    return [facility_to_dict(f) for f in result.scalars().all()]


def nearby_facilities_query(latitude: float, longitude: float, radius_m: float):
    distance_expr = distance_m(MedicalFacility.longitude, MedicalFacility.latitude, longitude, latitude)
    return (
        select(MedicalFacility, distance_expr.label("distance_m"))
        .where(within_radius(MedicalFacility.longitude, MedicalFacility.latitude, longitude, latitude, radius_m))
        .order_by(distance_expr)
    )


async def find_nearby_facilities(
    db: AsyncSession,
    latitude: float,
    longitude: float,
    radius_m: float = 5_000,
) -> list[dict[str, Any]]:
    """Facilities within *radius_m* metres, closest first. Requires PostGIS."""
    result = await db.execute(nearby_facilities_query(latitude, longitude, radius_m))
    return [facility_to_dict(f, dist) for f, dist in result.all()]
