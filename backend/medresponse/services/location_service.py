"""
Location service — append-only position history for users and responders.

Rows are never updated; a correction is simply a newer fix.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medresponse.models.location_update import LocationUpdate

logger = logging.getLogger(__name__)


def location_to_dict(update: LocationUpdate) -> dict[str, Any]:
    return {
        "id": update.id,
        "user_id": update.user_id,
        "latitude": update.latitude,
        "longitude": update.longitude,
        "accuracy": update.accuracy,
        "timestamp": update.timestamp.isoformat() if update.timestamp else None,
        "source": update.source,
    }


async def create_location_update(
    db: AsyncSession,
    *,
    user_id: int,
    latitude: float,
    longitude: float,
    accuracy: float | None = None,
    source: str = "user",
    timestamp: datetime | None = None,
) -> dict[str, Any]:
    update = LocationUpdate(
        user_id=user_id,
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
        source=source or "user",
        timestamp=timestamp or datetime.utcnow(),
    )
    db.add(update)
    await db.flush()
    logger.debug("Stored location %s for user %s (%s)", update.id, user_id, update.source)
    return location_to_dict(update)


async def get_latest_location(db: AsyncSession, user_id: int) -> dict[str, Any] | None:
    result = await db.execute(
        select(LocationUpdate)
        .where(LocationUpdate.user_id == user_id)
        .order_by(LocationUpdate.timestamp.desc(), LocationUpdate.id.desc())
        .limit(1)
    )
    update = result.scalar_one_or_none()
    return location_to_dict(update) if update else None


async def list_location_history(db: AsyncSession, user_id: int, limit: int = 100) -> list[dict[str, Any]]:
    result = await db.execute(
        select(LocationUpdate)
        .where(LocationUpdate.user_id == user_id)
        .order_by(LocationUpdate.timestamp.desc(), LocationUpdate.id.desc())
        .limit(limit)
    )
    return [location_to_dict(u) for u in result.scalars().all()]
