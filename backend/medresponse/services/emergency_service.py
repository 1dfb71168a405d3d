"""
Emergency service — the one place emergency alerts are created, plus status
transitions, ambulance dispatch and the read queries used by dashboards.

Both writers (the REST route and the real-time relay) go through
``create_emergency_alert`` so they share validation and the default-status
policy.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medresponse.errors import InvalidStatusTransition, NotFoundError, ResourceUnavailableError
from medresponse.models.ambulance import AmbulanceUnit, AmbulanceStatus
from medresponse.models.emergency_alert import (
    EmergencyAlert,
    EmergencyPriority,
    EmergencyStatus,
    OPEN_STATUSES,
)

logger = logging.getLogger(__name__)


class AlertOrigin(str, enum.Enum):
    REALTIME = "realtime"  # emergency_broadcast message
    LEGACY_REALTIME = "legacy_realtime"  # emergency_alert message
    REST = "rest"


# A live broadcast notifies responders immediately; everything else waits for
# a dispatcher to pick it up.
DEFAULT_STATUS: dict[AlertOrigin, EmergencyStatus] = {
    AlertOrigin.REALTIME: EmergencyStatus.ACTIVE,
    AlertOrigin.LEGACY_REALTIME: EmergencyStatus.PENDING,
    AlertOrigin.REST: EmergencyStatus.PENDING,
}

_ALLOWED_TRANSITIONS: dict[EmergencyStatus, set[EmergencyStatus]] = {
    EmergencyStatus.PENDING: {EmergencyStatus.ACTIVE, EmergencyStatus.IN_PROGRESS, EmergencyStatus.RESOLVED},
    EmergencyStatus.ACTIVE: {EmergencyStatus.IN_PROGRESS, EmergencyStatus.RESOLVED},
    EmergencyStatus.IN_PROGRESS: {EmergencyStatus.RESOLVED},
    EmergencyStatus.RESOLVED: set(),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def emergency_to_dict(alert: EmergencyAlert) -> dict[str, Any]:
    return {
        "id": alert.id,
        "user_id": alert.user_id,
        "ambulance_id": alert.ambulance_id,
        "latitude": alert.latitude,
        "longitude": alert.longitude,
        "accuracy": alert.accuracy,
        "emergency_type": alert.emergency_type,
        "description": alert.description,
        "status": alert.status.value if alert.status else None,
        "priority": alert.priority.value if alert.priority else None,
        "required_resources": list(alert.required_resources or []),
        "assigned_resources": list(alert.assigned_resources or []),
        "created_at": _iso(alert.created_at),
        "updated_at": _iso(alert.updated_at),
        "assigned_at": _iso(alert.assigned_at),
        "resolved_at": _iso(alert.resolved_at),
    }


def check_transition(current: EmergencyStatus, requested: EmergencyStatus) -> None:
    """Raise ``InvalidStatusTransition`` unless *requested* is reachable from *current*.

    Re-applying the current status is allowed and is a no-op for callers.
    """
    if current == requested:
        return
    if requested not in _ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition("emergency", current.value, requested.value)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

async def create_emergency_alert(
    db: AsyncSession,
    *,
    user_id: int,
    latitude: float,
    longitude: float,
    emergency_type: str,
    accuracy: float | None = None,
    description: str | None = None,
    priority: str | EmergencyPriority | None = None,
    required_resources: list[int] | None = None,
    origin: AlertOrigin = AlertOrigin.REST,
) -> dict[str, Any]:
    """Persist a new alert with the origin's default status.

    Raises ``ValueError`` for a priority outside low/medium/high.
    """
    alert = EmergencyAlert(
        user_id=user_id,
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
        emergency_type=emergency_type,
        description=description or "",
        status=DEFAULT_STATUS[origin],
        priority=EmergencyPriority(priority) if priority else EmergencyPriority.MEDIUM,
        required_resources=required_resources or [],
        assigned_resources=[],
    )
    db.add(alert)
    await db.flush()
    await db.refresh(alert)

    logger.info(
        "Created emergency %s [%s/%s] for user %s via %s",
        alert.id, alert.emergency_type, alert.status.value, user_id, origin.value,
    )
    return emergency_to_dict(alert)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_emergency_model(db: AsyncSession, emergency_id: int, *, for_update: bool = False) -> EmergencyAlert:
    stmt = select(EmergencyAlert).where(EmergencyAlert.id == emergency_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    alert = result.scalar_one_or_none()
    if alert is None:
        raise NotFoundError("Emergency", emergency_id)
    return alert


async def get_emergency(db: AsyncSession, emergency_id: int) -> dict[str, Any]:
    return emergency_to_dict(await get_emergency_model(db, emergency_id))


async def get_active_emergencies(db: AsyncSession) -> list[dict[str, Any]]:
    """Pending and active alerts, newest first."""
    result = await db.execute(
        select(EmergencyAlert)
        .where(EmergencyAlert.status.in_(OPEN_STATUSES))
        .order_by(EmergencyAlert.created_at.desc(), EmergencyAlert.id.desc())
    )
    return [emergency_to_dict(a) for a in result.scalars().all()]


async def get_user_emergency_history(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    result = await db.execute(
        select(EmergencyAlert)
        .where(EmergencyAlert.user_id == user_id)
        .order_by(EmergencyAlert.created_at.desc(), EmergencyAlert.id.desc())
    )
    return [emergency_to_dict(a) for a in result.scalars().all()]


async def get_recent_emergencies(db: AsyncSession, limit: int = 5) -> list[dict[str, Any]]:
    result = await db.execute(
        select(EmergencyAlert)
        .order_by(EmergencyAlert.created_at.desc(), EmergencyAlert.id.desc())
        .limit(limit)
    )
    return [emergency_to_dict(a) for a in result.scalars().all()]


# ---------------------------------------------------------------------------
# Status workflow
# ---------------------------------------------------------------------------

async def update_emergency_status(
    db: AsyncSession,
    emergency_id: int,
    status: str | EmergencyStatus,
) -> dict[str, Any]:
    requested = EmergencyStatus(status)
    alert = await get_emergency_model(db, emergency_id, for_update=True)
    check_transition(alert.status, requested)
    if alert.status == requested:
        return emergency_to_dict(alert)

    previous = alert.status
    alert.status = requested
    alert.updated_at = datetime.utcnow()

    if requested == EmergencyStatus.RESOLVED:
        alert.resolved_at = alert.updated_at
        if alert.ambulance_id is not None:
            await _release_ambulance(db, alert.ambulance_id, alert.id)

    await db.flush()
    logger.info("Emergency %s: %s -> %s", alert.id, previous.value, requested.value)
    return emergency_to_dict(alert)


async def resolve_emergency(db: AsyncSession, emergency_id: int) -> dict[str, Any]:
    return await update_emergency_status(db, emergency_id, EmergencyStatus.RESOLVED)


async def assign_ambulance(db: AsyncSession, emergency_id: int, ambulance_id: int) -> dict[str, Any]:
    """Dispatch an available ambulance and move the alert to in_progress."""
    alert = await get_emergency_model(db, emergency_id, for_update=True)
    check_transition(alert.status, EmergencyStatus.IN_PROGRESS)

    result = await db.execute(
        select(AmbulanceUnit).where(AmbulanceUnit.id == ambulance_id).with_for_update()
    )
    ambulance = result.scalar_one_or_none()
    if ambulance is None:
        raise NotFoundError("Ambulance unit", ambulance_id)
    if ambulance.status != AmbulanceStatus.AVAILABLE:
        raise ResourceUnavailableError([ambulance_id], kind="ambulances")

    now = datetime.utcnow()
    ambulance.status = AmbulanceStatus.DISPATCHED
    ambulance.current_emergency_id = alert.id
    alert.ambulance_id = ambulance.id
    alert.status = EmergencyStatus.IN_PROGRESS
    alert.assigned_at = now
    alert.updated_at = now
    await db.flush()

    logger.info("Ambulance %s dispatched to emergency %s", ambulance.id, alert.id)
    return emergency_to_dict(alert)


async def _release_ambulance(db: AsyncSession, ambulance_id: int, emergency_id: int) -> None:
    result = await db.execute(select(AmbulanceUnit).where(AmbulanceUnit.id == ambulance_id))
    ambulance = result.scalar_one_or_none()
    if ambulance is None or ambulance.current_emergency_id != emergency_id:
        return
    ambulance.status = AmbulanceStatus.AVAILABLE
    ambulance.current_emergency_id = None
