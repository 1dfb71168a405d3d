"""
Resource service — assigning emergency resources to alerts and tracking each
assignment through its lifecycle.

``assign_resources`` runs inside the caller's transaction and locks every row
it touches, so a batch either lands completely or not at all and two
dispatchers cannot both claim the same resource.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medresponse.errors import InvalidStatusTransition, NotFoundError, ResourceUnavailableError
from medresponse.models.emergency_alert import EmergencyStatus
from medresponse.models.resource import (
    ASSIGNMENT_FLOW,
    AssignmentStatus,
    EmergencyResource,
    EmergencyResourceAssignment,
    EmergencyResourceType,
    EmergencyTypeResource,
    ResourceStatus,
)
from medresponse.services.emergency_service import get_emergency_model

logger = logging.getLogger(__name__)


def assignment_to_dict(assignment: EmergencyResourceAssignment) -> dict[str, Any]:
    return {
        "id": assignment.id,
        "emergency_id": assignment.emergency_id,
        "resource_id": assignment.resource_id,
        "status": assignment.status.value if assignment.status else None,
        "assigned_at": assignment.assigned_at.isoformat() if assignment.assigned_at else None,
        "notes": assignment.notes,
    }


def resource_to_dict(resource: EmergencyResource) -> dict[str, Any]:
    return {
        "id": resource.id,
        "type_id": resource.type_id,
        "name": resource.name,
        "status": resource.status.value if resource.status else None,
        "location": resource.location,
        "latitude": resource.latitude,
        "longitude": resource.longitude,
        "capacity": resource.capacity,
    }


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------

async def assign_resources(
    db: AsyncSession,
    emergency_id: int,
    resource_ids: list[int],
) -> list[dict[str, Any]]:
    """Assign every resource in *resource_ids* to the emergency.

    For each id an ``assigned`` assignment row is inserted and the resource is
    flipped to ``in_use``; the ids are appended to the alert's
    ``assigned_resources``. Nothing is written if any resource is missing or
    not available.
    """
    if not resource_ids:
        raise ValueError("resource_ids must not be empty")
    # Keep caller order, drop repeats
    wanted = list(dict.fromkeys(resource_ids))

    alert = await get_emergency_model(db, emergency_id, for_update=True)
    if alert.status == EmergencyStatus.RESOLVED:
        raise InvalidStatusTransition("emergency", alert.status.value, "assigned")

    result = await db.execute(
        select(EmergencyResource)
        .where(EmergencyResource.id.in_(wanted))
        .order_by(EmergencyResource.id)
        .with_for_update()
    )
    resources = {r.id: r for r in result.scalars().all()}

    missing = [rid for rid in wanted if rid not in resources]
    if missing:
        raise NotFoundError("Resource", missing[0] if len(missing) == 1 else missing)
    busy = [rid for rid in wanted if resources[rid].status != ResourceStatus.AVAILABLE]
    if busy:
        raise ResourceUnavailableError(busy)

    now = datetime.utcnow()
    assignments = []
    for rid in wanted:
        assignment = EmergencyResourceAssignment(
            emergency_id=alert.id,
            resource_id=rid,
            status=AssignmentStatus.ASSIGNED,
            assigned_at=now,
        )
        db.add(assignment)
        resources[rid].status = ResourceStatus.IN_USE
        assignments.append(assignment)

    # Reassign rather than mutate so the JSON column is flagged dirty
    alert.assigned_resources = [*(alert.assigned_resources or []), *wanted]
    alert.assigned_at = now
    alert.updated_at = now
    await db.flush()

    logger.info("Assigned resources %s to emergency %s", wanted, alert.id)
    return [assignment_to_dict(a) for a in assignments]


async def update_assignment_status(
    db: AsyncSession,
    assignment_id: int,
    status: str | AssignmentStatus,
    notes: str | None = None,
) -> dict[str, Any]:
    """Advance an assignment along assigned -> en_route -> on_scene -> completed.

    Completing an assignment returns its resource to ``available``; repeating
    the current status only updates the notes.
    """
    requested = AssignmentStatus(status)
    result = await db.execute(
        select(EmergencyResourceAssignment)
        .where(EmergencyResourceAssignment.id == assignment_id)
        .with_for_update()
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise NotFoundError("Assignment", assignment_id)
    if requested == assignment.status:
        if notes is not None:
            assignment.notes = notes
            await db.flush()
        return assignment_to_dict(assignment)

    current_idx = ASSIGNMENT_FLOW.index(assignment.status)
    if ASSIGNMENT_FLOW.index(requested) < current_idx:
        raise InvalidStatusTransition("assignment", assignment.status.value, requested.value)

    assignment.status = requested
    if notes is not None:
        assignment.notes = notes

    if requested == AssignmentStatus.COMPLETED:
        res = await db.execute(
            select(EmergencyResource).where(EmergencyResource.id == assignment.resource_id)
        )
        resource = res.scalar_one_or_none()
        if resource is not None and resource.status == ResourceStatus.IN_USE:
            resource.status = ResourceStatus.AVAILABLE

    await db.flush()
    return assignment_to_dict(assignment)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_available_resources(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(
        select(EmergencyResource)
        .where(EmergencyResource.status == ResourceStatus.AVAILABLE)
        .order_by(EmergencyResource.last_maintenance.desc(), EmergencyResource.id)
    )
    return [resource_to_dict(r) for r in result.scalars().all()]


async def get_resource_types(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(select(EmergencyResourceType).order_by(EmergencyResourceType.name))
    return [
        {"id": t.id, "name": t.name, "description": t.description, "category": t.category}
        for t in result.scalars().all()
    ]


async def get_emergency_type_resources(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(
        select(EmergencyTypeResource).order_by(
            EmergencyTypeResource.emergency_type, EmergencyTypeResource.priority
        )
    )
    return [
        {
            "id": m.id,
            "emergency_type": m.emergency_type,
            "resource_type_id": m.resource_type_id,
            "priority": m.priority,
            "quantity": m.quantity,
        }
        for m in result.scalars().all()
    ]


async def get_assignments_for_emergency(db: AsyncSession, emergency_id: int) -> list[dict[str, Any]]:
    result = await db.execute(
        select(EmergencyResourceAssignment)
        .where(EmergencyResourceAssignment.emergency_id == emergency_id)
        .order_by(EmergencyResourceAssignment.id)
    )
    return [assignment_to_dict(a) for a in result.scalars().all()]
