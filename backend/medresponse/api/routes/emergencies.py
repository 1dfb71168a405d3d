"""
Emergency API routes.

Endpoints:
    POST /emergencies                          — File an alert for the caller
    GET  /emergencies/active                   — Pending and active alerts
    GET  /emergencies/recent                   — Latest alerts of any status
    GET  /emergencies/user                     — The caller's own history
    GET  /emergencies/{id}                     — Single alert
    PUT  /emergencies/{id}/status              — Change status (response_team)
    POST /emergencies/{id}/resolve             — Resolve (response_team)
    POST /emergencies/{id}/assign-ambulance    — Dispatch a unit (response_team)
    POST /emergencies/{id}/assign-resources    — Assign resources (response_team)

Every write is pushed to connected real-time clients after it commits.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from medresponse.api.errors import to_http_exception
from medresponse.api.middleware.audit import log_audit
from medresponse.api.middleware.auth import get_current_user, require_role
from medresponse.api.middleware.rate_limit import rate_limit
from medresponse.api.routes.resources import AssignmentResponse
from medresponse.api.websocket.handler import get_relay
from medresponse.api.websocket.relay import (
    BroadcastRelay,
    EMERGENCY_BROADCAST,
    EMERGENCY_STATUS_UPDATE,
    RESOURCES_ASSIGNED,
)
from medresponse.config import get_settings
from medresponse.db.postgres import get_db
from medresponse.errors import MedResponseError
from medresponse.models.emergency_alert import EmergencyPriority, EmergencyStatus
from medresponse.models.user import User, UserRole
from medresponse.services import emergency_service, resource_service
from medresponse.services.emergency_service import AlertOrigin

router = APIRouter()
settings = get_settings()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class EmergencyCreateRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)
    emergency_type: str = Field(default="medical", min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    priority: EmergencyPriority = EmergencyPriority.MEDIUM
    required_resources: list[int] = Field(default_factory=list)


class EmergencyStatusUpdateRequest(BaseModel):
    status: EmergencyStatus


class AssignAmbulanceRequest(BaseModel):
    ambulance_id: int


class AssignResourcesRequest(BaseModel):
    resource_ids: list[int] = Field(..., min_length=1)


class EmergencyResponse(BaseModel):
    id: int
    user_id: int
    ambulance_id: Optional[int] = None
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    emergency_type: str
    description: Optional[str] = None
    status: EmergencyStatus
    priority: EmergencyPriority
    required_resources: list[int] = []
    assigned_resources: list[int] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

@router.post("/emergencies", response_model=EmergencyResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[rate_limit(max_requests=10, window_seconds=60, key_prefix="emergency")])
async def create_emergency(
    payload: EmergencyCreateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    relay: BroadcastRelay = Depends(get_relay),
):
    """File an alert for the authenticated user and broadcast it."""
    emergency = await emergency_service.create_emergency_alert(
        db,
        user_id=current_user.id,
        latitude=payload.latitude,
        longitude=payload.longitude,
        accuracy=payload.accuracy,
        emergency_type=payload.emergency_type,
        description=payload.description,
        priority=payload.priority,
        required_resources=payload.required_resources,
        origin=AlertOrigin.REST,
    )
    await log_audit(
        action="create",
        resource="emergency_alert",
        resource_id=emergency["id"],
        user_id=current_user.id,
        details=f"type={payload.emergency_type}, priority={payload.priority.value}",
        request=request,
        db=db,
    )
    await db.commit()

    await relay.publish({"type": EMERGENCY_BROADCAST, "data": emergency})
    return emergency


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

@router.get("/emergencies/active", response_model=list[EmergencyResponse])
async def list_active_emergencies(db: AsyncSession = Depends(get_db)):
    return await emergency_service.get_active_emergencies(db)


@router.get("/emergencies/recent", response_model=list[EmergencyResponse])
async def list_recent_emergencies(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await emergency_service.get_recent_emergencies(db, limit or settings.RECENT_EMERGENCIES_LIMIT)


@router.get("/emergencies/user", response_model=list[EmergencyResponse])
async def list_my_emergencies(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await emergency_service.get_user_emergency_history(db, current_user.id)


@router.get("/emergencies/{emergency_id}", response_model=EmergencyResponse)
async def get_emergency(emergency_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await emergency_service.get_emergency(db, emergency_id)
    except MedResponseError as e:
        raise to_http_exception(e)


@router.get("/emergencies/{emergency_id}/assignments", response_model=list[AssignmentResponse])
async def list_emergency_assignments(emergency_id: int, db: AsyncSession = Depends(get_db)):
    return await resource_service.get_assignments_for_emergency(db, emergency_id)


# ---------------------------------------------------------------------------
# Status workflow
# ---------------------------------------------------------------------------

async def _change_status(
    emergency_id: int,
    requested: EmergencyStatus,
    request: Request,
    db: AsyncSession,
    current_user: User,
    relay: BroadcastRelay,
) -> dict:
    try:
        emergency = await emergency_service.update_emergency_status(db, emergency_id, requested)
    except MedResponseError as e:
        raise to_http_exception(e)

    await log_audit(
        action="update_status",
        resource="emergency_alert",
        resource_id=emergency_id,
        user_id=current_user.id,
        details=f"status={requested.value}",
        request=request,
        db=db,
    )
    await db.commit()

    await relay.publish({"type": EMERGENCY_STATUS_UPDATE, "data": emergency})
    return emergency


@router.put("/emergencies/{emergency_id}/status", response_model=EmergencyResponse)
async def update_emergency_status(
    emergency_id: int,
    payload: EmergencyStatusUpdateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.RESPONSE_TEAM)),
    relay: BroadcastRelay = Depends(get_relay),
):
    return await _change_status(emergency_id, payload.status, request, db, current_user, relay)


@router.post("/emergencies/{emergency_id}/resolve", response_model=EmergencyResponse)
async def resolve_emergency(
    emergency_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.RESPONSE_TEAM)),
    relay: BroadcastRelay = Depends(get_relay),
):
    return await _change_status(emergency_id, EmergencyStatus.RESOLVED, request, db, current_user, relay)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

@router.post("/emergencies/{emergency_id}/assign-ambulance", response_model=EmergencyResponse)
async def assign_ambulance(
    emergency_id: int,
    payload: AssignAmbulanceRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.RESPONSE_TEAM)),
    relay: BroadcastRelay = Depends(get_relay),
):
    try:
        emergency = await emergency_service.assign_ambulance(db, emergency_id, payload.ambulance_id)
    except MedResponseError as e:
        raise to_http_exception(e)

    await log_audit(
        action="assign_ambulance",
        resource="emergency_alert",
        resource_id=emergency_id,
        user_id=current_user.id,
        details=f"ambulance_id={payload.ambulance_id}",
        request=request,
        db=db,
    )
    await db.commit()

    await relay.publish({"type": EMERGENCY_STATUS_UPDATE, "data": emergency})
    return emergency


@router.post("/emergencies/{emergency_id}/assign-resources", response_model=list[AssignmentResponse])
async def assign_resources(
    emergency_id: int,
    payload: AssignResourcesRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.RESPONSE_TEAM)),
    relay: BroadcastRelay = Depends(get_relay),
):
    """Assign a batch of resources. Either every resource is assigned or none is."""
    try:
        assignments = await resource_service.assign_resources(db, emergency_id, payload.resource_ids)
    except MedResponseError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await log_audit(
        action="assign_resources",
        resource="emergency_alert",
        resource_id=emergency_id,
        user_id=current_user.id,
        details=f"resource_ids={[a['resource_id'] for a in assignments]}",
        request=request,
        db=db,
    )
    await db.commit()

    await relay.publish({
        "type": RESOURCES_ASSIGNED,
        "data": {"emergency_id": emergency_id, "assignments": assignments},
    })
    return assignments
