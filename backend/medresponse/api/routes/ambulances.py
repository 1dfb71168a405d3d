"""
Ambulance fleet routes.

Endpoints:
    GET /ambulances                — Every unit
    GET /ambulances/available      — Units ready for dispatch
    GET /ambulances/nearby         — Units within a radius, closest first
    PUT /ambulances/{id}/status    — Set unit status (response_team)
    PUT /ambulances/{id}/location  — Report unit position (response_team)
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from medresponse.api.errors import to_http_exception
from medresponse.api.middleware.audit import log_audit
from medresponse.api.middleware.auth import require_role
from medresponse.api.websocket.handler import get_relay
from medresponse.api.websocket.relay import AMBULANCE_LOCATION_UPDATE, BroadcastRelay
from medresponse.config import get_settings
from medresponse.db.postgres import get_db
from medresponse.errors import MedResponseError
from medresponse.models.ambulance import AmbulanceStatus
from medresponse.models.user import User, UserRole
from medresponse.services import ambulance_service

router = APIRouter()
settings = get_settings()


class AmbulanceResponse(BaseModel):
    id: int
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    last_location_update: Optional[datetime] = None
    status: AmbulanceStatus
    current_emergency_id: Optional[int] = None
    distance_m: Optional[float] = None


class AmbulanceStatusUpdateRequest(BaseModel):
    status: AmbulanceStatus


class AmbulanceLocationUpdateRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)


@router.get("/ambulances", response_model=list[AmbulanceResponse])
async def list_ambulances(db: AsyncSession = Depends(get_db)):
    return await ambulance_service.list_ambulances(db)


@router.get("/ambulances/available", response_model=list[AmbulanceResponse])
async def list_available_ambulances(db: AsyncSession = Depends(get_db)):
    return await ambulance_service.list_available_ambulances(db)


@router.get("/ambulances/nearby", response_model=list[AmbulanceResponse])
async def nearby_ambulances(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_m: Optional[float] = Query(default=None, gt=0, le=200_000),
    db: AsyncSession = Depends(get_db),
):
    return await ambulance_service.find_nearby_ambulances(
        db, latitude, longitude, radius_m or settings.NEARBY_AMBULANCE_RADIUS_M
    )


@router.put("/ambulances/{ambulance_id}/status", response_model=AmbulanceResponse)
async def update_ambulance_status(
    ambulance_id: int,
    payload: AmbulanceStatusUpdateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.RESPONSE_TEAM)),
):
    try:
        unit = await ambulance_service.update_ambulance_status(db, ambulance_id, payload.status)
    except MedResponseError as e:
        raise to_http_exception(e)

    await log_audit(
        action="update_status",
        resource="ambulance_unit",
        resource_id=ambulance_id,
        user_id=current_user.id,
        details=f"status={payload.status.value}",
        request=request,
        db=db,
    )
    return unit


@router.put("/ambulances/{ambulance_id}/location", response_model=AmbulanceResponse)
async def update_ambulance_location(
    ambulance_id: int,
    payload: AmbulanceLocationUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.RESPONSE_TEAM)),
    relay: BroadcastRelay = Depends(get_relay),
):
    """Move a unit on the map and push its new position to live clients."""
    try:
        unit = await ambulance_service.update_ambulance_location(
            db, ambulance_id, payload.latitude, payload.longitude, payload.accuracy
        )
    except MedResponseError as e:
        raise to_http_exception(e)
    await db.commit()

    await relay.publish({"type": AMBULANCE_LOCATION_UPDATE, "data": unit})
    return unit
