"""
Emergency resource routes.

Endpoints:
    GET /resources/available         — Resources ready to be assigned
    GET /resource-types              — Resource catalogue
    GET /emergency-type-resources    — What each emergency type calls for
    PUT /assignments/{id}/status     — Advance an assignment (response_team)
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from medresponse.api.errors import to_http_exception
from medresponse.api.middleware.audit import log_audit
from medresponse.api.middleware.auth import require_role
from medresponse.db.postgres import get_db
from medresponse.errors import MedResponseError
from medresponse.models.resource import AssignmentStatus, ResourceStatus
from medresponse.models.user import User, UserRole
from medresponse.services import resource_service

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class ResourceResponse(BaseModel):
    id: int
    type_id: int
    name: str
    status: ResourceStatus
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    capacity: Optional[int] = None


class ResourceTypeResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    category: str


class EmergencyTypeResourceResponse(BaseModel):
    id: int
    emergency_type: str
    resource_type_id: int
    priority: int
    quantity: int


class AssignmentStatusUpdateRequest(BaseModel):
    status: AssignmentStatus
    notes: Optional[str] = Field(default=None, max_length=2000)


class AssignmentResponse(BaseModel):
    id: int
    emergency_id: int
    resource_id: int
    status: AssignmentStatus
    assigned_at: Optional[datetime] = None
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/resources/available", response_model=list[ResourceResponse])
async def list_available_resources(db: AsyncSession = Depends(get_db)):
    return await resource_service.get_available_resources(db)


@router.get("/resource-types", response_model=list[ResourceTypeResponse])
async def list_resource_types(db: AsyncSession = Depends(get_db)):
    return await resource_service.get_resource_types(db)


@router.get("/emergency-type-resources", response_model=list[EmergencyTypeResourceResponse])
async def list_emergency_type_resources(db: AsyncSession = Depends(get_db)):
    return await resource_service.get_emergency_type_resources(db)


@router.put("/assignments/{assignment_id}/status", response_model=AssignmentResponse)
async def update_assignment_status(
    assignment_id: int,
    payload: AssignmentStatusUpdateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.RESPONSE_TEAM)),
):
    try:
        assignment = await resource_service.update_assignment_status(
            db, assignment_id, payload.status, payload.notes
        )
    except MedResponseError as e:
        raise to_http_exception(e)

    await log_audit(
        action="update_status",
        resource="resource_assignment",
        resource_id=assignment_id,
        user_id=current_user.id,
        details=f"status={payload.status.value}",
        request=request,
        db=db,
    )
    return assignment
