"""
Medical facility routes.

Endpoints:
    GET /facilities          — Every facility, by name
    GET /facilities/nearby   — Facilities within a radius, closest first
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from medresponse.config import get_settings
from medresponse.db.postgres import get_db
from medresponse.services import facility_service

router = APIRouter()
settings = get_settings()


class FacilityResponse(BaseModel):
    id: int
    name: str
    type: str
    address: str
    latitude: float
    longitude: float
    phone: Optional[str] = None
    open_hours: Optional[str] = None
    rating: Optional[str] = None
    capacity: Optional[int] = None
    current_occupancy: Optional[int] = None
    distance_m: Optional[float] = None


@router.get("/facilities", response_model=list[FacilityResponse])
async def list_facilities(db: AsyncSession = Depends(get_db)):
    return await facility_service.list_facilities(db)


@router.get("/facilities/nearby", response_model=list[FacilityResponse])
async def nearby_facilities(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_m: Optional[float] = Query(default=None, gt=0, le=200_000),
    db: AsyncSession = Depends(get_db),
):
    return await facility_service.find_nearby_facilities(
        db, latitude, longitude, radius_m or settings.NEARBY_FACILITY_RADIUS_M
    )
