"""Availability router - Public slot availability for a listing"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ..listings.schemas import AvailabilityEntry
from .service import AvailabilityService

router = APIRouter(prefix="/listings", tags=["Availability"])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


@router.get("/{listing_id}/availability", response_model=list[AvailabilityEntry])
async def get_availability(
    listing_id: str,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Slot templates with their booked state, optionally expanded over a date range"""
    return service.get_listing_availability(listing_id, start_date, end_date)
