"""Listing router - FastAPI endpoints for turf listings"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_owner
from ...database import get_db
from ...models import Account
from .schemas import (
    ListingActiveUpdate,
    ListingCreate,
    ListingDetailResponse,
    ListingResponse,
    ListingSearchResponse,
    ListingUpdate,
)
from .service import ListingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/listings", tags=["Listings"])


def get_listing_service(db: Session = Depends(get_db)) -> ListingService:
    """Dependency injection for ListingService"""
    return ListingService(db)


# ============================================================================
# PUBLIC BROWSING
# ============================================================================


@router.get("", response_model=ListingSearchResponse)
async def search_listings(
    search: Optional[str] = Query(None),
    sport: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort_by: Optional[str] = Query(None),
    page: int = Query(1),
    page_size: int = Query(10),
    service: ListingService = Depends(get_listing_service),
):
    """Search active turfs with filters, sorting, pagination and facets"""
    return service.search_listings(
        search=search,
        sport=sport,
        city=city,
        min_price=min_price,
        max_price=max_price,
        sort_by=sort_by,
        page=page,
        page_size=page_size,
    )


# ============================================================================
# OWNER MANAGEMENT
# ============================================================================


@router.get("/mine", response_model=list[ListingResponse])
async def get_my_listings(
    current_user: Account = Depends(get_current_owner),
    service: ListingService = Depends(get_listing_service),
):
    return service.get_owner_listings(current_user)


@router.post("", response_model=ListingResponse, status_code=201)
async def create_listing(
    data: ListingCreate,
    current_user: Account = Depends(get_current_owner),
    service: ListingService = Depends(get_listing_service),
):
    """Create the owner's turf listing"""
    return service.create_listing(current_user, data)


@router.get("/{listing_id}", response_model=ListingDetailResponse)
async def get_listing(
    listing_id: str,
    service: ListingService = Depends(get_listing_service),
):
    """Public turf detail with weekly availability"""
    return service.get_listing_detail(listing_id)


@router.patch("/{listing_id}", response_model=ListingResponse)
async def update_listing(
    listing_id: str,
    data: ListingUpdate,
    current_user: Account = Depends(get_current_owner),
    service: ListingService = Depends(get_listing_service),
):
    return service.update_listing(current_user, listing_id, data)


@router.patch("/{listing_id}/active", response_model=ListingResponse)
async def set_listing_active(
    listing_id: str,
    data: ListingActiveUpdate,
    current_user: Account = Depends(get_current_owner),
    service: ListingService = Depends(get_listing_service),
):
    """Activate or deactivate a turf (soft delete)"""
    return service.set_active(current_user, listing_id, data.is_active)
