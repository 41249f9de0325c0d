"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ..accounts.schemas import ImageRef
from ..listings.schemas import Pagination


class SlotOut(BaseModel):
    day: str
    date: Optional[str] = None
    start_time: str
    end_time: str


class BookingStatusUpdate(BaseModel):
    """Owner decision on a pending booking"""

    status: str


class PartySummary(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    business_name: Optional[str] = None


class ListingBrief(BaseModel):
    id: str
    name: Optional[str] = None
    featured_image: Optional[str] = None
    location: Optional[dict] = None
    pricing: Optional[float] = None


class BookingResponse(BaseModel):
    id: str
    customer_id: str
    owner_id: str
    listing_id: str
    slot: SlotOut
    status: str
    total_amount: float
    payment_screenshot: ImageRef
    decided_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    customer: Optional[PartySummary] = None
    owner: Optional[PartySummary] = None
    listing: Optional[ListingBrief] = None


class BookingListResponse(BaseModel):
    items: list[BookingResponse]
    pagination: Pagination
