"""Listing domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ..accounts.schemas import ImageRef, Location, SlotTemplateIn, SlotTemplateOut


class ListingCreate(BaseModel):
    """
    Schema for creating a listing.

    Omitted fields default from the owner profile.
    """

    name: str
    description: Optional[str] = None
    images: list[ImageRef]
    sports_offered: Optional[list[str]] = None
    custom_sport: Optional[str] = None
    amenities: Optional[list[str]] = None
    available_slots: Optional[list[SlotTemplateIn]] = None
    pricing: Optional[float] = None
    location: Optional[Location] = None
    payment_qr_code: Optional[ImageRef] = None


class ListingUpdate(BaseModel):
    """Schema for a partial listing update"""

    name: Optional[str] = None
    description: Optional[str] = None
    images: Optional[list[ImageRef]] = None
    sports_offered: Optional[list[str]] = None
    custom_sport: Optional[str] = None
    amenities: Optional[list[str]] = None
    available_slots: Optional[list[SlotTemplateIn]] = None
    pricing: Optional[float] = None
    location: Optional[Location] = None
    payment_qr_code: Optional[ImageRef] = None


class ListingActiveUpdate(BaseModel):
    is_active: bool


class ContactInfo(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None
    business_name: Optional[str] = None


class ListingResponse(BaseModel):
    """Owner view of a listing"""

    id: str
    owner_id: str
    name: str
    description: str
    images: list[ImageRef]
    featured_image: Optional[str] = None
    sports_offered: list[str]
    custom_sport: Optional[str] = None
    amenities: list[str]
    available_slots: list[SlotTemplateOut]
    pricing: float
    location: dict
    contact_info: ContactInfo
    payment_qr_code: Optional[ImageRef] = None
    is_active: bool
    rating: float
    review_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AvailabilityEntry(BaseModel):
    day: str
    date: Optional[str] = None
    start_time: str
    end_time: str
    is_booked: bool


class ListingDetailResponse(ListingResponse):
    """Public detail view; includes the QR code customers pay to"""

    availability: list[AvailabilityEntry] = []


class ListingSummary(BaseModel):
    """Search result item; never carries the payment QR code"""

    id: str
    owner_id: str
    name: str
    description: str
    featured_image: Optional[str] = None
    images: list[ImageRef]
    sports_offered: list[str]
    custom_sport: Optional[str] = None
    amenities: list[str]
    pricing: float
    location: dict
    business_name: Optional[str] = None
    rating: float
    review_count: int
    slot_count: int
    created_at: Optional[datetime] = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_prev_page: bool


class SportFacet(BaseModel):
    sport: str
    count: int


class PriceRange(BaseModel):
    min: float
    max: float


class SearchFacets(BaseModel):
    cities: list[str]
    sports: list[SportFacet]
    price_range: PriceRange


class ListingSearchResponse(BaseModel):
    items: list[ListingSummary]
    pagination: Pagination
    facets: SearchFacets
