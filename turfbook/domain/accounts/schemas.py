"""Account domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_phone


class ImageRef(BaseModel):
    """An uploaded image: public URL plus the storage object id"""

    url: str
    object_id: str


class SlotTemplateIn(BaseModel):
    day: str
    start_time: str
    end_time: str


class SlotTemplateOut(BaseModel):
    day: str
    start_time: str
    end_time: str


class Coordinates(BaseModel):
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class Location(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class AccountUpdate(BaseModel):
    """Schema for editing the basic profile"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone_field(cls, v):
        if v:
            return validate_phone(v)
        return v


class PromoteRequest(BaseModel):
    business_name: Optional[str] = None


class OwnerProfileUpdate(BaseModel):
    """
    Owner-only attributes.

    Every field is optional here so the service can report the missing one by
    name instead of a generic 422.
    """

    business_name: Optional[str] = None
    phone: Optional[str] = None
    sports_offered: Optional[list[str]] = None
    custom_sport: Optional[str] = None
    amenities: Optional[list[str]] = None
    about: Optional[str] = None
    pricing: Optional[float] = None
    available_slots: Optional[list[SlotTemplateIn]] = None
    location: Optional[Location] = None
    upi_qr_code: Optional[ImageRef] = None


class AccountResponse(BaseModel):
    id: str
    firebase_uid: str
    name: str
    email: str
    role: str
    phone: Optional[str] = None
    is_active: bool
    email_verified: bool
    business_name: Optional[str] = None
    sports_offered: Optional[list[str]] = None
    custom_sport: Optional[str] = None
    amenities: Optional[list[str]] = None
    about: Optional[str] = None
    pricing: Optional[float] = None
    available_slots: Optional[list[SlotTemplateOut]] = None
    location: Optional[dict] = None
    upi_qr_code: Optional[ImageRef] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompletenessResponse(BaseModel):
    complete: bool
    missing_fields: list[str]
