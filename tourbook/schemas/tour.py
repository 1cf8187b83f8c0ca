"""
Pydantic schemas for tour-related request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TourCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=2000)
    price: int = Field(..., ge=0)
    start_date: datetime
    capacity: int = Field(..., gt=0, le=100000)
    cover_image_id: Optional[str] = Field(None, max_length=255)
    gallery_image_ids: list[str] = Field(default_factory=list)


class TourUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    price: Optional[int] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    capacity: Optional[int] = Field(None, gt=0, le=100000)
    cover_image_id: Optional[str] = Field(None, max_length=255)
    gallery_image_ids: Optional[list[str]] = None


class TourResponse(BaseModel):
    id: int
    title: str
    description: str
    price: int
    start_date: datetime
    capacity: int
    booked_count: int
    available_seats: int
    cancelled: bool
    is_completed: bool
    image_url: Optional[str] = None
    gallery_urls: list[str] = Field(default_factory=list)
    created_at: datetime

    model_config = {"from_attributes": True}


class TourListResponse(BaseModel):
    tours: list[TourResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class TourAnalytics(BaseModel):
    tour_id: int
    total_revenue: int
    confirmed_bookings: int
    confirmed_tickets: int
    pending_bookings: int
    refunded_bookings: int
    occupancy_percent: int
