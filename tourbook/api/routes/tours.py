"""
Tour endpoints with Redis caching on list operations.
"""

from typing import Optional

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.api.deps import get_storage
from tourbook.api.routes.admin import to_admin_booking_response
from tourbook.core.logging import get_logger
from tourbook.core.security import get_current_user, require_admin
from tourbook.db.session import get_db
from tourbook.models.tour import Tour
from tourbook.models.user import User
from tourbook.schemas.booking import AdminBookingResponse, BookingResponse
from tourbook.schemas.tour import TourAnalytics, TourCreate, TourListResponse, TourResponse, TourUpdate
from tourbook.services import admin_service, tour_service
from tourbook.services.cache_service import get_cached_tours, invalidate_tour_cache, set_cached_tours
from tourbook.services.interfaces import ObjectStorage
from tourbook.services.reservation_service import get_active_hold

logger = get_logger(__name__)
router = APIRouter(prefix="/tours", tags=["Tours"])


def to_tour_response(tour: Tour, storage: ObjectStorage) -> TourResponse:
    response = TourResponse.model_validate(tour)
    response.image_url = storage.get_url(tour.cover_image_id)
    response.gallery_urls = [
        url for url in (storage.get_url(ref) for ref in tour.gallery_image_ids or []) if url
    ]
    return response


async def release_images(storage: ObjectStorage, refs: list[str]) -> None:
    """Release stored images after their tour is gone. Failures are per image."""
    for ref in refs:
        try:
            await storage.release(ref)
        except httpx.HTTPError as e:
            logger.error("image_release_failed", ref=ref, error=str(e))


@router.get("/", response_model=TourListResponse)
async def list_tours_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    """
    List tours with pagination.
    Results are cached in Redis for 5 minutes.
    Cache is invalidated whenever seat counts or tours change.
    """
    cached = await get_cached_tours(page, page_size, upcoming_only)
    if cached:
        logger.info("tours_list_cache_hit", page=page)
        cached["cached"] = True
        return TourListResponse(**cached)

    tours, total = await tour_service.list_tours(db, page, page_size, upcoming_only)

    response_data = {
        "tours": [to_tour_response(t, storage).model_dump() for t in tours],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }

    await set_cached_tours(page, page_size, upcoming_only, response_data)

    return TourListResponse(**response_data)


@router.post("/", response_model=TourResponse, status_code=status.HTTP_201_CREATED)
async def create_tour_endpoint(
    tour_data: TourCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    tour = await tour_service.create_tour(db, tour_data)
    await invalidate_tour_cache()
    return to_tour_response(tour, storage)


@router.get("/{tour_id}", response_model=TourResponse)
async def get_tour_endpoint(
    tour_id: int,
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    """Get a single tour. Not cached (needs real-time seat counts)."""
    tour = await tour_service.get_tour(db, tour_id)
    return to_tour_response(tour, storage)


@router.patch("/{tour_id}", response_model=TourResponse)
async def update_tour_endpoint(
    tour_id: int,
    tour_data: TourUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    tour = await tour_service.update_tour(db, tour_id, tour_data)
    await invalidate_tour_cache()
    return to_tour_response(tour, storage)


@router.post("/{tour_id}/cancel", response_model=TourResponse)
async def cancel_tour_endpoint(
    tour_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    """
    Cancel a tour. Refused while bookings await a payment decision;
    confirmed bookings then need a refund each.
    """
    tour = await admin_service.cancel_tour(db, tour_id)
    await invalidate_tour_cache()
    return to_tour_response(tour, storage)


@router.delete("/{tour_id}")
async def delete_tour_endpoint(
    tour_id: int,
    background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    """Delete a tour without active bookings and release its images."""
    image_refs = await admin_service.delete_tour(db, tour_id)
    # Images go only once the delete is durable
    await db.commit()
    if image_refs:
        background_tasks.add_task(release_images, storage, image_refs)
    await invalidate_tour_cache()
    return {"message": "Tour deleted successfully", "tour_id": tour_id, "images_released": len(image_refs)}


@router.get("/{tour_id}/analytics", response_model=TourAnalytics)
async def tour_analytics_endpoint(
    tour_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await tour_service.get_tour_analytics(db, tour_id)


@router.get("/{tour_id}/bookings", response_model=list[AdminBookingResponse])
async def tour_bookings_endpoint(
    tour_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    bookings = await tour_service.list_tour_bookings(db, tour_id)
    return [to_admin_booking_response(b, storage) for b in bookings]


@router.get("/{tour_id}/hold", response_model=Optional[BookingResponse])
async def current_hold_endpoint(
    tour_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's live hold on this tour, if any, so checkout can resume."""
    return await get_active_hold(db, user.id, tour_id)
