from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.scheduling import (
    get_availability_service,
    get_booking_service,
    get_config_cache,
    to_http_exception,
)
from app.core.database import get_db
from app.core.exceptions import SchedulingError
from app.schemas.booking import BlockCreate, BlockResponse, HolidayImportResponse
from app.schemas.scheduling import EffectiveScheduleResponse
from app.services.availability import AvailabilityService
from app.services.booking import BookingService
from app.services.config_cache import ShopConfigCache
from app.services.holidays import HolidayService
from app.services.store import SchedulingStore

router = APIRouter()


@router.get("/staff/{staff_uuid}/schedule", response_model=EffectiveScheduleResponse)
async def get_staff_schedule(
    staff_uuid: UUID,
    day: date = Query(..., alias="date", description="Day to resolve"),
    service: AvailabilityService = Depends(get_availability_service),
) -> EffectiveScheduleResponse:
    """
    Effective working windows and occupancy of a staff member on one day.

    Meant for owner tooling: configuration problems (inverted hours, breaks
    outside the working window, overlapping temporary breaks) come back as
    422 with the offending values instead of being worked around.
    """
    try:
        return await service.get_effective_schedule(staff_uuid, day)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post(
    "/staff/{staff_uuid}/blocks",
    response_model=BlockResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_calendar_block(
    staff_uuid: UUID,
    block: BlockCreate,
    service: BookingService = Depends(get_booking_service),
) -> BlockResponse:
    """Hold time on a staff calendar without a customer."""
    try:
        return await service.commit_block(staff_uuid, block)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post("/shops/{shop_uuid}/config/invalidate")
async def invalidate_shop_config(
    shop_uuid: UUID,
    db: AsyncSession = Depends(get_db),
    config_cache: ShopConfigCache = Depends(get_config_cache),
) -> dict:
    """Drop the cached booking policy and capacity rules of a shop."""
    try:
        shop = await SchedulingStore(db).get_shop_by_uuid(shop_uuid)
    except SchedulingError as e:
        raise to_http_exception(e)

    if shop is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shop not found")

    config_cache.invalidate(shop.id)
    return {"shop_uuid": str(shop.uuid), "invalidated": True}


@router.post("/shops/{shop_uuid}/holidays/import", response_model=HolidayImportResponse)
async def import_holidays(
    shop_uuid: UUID,
    year: int = Query(..., ge=2000, le=2100),
    country: Optional[str] = Query(None, min_length=2, max_length=2),
    db: AsyncSession = Depends(get_db),
) -> HolidayImportResponse:
    """Import a year's national holidays as shop-wide closed days."""
    store = SchedulingStore(db)
    try:
        shop = await store.get_shop_by_uuid(shop_uuid)
        if shop is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shop not found")

        used_country, imported, skipped = await HolidayService.import_national_holidays(
            store, shop, year, country
        )
    except SchedulingError as e:
        raise to_http_exception(e)

    return HolidayImportResponse(
        shop_uuid=shop.uuid,
        country=used_country,
        year=year,
        imported=imported,
        skipped=skipped,
    )
