from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api.deps.scheduling import (
    get_availability_service,
    get_booking_service,
    to_http_exception,
)
from app.core.exceptions import SchedulingError
from app.schemas.booking import AppointmentResponse, BookingCommitRequest, CancelRequest
from app.schemas.scheduling import AvailabilityRequest, AvailabilityResult
from app.services.availability import AvailabilityService
from app.services.booking import BookingService

router = APIRouter()


@router.post("/availability/search", response_model=AvailabilityResult)
async def search_availability(
    request: AvailabilityRequest,
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResult:
    """
    Search bookable time slots for a set of services.

    Returns per-day, per-staff slot lists with the total duration and price
    of the requested services. When the window has no slot at all, the
    earliest bookable slot after it is returned as ``next_available_slot``.
    """
    try:
        return await service.query_availability(request)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post(
    "/appointments",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_public_appointment(
    request: BookingCommitRequest,
    service: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    """
    Book a slot previously returned by the availability search.

    The slot is re-validated against current bookings; 409 means another
    booking took it in the meantime and the client should search again.
    """
    try:
        return await service.commit_booking(request)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post("/appointments/{appointment_uuid}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_uuid: UUID,
    request: Optional[CancelRequest] = None,
    service: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    """Cancel an active appointment and release its slot."""
    try:
        reason = request.reason if request else None
        return await service.cancel_booking(appointment_uuid, reason=reason)
    except SchedulingError as e:
        raise to_http_exception(e)
