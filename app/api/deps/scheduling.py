import structlog
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import (
    BookingConflict,
    ConfigurationError,
    NotFoundError,
    PolicyViolation,
    SchedulingError,
    UpstreamUnavailable,
)
from app.core.redis import redis_client
from app.services.availability import AvailabilityService
from app.services.booking import BookingService
from app.services.config_cache import ShopConfigCache
from app.services.notification_service import AvailabilityNotifier

logger = structlog.get_logger(__name__)

_STATUS_BY_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (BookingConflict, status.HTTP_409_CONFLICT),
    (PolicyViolation, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ConfigurationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (UpstreamUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def get_config_cache(request: Request) -> ShopConfigCache:
    """The application's shop config cache, created at startup."""
    return request.app.state.config_cache


def get_notifier() -> AvailabilityNotifier:
    return AvailabilityNotifier(redis_client)


def get_availability_service(
    db: AsyncSession = Depends(get_db),
    config_cache: ShopConfigCache = Depends(get_config_cache),
) -> AvailabilityService:
    return AvailabilityService(db, config_cache)


def get_booking_service(
    db: AsyncSession = Depends(get_db),
    config_cache: ShopConfigCache = Depends(get_config_cache),
    notifier: AvailabilityNotifier = Depends(get_notifier),
) -> BookingService:
    return BookingService(db, config_cache, notifier)


def to_http_exception(error: SchedulingError) -> HTTPException:
    """Map an engine error to the HTTP status the presentation layer expects."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    logger.warning(
        "Scheduling request failed",
        error_type=type(error).__name__,
        error=str(error),
        status_code=status_code,
    )
    return HTTPException(
        status_code=status_code,
        detail={"error": type(error).__name__, "message": str(error)},
    )
