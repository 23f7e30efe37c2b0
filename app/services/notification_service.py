from datetime import date, datetime, timezone
from uuid import UUID

import structlog

from app.core.config import settings
from app.core.redis import RedisClient, redis_client

logger = structlog.get_logger(__name__)


class AvailabilityNotifier:
    """Publishes availability-changed events for live calendar views.

    Delivery is best effort: a failed publish is logged and never reaches
    the booking that triggered it.
    """

    def __init__(self, client: RedisClient = redis_client, channel: str = settings.AVAILABILITY_CHANNEL):
        self.client = client
        self.channel = channel

    async def on_booking_committed(
        self, staff_uuid: UUID, day: date, new_available_count: int
    ) -> None:
        await self._publish("booking_committed", staff_uuid, day, new_available_count)

    async def on_booking_cancelled(
        self, staff_uuid: UUID, day: date, new_available_count: int
    ) -> None:
        await self._publish("booking_cancelled", staff_uuid, day, new_available_count)

    async def _publish(
        self, event: str, staff_uuid: UUID, day: date, new_available_count: int
    ) -> None:
        message = {
            "event": event,
            "staff_uuid": str(staff_uuid),
            "date": day.isoformat(),
            "available_slots": new_available_count,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            receivers = await self.client.publish(self.channel, message)
            logger.debug(
                "Availability update published",
                update=event,
                staff_uuid=str(staff_uuid),
                receivers=receivers,
            )
        except Exception as e:
            logger.warning(
                "Failed to publish availability update",
                channel=self.channel,
                update=event,
                staff_uuid=str(staff_uuid),
                error=str(e),
            )
