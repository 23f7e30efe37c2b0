"""
Process-wide cache of per-shop booking configuration.

Holds the booking policy, capacity rules and timezone of each shop. Entries
never expire on their own; owner tooling calls ``invalidate`` after changing
configuration. The cache is created once per application and injected.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from pydantic import ValidationError

from app.core.exceptions import ConfigurationError
from app.models.business import Business
from app.schemas.business import BookingPolicySettings, validate_timezone
from app.services.capacity import CapacityModel, CapacityRule
from app.utils.locks import ReadWriteLock

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ShopConfig:
    shop_id: int
    timezone: str
    policy: BookingPolicySettings
    capacity: CapacityModel
    holiday_country: Optional[str] = None

    @property
    def granularity(self) -> int:
        return self.policy.slot_granularity_minutes


class ShopConfigCache:
    def __init__(self):
        self._lock = ReadWriteLock()
        self._entries: dict[int, ShopConfig] = {}
        self._generation = 0

    def peek(self, shop_id: int) -> Optional[ShopConfig]:
        with self._lock.read():
            return self._entries.get(shop_id)

    async def get(self, shop: Business, store) -> ShopConfig:
        """Cached configuration of a shop, loading it on a miss.

        A load that raced an invalidation is returned to its caller but not
        stored, so a stale read never outlives the invalidation.
        """
        with self._lock.read():
            config = self._entries.get(shop.id)
            generation = self._generation
        if config is not None:
            return config

        config = await load_shop_config(shop, store)

        with self._lock.write():
            if self._generation == generation:
                self._entries[shop.id] = config
            else:
                logger.debug("Discarding config load raced by invalidation", shop_id=shop.id)
        return config

    def invalidate(self, shop_id: Optional[int] = None) -> None:
        """Drop one shop's entry, or every entry when no shop is given."""
        with self._lock.write():
            self._generation += 1
            if shop_id is None:
                self._entries.clear()
            else:
                self._entries.pop(shop_id, None)

        logger.info("Shop config invalidated", shop_id=shop_id)


async def load_shop_config(shop: Business, store) -> ShopConfig:
    try:
        policy = await store.get_booking_policy(shop)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid booking policy for shop {shop.id}: {e}") from e

    try:
        timezone = validate_timezone(shop.timezone or "UTC")
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    rows = await store.get_capacity_config(shop.id)
    return ShopConfig(
        shop_id=shop.id,
        timezone=timezone,
        policy=policy,
        capacity=CapacityModel([CapacityRule.from_model(row) for row in rows]),
        holiday_country=shop.holiday_country,
    )
