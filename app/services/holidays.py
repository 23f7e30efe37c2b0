"""
National holiday import.

Turns a country calendar from the `holidays` package into shop-wide closed
date exceptions that owners can review like any manual closure.
"""

from datetime import date
from functools import lru_cache
from typing import Optional

import holidays
import structlog

from app.core.config import settings
from app.core.exceptions import ConfigurationError
from app.models.business import Business
from app.models.date_exception import DateException, ExceptionSource, ExceptionType

logger = structlog.get_logger(__name__)


class HolidayService:
    """National holiday calendars from the `holidays` library.

    Holidays never reach the resolver directly: they are imported as
    shop-wide closed date exceptions, which owners can then edit or delete.
    """

    @staticmethod
    @lru_cache(maxsize=32)
    def _country_holidays(country: str, year: int) -> holidays.HolidayBase:
        try:
            return holidays.country_holidays(country, years=year)
        except NotImplementedError:
            raise ConfigurationError(f"No holiday calendar for country: {country}")

    @classmethod
    def holidays_for_year(cls, country: str, year: int) -> list[tuple[date, str]]:
        return sorted(cls._country_holidays(country, year).items())

    @classmethod
    async def import_national_holidays(
        cls, store, shop: Business, year: int, country: Optional[str] = None
    ) -> tuple[str, list[date], int]:
        """Create shop-wide closures for a year's national holidays.

        Dates that already carry a shop-wide exception are left alone, so
        importing twice is harmless. Returns (country, imported dates, skipped).
        """
        country = (country or shop.holiday_country or settings.DEFAULT_HOLIDAY_COUNTRY or "").upper()
        if not country:
            raise ConfigurationError(f"Shop {shop.id} has no holiday country configured")

        entries = cls.holidays_for_year(country, year)
        existing = await store.get_shop_exception_dates(
            shop.id, date(year, 1, 1), date(year, 12, 31)
        )

        created = [
            DateException(
                business_id=shop.id,
                staff_id=None,
                date=day,
                exception_type=ExceptionType.CLOSED.value,
                reason=name,
                source=ExceptionSource.NATIONAL_HOLIDAY.value,
            )
            for day, name in entries
            if day not in existing
        ]
        if created:
            await store.add_date_exceptions(created)

        logger.info(
            "National holidays imported",
            shop_id=shop.id,
            country=country,
            year=year,
            imported=len(created),
            skipped=len(entries) - len(created),
        )
        return country, [exception.date for exception in created], len(entries) - len(created)
