from datetime import date, datetime, time, timedelta, timezone
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from app.main import app
from app.models.date_exception import DateException, ExceptionType


def upcoming_tuesday() -> date:
    """A Tuesday far enough ahead that notice and cutoff rules never apply."""
    day = datetime.now(timezone.utc).date() + timedelta(days=3)
    while day.weekday() != 1:
        day += timedelta(days=1)
    return day


def client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.integration
@pytest.mark.usefixtures("override_get_db")
class TestAvailabilitySearch:
    @pytest.mark.asyncio
    async def test_search_returns_slots(self, sample_business, sample_staff, haircut, beard_trim):
        tuesday = upcoming_tuesday()

        async with client() as ac:
            response = await ac.post(
                "/api/v1/public/availability/search",
                json={
                    "shop_uuid": str(sample_business.uuid),
                    "service_uuids": [str(haircut.uuid), str(beard_trim.uuid)],
                    "start_date": tuesday.isoformat(),
                    "days": 1,
                },
            )

        assert response.status_code == 200
        data = response.json()
        assert data["total_duration_minutes"] == 45
        assert data["total_price"] == "35.50"
        assert data["next_available_slot"] is None
        assert data["errors"] == []

        day = data["days"][0]
        assert day["date"] == tuesday.isoformat()
        assert day["day_name"] == "Tuesday"
        staff = day["staff"][0]
        assert staff["staff_uuid"] == str(sample_staff.uuid)
        assert staff["slots"][0]["start_time"] == "09:00"
        assert staff["slots"][0]["end_time"] == "09:45"

    @pytest.mark.asyncio
    async def test_search_suggests_next_available(self, db, sample_business, sample_staff, haircut):
        tuesday = upcoming_tuesday()
        db.add(
            DateException(
                business_id=sample_business.id,
                date=tuesday,
                exception_type=ExceptionType.CLOSED.value,
                reason="Staff training",
            )
        )
        await db.commit()

        async with client() as ac:
            response = await ac.post(
                "/api/v1/public/availability/search",
                json={
                    "shop_uuid": str(sample_business.uuid),
                    "service_uuids": [str(haircut.uuid)],
                    "start_date": tuesday.isoformat(),
                    "days": 1,
                },
            )

        assert response.status_code == 200
        data = response.json()
        assert data["days"] == []
        suggestion = data["next_available_slot"]
        assert suggestion["date"] == (tuesday + timedelta(days=1)).isoformat()
        assert suggestion["start_time"] == "09:00"

    @pytest.mark.asyncio
    async def test_unknown_service_is_404(self, sample_business, sample_staff, haircut):
        async with client() as ac:
            response = await ac.post(
                "/api/v1/public/availability/search",
                json={
                    "shop_uuid": str(sample_business.uuid),
                    "service_uuids": [str(uuid4())],
                    "start_date": upcoming_tuesday().isoformat(),
                },
            )

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NotFoundError"

    @pytest.mark.asyncio
    async def test_duplicate_services_rejected(self, sample_business, haircut):
        async with client() as ac:
            response = await ac.post(
                "/api/v1/public/availability/search",
                json={
                    "shop_uuid": str(sample_business.uuid),
                    "service_uuids": [str(haircut.uuid), str(haircut.uuid)],
                    "start_date": upcoming_tuesday().isoformat(),
                },
            )

        assert response.status_code == 422


@pytest.mark.integration
@pytest.mark.usefixtures("override_get_db")
class TestBookingEndpoints:
    def booking_payload(self, business, staff, service, start_at: datetime) -> dict:
        return {
            "shop_uuid": str(business.uuid),
            "staff_uuid": str(staff.uuid),
            "service_uuids": [str(service.uuid)],
            "start_at": start_at.isoformat(),
            "end_at": (start_at + timedelta(minutes=service.duration_minutes)).isoformat(),
            "customer_ref": "customer-7",
        }

    @pytest.mark.asyncio
    async def test_book_and_cancel(self, sample_business, sample_staff, haircut, mock_notifier):
        start_at = datetime.combine(upcoming_tuesday(), time(10, 0))
        payload = self.booking_payload(sample_business, sample_staff, haircut, start_at)

        async with client() as ac:
            created = await ac.post("/api/v1/public/appointments", json=payload)
            assert created.status_code == 201
            appointment = created.json()
            assert appointment["status"] == "pending"
            assert len(appointment["confirmation_code"]) == 6

            again = await ac.post("/api/v1/public/appointments", json=payload)
            assert again.status_code == 409
            assert again.json()["detail"]["error"] == "BookingConflict"

            cancelled = await ac.post(
                f"/api/v1/public/appointments/{appointment['uuid']}/cancel",
                json={"reason": "Changed plans"},
            )
            assert cancelled.status_code == 200
            assert cancelled.json()["status"] == "cancelled"
            assert cancelled.json()["cancellation_reason"] == "Changed plans"

            rebooked = await ac.post("/api/v1/public/appointments", json=payload)
            assert rebooked.status_code == 201

        mock_notifier.on_booking_committed.assert_awaited()
        mock_notifier.on_booking_cancelled.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_without_body(self, sample_business, sample_staff, haircut):
        start_at = datetime.combine(upcoming_tuesday(), time(11, 0))

        async with client() as ac:
            created = await ac.post(
                "/api/v1/public/appointments",
                json=self.booking_payload(sample_business, sample_staff, haircut, start_at),
            )
            uuid = created.json()["uuid"]

            first = await ac.post(f"/api/v1/public/appointments/{uuid}/cancel")
            second = await ac.post(f"/api/v1/public/appointments/{uuid}/cancel")

        assert first.status_code == 200
        assert first.json()["cancellation_reason"] is None
        assert second.status_code == 422
        assert second.json()["detail"]["error"] == "PolicyViolation"

    @pytest.mark.asyncio
    async def test_cancel_unknown_is_404(self):
        async with client() as ac:
            response = await ac.post(f"/api/v1/public/appointments/{uuid4()}/cancel")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_book_during_break_is_409(self, sample_business, sample_staff, haircut):
        start_at = datetime.combine(upcoming_tuesday(), time(13, 0))

        async with client() as ac:
            response = await ac.post(
                "/api/v1/public/appointments",
                json=self.booking_payload(sample_business, sample_staff, haircut, start_at),
            )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_book_beyond_horizon_is_422(self, sample_business, sample_staff, haircut):
        start_at = datetime.combine(upcoming_tuesday() + timedelta(days=70), time(10, 0))

        async with client() as ac:
            response = await ac.post(
                "/api/v1/public/appointments",
                json=self.booking_payload(sample_business, sample_staff, haircut, start_at),
            )

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "PolicyViolation"

    @pytest.mark.asyncio
    async def test_offset_times_rejected(self, sample_business, sample_staff, haircut):
        start_at = datetime.combine(upcoming_tuesday(), time(10, 0), tzinfo=timezone.utc)

        async with client() as ac:
            response = await ac.post(
                "/api/v1/public/appointments",
                json=self.booking_payload(sample_business, sample_staff, haircut, start_at),
            )

        assert response.status_code == 422
