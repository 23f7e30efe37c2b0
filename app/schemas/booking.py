from datetime import date as date_type, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.calendar_block import BlockType


class BookingCommitRequest(BaseModel):
    shop_uuid: UUID
    staff_uuid: UUID
    service_uuids: List[UUID] = Field(..., min_length=1)
    start_at: datetime
    end_at: datetime
    customer_ref: str = Field(..., min_length=1, max_length=255)
    customer_notes: Optional[str] = None

    @field_validator("start_at", "end_at")
    @classmethod
    def validate_naive(cls, v):
        # Engine times are shop-local wall clock
        if v.tzinfo is not None:
            raise ValueError("Times must be shop-local without a UTC offset")
        return v

    @model_validator(mode="after")
    def validate_interval(self):
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class AppointmentResponse(BaseModel):
    uuid: UUID
    staff_uuid: UUID
    service_uuids: List[UUID]
    customer_ref: str
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    total_price: Decimal
    status: str
    confirmation_code: str
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BlockCreate(BaseModel):
    start_at: datetime
    end_at: datetime
    block_type: BlockType = BlockType.MANUAL_HOLD
    reason: Optional[str] = None

    @model_validator(mode="after")
    def validate_interval(self):
        if self.start_at.tzinfo is not None or self.end_at.tzinfo is not None:
            raise ValueError("Times must be shop-local without a UTC offset")
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class BlockResponse(BaseModel):
    id: int
    staff_uuid: UUID
    start_at: datetime
    end_at: datetime
    block_type: str
    reason: Optional[str] = None


class HolidayImportResponse(BaseModel):
    shop_uuid: UUID
    country: str
    year: int
    imported: List[date_type] = Field(default_factory=list)
    skipped: int = 0
