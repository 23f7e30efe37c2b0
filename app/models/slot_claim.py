from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from app.core.database import Base


# Claim cells are counted from midnight and do not follow the shop's slot
# granularity, so reservations made under different policies still collide.
CLAIM_GRID_MINUTES = 5


class SlotClaim(Base):
    """One claim-grid cell held by a reservation.

    Every appointment or calendar block inserted through the commit protocol
    claims each ``CLAIM_GRID_MINUTES`` cell it touches. Two overlapping
    intervals always touch a common cell, so the unique constraint on
    ``(staff_id, slot_start)`` makes overlapping reservations for the same
    staff member impossible at the storage layer.
    """

    __tablename__ = "slot_claims"

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False)
    slot_start = Column(DateTime, nullable=False)

    appointment_id = Column(
        Integer, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=True
    )
    block_id = Column(
        Integer, ForeignKey("calendar_blocks.id", ondelete="CASCADE"), nullable=True
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("staff_id", "slot_start", name="uq_slot_claim_staff_slot"),
        CheckConstraint(
            "(appointment_id IS NOT NULL) OR (block_id IS NOT NULL)",
            name="check_slot_claim_owner",
        ),
    )

    def __repr__(self):
        return f"<SlotClaim(staff_id={self.staff_id}, slot_start={self.slot_start})>"
