import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base


class Staff(Base):
    """Barber working at a shop. Only active staff are offered for booking."""

    __tablename__ = "staff"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String, nullable=False)

    # Profile information
    avatar_url = Column(String, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Display settings
    display_order = Column(Integer, default=0, nullable=False)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    business = relationship("Business", back_populates="staff")
    working_hours = relationship(
        "WorkingHours", back_populates="staff", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Staff(id={self.id}, name='{self.name}', active={self.is_active})>"
