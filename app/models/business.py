import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base


class Business(Base):
    """Barbershop with timezone, holiday calendar and booking policy."""

    __tablename__ = "businesses"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True)
    name = Column(String(255), nullable=False)

    # Profile
    description = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)

    # Location & timezone
    timezone = Column(String(50), nullable=False, default="UTC")
    holiday_country = Column(String(2), nullable=True)  # ISO 3166-1 alpha-2

    # Booking policies, validated by schemas.business.BookingPolicySettings
    policy = Column(JSON, nullable=True)

    # Business settings
    is_active = Column(Boolean, default=True, nullable=False)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    services = relationship("Service", back_populates="business")
    staff = relationship("Staff", back_populates="business")
    capacity_configs = relationship("CapacityConfig", back_populates="business")

    def __repr__(self):
        return f"<Business(id={self.id}, name='{self.name}', tz={self.timezone})>"
