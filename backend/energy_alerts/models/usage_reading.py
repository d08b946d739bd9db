"""UsageReading model: append-only meter samples produced by ingestion."""

from sqlalchemy import Column, ForeignKey, Index, Numeric

from energy_alerts.core.database import Base
from energy_alerts.models.shared import UTCDateTime, UUIDType, generate_uuid


class UsageReading(Base):
    __tablename__ = "usage_readings"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    home_id = Column(
        UUIDType,
        ForeignKey("homes.id", ondelete="CASCADE"),
        nullable=False,
    )
    device_id = Column(
        UUIDType,
        ForeignKey("devices.id", ondelete="CASCADE"),
        nullable=False,
    )
    kwh = Column(Numeric(12, 4), nullable=False)
    watts = Column(Numeric(12, 2), nullable=True)
    cost = Column(Numeric(12, 4), nullable=True)
    timestamp = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_usage_readings_home_timestamp", "home_id", "timestamp"),
        Index("ix_usage_readings_device_timestamp", "device_id", "timestamp"),
    )
