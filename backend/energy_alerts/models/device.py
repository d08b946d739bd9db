from sqlalchemy import Column, ForeignKey, String, func

from energy_alerts.core.database import Base
from energy_alerts.models.shared import UTCDateTime, UUIDType, generate_uuid


class Device(Base):
    __tablename__ = "devices"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    home_id = Column(
        UUIDType,
        ForeignKey("homes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    device_type = Column(String(50), nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())
