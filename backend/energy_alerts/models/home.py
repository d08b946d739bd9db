from sqlalchemy import Column, String, func
from sqlalchemy.types import JSON

from energy_alerts.core.database import Base
from energy_alerts.models.shared import UTCDateTime, UUIDType, generate_uuid


class Home(Base):
    """Home scope metadata, owned by the structure management service.

    ``pricing_model`` holds a serialized ``PricingModel`` (flat, time_of_use or
    tiered). Homes without one are costed from the readings' stored cost.
    """

    __tablename__ = "homes"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    owner_id = Column(UUIDType, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    pricing_model = Column(JSON, nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())
