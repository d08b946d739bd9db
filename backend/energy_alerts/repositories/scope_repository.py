from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from energy_alerts.models.device import Device
from energy_alerts.models.home import Home


class HomeRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, home_id: UUID) -> Home | None:
        return self.db.query(Home).filter(Home.id == home_id).first()


class DeviceRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, device_id: UUID) -> Device | None:
        return self.db.query(Device).filter(Device.id == device_id).first()
