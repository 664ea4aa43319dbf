# backend/booking_payments/repositories/system_setting_repository.py
from typing import Optional

from sqlalchemy.orm import Session

from ..models.system_setting import SystemSetting
from .base_repository import BaseRepository


class SystemSettingRepository(BaseRepository[SystemSetting]):
    def __init__(self, db: Session):
        super().__init__(db, SystemSetting)

    def get_value(self, key: str) -> Optional[str]:
        """Stored value for ``key``, or None when the setting is absent."""
        setting = self.get_by_id(key)
        return setting.value if setting is not None else None
