from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory
from .status_history_repository import StatusHistoryRepository
from .system_setting_repository import SystemSettingRepository
from .therapist_repository import TherapistRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "RepositoryFactory",
    "StatusHistoryRepository",
    "SystemSettingRepository",
    "TherapistRepository",
]
