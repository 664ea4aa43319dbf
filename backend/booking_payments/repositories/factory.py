# backend/booking_payments/repositories/factory.py
"""
Repository Factory

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .status_history_repository import StatusHistoryRepository
    from .system_setting_repository import SystemSettingRepository
    from .therapist_repository import TherapistRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for bookings and occurrences."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_status_history_repository(db: Session) -> "StatusHistoryRepository":
        """Create repository for the booking status audit trail."""
        from .status_history_repository import StatusHistoryRepository

        return StatusHistoryRepository(db)

    @staticmethod
    def create_therapist_repository(db: Session) -> "TherapistRepository":
        """Create repository for therapist profiles."""
        from .therapist_repository import TherapistRepository

        return TherapistRepository(db)

    @staticmethod
    def create_system_setting_repository(db: Session) -> "SystemSettingRepository":
        """Create repository for back-office settings."""
        from .system_setting_repository import SystemSettingRepository

        return SystemSettingRepository(db)
