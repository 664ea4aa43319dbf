# backend/booking_payments/repositories/therapist_repository.py
from sqlalchemy.orm import Session

from ..models.therapist import TherapistProfile
from .base_repository import BaseRepository


class TherapistRepository(BaseRepository[TherapistProfile]):
    def __init__(self, db: Session):
        super().__init__(db, TherapistProfile)
