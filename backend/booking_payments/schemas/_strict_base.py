"""Strict schema baselines with forbidden extras by default."""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Neutral strict base for response DTOs and decoded events."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class StrictRequestModel(StrictModel):
    """Request DTO base that always forbids unexpected fields."""

    # Wire names (e.g. ``bookingData``) are accepted alongside field names.
    model_config = ConfigDict(extra="forbid", validate_assignment=True, populate_by_name=True)
