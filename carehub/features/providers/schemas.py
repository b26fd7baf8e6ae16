"""
Pydantic schemas for provider practice requests/responses.
"""
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict


class PracticeBase(BaseModel):
    """Base schema for a practice."""
    practice_name: str = Field(..., min_length=1, max_length=200)
    npi: str | None = Field(None, pattern=r"^\d{10}$", description="10-digit National Provider Identifier")
    organization_id: int | None = None
    phone: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None


class PracticeCreate(PracticeBase):
    """Schema for creating a practice. Providers default to themselves."""
    provider_id: int | None = None


class PracticeResponse(PracticeBase):
    """Schema for practice response."""
    id: int
    provider_id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
