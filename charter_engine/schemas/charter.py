"""Charter-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from .common import Money


class CreateCharterRequest(BaseModel):
    """Request schema for registering a charter."""

    captain_id: str = Field(..., min_length=1, max_length=64, description="Captain (vessel) running the charter")
    name: str = Field(..., min_length=1, max_length=255, description="Charter name")
    price_half_day: int = Field(..., ge=0, description="Half-day price in minor units")
    price_full_day: int = Field(..., ge=0, description="Full-day price in minor units")
    currency: str = Field("USD", pattern=r"^[A-Z]{3}$", description="ISO 4217 currency code")


class UpdateCharterPriceRequest(BaseModel):
    """Request schema for changing a charter's price list."""

    charter_id: str = Field(..., description="Charter to reprice")
    price_half_day: int | None = Field(None, ge=0, description="New half-day price in minor units")
    price_full_day: int | None = Field(None, ge=0, description="New full-day price in minor units")


class Charter(BaseModel):
    """Charter response schema."""

    id: str = Field(..., description="Unique charter ID")
    captain_id: str = Field(..., description="Captain running the charter")
    name: str = Field(..., description="Charter name")
    price_half_day: Money = Field(..., description="Half-day price")
    price_full_day: Money = Field(..., description="Full-day price")
    price_updated_at: datetime = Field(..., description="Last price change (ISO 8601)")
