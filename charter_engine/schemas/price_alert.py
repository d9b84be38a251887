"""Price alert schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from ..models.booking import TripDuration
from ..models.price_alert import PriceAlertStatus


class CreatePriceAlertRequest(BaseModel):
    """Request schema for watching a charter's price."""

    charter_id: str = Field(..., description="Charter to watch")
    customer_ref: str = Field(..., min_length=1, max_length=128, description="Customer reference")
    target_price: int = Field(..., ge=0, description="Notify at or below this price (minor units)")
    duration: TripDuration = Field(TripDuration.HALF_DAY, description="Which price in the list to watch")


class CancelPriceAlertRequest(BaseModel):
    """Request schema for removing a price alert."""

    alert_id: str
    customer_ref: str = Field(..., min_length=1, max_length=128)


class ListPriceAlertsRequest(BaseModel):
    """Request schema for a customer's alerts."""

    customer_ref: str = Field(..., min_length=1, max_length=128)


class PriceAlert(BaseModel):
    """Price alert response schema."""

    id: str
    charter_id: str
    customer_ref: str
    duration: TripDuration
    target_price: int
    price_at_creation: int
    last_seen_price: int
    status: PriceAlertStatus
    trigger_count: int
    last_triggered_at: datetime | None = None
    created_at: datetime


class PriceAlertList(BaseModel):
    items: list[PriceAlert] = Field(default_factory=list)


class PriceScanResult(BaseModel):
    """Summary of one price scan."""

    scanned: int = 0
    triggered: int = 0
    rearmed: int = 0
