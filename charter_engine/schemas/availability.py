"""Calendar availability schemas."""

import datetime as dt

from pydantic import BaseModel, Field, model_validator

from ..models.calendar_entry import SlotStatus


class AvailabilityDay(BaseModel):
    """Advisory status of one date."""

    date: dt.date = Field(..., description="Calendar date")
    status: SlotStatus = Field(..., description="Slot status")


class AvailabilityResponse(BaseModel):
    """Advisory availability for a captain over a date range."""

    captain_id: str = Field(..., description="Captain the calendar belongs to")
    days: list[AvailabilityDay] = Field(default_factory=list, description="One entry per date in range")


class AvailabilityQuery(BaseModel):
    """Date range for an availability query."""

    captain_id: str = Field(..., min_length=1, max_length=64)
    date_from: dt.date
    date_to: dt.date

    @model_validator(mode="after")
    def check_range(self) -> "AvailabilityQuery":
        if self.date_to < self.date_from:
            raise ValueError("date_to must not be before date_from")
        if (self.date_to - self.date_from).days > 366:
            raise ValueError("date range may span at most 366 days")
        return self


class BlockDateRequest(BaseModel):
    """Operator request to take a date off the calendar."""

    captain_id: str = Field(..., min_length=1, max_length=64)
    date: dt.date
    reason: str = Field("maintenance", min_length=1, max_length=255)


class UnblockDateRequest(BaseModel):
    """Operator request to return a blocked date to the calendar."""

    captain_id: str = Field(..., min_length=1, max_length=64)
    date: dt.date


class CalendarSlot(BaseModel):
    """Calendar entry response schema."""

    captain_id: str
    date: dt.date
    status: SlotStatus
    block_reason: str | None = None
