"""Referral code schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class ValidateReferralRequest(BaseModel):
    """Check a referral code for a customer without consuming it."""

    code: str = Field(..., min_length=1, max_length=32)
    customer_ref: str = Field(..., min_length=1, max_length=128)
    base_price: int | None = Field(None, ge=0, description="Optional price to quote against")

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class ReferralQuote(BaseModel):
    """Discount a valid code grants."""

    code: str
    discount: int = Field(..., description="Discount in minor units")
    final_price: int | None = Field(None, description="Price after discount, when a base price was given")


class CreateReferralCodeRequest(BaseModel):
    """Operator request to issue a referral code."""

    code: str = Field(..., min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_-]+$")
    discount_amount: int = Field(..., gt=0, description="Discount in minor units")
    multi_use: bool = Field(False, description="Allow the same customer to redeem repeatedly")
    max_redemptions: int | None = Field(None, ge=1, description="Cap across all customers")
    expires_at: datetime | None = Field(None, description="Expiry (UTC)")

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class ReferralCode(BaseModel):
    """Referral code response schema."""

    code: str
    discount_amount: int
    multi_use: bool
    max_redemptions: int | None = None
    times_redeemed: int
    expires_at: datetime | None = None
    is_active: bool

    class Config:
        from_attributes = True
