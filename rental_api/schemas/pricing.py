from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PricingTierCreate(BaseModel):
    """Create a pricing tier; city '*' covers the whole country."""
    country: str = Field(..., description="Country name")
    city: str = Field(..., description="City name or '*'")
    volume_min: Decimal = Field(..., description="Inclusive lower volume bound (m3)")
    volume_max: Decimal = Field(..., description="Inclusive upper volume bound (m3)")
    base_price: Decimal = Field(..., description="Base price for the band")
    is_active: bool = Field(True)


class PricingTierToggle(BaseModel):
    is_active: bool


class PricingTierRead(BaseModel):
    """Pricing tier read model."""
    id: UUID
    country: str
    city: str
    volume_min: Decimal
    volume_max: Decimal
    base_price: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PricingEstimateRead(BaseModel):
    """Estimate; prices are null when no tier matched."""
    tier_found: bool
    pricing_tier_id: Optional[UUID] = None
    base_price: Optional[Decimal] = None
    margin_percent: Decimal
    margin_amount: Optional[Decimal] = None
    final_total_price: Optional[Decimal] = None

    class Config:
        from_attributes = True


class A2AdjustPricingRequest(BaseModel):
    """A2 pricing adjustment; sends the order to PMG for approval."""
    adjusted_price: Optional[Decimal] = Field(None, description="Proposed price, > 0")
    reason: Optional[str] = Field(None, description="Why the standard tier price does not apply")


class A2ApproveStandardRequest(BaseModel):
    notes: Optional[str] = Field(None)


class PmgApprovePricingRequest(BaseModel):
    """PMG approval: base price and margin percent (0-100)."""
    a2_base_price: Optional[Decimal] = Field(None, description="Approved base price, > 0")
    margin_percent: Optional[Decimal] = Field(None, description="PMG margin percent, 0-100")
    notes: Optional[str] = Field(None)
