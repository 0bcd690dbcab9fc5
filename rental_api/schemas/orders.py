from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from rental_api.domain.enums import FinancialStatus, OrderStatus


class OrderItemCreate(BaseModel):
    """Order line payload; volume is per unit."""
    description: str = Field(..., min_length=1, description="Item description")
    quantity: int = Field(..., gt=0, description="Required quantity")
    asset_id: Optional[UUID] = Field(None, description="Tracked asset, if the line is a specific asset")
    category: Optional[str] = Field(None)
    volume: Decimal = Field(Decimal("0"), ge=0, description="Volume per unit (m3)")


class OrderItemRead(BaseModel):
    """Order line read model."""
    id: UUID
    order_id: UUID
    asset_id: Optional[UUID] = None
    description: str
    category: Optional[str] = None
    quantity: int
    volume: Decimal

    class Config:
        from_attributes = True


class OrderCreate(BaseModel):
    """Create order payload. The order starts in DRAFT."""
    company_id: UUID = Field(..., description="Owning company (immutable)")
    brand_id: Optional[UUID] = Field(None)
    contact_name: Optional[str] = Field(None)
    contact_email: Optional[str] = Field(None)
    contact_phone: Optional[str] = Field(None)
    event_start_date: Optional[date] = Field(None)
    event_end_date: Optional[date] = Field(None)
    venue_name: Optional[str] = Field(None)
    venue_country: Optional[str] = Field(None)
    venue_city: Optional[str] = Field(None)
    venue_address: Optional[str] = Field(None)
    special_instructions: Optional[str] = Field(None)
    delivery_window_start: Optional[datetime] = Field(None)
    delivery_window_end: Optional[datetime] = Field(None)
    pickup_window_start: Optional[datetime] = Field(None)
    pickup_window_end: Optional[datetime] = Field(None)
    items: List[OrderItemCreate] = Field(default_factory=list)


class OrderRead(BaseModel):
    """Order snapshot returned after every lifecycle operation."""
    id: UUID = Field(..., description="Order id")
    order_code: str = Field(..., description="Human readable order code")
    company_id: UUID
    brand_id: Optional[UUID] = None
    created_by: UUID
    status: OrderStatus
    financial_status: FinancialStatus
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    event_start_date: Optional[date] = None
    event_end_date: Optional[date] = None
    venue_name: Optional[str] = None
    venue_country: Optional[str] = None
    venue_city: Optional[str] = None
    venue_address: Optional[str] = None
    special_instructions: Optional[str] = None
    calculated_volume: Decimal
    pricing_tier_id: Optional[UUID] = None
    a2_base_price: Optional[Decimal] = None
    a2_adjusted_price: Optional[Decimal] = None
    a2_adjustment_reason: Optional[str] = None
    a2_adjusted_at: Optional[datetime] = None
    a2_adjusted_by: Optional[UUID] = None
    pmg_margin_percent: Optional[Decimal] = None
    pmg_margin_amount: Optional[Decimal] = None
    pmg_reviewed_at: Optional[datetime] = None
    pmg_reviewed_by: Optional[UUID] = None
    pmg_review_notes: Optional[str] = None
    final_total_price: Optional[Decimal] = None
    quote_sent_at: Optional[datetime] = None
    delivery_window_start: Optional[datetime] = None
    delivery_window_end: Optional[datetime] = None
    pickup_window_start: Optional[datetime] = None
    pickup_window_end: Optional[datetime] = None
    truck_photos: List[str] = Field(default_factory=list)
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[UUID] = None
    cancellation_reason: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StatusTransitionRequest(BaseModel):
    """Request a lifecycle transition."""
    target_status: OrderStatus = Field(..., description="Status to move the order to")
    note: Optional[str] = Field(None, description="Free-text note stored in the status history")


class CancelRequest(BaseModel):
    """Cancel an order; a reason is mandatory."""
    reason: str = Field(..., description="Cancellation reason")


class FinancialStatusRequest(BaseModel):
    target_status: FinancialStatus


class StatusHistoryRead(BaseModel):
    """One audit row per applied transition."""
    id: UUID
    order_id: UUID
    seq_no: int
    from_status: Optional[OrderStatus] = None
    status: OrderStatus
    actor_id: UUID
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
