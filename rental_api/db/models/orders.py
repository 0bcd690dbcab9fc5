from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from rental_api.db.base import Base, SoftDeleteMixin, TimestampMixin, UUIDPkMixin, utcnow
from rental_api.domain.enums import FinancialStatus, ItemCondition, OrderStatus


def _status_enum(enum_cls, name: str) -> SAEnum:
    return SAEnum(enum_cls, name=name, native_enum=False, length=32, validate_strings=True)


class Company(UUIDPkMixin, TimestampMixin, SoftDeleteMixin, Base):
    """Client company; owns orders and carries the default PMG margin."""
    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    pmg_margin_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("25.00")
    )
    contact_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Order(UUIDPkMixin, TimestampMixin, SoftDeleteMixin, Base):
    """Rental order header: event window, venue, pricing snapshot and lifecycle status."""
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(
            "(final_total_price IS NULL) = (pmg_margin_amount IS NULL)", name="pricing_totals_together"
        ),
    )

    order_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    company_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True
    )
    brand_id: Mapped[Optional[UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    created_by: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)

    # Contact
    contact_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Event & venue
    event_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    event_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    venue_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    venue_country: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    venue_city: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    venue_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    calculated_volume: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False, default=Decimal("0"))

    # Pricing snapshot
    pricing_tier_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("pricing_tiers.id", ondelete="SET NULL"), nullable=True
    )
    a2_base_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    a2_adjusted_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    a2_adjustment_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    a2_adjusted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    a2_adjusted_by: Mapped[Optional[UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    pmg_margin_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    pmg_margin_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    pmg_reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    pmg_reviewed_by: Mapped[Optional[UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    pmg_review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    final_total_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    quote_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Time windows & fulfillment evidence
    delivery_window_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivery_window_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    pickup_window_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    pickup_window_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    truck_photos: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Status
    status: Mapped[OrderStatus] = mapped_column(
        _status_enum(OrderStatus, "order_status"), nullable=False, default=OrderStatus.DRAFT, index=True
    )
    financial_status: Mapped[FinancialStatus] = mapped_column(
        _status_enum(FinancialStatus, "financial_status"),
        nullable=False,
        default=FinancialStatus.PENDING_QUOTE,
    )

    # Cancellation
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[Optional[UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Optimistic concurrency counter; bumped on every UPDATE by the mapper.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}


class OrderItem(UUIDPkMixin, TimestampMixin, Base):
    """Required-quantity line of an order."""
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity > 0", name="quantity_positive"),)

    order_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    asset_id: Mapped[Optional[UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    volume: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False, default=Decimal("0"))
    condition: Mapped[ItemCondition] = mapped_column(
        _status_enum(ItemCondition, "item_condition"), nullable=False, default=ItemCondition.GREEN
    )


class OrderStatusHistory(UUIDPkMixin, Base):
    """Append-only audit row; one per applied transition."""
    __tablename__ = "order_status_history"
    __table_args__ = (UniqueConstraint("order_id", "seq_no", name="uq_order_status_history_order_seq"),)

    order_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    seq_no: Mapped[int] = mapped_column(Integer, nullable=False)
    from_status: Mapped[Optional[OrderStatus]] = mapped_column(_status_enum(OrderStatus, "order_status"), nullable=True)
    status: Mapped[OrderStatus] = mapped_column(_status_enum(OrderStatus, "order_status"), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
