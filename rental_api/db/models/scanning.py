from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, Enum as SAEnum, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rental_api.db.base import Base, UUIDPkMixin, utcnow
from rental_api.domain.enums import ItemCondition, ScanType


class ScanEvent(UUIDPkMixin, Base):
    """Append-only record of units scanned out of or back into the warehouse."""
    __tablename__ = "scan_events"
    __table_args__ = (CheckConstraint("quantity > 0", name="quantity_positive"),)

    order_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    asset_id: Mapped[Optional[UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)
    scan_type: Mapped[ScanType] = mapped_column(
        SAEnum(ScanType, name="scan_type", native_enum=False, length=32), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    condition: Mapped[Optional[ItemCondition]] = mapped_column(
        SAEnum(ItemCondition, name="item_condition", native_enum=False, length=32), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    scanned_by: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    scanned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
