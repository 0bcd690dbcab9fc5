from __future__ import annotations

import logging
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rental_api.core.errors import GuardNotSatisfied, NotFound, ValidationError
from rental_api.db.models.orders import Order
from rental_api.db.models.scanning import ScanEvent
from rental_api.domain.enums import ItemCondition, OrderStatus, ScanType
from rental_api.domain.scanning import GateResult, reconcile
from rental_api.repositories.orders import OrderRepository
from rental_api.repositories.scanning import ScanEventRepository
from rental_api.services.base import BaseService

logger = logging.getLogger(__name__)

# Scan direction -> the only order status in which it may be recorded.
SCAN_WINDOWS = {
    ScanType.OUTBOUND: OrderStatus.IN_PREPARATION,
    ScanType.INBOUND: OrderStatus.AWAITING_RETURN,
}

TRUCK_PHOTO_STATUSES = (OrderStatus.IN_PREPARATION, OrderStatus.READY_FOR_DELIVERY)


class ScanningService(BaseService):
    """Warehouse scanning: append-only scan events and gate evaluation."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.orders = OrderRepository(session)
        self.scans = ScanEventRepository(session)

    async def _order(self, order_id: UUID, *, for_update: bool = False) -> Order:
        order = await self.orders.get_order(order_id, for_update=for_update)
        if order is None:
            raise NotFound("Order", order_id)
        return order

    async def evaluate_gate(self, order_id: UUID, scan_type: ScanType) -> GateResult:
        """Recompute the gate from current items and scans."""
        items = await self.orders.list_items(order_id)
        scans = await self.scans.list_events(order_id, scan_type)
        return reconcile(items, scans, scan_type)

    # PUBLIC_INTERFACE
    async def evaluate_outbound_gate(self, order_id: UUID) -> GateResult:
        """Outbound progress for an active order."""
        await self._order(order_id)
        return await self.evaluate_gate(order_id, ScanType.OUTBOUND)

    # PUBLIC_INTERFACE
    async def evaluate_inbound_gate(self, order_id: UUID) -> GateResult:
        """Inbound progress for an active order."""
        await self._order(order_id)
        return await self.evaluate_gate(order_id, ScanType.INBOUND)

    # PUBLIC_INTERFACE
    async def record_scan(
        self,
        order_id: UUID,
        scan_type: ScanType,
        quantity: int,
        actor_id: UUID,
        asset_id: Optional[UUID] = None,
        condition: Optional[ItemCondition] = None,
        notes: Optional[str] = None,
    ) -> ScanEvent:
        """
        Append a scan event.

        Raises:
            ValidationError: non-positive quantity, or an asset not on the order.
            GuardNotSatisfied: the order is not in the scan window for this direction.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer", details={"field": "quantity"})

        async with self.unit_of_work():
            order = await self._order(order_id, for_update=True)
            allowed = SCAN_WINDOWS[scan_type]
            if order.status is not allowed:
                raise GuardNotSatisfied(
                    "scan_not_allowed",
                    f"{scan_type.value.capitalize()} scans are only accepted while the order is {allowed.value}",
                    scan_type=scan_type.value,
                    status=order.status.value,
                )

            items = await self.orders.list_items(order.id)
            if asset_id is not None and asset_id not in {item.asset_id for item in items}:
                raise ValidationError(
                    "Asset is not part of this order", details={"field": "asset_id", "asset_id": str(asset_id)}
                )

            event = await self.scans.append(
                ScanEvent(
                    order_id=order.id,
                    asset_id=asset_id,
                    scan_type=scan_type,
                    quantity=quantity,
                    condition=condition,
                    notes=notes,
                    scanned_by=actor_id,
                )
            )
            gate = reconcile(items, await self.scans.list_events(order.id, scan_type), scan_type)

        if gate.over_scanned:
            logger.warning(
                "Order %s over-scanned %s: %d scanned, %d required",
                order.order_code,
                scan_type.value,
                gate.scanned,
                gate.required,
            )
        else:
            logger.info(
                "Order %s %s scan +%d (%d/%d)", order.order_code, scan_type.value, quantity, gate.scanned, gate.required
            )
        return event

    # PUBLIC_INTERFACE
    async def list_scan_events(self, order_id: UUID, scan_type: Optional[ScanType] = None) -> List[ScanEvent]:
        """All scan events of an order in scan order."""
        await self._order(order_id)
        return await self.scans.list_events(order_id, scan_type)

    # PUBLIC_INTERFACE
    async def add_truck_photos(self, order_id: UUID, refs: Sequence[str]) -> Order:
        """Attach loading-photo storage references while the order is being loaded."""
        cleaned = [ref.strip() for ref in refs if ref and ref.strip()]
        if not cleaned:
            raise ValidationError("At least one photo reference is required", details={"field": "photos"})
        async with self.unit_of_work():
            order = await self._order(order_id, for_update=True)
            if order.status not in TRUCK_PHOTO_STATUSES:
                raise GuardNotSatisfied(
                    "truck_photos_not_allowed",
                    "Truck photos can only be added during preparation or before delivery",
                    status=order.status.value,
                )
            # Reassign so the JSON column is flagged dirty.
            order.truck_photos = list(order.truck_photos or []) + cleaned
        return order
