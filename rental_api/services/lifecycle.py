from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rental_api.core.errors import InvalidTransition, NotFound, ValidationError
from rental_api.db.base import utcnow
from rental_api.db.models.orders import Order, OrderItem, OrderStatusHistory
from rental_api.domain import lifecycle as rules
from rental_api.domain.enums import ActorRole, FinancialStatus, NotificationType, OrderStatus, ScanType
from rental_api.repositories.orders import OrderRepository
from rental_api.services.base import BaseService
from rental_api.services.scanning import ScanningService

logger = logging.getLogger(__name__)

ORDER_FIELDS = (
    "brand_id",
    "contact_name",
    "contact_email",
    "contact_phone",
    "event_start_date",
    "event_end_date",
    "venue_name",
    "venue_country",
    "venue_city",
    "venue_address",
    "special_instructions",
    "delivery_window_start",
    "delivery_window_end",
    "pickup_window_start",
    "pickup_window_end",
)


class Dispatcher(Protocol):
    def dispatch(
        self, notification_type: NotificationType, order_id: UUID, record_id: Optional[UUID] = None
    ) -> None: ...


class OrderLifecycleService(BaseService):
    """
    Order state machine.

    Every status change goes through transition() (or apply() for callers that
    own the surrounding transaction): row lock, table check, guards, side
    fields, one history row, one commit, then a notification after commit.
    """

    def __init__(self, session: AsyncSession, dispatcher: Optional[Dispatcher] = None) -> None:
        super().__init__(session)
        self.orders = OrderRepository(session)
        self.scanning = ScanningService(session)
        self.dispatcher = dispatcher

    # -- loading ---------------------------------------------------

    async def get_order(self, order_id: UUID) -> Order:
        order = await self.orders.get_order(order_id)
        if order is None:
            raise NotFound("Order", order_id)
        return order

    async def lock_order(self, order_id: UUID) -> Order:
        order = await self.orders.get_order(order_id, for_update=True)
        if order is None:
            raise NotFound("Order", order_id)
        return order

    def notify(self, notification_type: Optional[NotificationType], order_id: UUID) -> None:
        """Hand a notification to the dispatcher; never fails the caller."""
        if notification_type is None or self.dispatcher is None:
            return
        try:
            self.dispatcher.dispatch(notification_type, order_id)
        except Exception:
            logger.exception("Failed to enqueue %s for order %s", notification_type.value, order_id)

    # -- state machine ------------------------------------------------------------

    # PUBLIC_INTERFACE
    async def transition(
        self,
        order_id: UUID,
        target_status: OrderStatus,
        actor_id: UUID,
        note: Optional[str] = None,
        *,
        actor_role: Optional[ActorRole] = None,
        today: Optional[date] = None,
    ) -> Order:
        """
        Move an order to target_status.

        Raises:
            NotFound: order missing or soft-deleted.
            InvalidTransition: (current, target) not in the transition table.
            GuardNotSatisfied: a precondition for the target is unmet.
            PersistenceConflict: a concurrent writer won the race.
        """
        async with self.unit_of_work():
            order = await self.lock_order(order_id)
            notification = await self.apply(
                order, target_status, actor_id, note, actor_role=actor_role, today=today
            )
        self.notify(notification, order.id)
        return order

    async def apply(
        self,
        order: Order,
        target_status: OrderStatus,
        actor_id: UUID,
        note: Optional[str] = None,
        *,
        actor_role: Optional[ActorRole] = None,
        today: Optional[date] = None,
    ) -> Optional[NotificationType]:
        """
        Validate and apply a transition on an already locked order without
        committing. Returns the notification to send once the caller commits.
        """
        current = order.status
        if not rules.is_valid_transition(current, target_status):
            raise InvalidTransition(current, target_status)

        await self._check_guards(order, target_status, note, actor_role=actor_role, today=today)
        self._apply_side_fields(order, target_status, actor_id, note)

        order.status = target_status
        seq_no = await self.orders.next_history_seq(order.id)
        await self.orders.add(
            OrderStatusHistory(
                order_id=order.id,
                seq_no=seq_no,
                from_status=current,
                status=target_status,
                actor_id=actor_id,
                notes=note,
            )
        )
        await self.orders.flush()
        logger.info("Order %s: %s -> %s (seq %d)", order.order_code, current.value, target_status.value, seq_no)
        return rules.notification_for(current, target_status)

    async def _check_guards(
        self,
        order: Order,
        target: OrderStatus,
        note: Optional[str],
        *,
        actor_role: Optional[ActorRole],
        today: Optional[date],
    ) -> None:
        current = order.status
        if target is OrderStatus.SUBMITTED:
            items = await self.orders.list_items(order.id)
            rules.require_items(len(items))
            # Tier matching reads the volume frozen at submission.
            order.calculated_volume = self._total_volume(items)
        elif target is OrderStatus.PENDING_APPROVAL:
            rules.require_adjustment_recorded(order)
        elif target is OrderStatus.QUOTED:
            rules.require_pricing_approved(order)
        elif target is OrderStatus.CANCELLED:
            rules.require_cancellation_reason(note)
        elif target is OrderStatus.DECLINED:
            rules.require_client_decision(actor_role)
        elif current is OrderStatus.IN_PREPARATION and target is OrderStatus.READY_FOR_DELIVERY:
            rules.require_scan_gate(await self.scanning.evaluate_gate(order.id, ScanType.OUTBOUND))
        elif current is OrderStatus.AWAITING_RETURN and target is OrderStatus.CLOSED:
            rules.require_scan_gate(await self.scanning.evaluate_gate(order.id, ScanType.INBOUND))
        elif target is OrderStatus.IN_USE:
            rules.require_event_date(today or date.today(), order.event_start_date, "event_not_started")
        elif target is OrderStatus.AWAITING_RETURN:
            rules.require_event_date(today or date.today(), order.event_end_date, "event_not_ended")

    def _apply_side_fields(self, order: Order, target: OrderStatus, actor_id: UUID, note: Optional[str]) -> None:
        now = utcnow()
        if target is OrderStatus.QUOTED:
            order.quote_sent_at = now
            if order.financial_status in (FinancialStatus.PENDING_QUOTE, FinancialStatus.QUOTE_SENT):
                order.financial_status = FinancialStatus.QUOTE_SENT
        elif target is OrderStatus.CONFIRMED:
            order.financial_status = FinancialStatus.QUOTE_ACCEPTED
        elif target is OrderStatus.CANCELLED:
            if order.status in rules.POST_DELIVERY_STATUSES:
                logger.warning(
                    "Order %s cancelled after delivery (from %s); billing must be reviewed",
                    order.order_code,
                    order.status.value,
                )
            order.cancelled_at = now
            order.cancelled_by = actor_id
            order.cancellation_reason = (note or "").strip()
            if order.financial_status is not FinancialStatus.PAID:
                order.financial_status = FinancialStatus.CANCELLED

    # -- supporting operations -----------------------------------------------------

    # PUBLIC_INTERFACE
    async def create_order(self, payload: Mapping[str, Any], actor_id: UUID, *, today: Optional[date] = None) -> Order:
        """
        Create a DRAFT order (with optional items) for an existing company.

        payload keys: company_id (required), items (list of item mappings) and
        any of the contact/event/venue/window fields.
        """
        company_id = payload.get("company_id")
        if company_id is None:
            raise ValidationError("company_id is required", details={"field": "company_id"})
        if await self.orders.get_company(company_id) is None:
            raise NotFound("Company", company_id)

        start, end = payload.get("event_start_date"), payload.get("event_end_date")
        if start and end and end < start:
            raise ValidationError(
                "event_end_date must not be before event_start_date",
                details={"event_start_date": start.isoformat(), "event_end_date": end.isoformat()},
            )

        async with self.unit_of_work():
            order = Order(
                order_code=await self.orders.next_order_code(today or date.today()),
                company_id=company_id,
                created_by=actor_id,
                status=OrderStatus.DRAFT,
                financial_status=FinancialStatus.PENDING_QUOTE,
                truck_photos=[],
                **{name: payload.get(name) for name in ORDER_FIELDS},
            )
            await self.orders.add(order)
            await self.orders.flush()
            items = [self._build_item(order.id, item) for item in payload.get("items") or []]
            await self.orders.add_all(items)
            order.calculated_volume = self._total_volume(items)
        logger.info("Created order %s for company %s with %d item(s)", order.order_code, company_id, len(items))
        return order

    # PUBLIC_INTERFACE
    async def add_item(self, order_id: UUID, payload: Mapping[str, Any]) -> OrderItem:
        """Add a line to a DRAFT order."""
        async with self.unit_of_work():
            order = await self.lock_order(order_id)
            if order.status is not OrderStatus.DRAFT:
                raise InvalidTransition(
                    order.status, order.status, message="Items can only be added while the order is DRAFT"
                )
            item = self._build_item(order.id, payload)
            await self.orders.add(item)
            await self.orders.flush()
            order.calculated_volume = self._total_volume(await self.orders.list_items(order.id))
        return item

    # PUBLIC_INTERFACE
    async def submit_order(self, order_id: UUID, actor_id: UUID, note: Optional[str] = None) -> Order:
        """DRAFT -> SUBMITTED; requires at least one item and recomputes the volume."""
        return await self.transition(order_id, OrderStatus.SUBMITTED, actor_id, note)

    # PUBLIC_INTERFACE
    async def soft_delete_order(self, order_id: UUID, actor_id: UUID) -> None:
        """Hide an order from every active query. Status and history are left as they are."""
        async with self.unit_of_work():
            order = await self.lock_order(order_id)
            order.deleted_at = utcnow()
        logger.info("Order %s soft-deleted by %s", order.order_code, actor_id)

    # PUBLIC_INTERFACE
    async def update_financial_status(self, order_id: UUID, target: FinancialStatus, actor_id: UUID) -> Order:
        """Move the financial status along its own table. No lifecycle history is written."""
        async with self.unit_of_work():
            order = await self.lock_order(order_id)
            current = order.financial_status
            if not rules.is_valid_financial_transition(current, target):
                raise InvalidTransition(
                    current, target, message=f"Invalid financial status transition from {current.value} to {target.value}"
                )
            order.financial_status = target
        logger.info("Order %s financial status %s -> %s by %s", order.order_code, current.value, target.value, actor_id)
        return order

    # PUBLIC_INTERFACE
    async def get_status_history(self, order_id: UUID) -> List[OrderStatusHistory]:
        """Audit trail in the order the transitions were applied."""
        await self.get_order(order_id)
        return await self.orders.list_history(order_id)

    @staticmethod
    def _build_item(order_id: UUID, payload: Mapping[str, Any]) -> OrderItem:
        quantity = payload.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer", details={"field": "quantity"})
        description = (payload.get("description") or "").strip()
        if not description:
            raise ValidationError("description is required", details={"field": "description"})
        volume = Decimal(str(payload.get("volume") or 0))
        if volume < 0:
            raise ValidationError("volume must not be negative", details={"field": "volume"})
        return OrderItem(
            order_id=order_id,
            asset_id=payload.get("asset_id"),
            description=description,
            category=payload.get("category"),
            quantity=quantity,
            volume=volume,
        )

    @staticmethod
    def _total_volume(items: Iterable[OrderItem]) -> Decimal:
        return sum((Decimal(item.volume) * item.quantity for item in items), Decimal("0"))
