"""
Closed enumerations shared by models, services and schemas.

Values equal names so they round-trip unchanged through the database and JSON.
"""

from enum import Enum


class OrderStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    PRICING_REVIEW = "PRICING_REVIEW"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    QUOTED = "QUOTED"
    DECLINED = "DECLINED"
    CONFIRMED = "CONFIRMED"
    AWAITING_FABRICATION = "AWAITING_FABRICATION"
    IN_PREPARATION = "IN_PREPARATION"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    IN_USE = "IN_USE"
    AWAITING_RETURN = "AWAITING_RETURN"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class FinancialStatus(str, Enum):
    PENDING_QUOTE = "PENDING_QUOTE"
    QUOTE_SENT = "QUOTE_SENT"
    QUOTE_ACCEPTED = "QUOTE_ACCEPTED"
    PENDING_INVOICE = "PENDING_INVOICE"
    INVOICED = "INVOICED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class ActorRole(str, Enum):
    PMG_ADMIN = "PMG_ADMIN"
    A2_STAFF = "A2_STAFF"
    CLIENT_USER = "CLIENT_USER"
    SYSTEM = "SYSTEM"


class ScanType(str, Enum):
    OUTBOUND = "OUTBOUND"
    INBOUND = "INBOUND"


class ItemCondition(str, Enum):
    GREEN = "GREEN"
    ORANGE = "ORANGE"
    RED = "RED"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    RETRYING = "RETRYING"


class NotificationType(str, Enum):
    ORDER_SUBMITTED = "ORDER_SUBMITTED"
    A2_APPROVED_STANDARD = "A2_APPROVED_STANDARD"
    A2_ADJUSTED_PRICING = "A2_ADJUSTED_PRICING"
    QUOTE_SENT = "QUOTE_SENT"
    QUOTE_APPROVED = "QUOTE_APPROVED"
    QUOTE_DECLINED = "QUOTE_DECLINED"
    ORDER_CONFIRMED = "ORDER_CONFIRMED"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    PICKUP_REMINDER = "PICKUP_REMINDER"
    ORDER_CLOSED = "ORDER_CLOSED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
