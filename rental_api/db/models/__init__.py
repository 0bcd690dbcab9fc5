"""
ORM models for the rental order domain: companies, orders and their items,
status history, scan events, pricing tiers and the notification ledger.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .pricing import PricingTier  # noqa: F401
from .orders import (  # noqa: F401
    Company,
    Order,
    OrderItem,
    OrderStatusHistory,
)
from .scanning import ScanEvent  # noqa: F401
from .notifications import NotificationRecord  # noqa: F401
