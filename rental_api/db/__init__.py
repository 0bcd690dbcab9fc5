"""
Persistence layer: declarative base, ORM models, async engine and migrations.

Importing this package registers every table (companies, orders, items,
status history, scan events, truck photos, pricing tiers and the notification
ledger) on `Base.metadata`.
"""

from .base import Base
from .config import Settings, get_settings
from .session import dispose_engine, get_async_session, get_engine, get_session_maker
from . import models as models  # noqa: F401

__all__ = [
    "Base",
    "Settings",
    "dispose_engine",
    "get_async_session",
    "get_engine",
    "get_session_maker",
    "get_settings",
    "models",
]
