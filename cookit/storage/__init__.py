"""Storage backends for Cook'it."""

from .base import (
    AccountRecord,
    AccountStore,
    AuditStore,
    ItemRecord,
    ItemStore,
    Storage,
    TradeRecord,
    TradeStatus,
    TradeStore,
)
from .memory import InMemoryAuditStore, InMemoryStorage
from .sqlalchemy import AsyncSQLAlchemyStorage

__all__ = [
    "AccountRecord",
    "AccountStore",
    "AuditStore",
    "ItemRecord",
    "ItemStore",
    "Storage",
    "TradeRecord",
    "TradeStatus",
    "TradeStore",
    "InMemoryAuditStore",
    "InMemoryStorage",
    "AsyncSQLAlchemyStorage",
]
