"""Storage abstractions used by the Cook'it services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncContextManager, Protocol, Sequence
from uuid import uuid4


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps (e.g. from SQLite) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TradeStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


@dataclass(slots=True)
class AccountRecord:
    handle: str
    display_name: str
    password_hash: str = ""
    balance: int = 0
    last_claim: datetime | None = None
    is_admin: bool = False
    is_banned: bool = False
    account_id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class ItemRecord:
    name: str
    rarity: str
    sell_value: int
    icon: str
    owner_id: str
    item_id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class TradeRecord:
    proposer_id: str
    counterparty_id: str
    offered_item_id: str
    requested_item_id: str
    status: TradeStatus = TradeStatus.PENDING
    trade_id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


class AccountStore(Protocol):
    async def find_by_handle(self, handle: str) -> AccountRecord | None:
        ...

    async def find_by_id(self, account_id: str) -> AccountRecord | None:
        ...

    async def insert(self, record: AccountRecord) -> str:
        """Persist a new account; raises HandleTaken on a duplicate handle."""
        ...

    async def conditional_debit(self, handle: str, amount: int, expected_min_balance: int) -> bool:
        """Subtract ``amount`` only while balance >= ``expected_min_balance``."""
        ...

    async def credit(self, handle: str, amount: int) -> None:
        ...

    async def set_last_claim(
        self, handle: str, timestamp: datetime, expected_previous: datetime | None
    ) -> bool:
        ...

    async def adjust_balance(self, handle: str, delta: int) -> int | None:
        """Apply ``delta`` clamped at zero; return the new balance or None if missing."""
        ...

    async def update_profile(self, account_id: str, *, handle: str, display_name: str) -> bool:
        ...

    async def set_password_hash(self, handle: str, password_hash: str) -> bool:
        ...

    async def set_flags(
        self, handle: str, *, is_admin: bool | None = None, is_banned: bool | None = None
    ) -> bool:
        ...

    async def list_all(self) -> Sequence[AccountRecord]:
        ...

    async def delete(self, account_id: str) -> bool:
        ...


class ItemStore(Protocol):
    async def insert(self, item: ItemRecord) -> str:
        ...

    async def get(self, item_id: str) -> ItemRecord | None:
        ...

    async def find_by_owner(self, owner_id: str) -> Sequence[ItemRecord]:
        ...

    async def reassign_owner(self, item_id: str, new_owner_id: str, expected_owner_id: str) -> bool:
        ...

    async def delete(self, item_id: str, expected_owner_id: str) -> bool:
        ...

    async def delete_by_owner(self, owner_id: str) -> int:
        ...

    async def count_by_owner(self) -> dict[str, int]:
        ...


class TradeStore(Protocol):
    async def insert(self, trade: TradeRecord) -> str:
        ...

    async def find_by_id(self, trade_id: str) -> TradeRecord | None:
        ...

    async def set_status(
        self, trade_id: str, new_status: TradeStatus, expected_status: TradeStatus
    ) -> bool:
        ...

    async def list_for_account(self, account_id: str) -> Sequence[TradeRecord]:
        """Trades sent or received by the account, newest first."""
        ...

    async def delete_for_account(self, account_id: str) -> int:
        ...


class AuditStore(Protocol):
    async def add_entry(self, action: str, payload: dict) -> None:
        ...


class Storage(Protocol):
    """Bundle of stores sharing one database."""

    accounts: AccountStore
    items: ItemStore
    trades: TradeStore
    audit: AuditStore

    def transaction(self) -> AsyncContextManager["Storage"]:
        """Yield stores bound to one atomic unit.

        Commits on normal exit and rolls back every write made through the
        yielded stores when the block raises.
        """
        ...

    async def init(self) -> None:
        ...
