"""In-memory storage backend for Cook'it."""

from __future__ import annotations

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Deque, Sequence

from ..domain.exceptions import HandleTaken
from .base import (
    AccountRecord,
    AccountStore,
    AuditStore,
    ItemRecord,
    ItemStore,
    TradeRecord,
    TradeStatus,
    TradeStore,
    utcnow,
)


@dataclass(slots=True)
class _Tables:
    accounts: dict[str, AccountRecord] = field(default_factory=dict)
    items: dict[str, ItemRecord] = field(default_factory=dict)
    trades: dict[str, TradeRecord] = field(default_factory=dict)


class _Journal:
    """Undo log for writes made inside a transaction."""

    def __init__(self) -> None:
        self._undo: list[tuple[dict, str, Any]] = []

    def record(self, table: dict, key: str) -> None:
        previous = table.get(key)
        self._undo.append((table, key, replace(previous) if previous is not None else None))

    def rollback(self) -> None:
        for table, key, previous in reversed(self._undo):
            if previous is None:
                table.pop(key, None)
            else:
                table[key] = previous
        self._undo.clear()


class _MemoryTable:
    def __init__(self, tables: _Tables, journal: _Journal | None) -> None:
        self._tables = tables
        self._journal = journal

    def _touch(self, table: dict, key: str) -> None:
        if self._journal is not None:
            self._journal.record(table, key)


class InMemoryAccountStore(_MemoryTable, AccountStore):
    def _by_handle(self, handle: str) -> AccountRecord | None:
        for record in self._tables.accounts.values():
            if record.handle == handle:
                return record
        return None

    async def find_by_handle(self, handle: str) -> AccountRecord | None:
        record = self._by_handle(handle)
        return replace(record) if record else None

    async def find_by_id(self, account_id: str) -> AccountRecord | None:
        record = self._tables.accounts.get(account_id)
        return replace(record) if record else None

    async def insert(self, record: AccountRecord) -> str:
        if self._by_handle(record.handle) is not None:
            raise HandleTaken(f"Handle {record.handle} already registered")
        self._touch(self._tables.accounts, record.account_id)
        self._tables.accounts[record.account_id] = replace(record)
        return record.account_id

    async def conditional_debit(self, handle: str, amount: int, expected_min_balance: int) -> bool:
        record = self._by_handle(handle)
        if record is None or record.balance < expected_min_balance or record.balance < amount:
            return False
        self._touch(self._tables.accounts, record.account_id)
        record.balance -= amount
        return True

    async def credit(self, handle: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Cannot credit negative amount")
        record = self._by_handle(handle)
        if record is None:
            raise KeyError(f"Account {handle} not found")
        self._touch(self._tables.accounts, record.account_id)
        record.balance += amount

    async def set_last_claim(
        self, handle: str, timestamp: datetime, expected_previous: datetime | None
    ) -> bool:
        record = self._by_handle(handle)
        if record is None or record.last_claim != expected_previous:
            return False
        self._touch(self._tables.accounts, record.account_id)
        record.last_claim = timestamp
        return True

    async def adjust_balance(self, handle: str, delta: int) -> int | None:
        record = self._by_handle(handle)
        if record is None:
            return None
        self._touch(self._tables.accounts, record.account_id)
        record.balance = max(0, record.balance + delta)
        return record.balance

    async def update_profile(self, account_id: str, *, handle: str, display_name: str) -> bool:
        record = self._tables.accounts.get(account_id)
        if record is None:
            return False
        other = self._by_handle(handle)
        if other is not None and other.account_id != account_id:
            raise HandleTaken(f"Handle {handle} already registered")
        self._touch(self._tables.accounts, account_id)
        record.handle = handle
        record.display_name = display_name
        return True

    async def set_password_hash(self, handle: str, password_hash: str) -> bool:
        record = self._by_handle(handle)
        if record is None:
            return False
        self._touch(self._tables.accounts, record.account_id)
        record.password_hash = password_hash
        return True

    async def set_flags(
        self, handle: str, *, is_admin: bool | None = None, is_banned: bool | None = None
    ) -> bool:
        record = self._by_handle(handle)
        if record is None:
            return False
        self._touch(self._tables.accounts, record.account_id)
        if is_admin is not None:
            record.is_admin = is_admin
        if is_banned is not None:
            record.is_banned = is_banned
        return True

    async def list_all(self) -> Sequence[AccountRecord]:
        records = sorted(self._tables.accounts.values(), key=lambda rec: rec.created_at, reverse=True)
        return [replace(record) for record in records]

    async def delete(self, account_id: str) -> bool:
        if account_id not in self._tables.accounts:
            return False
        self._touch(self._tables.accounts, account_id)
        del self._tables.accounts[account_id]
        return True


class InMemoryItemStore(_MemoryTable, ItemStore):
    async def insert(self, item: ItemRecord) -> str:
        self._touch(self._tables.items, item.item_id)
        self._tables.items[item.item_id] = replace(item)
        return item.item_id

    async def get(self, item_id: str) -> ItemRecord | None:
        item = self._tables.items.get(item_id)
        return replace(item) if item else None

    async def find_by_owner(self, owner_id: str) -> Sequence[ItemRecord]:
        items = [item for item in self._tables.items.values() if item.owner_id == owner_id]
        items.sort(key=lambda item: item.created_at, reverse=True)
        return [replace(item) for item in items]

    async def reassign_owner(self, item_id: str, new_owner_id: str, expected_owner_id: str) -> bool:
        item = self._tables.items.get(item_id)
        if item is None or item.owner_id != expected_owner_id:
            return False
        self._touch(self._tables.items, item_id)
        item.owner_id = new_owner_id
        return True

    async def delete(self, item_id: str, expected_owner_id: str) -> bool:
        item = self._tables.items.get(item_id)
        if item is None or item.owner_id != expected_owner_id:
            return False
        self._touch(self._tables.items, item_id)
        del self._tables.items[item_id]
        return True

    async def delete_by_owner(self, owner_id: str) -> int:
        doomed = [key for key, item in self._tables.items.items() if item.owner_id == owner_id]
        for key in doomed:
            self._touch(self._tables.items, key)
            del self._tables.items[key]
        return len(doomed)

    async def count_by_owner(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for item in self._tables.items.values():
            counts[item.owner_id] = counts.get(item.owner_id, 0) + 1
        return counts


class InMemoryTradeStore(_MemoryTable, TradeStore):
    async def insert(self, trade: TradeRecord) -> str:
        self._touch(self._tables.trades, trade.trade_id)
        self._tables.trades[trade.trade_id] = replace(trade)
        return trade.trade_id

    async def find_by_id(self, trade_id: str) -> TradeRecord | None:
        trade = self._tables.trades.get(trade_id)
        return replace(trade) if trade else None

    async def set_status(
        self, trade_id: str, new_status: TradeStatus, expected_status: TradeStatus
    ) -> bool:
        trade = self._tables.trades.get(trade_id)
        if trade is None or trade.status != expected_status:
            return False
        self._touch(self._tables.trades, trade_id)
        trade.status = new_status
        trade.updated_at = utcnow()
        return True

    async def list_for_account(self, account_id: str) -> Sequence[TradeRecord]:
        trades = [
            trade
            for trade in self._tables.trades.values()
            if account_id in (trade.proposer_id, trade.counterparty_id)
        ]
        trades.sort(key=lambda trade: trade.created_at, reverse=True)
        return [replace(trade) for trade in trades]

    async def delete_for_account(self, account_id: str) -> int:
        doomed = [
            key
            for key, trade in self._tables.trades.items()
            if account_id in (trade.proposer_id, trade.counterparty_id)
        ]
        for key in doomed:
            self._touch(self._tables.trades, key)
            del self._tables.trades[key]
        return len(doomed)


class InMemoryAuditStore(AuditStore):
    def __init__(self, *, maxlen: int = 1000) -> None:
        self._entries: Deque[tuple[datetime, str, dict]] = deque(maxlen=maxlen)

    async def add_entry(self, action: str, payload: dict) -> None:
        self._entries.append((datetime.now(timezone.utc), action, payload))

    def dump(self) -> list[tuple[datetime, str, dict]]:
        return list(self._entries)


class InMemoryStorage:
    """Process-local storage; transactions are serialized by a lock."""

    def __init__(
        self,
        *,
        audit: InMemoryAuditStore | None = None,
        _tables: _Tables | None = None,
        _journal: _Journal | None = None,
        _lock: asyncio.Lock | None = None,
    ) -> None:
        self._tables = _tables or _Tables()
        self._lock = _lock or asyncio.Lock()
        self.accounts = InMemoryAccountStore(self._tables, _journal)
        self.items = InMemoryItemStore(self._tables, _journal)
        self.trades = InMemoryTradeStore(self._tables, _journal)
        self.audit = audit or InMemoryAuditStore()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["InMemoryStorage"]:
        async with self._lock:
            journal = _Journal()
            bound = InMemoryStorage(
                audit=self.audit, _tables=self._tables, _journal=journal, _lock=self._lock
            )
            try:
                yield bound
            except BaseException:
                journal.rollback()
                raise

    async def init(self) -> None:
        return None
