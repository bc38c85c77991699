"""SQLAlchemy storage backend for Cook'it."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Sequence

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    case,
    delete,
    func,
    or_,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

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
    as_utc,
    utcnow,
)


class Base(DeclarativeBase):
    pass


class AccountTable(Base):
    __tablename__ = "cookit_accounts"

    account_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    handle: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    display_name: Mapped[str] = mapped_column(String(255))
    password_hash: Mapped[str] = mapped_column(String(255), default="")
    balance: Mapped[int] = mapped_column(Integer, default=0)
    last_claim: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    is_banned: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ItemTable(Base):
    __tablename__ = "cookit_items"

    item_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    rarity: Mapped[str] = mapped_column(String(64))
    sell_value: Mapped[int] = mapped_column(Integer)
    icon: Mapped[str] = mapped_column(String(32))
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("cookit_accounts.account_id"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class TradeTable(Base):
    __tablename__ = "cookit_trades"

    trade_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    proposer_id: Mapped[str] = mapped_column(String(36), index=True)
    counterparty_id: Mapped[str] = mapped_column(String(36), index=True)
    offered_item_id: Mapped[str] = mapped_column(String(36))
    requested_item_id: Mapped[str] = mapped_column(String(36))
    status: Mapped[str] = mapped_column(String(16), default=TradeStatus.PENDING.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class AuditTable(Base):
    __tablename__ = "cookit_audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    action: Mapped[str] = mapped_column(String(128))
    payload: Mapped[dict] = mapped_column(JSON)


class _Scoped:
    """Run each call in its own committed session, or in a shared one.

    A shared session belongs to ``AsyncSQLAlchemyStorage.transaction`` which
    owns commit and rollback.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bound: AsyncSession | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._bound = bound

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        if self._bound is not None:
            yield self._bound
            return
        async with self._session_factory() as session:
            async with session.begin():
                yield session


def _account(row: AccountTable) -> AccountRecord:
    return AccountRecord(
        account_id=row.account_id,
        handle=row.handle,
        display_name=row.display_name,
        password_hash=row.password_hash,
        balance=row.balance,
        last_claim=row.last_claim,
        is_admin=row.is_admin,
        is_banned=row.is_banned,
        created_at=as_utc(row.created_at),
    )


def _item(row: ItemTable) -> ItemRecord:
    return ItemRecord(
        item_id=row.item_id,
        name=row.name,
        rarity=row.rarity,
        sell_value=row.sell_value,
        icon=row.icon,
        owner_id=row.owner_id,
        created_at=as_utc(row.created_at),
    )


def _trade(row: TradeTable) -> TradeRecord:
    return TradeRecord(
        trade_id=row.trade_id,
        proposer_id=row.proposer_id,
        counterparty_id=row.counterparty_id,
        offered_item_id=row.offered_item_id,
        requested_item_id=row.requested_item_id,
        status=TradeStatus(row.status),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


class AsyncSQLAlchemyAccountStore(_Scoped, AccountStore):
    async def find_by_handle(self, handle: str) -> AccountRecord | None:
        async with self._session() as session:
            stmt = select(AccountTable).where(AccountTable.handle == handle)
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _account(row) if row else None

    async def find_by_id(self, account_id: str) -> AccountRecord | None:
        async with self._session() as session:
            row = await session.get(AccountTable, account_id)
            return _account(row) if row else None

    async def insert(self, record: AccountRecord) -> str:
        try:
            async with self._session() as session:
                session.add(
                    AccountTable(
                        account_id=record.account_id,
                        handle=record.handle,
                        display_name=record.display_name,
                        password_hash=record.password_hash,
                        balance=record.balance,
                        last_claim=record.last_claim,
                        is_admin=record.is_admin,
                        is_banned=record.is_banned,
                        created_at=record.created_at,
                    )
                )
                await session.flush()
        except IntegrityError as exc:
            raise HandleTaken(f"Handle {record.handle} already registered") from exc
        return record.account_id

    async def conditional_debit(self, handle: str, amount: int, expected_min_balance: int) -> bool:
        floor = max(amount, expected_min_balance)
        async with self._session() as session:
            stmt = (
                update(AccountTable)
                .where(AccountTable.handle == handle, AccountTable.balance >= floor)
                .values(balance=AccountTable.balance - amount)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def credit(self, handle: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Cannot credit negative amount")
        async with self._session() as session:
            stmt = (
                update(AccountTable)
                .where(AccountTable.handle == handle)
                .values(balance=AccountTable.balance + amount)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise KeyError(f"Account {handle} not found")

    async def set_last_claim(
        self, handle: str, timestamp: datetime, expected_previous: datetime | None
    ) -> bool:
        if expected_previous is None:
            guard = AccountTable.last_claim.is_(None)
        else:
            guard = AccountTable.last_claim == expected_previous
        async with self._session() as session:
            stmt = (
                update(AccountTable)
                .where(AccountTable.handle == handle, guard)
                .values(last_claim=timestamp)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def adjust_balance(self, handle: str, delta: int) -> int | None:
        target = AccountTable.balance + delta
        async with self._session() as session:
            stmt = (
                update(AccountTable)
                .where(AccountTable.handle == handle)
                .values(balance=case((target < 0, 0), else_=target))
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                return None
            balance = await session.scalar(
                select(AccountTable.balance).where(AccountTable.handle == handle)
            )
            return int(balance)

    async def update_profile(self, account_id: str, *, handle: str, display_name: str) -> bool:
        try:
            async with self._session() as session:
                stmt = (
                    update(AccountTable)
                    .where(AccountTable.account_id == account_id)
                    .values(handle=handle, display_name=display_name)
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(stmt)
                return result.rowcount == 1
        except IntegrityError as exc:
            raise HandleTaken(f"Handle {handle} already registered") from exc

    async def set_password_hash(self, handle: str, password_hash: str) -> bool:
        async with self._session() as session:
            stmt = (
                update(AccountTable)
                .where(AccountTable.handle == handle)
                .values(password_hash=password_hash)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def set_flags(
        self, handle: str, *, is_admin: bool | None = None, is_banned: bool | None = None
    ) -> bool:
        values: dict[str, bool] = {}
        if is_admin is not None:
            values["is_admin"] = is_admin
        if is_banned is not None:
            values["is_banned"] = is_banned
        if not values:
            return await self.find_by_handle(handle) is not None
        async with self._session() as session:
            stmt = (
                update(AccountTable)
                .where(AccountTable.handle == handle)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def list_all(self) -> Sequence[AccountRecord]:
        async with self._session() as session:
            stmt = select(AccountTable).order_by(AccountTable.created_at.desc())
            rows = (await session.execute(stmt)).scalars().all()
            return [_account(row) for row in rows]

    async def delete(self, account_id: str) -> bool:
        async with self._session() as session:
            stmt = delete(AccountTable).where(AccountTable.account_id == account_id)
            result = await session.execute(stmt)
            return result.rowcount == 1


class AsyncSQLAlchemyItemStore(_Scoped, ItemStore):
    async def insert(self, item: ItemRecord) -> str:
        async with self._session() as session:
            session.add(
                ItemTable(
                    item_id=item.item_id,
                    name=item.name,
                    rarity=item.rarity,
                    sell_value=item.sell_value,
                    icon=item.icon,
                    owner_id=item.owner_id,
                    created_at=item.created_at,
                )
            )
            await session.flush()
        return item.item_id

    async def get(self, item_id: str) -> ItemRecord | None:
        async with self._session() as session:
            row = await session.get(ItemTable, item_id)
            return _item(row) if row else None

    async def find_by_owner(self, owner_id: str) -> Sequence[ItemRecord]:
        async with self._session() as session:
            stmt = (
                select(ItemTable)
                .where(ItemTable.owner_id == owner_id)
                .order_by(ItemTable.created_at.desc())
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_item(row) for row in rows]

    async def reassign_owner(self, item_id: str, new_owner_id: str, expected_owner_id: str) -> bool:
        async with self._session() as session:
            stmt = (
                update(ItemTable)
                .where(ItemTable.item_id == item_id, ItemTable.owner_id == expected_owner_id)
                .values(owner_id=new_owner_id)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def delete(self, item_id: str, expected_owner_id: str) -> bool:
        async with self._session() as session:
            stmt = delete(ItemTable).where(
                ItemTable.item_id == item_id, ItemTable.owner_id == expected_owner_id
            )
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def delete_by_owner(self, owner_id: str) -> int:
        async with self._session() as session:
            result = await session.execute(delete(ItemTable).where(ItemTable.owner_id == owner_id))
            return result.rowcount

    async def count_by_owner(self) -> dict[str, int]:
        async with self._session() as session:
            stmt = select(ItemTable.owner_id, func.count(ItemTable.item_id)).group_by(
                ItemTable.owner_id
            )
            rows = (await session.execute(stmt)).all()
            return {owner_id: int(count) for owner_id, count in rows}


class AsyncSQLAlchemyTradeStore(_Scoped, TradeStore):
    async def insert(self, trade: TradeRecord) -> str:
        async with self._session() as session:
            session.add(
                TradeTable(
                    trade_id=trade.trade_id,
                    proposer_id=trade.proposer_id,
                    counterparty_id=trade.counterparty_id,
                    offered_item_id=trade.offered_item_id,
                    requested_item_id=trade.requested_item_id,
                    status=trade.status.value,
                    created_at=trade.created_at,
                    updated_at=trade.updated_at,
                )
            )
            await session.flush()
        return trade.trade_id

    async def find_by_id(self, trade_id: str) -> TradeRecord | None:
        async with self._session() as session:
            row = await session.get(TradeTable, trade_id)
            return _trade(row) if row else None

    async def set_status(
        self, trade_id: str, new_status: TradeStatus, expected_status: TradeStatus
    ) -> bool:
        async with self._session() as session:
            stmt = (
                update(TradeTable)
                .where(TradeTable.trade_id == trade_id, TradeTable.status == expected_status.value)
                .values(status=new_status.value, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def list_for_account(self, account_id: str) -> Sequence[TradeRecord]:
        async with self._session() as session:
            stmt = (
                select(TradeTable)
                .where(
                    or_(
                        TradeTable.proposer_id == account_id,
                        TradeTable.counterparty_id == account_id,
                    )
                )
                .order_by(TradeTable.created_at.desc())
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_trade(row) for row in rows]

    async def delete_for_account(self, account_id: str) -> int:
        async with self._session() as session:
            stmt = delete(TradeTable).where(
                or_(
                    TradeTable.proposer_id == account_id,
                    TradeTable.counterparty_id == account_id,
                )
            )
            result = await session.execute(stmt)
            return result.rowcount


class AsyncSQLAlchemyAuditStore(_Scoped, AuditStore):
    async def add_entry(self, action: str, payload: dict) -> None:
        async with self._session() as session:
            session.add(
                AuditTable(
                    created_at=datetime.now(timezone.utc),
                    action=action,
                    payload=dict(payload),
                )
            )


class AsyncSQLAlchemyStorage:
    """Bundle of async stores backed by SQLAlchemy."""

    def __init__(
        self,
        dsn: str,
        *,
        echo: bool = False,
        _session_factory: async_sessionmaker[AsyncSession] | None = None,
        _bound: AsyncSession | None = None,
    ) -> None:
        if _session_factory is None:
            self._engine = create_async_engine(dsn, echo=echo, future=True)
            _session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        else:
            self._engine = None
        self._dsn = dsn
        self._session_factory = _session_factory
        self.accounts = AsyncSQLAlchemyAccountStore(_session_factory, _bound)
        self.items = AsyncSQLAlchemyItemStore(_session_factory, _bound)
        self.trades = AsyncSQLAlchemyTradeStore(_session_factory, _bound)
        self.audit = AsyncSQLAlchemyAuditStore(_session_factory, _bound)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["AsyncSQLAlchemyStorage"]:
        async with self._session_factory() as session:
            async with session.begin():
                yield AsyncSQLAlchemyStorage(
                    self._dsn, _session_factory=self._session_factory, _bound=session
                )

    async def init(self) -> None:
        if self._engine is None:
            return
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
