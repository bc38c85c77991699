from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from random import Random

import pytest

from cookit.app import GameApp
from cookit.config import AccountConfig, AdminConfig, CookitConfig, StorageConfig
from cookit.domain.exceptions import (
    AlreadyClaimed,
    HandleTaken,
    InsufficientFunds,
    PackOpenFailed,
    StaleTrade,
)
from cookit.storage.base import AccountRecord, TradeStatus
from cookit.storage.sqlalchemy import AsyncSQLAlchemyItemStore


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@asynccontextmanager
async def sql_app(tmp_path, clock=None):
    config = CookitConfig(
        storage=StorageConfig(
            backend="sqlalchemy", dsn=f"sqlite+aiosqlite:///{tmp_path / 'cookit.db'}"
        ),
        accounts=AccountConfig(password_iterations=1_000),
        admin=AdminConfig(master_password="master"),
    )
    app = GameApp(config, rng=Random(4), clock=clock or Clock())
    await app.init_backend()
    try:
        yield app
    finally:
        await app.close()


async def _balance(app: GameApp, handle: str) -> int:
    return (await app.storage.accounts.find_by_handle(handle)).balance


@pytest.mark.asyncio()
async def test_open_pack_persists_item_and_debit(tmp_path):
    async with sql_app(tmp_path) as app:
        profile = await app.account_service.register("chef", "Chef", "pw")
        outcome = await app.pack_engine.open_pack("chef", "og")

        assert outcome.balance == 75
        assert await _balance(app, "chef") == 75
        items = await app.storage.items.find_by_owner(profile.account_id)
        assert [item.item_id for item in items] == [outcome.item.item_id]


@pytest.mark.asyncio()
async def test_open_pack_without_funds(tmp_path):
    async with sql_app(tmp_path) as app:
        profile = await app.account_service.register("chef", "Chef", "pw")
        await app.admin_service.adjust_balance("chef", -90)

        with pytest.raises(InsufficientFunds):
            await app.pack_engine.open_pack("chef", "og")
        assert await _balance(app, "chef") == 10
        assert await app.storage.items.find_by_owner(profile.account_id) == []


@pytest.mark.asyncio()
async def test_failed_grant_rolls_back_debit(tmp_path, monkeypatch):
    async with sql_app(tmp_path) as app:
        profile = await app.account_service.register("chef", "Chef", "pw")

        async def broken_insert(self, item):
            raise RuntimeError("disk full")

        monkeypatch.setattr(AsyncSQLAlchemyItemStore, "insert", broken_insert)
        with pytest.raises(PackOpenFailed):
            await app.pack_engine.open_pack("chef", "og")
        monkeypatch.undo()

        assert await _balance(app, "chef") == 100
        assert await app.storage.items.find_by_owner(profile.account_id) == []


@pytest.mark.asyncio()
async def test_conditional_writes(tmp_path):
    async with sql_app(tmp_path) as app:
        await app.storage.accounts.insert(
            AccountRecord(handle="chef", display_name="Chef", balance=30)
        )
        accounts = app.storage.accounts

        assert not await accounts.conditional_debit("chef", 25, expected_min_balance=40)
        assert await accounts.conditional_debit("chef", 25, expected_min_balance=25)
        assert not await accounts.conditional_debit("chef", 25, expected_min_balance=25)
        assert await _balance(app, "chef") == 5

        stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert await accounts.set_last_claim("chef", stamp, expected_previous=None)
        assert not await accounts.set_last_claim("chef", stamp, expected_previous=None)

        assert await accounts.adjust_balance("chef", -100) == 0
        assert await accounts.adjust_balance("ghost", 1) is None


@pytest.mark.asyncio()
async def test_duplicate_handle_violates_unique_constraint(tmp_path):
    async with sql_app(tmp_path) as app:
        await app.storage.accounts.insert(AccountRecord(handle="chef", display_name="Chef"))
        with pytest.raises(HandleTaken):
            await app.storage.accounts.insert(AccountRecord(handle="chef", display_name="Other"))


@pytest.mark.asyncio()
async def test_transaction_rolls_back_on_error(tmp_path):
    async with sql_app(tmp_path) as app:
        await app.storage.accounts.insert(
            AccountRecord(handle="chef", display_name="Chef", balance=10)
        )

        with pytest.raises(RuntimeError):
            async with app.storage.transaction() as tx:
                await tx.accounts.credit("chef", 50)
                raise RuntimeError("abort")

        assert await _balance(app, "chef") == 10


@pytest.mark.asyncio()
async def test_daily_claim_cooldown(tmp_path):
    clock = Clock()
    async with sql_app(tmp_path, clock=clock) as app:
        await app.account_service.register("chef", "Chef", "pw")
        first = await app.claim_engine.claim_daily("chef")

        clock.now += timedelta(hours=1)
        with pytest.raises(AlreadyClaimed):
            await app.claim_engine.claim_daily("chef")

        clock.now += timedelta(hours=23)
        second = await app.claim_engine.claim_daily("chef")
        assert await _balance(app, "chef") == 100 + first.amount + second.amount


@pytest.mark.asyncio()
async def test_trade_round_trip_and_stale_offer(tmp_path):
    async with sql_app(tmp_path) as app:
        chef = await app.account_service.register("chef", "Chef", "pw")
        baker = await app.account_service.register("baker", "Baker", "pw")
        pasta = (await app.pack_engine.open_pack("chef", "og")).item
        bread = (await app.pack_engine.open_pack("baker", "og")).item
        soup = (await app.pack_engine.open_pack("chef", "og")).item

        trade = await app.trade_engine.create_trade("chef", "baker", pasta.item_id, bread.item_id)
        await app.trade_engine.accept_trade(trade.trade_id, "baker")
        assert (await app.storage.items.get(pasta.item_id)).owner_id == baker.account_id
        assert (await app.storage.items.get(bread.item_id)).owner_id == chef.account_id
        stored = await app.storage.trades.find_by_id(trade.trade_id)
        assert stored.status is TradeStatus.ACCEPTED

        stale = await app.trade_engine.create_trade("chef", "baker", soup.item_id, pasta.item_id)
        await app.account_service.sell_item("chef", soup.item_id)
        with pytest.raises(StaleTrade):
            await app.trade_engine.accept_trade(stale.trade_id, "baker")
        assert (await app.storage.trades.find_by_id(stale.trade_id)).status is TradeStatus.PENDING

        partners = await app.trade_engine.list_partners("chef")
        assert [(p.handle, p.cook_count) for p in partners] == [("baker", 1)]


@pytest.mark.asyncio()
async def test_delete_account_cascades(tmp_path):
    async with sql_app(tmp_path) as app:
        chef = await app.account_service.register("chef", "Chef", "pw")
        await app.account_service.register("baker", "Baker", "pw")
        pasta = (await app.pack_engine.open_pack("chef", "og")).item
        bread = (await app.pack_engine.open_pack("baker", "og")).item
        trade = await app.trade_engine.create_trade("chef", "baker", pasta.item_id, bread.item_id)

        await app.admin_service.delete_account("chef", "master")

        assert await app.storage.accounts.find_by_id(chef.account_id) is None
        assert await app.storage.items.get(pasta.item_id) is None
        assert await app.storage.trades.find_by_id(trade.trade_id) is None
        counts = await app.storage.items.count_by_owner()
        assert sum(counts.values()) == 1
