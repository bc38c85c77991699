from random import Random

import pytest

from cookit.app import GameApp
from cookit.config import CookitConfig
from cookit.domain.exceptions import (
    AccountNotFound,
    Banned,
    NotPermitted,
    OwnershipError,
    StaleTrade,
    TradeClosed,
    TradeNotFound,
)
from cookit.storage.base import AccountRecord, ItemRecord, TradeStatus
from cookit.storage.memory import InMemoryTradeStore


@pytest.fixture()
def app():
    return GameApp(CookitConfig(), rng=Random(5))


async def _account(app: GameApp, handle: str, **fields) -> AccountRecord:
    record = AccountRecord(handle=handle, display_name=handle.title(), **fields)
    await app.storage.accounts.insert(record)
    return record


async def _item(app: GameApp, owner: AccountRecord, name: str) -> ItemRecord:
    item = ItemRecord(
        name=name, rarity="Rare", sell_value=20, icon="🍳", owner_id=owner.account_id
    )
    await app.storage.items.insert(item)
    return item


async def _owner(app: GameApp, item: ItemRecord) -> str | None:
    stored = await app.storage.items.get(item.item_id)
    return stored.owner_id if stored else None


@pytest.fixture()
def parties(app):
    async def build():
        alice = await _account(app, "alice")
        bob = await _account(app, "bob")
        pasta = await _item(app, alice, "pasta")
        ramen = await _item(app, bob, "ramen")
        return alice, bob, pasta, ramen

    return build


@pytest.mark.asyncio()
async def test_accept_swaps_exactly_the_two_cooks(app, parties):
    alice, bob, pasta, ramen = await parties()
    extra = await _item(app, alice, "soup")
    trade = await app.trade_engine.create_trade("alice", "bob", pasta.item_id, ramen.item_id)
    assert trade.status is TradeStatus.PENDING

    accepted = await app.trade_engine.accept_trade(trade.trade_id, "bob")

    assert accepted.status is TradeStatus.ACCEPTED
    assert await _owner(app, pasta) == bob.account_id
    assert await _owner(app, ramen) == alice.account_id
    assert await _owner(app, extra) == alice.account_id
    assert len(await app.storage.items.find_by_owner(alice.account_id)) == 2
    assert len(await app.storage.items.find_by_owner(bob.account_id)) == 1
    stored = await app.storage.trades.find_by_id(trade.trade_id)
    assert stored.status is TradeStatus.ACCEPTED


@pytest.mark.asyncio()
async def test_accepting_twice_is_rejected_without_changes(app, parties):
    alice, bob, pasta, ramen = await parties()
    trade = await app.trade_engine.create_trade("alice", "bob", pasta.item_id, ramen.item_id)
    await app.trade_engine.accept_trade(trade.trade_id, "bob")

    with pytest.raises(TradeClosed):
        await app.trade_engine.accept_trade(trade.trade_id, "bob")
    assert await _owner(app, pasta) == bob.account_id
    assert await _owner(app, ramen) == alice.account_id


@pytest.mark.asyncio()
async def test_offered_cook_sold_before_accept_makes_trade_stale(app, parties):
    alice, bob, pasta, ramen = await parties()
    trade = await app.trade_engine.create_trade("alice", "bob", pasta.item_id, ramen.item_id)
    await app.account_service.sell_item("alice", pasta.item_id)

    with pytest.raises(StaleTrade):
        await app.trade_engine.accept_trade(trade.trade_id, "bob")

    assert await _owner(app, ramen) == bob.account_id
    stored = await app.storage.trades.find_by_id(trade.trade_id)
    assert stored.status is TradeStatus.PENDING


@pytest.mark.asyncio()
async def test_requested_cook_moved_elsewhere_makes_trade_stale(app, parties):
    alice, bob, pasta, ramen = await parties()
    carol = await _account(app, "carol")
    trade = await app.trade_engine.create_trade("alice", "bob", pasta.item_id, ramen.item_id)
    await app.storage.items.reassign_owner(ramen.item_id, carol.account_id, bob.account_id)

    with pytest.raises(StaleTrade):
        await app.trade_engine.accept_trade(trade.trade_id, "bob")
    assert await _owner(app, pasta) == alice.account_id
    assert await _owner(app, ramen) == carol.account_id


@pytest.mark.asyncio()
async def test_settlement_rolls_back_when_trade_closes_concurrently(app, parties, monkeypatch):
    alice, bob, pasta, ramen = await parties()
    trade = await app.trade_engine.create_trade("alice", "bob", pasta.item_id, ramen.item_id)

    async def lost_race(self, trade_id, new_status, expected_status):
        return False

    monkeypatch.setattr(InMemoryTradeStore, "set_status", lost_race)
    with pytest.raises(TradeClosed):
        await app.trade_engine.accept_trade(trade.trade_id, "bob")
    monkeypatch.undo()

    assert await _owner(app, pasta) == alice.account_id
    assert await _owner(app, ramen) == bob.account_id


@pytest.mark.asyncio()
async def test_only_counterparty_may_accept(app, parties):
    alice, bob, pasta, ramen = await parties()
    await _account(app, "carol")
    trade = await app.trade_engine.create_trade("alice", "bob", pasta.item_id, ramen.item_id)

    with pytest.raises(NotPermitted):
        await app.trade_engine.accept_trade(trade.trade_id, "alice")
    with pytest.raises(NotPermitted):
        await app.trade_engine.accept_trade(trade.trade_id, "carol")
    with pytest.raises(NotPermitted):
        await app.trade_engine.decline_trade(trade.trade_id, "carol")
    assert await _owner(app, pasta) == alice.account_id


@pytest.mark.asyncio()
async def test_unknown_trade(app, parties):
    await parties()
    with pytest.raises(TradeNotFound):
        await app.trade_engine.accept_trade("missing", "bob")


@pytest.mark.asyncio()
async def test_decline_leaves_ownership_unchanged(app, parties):
    alice, bob, pasta, ramen = await parties()
    trade = await app.trade_engine.create_trade("alice", "bob", pasta.item_id, ramen.item_id)

    declined = await app.trade_engine.decline_trade(trade.trade_id, "bob")

    assert declined.status is TradeStatus.DECLINED
    assert await _owner(app, pasta) == alice.account_id
    assert await _owner(app, ramen) == bob.account_id
    with pytest.raises(TradeClosed):
        await app.trade_engine.accept_trade(trade.trade_id, "bob")
    with pytest.raises(TradeClosed):
        await app.trade_engine.decline_trade(trade.trade_id, "bob")


@pytest.mark.asyncio()
async def test_create_requires_ownership(app, parties):
    alice, bob, pasta, ramen = await parties()
    with pytest.raises(OwnershipError):
        await app.trade_engine.create_trade("alice", "bob", ramen.item_id, pasta.item_id)
    with pytest.raises(OwnershipError):
        await app.trade_engine.create_trade("alice", "bob", pasta.item_id, "missing")
    with pytest.raises(OwnershipError):
        await app.trade_engine.create_trade("alice", "alice", pasta.item_id, pasta.item_id)
    with pytest.raises(AccountNotFound):
        await app.trade_engine.create_trade("alice", "nobody", pasta.item_id, ramen.item_id)


@pytest.mark.asyncio()
async def test_banned_accounts_cannot_trade(app, parties):
    alice, bob, pasta, ramen = await parties()
    trade = await app.trade_engine.create_trade("alice", "bob", pasta.item_id, ramen.item_id)
    await app.storage.accounts.set_flags("bob", is_banned=True)

    with pytest.raises(Banned):
        await app.trade_engine.accept_trade(trade.trade_id, "bob")
    with pytest.raises(Banned):
        await app.trade_engine.create_trade("bob", "alice", ramen.item_id, pasta.item_id)


@pytest.mark.asyncio()
async def test_pending_offer_from_banned_proposer_stays_open(app, parties):
    alice, bob, pasta, ramen = await parties()
    trade = await app.trade_engine.create_trade("alice", "bob", pasta.item_id, ramen.item_id)
    await app.admin_service.ban("alice")

    await app.trade_engine.accept_trade(trade.trade_id, "bob")
    assert await _owner(app, pasta) == bob.account_id


@pytest.mark.asyncio()
async def test_list_trades_marks_direction(app, parties):
    alice, bob, pasta, ramen = await parties()
    trade = await app.trade_engine.create_trade("alice", "bob", pasta.item_id, ramen.item_id)

    sent = await app.trade_engine.list_trades("alice")
    received = await app.trade_engine.list_trades("bob")

    assert [view.trade_id for view in sent] == [trade.trade_id]
    assert sent[0].is_sent_by_user
    assert not received[0].is_sent_by_user
    assert received[0].proposer_name == "Alice"
    assert received[0].counterparty_name == "Bob"
    assert received[0].offered.name == "pasta"
    assert received[0].requested.name == "ramen"
    assert received[0].status is TradeStatus.PENDING


@pytest.mark.asyncio()
async def test_list_partners_only_includes_other_owners_by_name(app, parties):
    alice, bob, pasta, ramen = await parties()
    carol = await _account(app, "carol")
    await _account(app, "dave")
    await _item(app, carol, "tacos")
    await _item(app, carol, "sushi")

    partners = await app.trade_engine.list_partners("bob")

    assert [partner.display_name for partner in partners] == ["Alice", "Carol"]
    assert [partner.cook_count for partner in partners] == [1, 2]
    assert partners[1].handle == "carol"
    assert partners[1].account_id == carol.account_id


@pytest.mark.asyncio()
async def test_list_partners_for_unknown_account(app):
    with pytest.raises(AccountNotFound):
        await app.trade_engine.list_partners("ghost")
