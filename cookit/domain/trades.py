"""Two-party cook trades."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .events import TRADE_ACCEPTED, TRADE_CREATED, TRADE_DECLINED, EventBus
from .exceptions import (
    NotPermitted,
    OwnershipError,
    StaleTrade,
    TradeClosed,
    TradeNotFound,
)
from .guards import require_account, require_active_account
from ..storage.base import (
    AccountRecord,
    ItemRecord,
    Storage,
    TradeRecord,
    TradeStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TradeItemView:
    item_id: str
    name: str | None
    rarity: str | None
    icon: str | None


@dataclass(slots=True)
class TradeView:
    trade_id: str
    proposer_id: str
    counterparty_id: str
    proposer_name: str | None
    counterparty_name: str | None
    offered: TradeItemView
    requested: TradeItemView
    status: TradeStatus
    created_at: datetime
    is_sent_by_user: bool


@dataclass(slots=True)
class TradePartner:
    account_id: str
    handle: str
    display_name: str
    cook_count: int


class TradeEngine:
    """Create, accept and decline 1-for-1 cook swaps.

    Ownership is checked when an offer is made and again when it is accepted;
    the swap itself uses expected-owner conditional writes inside one
    transaction, so either both cooks move and the offer closes, or nothing
    changes.
    """

    def __init__(
        self,
        storage: Storage,
        event_bus: EventBus,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._event_bus = event_bus
        self._clock = clock

    async def create_trade(
        self,
        proposer_handle: str,
        counterparty_handle: str,
        offered_item_id: str,
        requested_item_id: str,
    ) -> TradeRecord:
        proposer = await require_active_account(self._storage.accounts, proposer_handle)
        counterparty = await require_account(self._storage.accounts, counterparty_handle)
        if proposer.account_id == counterparty.account_id:
            raise OwnershipError("Cannot trade with yourself")

        offered = await self._storage.items.get(offered_item_id)
        if offered is None or offered.owner_id != proposer.account_id:
            raise OwnershipError(f"{proposer_handle} does not own {offered_item_id}")
        requested = await self._storage.items.get(requested_item_id)
        if requested is None or requested.owner_id != counterparty.account_id:
            raise OwnershipError(f"{counterparty_handle} does not own {requested_item_id}")

        now = self._clock()
        trade = TradeRecord(
            proposer_id=proposer.account_id,
            counterparty_id=counterparty.account_id,
            offered_item_id=offered_item_id,
            requested_item_id=requested_item_id,
            created_at=now,
            updated_at=now,
        )
        await self._storage.trades.insert(trade)
        logger.info(
            "Trade %s created: %s offers %s to %s for %s",
            trade.trade_id,
            proposer_handle,
            offered_item_id,
            counterparty_handle,
            requested_item_id,
        )
        await self._event_bus.publish(
            TRADE_CREATED,
            {
                "trade_id": trade.trade_id,
                "proposer_id": proposer.account_id,
                "counterparty_id": counterparty.account_id,
            },
        )
        return trade

    async def accept_trade(self, trade_id: str, acting_handle: str) -> TradeRecord:
        trade, actor = await self._load_for_counterparty(trade_id, acting_handle)

        offered = await self._storage.items.get(trade.offered_item_id)
        requested = await self._storage.items.get(trade.requested_item_id)
        if not _owned_by(offered, trade.proposer_id) or not _owned_by(
            requested, trade.counterparty_id
        ):
            raise StaleTrade(f"Items of trade {trade_id} changed hands since it was offered")

        async with self._storage.transaction() as tx:
            moved_offered = await tx.items.reassign_owner(
                trade.offered_item_id, trade.counterparty_id, expected_owner_id=trade.proposer_id
            )
            moved_requested = await tx.items.reassign_owner(
                trade.requested_item_id, trade.proposer_id, expected_owner_id=trade.counterparty_id
            )
            if not (moved_offered and moved_requested):
                raise StaleTrade(f"Items of trade {trade_id} changed hands during settlement")
            closed = await tx.trades.set_status(
                trade_id, TradeStatus.ACCEPTED, expected_status=TradeStatus.PENDING
            )
            if not closed:
                raise TradeClosed(f"Trade {trade_id} was already processed")

        trade.status = TradeStatus.ACCEPTED
        trade.updated_at = self._clock()
        logger.info("Trade %s accepted by %s", trade_id, actor.handle)
        await self._event_bus.publish(
            TRADE_ACCEPTED,
            {
                "trade_id": trade_id,
                "proposer_id": trade.proposer_id,
                "counterparty_id": trade.counterparty_id,
            },
        )
        return trade

    async def decline_trade(self, trade_id: str, acting_handle: str) -> TradeRecord:
        trade, actor = await self._load_for_counterparty(trade_id, acting_handle)
        closed = await self._storage.trades.set_status(
            trade_id, TradeStatus.DECLINED, expected_status=TradeStatus.PENDING
        )
        if not closed:
            raise TradeClosed(f"Trade {trade_id} was already processed")
        trade.status = TradeStatus.DECLINED
        trade.updated_at = self._clock()
        logger.info("Trade %s declined by %s", trade_id, actor.handle)
        await self._event_bus.publish(
            TRADE_DECLINED,
            {
                "trade_id": trade_id,
                "proposer_id": trade.proposer_id,
                "counterparty_id": trade.counterparty_id,
            },
        )
        return trade

    async def list_trades(self, handle: str) -> list[TradeView]:
        account = await require_account(self._storage.accounts, handle)
        trades = await self._storage.trades.list_for_account(account.account_id)
        names: dict[str, str | None] = {account.account_id: account.display_name}
        views: list[TradeView] = []
        for trade in trades:
            for account_id in (trade.proposer_id, trade.counterparty_id):
                if account_id not in names:
                    other = await self._storage.accounts.find_by_id(account_id)
                    names[account_id] = other.display_name if other else None
            views.append(
                TradeView(
                    trade_id=trade.trade_id,
                    proposer_id=trade.proposer_id,
                    counterparty_id=trade.counterparty_id,
                    proposer_name=names[trade.proposer_id],
                    counterparty_name=names[trade.counterparty_id],
                    offered=await self._item_view(trade.offered_item_id),
                    requested=await self._item_view(trade.requested_item_id),
                    status=trade.status,
                    created_at=trade.created_at,
                    is_sent_by_user=trade.proposer_id == account.account_id,
                )
            )
        return views

    async def list_partners(self, handle: str) -> list[TradePartner]:
        """Accounts other than ``handle`` that own at least one cook, by name."""
        account = await require_account(self._storage.accounts, handle)
        counts = await self._storage.items.count_by_owner()
        partners = [
            TradePartner(
                account_id=record.account_id,
                handle=record.handle,
                display_name=record.display_name,
                cook_count=counts[record.account_id],
            )
            for record in await self._storage.accounts.list_all()
            if record.account_id != account.account_id and counts.get(record.account_id, 0) > 0
        ]
        partners.sort(key=lambda partner: (partner.display_name, partner.handle))
        return partners

    async def _load_for_counterparty(
        self, trade_id: str, acting_handle: str
    ) -> tuple[TradeRecord, AccountRecord]:
        actor = await require_active_account(self._storage.accounts, acting_handle)
        trade = await self._storage.trades.find_by_id(trade_id)
        if trade is None:
            raise TradeNotFound(f"Trade {trade_id} not found")
        if trade.counterparty_id != actor.account_id:
            raise NotPermitted(f"{acting_handle} is not the recipient of trade {trade_id}")
        if trade.status is not TradeStatus.PENDING:
            raise TradeClosed(f"Trade {trade_id} is {trade.status.value}")
        return trade, actor

    async def _item_view(self, item_id: str) -> TradeItemView:
        item = await self._storage.items.get(item_id)
        if item is None:
            return TradeItemView(item_id=item_id, name=None, rarity=None, icon=None)
        return TradeItemView(item_id=item_id, name=item.name, rarity=item.rarity, icon=item.icon)


def _owned_by(item: ItemRecord | None, owner_id: str) -> bool:
    return item is not None and item.owner_id == owner_id
