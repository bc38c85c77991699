"""Pack catalog and the pack-opening purchase flow."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from random import Random
from typing import Iterable, Mapping

from .events import PACK_OPENED, EventBus
from .exceptions import (
    CompensationFailure,
    ConfigError,
    CookitError,
    InsufficientFunds,
    PackOpenFailed,
    UnknownPack,
)
from .guards import require_active_account
from .rarity import RarityTable, RarityTier
from ..config import PackConfig
from ..storage.base import ItemRecord, Storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Pack:
    pack_id: str
    name: str
    price: int


class PackCatalog:
    """Registry of purchasable packs."""

    def __init__(self) -> None:
        self._packs: dict[str, Pack] = {}

    @classmethod
    def from_prices(cls, prices: Mapping[str, int]) -> "PackCatalog":
        catalog = cls()
        for pack_id, price in prices.items():
            catalog.register(Pack(pack_id=pack_id, name=f"{pack_id.upper()} Pack", price=int(price)))
        return catalog

    def register(self, pack: Pack) -> None:
        if pack.pack_id in self._packs:
            raise ValueError(f"Pack {pack.pack_id} already registered")
        self._packs[pack.pack_id] = pack

    def get(self, pack_id: str) -> Pack:
        try:
            pack = self._packs[pack_id]
        except KeyError as exc:
            raise UnknownPack(f"Pack {pack_id} not found") from exc
        if pack.price <= 0:
            raise ConfigError(f"Pack {pack_id} has non-positive price {pack.price}")
        return pack

    def iter_packs(self) -> Iterable[Pack]:
        return self._packs.values()


@dataclass(slots=True)
class PackOutcome:
    item: ItemRecord
    tier: RarityTier
    drop_weight: float
    balance: int


class PackEngine:
    """Sell a pack: weighted draw, balance debit, inventory credit."""

    def __init__(
        self,
        storage: Storage,
        catalog: PackCatalog,
        table: RarityTable,
        config: PackConfig,
        event_bus: EventBus,
        *,
        rng: Random | None = None,
    ) -> None:
        self._storage = storage
        self._catalog = catalog
        self._table = table
        self._config = config
        self._event_bus = event_bus
        self._rng = rng or Random()

    async def open_pack(self, handle: str, pack_id: str) -> PackOutcome:
        pack = self._catalog.get(pack_id)
        account = await require_active_account(self._storage.accounts, handle)
        if account.balance < pack.price:
            raise InsufficientFunds(f"{handle} has {account.balance}, pack costs {pack.price}")

        tier, name = self._table.draw(self._rng)
        item = ItemRecord(
            name=name,
            rarity=tier.label,
            sell_value=tier.sell_value,
            icon=tier.icon,
            owner_id=account.account_id,
        )

        if self._config.transactional:
            await self._settle_atomically(handle, pack, item)
        else:
            await self._settle_with_compensation(handle, pack, item)

        refreshed = await self._storage.accounts.find_by_handle(handle)
        balance = refreshed.balance if refreshed else account.balance - pack.price

        logger.info(
            "%s opened %s: %s (%s, weight %s)", handle, pack.pack_id, name, tier.label, tier.weight
        )
        await self._event_bus.publish(
            PACK_OPENED,
            {
                "handle": handle,
                "pack_id": pack.pack_id,
                "item_id": item.item_id,
                "name": name,
                "rarity": tier.label,
            },
        )
        return PackOutcome(item=item, tier=tier, drop_weight=tier.weight, balance=balance)

    async def _settle_atomically(self, handle: str, pack: Pack, item: ItemRecord) -> None:
        try:
            async with self._storage.transaction() as tx:
                await self._debit(tx, handle, pack)
                await tx.items.insert(item)
        except CookitError:
            raise
        except Exception as exc:
            logger.error(
                "Failed to grant %s to %s; purchase rolled back", item.item_id, handle, exc_info=True
            )
            raise PackOpenFailed(f"Could not grant item to {handle}") from exc

    async def _settle_with_compensation(self, handle: str, pack: Pack, item: ItemRecord) -> None:
        await self._debit(self._storage, handle, pack)
        try:
            await self._storage.items.insert(item)
        except Exception as insert_exc:
            logger.error(
                "Failed to grant %s to %s, refunding %s tokens",
                item.item_id,
                handle,
                pack.price,
                exc_info=True,
            )
            try:
                await self._storage.accounts.credit(handle, pack.price)
            except Exception as refund_exc:
                logger.critical(
                    "Refund failed: %s was debited %s tokens for pack %s but item %s was not granted",
                    handle,
                    pack.price,
                    pack.pack_id,
                    item.item_id,
                    exc_info=True,
                )
                raise CompensationFailure(handle, pack.price, item.item_id) from refund_exc
            logger.info("Refunded %s tokens to %s", pack.price, handle)
            raise PackOpenFailed(f"Could not grant item to {handle}") from insert_exc

    async def _debit(self, storage: Storage, handle: str, pack: Pack) -> None:
        debited = await storage.accounts.conditional_debit(
            handle, pack.price, expected_min_balance=pack.price
        )
        if not debited:
            raise InsufficientFunds(f"{handle} cannot cover {pack.price} tokens")
