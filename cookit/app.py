"""Top level application object for Cook'it."""

from __future__ import annotations

import logging
from datetime import datetime
from random import Random
from typing import Any, Callable

from .admin.service import AdminService
from .config import CookitConfig
from .domain.accounts import AccountService
from .domain.claims import ClaimEngine
from .domain.events import EventBus
from .domain.packs import PackCatalog, PackEngine
from .domain.rarity import RarityTable
from .domain.trades import TradeEngine
from .loaders import load_rarity_table
from .storage.base import Storage, utcnow
from .storage.memory import InMemoryStorage
from .storage.sqlalchemy import AsyncSQLAlchemyStorage

logger = logging.getLogger(__name__)


class GameApp:
    """Central dependency container used by request handlers."""

    def __init__(
        self,
        config: CookitConfig,
        *,
        storage: Storage | None = None,
        rarity_table: RarityTable | None = None,
        event_bus: EventBus | None = None,
        rng: Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.event_bus = event_bus or EventBus()
        self.rarity_table = rarity_table or self._load_rarity_table()
        self.packs = PackCatalog.from_prices(config.packs.prices)

        self._rng = rng or (Random(config.rng_seed) if config.rng_seed is not None else Random())
        self._sqlalchemy_storage: AsyncSQLAlchemyStorage | None = None
        self.storage = storage or self._wire_storage()

        self.pack_engine = PackEngine(
            self.storage,
            self.packs,
            self.rarity_table,
            config.packs,
            self.event_bus,
            rng=self._rng,
        )
        self.claim_engine = ClaimEngine(
            self.storage, config.claim, self.event_bus, rng=self._rng, clock=clock
        )
        self.trade_engine = TradeEngine(self.storage, self.event_bus, clock=clock)
        self.account_service = AccountService(
            self.storage, config.accounts, config.claim, self.event_bus, clock=clock
        )
        self.admin_service = AdminService(self.storage, config.admin, self.event_bus)

    def _load_rarity_table(self) -> RarityTable:
        path = self.config.rarity_table_path
        if not path:
            return RarityTable.default()
        table = load_rarity_table(path)
        logger.info("Loaded %s rarity tiers from %s", len(table), path)
        return table

    def _wire_storage(self) -> Storage:
        backend = self.config.storage.backend
        if backend == "memory":
            return InMemoryStorage()
        if backend == "sqlalchemy":
            dsn = self.config.storage.resolve_dsn()
            if not dsn:
                raise ValueError("SQLAlchemy backend requires a DSN")
            storage = AsyncSQLAlchemyStorage(dsn, echo=self.config.storage.echo_sql)
            self._sqlalchemy_storage = storage
            return storage
        raise ValueError(f"Unsupported storage backend {backend}")

    def snapshot(self) -> dict[str, Any]:
        """Export current configuration for debugging."""
        return {
            "storage": self.config.storage.backend,
            "packs": {pack.pack_id: pack.price for pack in self.packs.iter_packs()},
            "rarities": [tier.label for tier in self.rarity_table],
            "claim_cooldown": self.config.claim.cooldown_seconds,
            "transactional_packs": self.config.packs.transactional,
        }

    async def init_backend(self) -> None:
        """Initialize storage backend resources (e.g., database tables)."""
        await self.storage.init()

    async def close(self) -> None:
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.dispose()
