"""Account-centric utilities: registration, profile, inventory and selling."""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

from .claims import cooldown_remaining, format_wait
from .events import ACCOUNT_REGISTERED, ITEM_SOLD, EventBus
from .exceptions import AccountNotFound, HandleTaken, InvalidCredentials, ItemNotFound
from .guards import require_account, require_active_account
from ..config import AccountConfig, ClaimConfig
from ..storage.base import AccountRecord, ItemRecord, Storage, utcnow

logger = logging.getLogger(__name__)


def hash_password(password: str, *, iterations: int = 120_000) -> str:
    salt = os.urandom(16).hex()
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt), iterations
    ).hex()
    return f"pbkdf2_sha256${iterations}${salt}${digest}"


def verify_password_hash(password: str, stored: str) -> bool:
    try:
        algo, iters, salt, digest = stored.split("$", 3)
        iterations = int(iters)
    except ValueError:
        return False
    if algo != "pbkdf2_sha256":
        return False
    candidate = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt), iterations
    ).hex()
    return hmac.compare_digest(candidate, digest)


@dataclass(slots=True)
class InventoryStack:
    """Identical cooks (same name and rarity) grouped together."""

    name: str
    rarity: str
    sell_value: int
    icon: str
    ids: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.ids)


@dataclass(slots=True)
class AccountProfile:
    account_id: str
    handle: str
    display_name: str
    balance: int
    is_admin: bool
    can_claim: bool
    next_claim_in: str
    inventory: Sequence[InventoryStack]


@dataclass(slots=True)
class SaleOutcome:
    item_id: str
    tokens_received: int
    balance: int


@dataclass(slots=True)
class LeaderboardEntry:
    rank: int
    handle: str
    display_name: str
    cook_count: int
    balance: int


def group_inventory(items: Sequence[ItemRecord]) -> list[InventoryStack]:
    stacks: dict[tuple[str, str], InventoryStack] = {}
    for item in items:
        key = (item.name, item.rarity)
        stack = stacks.get(key)
        if stack is None:
            stack = stacks[key] = InventoryStack(
                name=item.name, rarity=item.rarity, sell_value=item.sell_value, icon=item.icon
            )
        stack.ids.append(item.item_id)
    return list(stacks.values())


class AccountService:
    """Expose read/write operations for account state."""

    def __init__(
        self,
        storage: Storage,
        config: AccountConfig,
        claim_config: ClaimConfig,
        event_bus: EventBus,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._config = config
        self._claim_config = claim_config
        self._event_bus = event_bus
        self._clock = clock

    async def register(self, handle: str, display_name: str, password: str) -> AccountProfile:
        handle = handle.strip()
        if not handle:
            raise ValueError("Handle must not be empty")
        if not password:
            raise ValueError("Password must not be empty")
        if await self._storage.accounts.find_by_handle(handle) is not None:
            raise HandleTaken(f"Handle {handle} already registered")
        record = AccountRecord(
            handle=handle,
            display_name=display_name or handle,
            password_hash=hash_password(password, iterations=self._config.password_iterations),
            balance=self._config.starting_balance,
            created_at=self._clock(),
        )
        await self._storage.accounts.insert(record)
        logger.info("Registered account %s", handle)
        await self._event_bus.publish(
            ACCOUNT_REGISTERED, {"handle": handle, "account_id": record.account_id}
        )
        return await self.profile(handle)

    async def verify_password(self, handle: str, password: str) -> bool:
        record = await self._storage.accounts.find_by_handle(handle)
        if record is None:
            return False
        return verify_password_hash(password, record.password_hash)

    async def change_password(self, handle: str, current_password: str, new_password: str) -> None:
        record = await require_account(self._storage.accounts, handle)
        if not verify_password_hash(current_password, record.password_hash):
            raise InvalidCredentials("Current password is incorrect")
        if not new_password:
            raise ValueError("Password must not be empty")
        await self._storage.accounts.set_password_hash(
            handle, hash_password(new_password, iterations=self._config.password_iterations)
        )

    async def profile(self, handle: str) -> AccountProfile:
        record = await require_active_account(self._storage.accounts, handle)
        remaining = cooldown_remaining(
            record.last_claim, self._claim_config.cooldown_seconds, self._clock()
        )
        items = await self._storage.items.find_by_owner(record.account_id)
        return AccountProfile(
            account_id=record.account_id,
            handle=record.handle,
            display_name=record.display_name,
            balance=record.balance,
            is_admin=record.is_admin,
            can_claim=remaining == 0,
            next_claim_in=format_wait(remaining),
            inventory=group_inventory(items),
        )

    async def inventory(self, handle: str) -> list[InventoryStack]:
        record = await require_account(self._storage.accounts, handle)
        return group_inventory(await self._storage.items.find_by_owner(record.account_id))

    async def update_settings(
        self, handle: str, *, display_name: str, new_handle: str | None = None
    ) -> AccountProfile:
        record = await require_account(self._storage.accounts, handle)
        target = (new_handle or handle).strip()
        if target != handle and await self._storage.accounts.find_by_handle(target) is not None:
            raise HandleTaken(f"Handle {target} already registered")
        updated = await self._storage.accounts.update_profile(
            record.account_id, handle=target, display_name=display_name
        )
        if not updated:
            raise AccountNotFound(f"Account {handle} not found")
        return await self.profile(target)

    async def sell_item(self, handle: str, item_id: str) -> SaleOutcome:
        record = await require_active_account(self._storage.accounts, handle)
        item = await self._storage.items.get(item_id)
        if item is None or item.owner_id != record.account_id:
            raise ItemNotFound(f"{handle} does not own {item_id}")

        async with self._storage.transaction() as tx:
            removed = await tx.items.delete(item_id, expected_owner_id=record.account_id)
            if not removed:
                raise ItemNotFound(f"{item_id} left {handle}'s inventory before the sale")
            await tx.accounts.credit(handle, item.sell_value)

        refreshed = await self._storage.accounts.find_by_handle(handle)
        balance = refreshed.balance if refreshed else record.balance + item.sell_value
        logger.info("%s sold %s (%s) for %s", handle, item.name, item_id, item.sell_value)
        await self._event_bus.publish(
            ITEM_SOLD, {"handle": handle, "item_id": item_id, "amount": item.sell_value}
        )
        return SaleOutcome(item_id=item_id, tokens_received=item.sell_value, balance=balance)

    async def leaderboard(self, limit: int | None = None) -> list[LeaderboardEntry]:
        """Rank accounts by number of cooks owned, then by balance."""
        counts = await self._storage.items.count_by_owner()
        records = sorted(
            await self._storage.accounts.list_all(),
            key=lambda rec: (-counts.get(rec.account_id, 0), -rec.balance, rec.handle),
        )
        if limit is not None:
            records = records[:limit]
        return [
            LeaderboardEntry(
                rank=idx,
                handle=record.handle,
                display_name=record.display_name,
                cook_count=counts.get(record.account_id, 0),
                balance=record.balance,
            )
            for idx, record in enumerate(records, start=1)
        ]
