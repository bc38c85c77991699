"""Administrative operations for Cook'it."""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from ..config import AdminConfig
from ..domain.accounts import verify_password_hash
from ..domain.events import EventBus
from ..domain.exceptions import AccountNotFound, Banned, InvalidCredentials, NotPermitted
from ..domain.guards import require_account
from ..storage.base import AccountRecord, Storage

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AccountSummary:
    account_id: str
    handle: str
    display_name: str
    balance: int
    last_claim: datetime | None
    is_admin: bool
    is_banned: bool
    item_count: int


def _summary(record: AccountRecord, item_count: int) -> AccountSummary:
    return AccountSummary(
        account_id=record.account_id,
        handle=record.handle,
        display_name=record.display_name,
        balance=record.balance,
        last_claim=record.last_claim,
        is_admin=record.is_admin,
        is_banned=record.is_banned,
        item_count=item_count,
    )


class AdminService:
    def __init__(self, storage: Storage, config: AdminConfig, event_bus: EventBus) -> None:
        self._storage = storage
        self._config = config
        self._events = event_bus

    async def list_accounts(self) -> list[AccountSummary]:
        counts = await self._storage.items.count_by_owner()
        return [
            _summary(record, counts.get(record.account_id, 0))
            for record in await self._storage.accounts.list_all()
        ]

    async def adjust_balance(self, handle: str, delta: int) -> int:
        balance = await self._storage.accounts.adjust_balance(handle, delta)
        if balance is None:
            raise AccountNotFound(f"Account {handle} not found")
        await self._audit("adjust_balance", {"handle": handle, "delta": delta, "balance": balance})
        await self._events.publish(
            "admin.balance.adjusted", {"handle": handle, "delta": delta, "balance": balance}
        )
        return balance

    async def grant_admin(self, handle: str) -> None:
        await self._set_flags(handle, is_admin=True)
        await self._audit("grant_admin", {"handle": handle})
        await self._events.publish("admin.access.granted", {"handle": handle})

    async def revoke_admin(self, handle: str, master_password: str | None) -> None:
        self._require_master(master_password)
        await self._set_flags(handle, is_admin=False)
        await self._audit("revoke_admin", {"handle": handle})
        await self._events.publish("admin.access.revoked", {"handle": handle})

    async def ban(self, handle: str, master_password: str | None = None) -> None:
        record = await require_account(self._storage.accounts, handle)
        if record.is_admin:
            self._require_master(master_password)
        await self._set_flags(handle, is_banned=True)
        await self._audit("ban", {"handle": handle})
        await self._events.publish("admin.user.banned", {"handle": handle})

    async def unban(self, handle: str, master_password: str | None = None) -> None:
        record = await require_account(self._storage.accounts, handle)
        if record.is_admin:
            self._require_master(master_password)
        await self._set_flags(handle, is_banned=False)
        await self._audit("unban", {"handle": handle})
        await self._events.publish("admin.user.unbanned", {"handle": handle})

    async def delete_account(self, handle: str, master_password: str | None) -> None:
        """Remove the account together with its cooks and every trade it took part in."""
        self._require_master(master_password)
        record = await require_account(self._storage.accounts, handle)
        async with self._storage.transaction() as tx:
            items = await tx.items.delete_by_owner(record.account_id)
            trades = await tx.trades.delete_for_account(record.account_id)
            await tx.accounts.delete(record.account_id)
        logger.warning("Deleted account %s with %s cooks and %s trades", handle, items, trades)
        await self._audit("delete_account", {"handle": handle, "items": items, "trades": trades})
        await self._events.publish("admin.user.deleted", {"handle": handle})

    async def authenticate(self, handle: str, password: str) -> AccountSummary:
        record = await self._storage.accounts.find_by_handle(handle)
        if record is None or not record.is_admin:
            raise InvalidCredentials("Invalid credentials or user is not an admin")
        if record.is_banned:
            raise Banned(f"Admin account {handle} is banned")
        if not verify_password_hash(password, record.password_hash):
            raise InvalidCredentials("Invalid credentials")
        items = await self._storage.items.find_by_owner(record.account_id)
        return _summary(record, len(items))

    async def _set_flags(self, handle: str, **flags: bool) -> None:
        if not await self._storage.accounts.set_flags(handle, **flags):
            raise AccountNotFound(f"Account {handle} not found")

    def _require_master(self, master_password: str | None) -> None:
        expected = self._config.master_password
        if not expected or not master_password:
            raise NotPermitted("Master admin password required")
        if not hmac.compare_digest(expected.encode("utf-8"), master_password.encode("utf-8")):
            raise NotPermitted("Invalid master admin password")

    async def _audit(self, action: str, payload: dict) -> None:
        if not self._config.enable_audit_logs:
            return
        await self._storage.audit.add_entry(
            action,
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                **payload,
            },
        )
