"""Account lookups shared by the engines."""

from __future__ import annotations

from .exceptions import AccountNotFound, Banned
from ..storage.base import AccountRecord, AccountStore


async def require_account(accounts: AccountStore, handle: str) -> AccountRecord:
    record = await accounts.find_by_handle(handle)
    if record is None:
        raise AccountNotFound(f"Account {handle} not found")
    return record


async def require_active_account(accounts: AccountStore, handle: str) -> AccountRecord:
    record = await require_account(accounts, handle)
    if record.is_banned:
        raise Banned(f"Account {handle} is banned")
    return record
