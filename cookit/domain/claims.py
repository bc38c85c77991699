"""Daily token claim with a cooldown gate."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from random import Random
from typing import Callable, Sequence

from .events import CLAIM_GRANTED, EventBus
from .exceptions import AlreadyClaimed, ConfigError
from .guards import require_active_account
from ..config import ClaimConfig, ClaimTier
from ..storage.base import Storage, as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ClaimOutcome:
    amount: int
    balance: int
    next_claim_at: datetime


@dataclass(slots=True)
class ClaimStatus:
    can_claim: bool
    seconds_remaining: int
    next_claim_at: datetime | None


def cooldown_remaining(last_claim: datetime | None, cooldown_seconds: int, now: datetime) -> int:
    """Whole seconds until the next claim is allowed; 0 when it already is."""
    last_claim = as_utc(last_claim)
    if last_claim is None:
        return 0
    delta = as_utc(now) - last_claim
    return max(0, math.ceil(cooldown_seconds - delta.total_seconds()))


def format_wait(seconds: int) -> str:
    if seconds <= 0:
        return "Now"
    hours, rest = divmod(seconds, 3600)
    return f"{hours}h {rest // 60}m"


def round_to_multiple(amount: int, step: int) -> int:
    """Round half up, so 525 becomes 550 with a step of 50."""
    if step <= 1:
        return amount
    return int(math.floor(amount / step + 0.5)) * step


def draw_claim_amount(tiers: Sequence[ClaimTier], rng: Random, *, round_to: int = 50) -> int:
    if not tiers:
        raise ConfigError("No daily claim tiers configured")
    roll = rng.random()
    chosen = tiers[-1]
    for tier in tiers:
        if roll < tier.threshold:
            chosen = tier
            break
    return round_to_multiple(rng.randint(chosen.low, chosen.high), round_to)


class ClaimEngine:
    """Grant the daily token bonus once per cooldown window."""

    def __init__(
        self,
        storage: Storage,
        config: ClaimConfig,
        event_bus: EventBus,
        *,
        rng: Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._config = config
        self._event_bus = event_bus
        self._rng = rng or Random()
        self._clock = clock

    async def status(self, handle: str) -> ClaimStatus:
        record = await require_active_account(self._storage.accounts, handle)
        remaining = cooldown_remaining(
            record.last_claim, self._config.cooldown_seconds, self._clock()
        )
        next_claim_at = None
        if record.last_claim is not None:
            next_claim_at = as_utc(record.last_claim) + timedelta(
                seconds=self._config.cooldown_seconds
            )
        return ClaimStatus(
            can_claim=remaining == 0,
            seconds_remaining=remaining,
            next_claim_at=next_claim_at,
        )

    async def claim_daily(self, handle: str) -> ClaimOutcome:
        record = await require_active_account(self._storage.accounts, handle)
        now = self._clock()
        remaining = cooldown_remaining(record.last_claim, self._config.cooldown_seconds, now)
        if remaining > 0:
            raise AlreadyClaimed(remaining)

        amount = draw_claim_amount(self._config.tiers, self._rng, round_to=self._config.round_to)

        async with self._storage.transaction() as tx:
            # Keyed on the value we read: a concurrent claim that landed first
            # changes last_claim and this update matches no row.
            won = await tx.accounts.set_last_claim(handle, now, expected_previous=record.last_claim)
            if not won:
                logger.info("Daily claim for %s lost a race with a concurrent claim", handle)
                raise AlreadyClaimed(self._config.cooldown_seconds)
            await tx.accounts.credit(handle, amount)

        balance = record.balance + amount
        refreshed = await self._storage.accounts.find_by_handle(handle)
        if refreshed is not None:
            balance = refreshed.balance

        logger.info("Granted %s daily tokens to %s", amount, handle)
        await self._event_bus.publish(
            CLAIM_GRANTED, {"handle": handle, "amount": amount, "balance": balance}
        )
        return ClaimOutcome(
            amount=amount,
            balance=balance,
            next_claim_at=now + timedelta(seconds=self._config.cooldown_seconds),
        )
