"""Play a short Cook'it session against the in-memory backend."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from cookit import CookitConfig, GameApp, describe_error
from cookit.domain.exceptions import CookitError


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    config = CookitConfig(rarity_table_path=str(Path(__file__).with_name("rarities.json")))
    app = GameApp(config)
    await app.init_backend()

    alice = await app.account_service.register("alice", "Alice", "wonderland")
    bob = await app.account_service.register("bob", "Bob", "builder")

    claim = await app.claim_engine.claim_daily("alice")
    print(f"Alice claimed {claim.amount} tokens, balance {claim.balance}")

    first = await app.pack_engine.open_pack("alice", "og")
    second = await app.pack_engine.open_pack("bob", "og")
    print(f"Alice pulled {first.tier.icon} {first.item.name} ({first.tier.label})")
    print(f"Bob pulled {second.tier.icon} {second.item.name} ({second.tier.label})")

    trade = await app.trade_engine.create_trade(
        "alice", "bob", first.item.item_id, second.item.item_id
    )
    await app.trade_engine.accept_trade(trade.trade_id, "bob")

    for account in (alice, bob):
        profile = await app.account_service.profile(account.handle)
        cooks = ", ".join(f"{stack.name} x{stack.count}" for stack in profile.inventory)
        print(f"{profile.display_name}: {profile.balance} tokens, cooks: {cooks}")

    try:
        await app.claim_engine.claim_daily("alice")
    except CookitError as exc:
        print(describe_error(exc))

    await app.close()


if __name__ == "__main__":
    asyncio.run(main())
