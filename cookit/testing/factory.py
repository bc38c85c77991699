"""Factories for tests and prototyping."""

from __future__ import annotations

from dataclasses import dataclass, field
from random import Random
from typing import Iterable

from faker import Faker

from ..domain.rarity import RarityTable, RarityTier
from ..storage.base import AccountRecord, ItemRecord


@dataclass(slots=True)
class AccountFactory:
    faker: Faker = field(default_factory=Faker)

    def build(self, *, balance: int = 100, **overrides) -> AccountRecord:
        values = {
            "handle": self.faker.unique.user_name(),
            "display_name": self.faker.name(),
            "balance": balance,
        }
        values.update(overrides)
        return AccountRecord(**values)


@dataclass(slots=True)
class ItemFactory:
    table: RarityTable = field(default_factory=RarityTable.default)
    rng: Random = field(default_factory=Random)

    def build(self, owner_id: str, tier: RarityTier | None = None) -> ItemRecord:
        tier = tier or self.rng.choice(self.table.tiers)
        return ItemRecord(
            name=self.rng.choice(tier.candidates),
            rarity=tier.label,
            sell_value=tier.sell_value,
            icon=tier.icon,
            owner_id=owner_id,
        )

    def batch(self, owner_id: str, count: int) -> Iterable[ItemRecord]:
        for _ in range(count):
            yield self.build(owner_id)


@dataclass(slots=True)
class RarityTableFactory:
    faker: Faker = field(default_factory=Faker)
    rng: Random = field(default_factory=Random)

    def build(self, tiers: int = 3) -> RarityTable:
        return RarityTable.of(
            RarityTier(
                label=f"tier_{idx}",
                weight=round(self.rng.uniform(0.5, 20.0), 3),
                candidates=tuple(self.faker.unique.first_name() for _ in range(2)),
                sell_value=self.rng.randint(1, 500),
            )
            for idx in range(tiers)
        )
