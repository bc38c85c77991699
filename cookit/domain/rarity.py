"""Rarity tiers and the weighted draw used by packs."""

from __future__ import annotations

from dataclasses import dataclass, field
from random import Random
from typing import Iterable, Iterator, Sequence

from .exceptions import ConfigError

DEFAULT_ICON = "👨‍🍳"


@dataclass(frozen=True, slots=True)
class RarityTier:
    """Weighted bucket of cooks sharing a sell value."""

    label: str
    weight: float
    candidates: tuple[str, ...]
    sell_value: int
    icon: str = DEFAULT_ICON


@dataclass(frozen=True, slots=True)
class RarityTable:
    """Ordered, immutable set of tiers.

    Weights are unnormalized probability mass; the draw divides by their
    total, so the table never has to sum to 100.
    """

    tiers: tuple[RarityTier, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, tiers: Iterable[RarityTier]) -> "RarityTable":
        return cls(tiers=tuple(tiers))

    @classmethod
    def default(cls) -> "RarityTable":
        return cls.of(COOK_RARITIES)

    def __iter__(self) -> Iterator[RarityTier]:
        return iter(self.tiers)

    def __len__(self) -> int:
        return len(self.tiers)

    def get(self, label: str) -> RarityTier:
        for tier in self.tiers:
            if tier.label == label:
                return tier
        raise KeyError(f"Rarity {label} not configured")

    def validate(self) -> list[str]:
        errors: list[str] = []
        if not self.tiers:
            errors.append("Rarity table does not contain any tiers.")
        seen: set[str] = set()
        for tier in self.tiers:
            if tier.label in seen:
                errors.append(f"Rarity '{tier.label}' defined multiple times.")
            seen.add(tier.label)
            if tier.weight is None or tier.weight <= 0:
                errors.append(f"Rarity '{tier.label}' has non-positive weight '{tier.weight}'.")
            if not tier.candidates:
                errors.append(f"Rarity '{tier.label}' does not contain any cooks.")
            if tier.sell_value < 0:
                errors.append(f"Rarity '{tier.label}' has negative sell value '{tier.sell_value}'.")
        return errors

    def total_weight(self) -> float:
        if any(not tier.candidates for tier in self.tiers):
            raise ConfigError("Rarity table contains a tier without cooks")
        for tier in self.tiers:
            if tier.weight is None or tier.weight <= 0:
                raise ConfigError(f"Rarity {tier.label} has non-positive weight {tier.weight}")
        total = sum(tier.weight for tier in self.tiers)
        if total <= 0:
            raise ConfigError(f"Rarity table total weight must be positive, got {total}")
        return float(total)

    def probabilities(self) -> dict[str, float]:
        total = self.total_weight()
        return {tier.label: tier.weight / total for tier in self.tiers}

    def draw_tier(self, rng: Random) -> RarityTier:
        total = self.total_weight()
        threshold = rng.random() * total
        cumulative = 0.0
        for tier in self.tiers:
            cumulative += tier.weight
            if threshold <= cumulative:
                return tier
        # Float drift can leave the threshold just past the final sum.
        return self.tiers[-1]

    def draw(self, rng: Random) -> tuple[RarityTier, str]:
        tier = self.draw_tier(rng)
        return tier, _pick(tier.candidates, rng)


def _pick(candidates: Sequence[str], rng: Random) -> str:
    return candidates[int(rng.random() * len(candidates))]


COOK_RARITIES: tuple[RarityTier, ...] = (
    RarityTier("Secret", 0.0003, ("OG party",), 50000, "👑"),
    RarityTier("Michelin", 0.00475, ("GoogleChroma", "Valens"), 1000, "⭐"),
    RarityTier("Exotic", 0.04, ("Splash88", "SigmaQian"), 300, "🌟"),
    RarityTier("5-star", 0.31, ("Katie",), 200, "🔥"),
    RarityTier("Epic", 2.3, ("placeholder1", "placeholder2"), 75, "✨"),
    RarityTier("Rare", 10, ("blabla", "placeholder3"), 20, "🍳"),
    RarityTier(
        "Uncommon",
        18.75,
        ("kittenlove1311", "RoadToS", "placeholder3", "Turtlekid2022"),
        5,
        DEFAULT_ICON,
    ),
)
