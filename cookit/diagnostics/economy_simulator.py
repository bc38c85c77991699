"""Economy simulation helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from random import Random
from statistics import mean
from typing import Dict, Sequence

from ..config import ClaimTier
from ..domain.claims import draw_claim_amount
from ..domain.rarity import RarityTable


@dataclass(slots=True)
class SimulationResult:
    pulls: int
    price: int
    tier_counts: Dict[str, int] = field(default_factory=dict)
    sell_value: int = 0

    @property
    def spent(self) -> int:
        return self.pulls * self.price

    @property
    def return_ratio(self) -> float:
        """Sell value recovered per token spent."""
        return self.sell_value / self.spent if self.spent else 0.0

    def frequencies(self) -> dict[str, float]:
        if not self.pulls:
            return {label: 0.0 for label in self.tier_counts}
        return {label: count / self.pulls for label, count in self.tier_counts.items()}


@dataclass(slots=True)
class ClaimSummary:
    draws: int
    minimum: int
    maximum: int
    average: float
    histogram: Dict[int, int]


class DropSimulator:
    """Monte-Carlo simulation of pack openings against a rarity table."""

    def __init__(self, table: RarityTable, *, rng: Random | None = None) -> None:
        self._table = table
        self._rng = rng or Random()

    def simulate(self, *, pulls: int = 1000, price: int = 25) -> SimulationResult:
        result = SimulationResult(
            pulls=pulls, price=price, tier_counts={tier.label: 0 for tier in self._table}
        )
        for _ in range(pulls):
            tier = self._table.draw_tier(self._rng)
            result.tier_counts[tier.label] += 1
            result.sell_value += tier.sell_value
        return result

    def expected_sell_value(self) -> float:
        probabilities = self._table.probabilities()
        return sum(probabilities[tier.label] * tier.sell_value for tier in self._table)


def simulate_claims(
    tiers: Sequence[ClaimTier],
    *,
    draws: int = 1000,
    round_to: int = 50,
    rng: Random | None = None,
) -> ClaimSummary:
    rng = rng or Random()
    amounts = [draw_claim_amount(tiers, rng, round_to=round_to) for _ in range(draws)]
    histogram: dict[int, int] = {}
    for amount in amounts:
        histogram[amount] = histogram.get(amount, 0) + 1
    return ClaimSummary(
        draws=draws,
        minimum=min(amounts),
        maximum=max(amounts),
        average=mean(amounts),
        histogram=dict(sorted(histogram.items())),
    )
