"""Automated checks to highlight balancing issues."""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..app import GameApp
from ..domain.exceptions import ConfigError
from .economy_simulator import DropSimulator


@dataclass(slots=True)
class ChecklistIssue:
    severity: str
    message: str


def run_checklist(app: GameApp) -> list[ChecklistIssue]:
    table = app.rarity_table
    issues = [ChecklistIssue("error", message) for message in table.validate()]

    packs = list(app.packs.iter_packs())
    if not packs:
        issues.append(ChecklistIssue("error", "No packs are configured."))
    for pack in packs:
        if pack.price <= 0:
            issues.append(ChecklistIssue("error", f"Pack {pack.pack_id} has non-positive price."))

    owners: dict[str, list[str]] = {}
    for tier in table:
        for name in tier.candidates:
            owners.setdefault(name, []).append(tier.label)
    for name, labels in owners.items():
        if len(labels) > 1:
            issues.append(
                ChecklistIssue(
                    "warning", f"Cook '{name}' appears in several rarities: {', '.join(labels)}."
                )
            )

    try:
        total = table.total_weight()
    except ConfigError:
        return issues

    if not math.isclose(total, 100.0, abs_tol=1e-6):
        issues.append(
            ChecklistIssue(
                "info",
                f"Rarity weights sum to {total:g}; drop chances are weight / {total:g}.",
            )
        )

    expected = DropSimulator(table).expected_sell_value()
    for pack in packs:
        if pack.price > 0 and expected > pack.price:
            issues.append(
                ChecklistIssue(
                    "warning",
                    f"Pack {pack.pack_id} costs {pack.price} but yields {expected:.2f} "
                    "in expected sell value.",
                )
            )

    if app.config.claim.round_to <= 0:
        issues.append(ChecklistIssue("error", "Claim rounding step must be positive."))

    return issues
