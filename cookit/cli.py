"""Command line helpers for Cook'it."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from random import Random

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .app import GameApp
from .config import CookitConfig
from .diagnostics.checklist import run_checklist as checklist_run
from .diagnostics.economy_simulator import DropSimulator, simulate_claims
from .domain.exceptions import CookitError
from .loaders import validate_rarity_file

console = Console()

_SEVERITY_STYLES = {"error": "bold red", "warning": "yellow", "info": "cyan"}


def _bootstrap() -> GameApp:
    config = CookitConfig.from_env()
    logging.basicConfig(level=config.log_level)
    return GameApp(config)


def run_simulator() -> None:
    parser = argparse.ArgumentParser(description="Cook'it pack and claim simulator")
    parser.add_argument("--pack", default="og", help="Pack identifier to simulate")
    parser.add_argument("--pulls", type=int, default=100_000, help="Number of packs to open")
    parser.add_argument("--claims", type=int, default=10_000, help="Number of daily claims to draw")
    args = parser.parse_args()

    try:
        app = _bootstrap()
        pack = app.packs.get(args.pack)
    except CookitError as exc:
        console.print(f"[bold red]{escape(str(exc))}[/bold red]")
        sys.exit(1)

    rng = Random(app.config.rng_seed) if app.config.rng_seed is not None else Random()
    simulator = DropSimulator(app.rarity_table, rng=rng)
    result = simulator.simulate(pulls=args.pulls, price=pack.price)
    expected = app.rarity_table.probabilities()

    table = Table(title=f"{args.pulls} x {pack.name} ({pack.price} tokens)")
    table.add_column("Rarity")
    table.add_column("Weight", justify="right")
    table.add_column("Expected", justify="right")
    table.add_column("Observed", justify="right")
    table.add_column("Count", justify="right")
    frequencies = result.frequencies()
    for tier in app.rarity_table:
        table.add_row(
            f"{tier.icon} {tier.label}",
            f"{tier.weight:g}",
            f"{expected[tier.label]:.4%}",
            f"{frequencies[tier.label]:.4%}",
            str(result.tier_counts[tier.label]),
        )
    console.print(table)
    console.print(
        f"Spent {result.spent} tokens, sell value {result.sell_value} "
        f"(return ratio {result.return_ratio:.2f})"
    )

    claims = simulate_claims(
        app.config.claim.tiers,
        draws=args.claims,
        round_to=app.config.claim.round_to,
        rng=rng,
    )
    console.print(
        f"Daily claims: min {claims.minimum}, max {claims.maximum}, average {claims.average:.1f}"
    )


def run_checklist() -> None:
    parser = argparse.ArgumentParser(description="Cook'it balancing checks")
    parser.parse_args()

    try:
        app = _bootstrap()
    except CookitError as exc:
        console.print(f"[bold red]{escape(str(exc))}[/bold red]")
        sys.exit(1)

    issues = checklist_run(app)
    if not issues:
        console.print("[bold green]No issues found ✅[/bold green]")
        return
    for issue in issues:
        style = _SEVERITY_STYLES.get(issue.severity, "white")
        label = escape(f"[{issue.severity.upper()}]")
        console.print(f"[{style}]{label}[/{style}] {escape(issue.message)}")
    if any(issue.severity == "error" for issue in issues):
        sys.exit(1)


def run_validate() -> None:
    parser = argparse.ArgumentParser(description="Cook'it rarity table validator")
    parser.add_argument("--table", required=True, help="Path to rarity table JSON file")
    args = parser.parse_args()

    errors = validate_rarity_file(Path(args.table))
    if errors:
        console.print("[bold red]Rarity table errors:[/bold red]")
        for err in errors:
            console.print(f"- {escape(err)}")
        sys.exit(1)
    console.print("[bold green]Rarity table is valid ✅[/bold green]")
