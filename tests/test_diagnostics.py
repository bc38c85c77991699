import json
import sys
from random import Random

import pytest

from cookit.app import GameApp
from cookit.cli import run_validate
from cookit.config import DEFAULT_CLAIM_TIERS, ClaimConfig, CookitConfig, PackConfig
from cookit.diagnostics import DropSimulator, simulate_claims
from cookit.diagnostics.checklist import run_checklist
from cookit.domain.rarity import RarityTable, RarityTier
from cookit.loaders import dump_rarity_table
from cookit.testing import RarityTableFactory


def test_simulator_counts_every_pull():
    table = RarityTable.default()
    result = DropSimulator(table, rng=Random(3)).simulate(pulls=5_000, price=25)
    assert sum(result.tier_counts.values()) == 5_000
    assert result.spent == 125_000
    assert sum(result.frequencies().values()) == pytest.approx(1.0)
    assert result.return_ratio > 0


def test_expected_sell_value_of_default_table():
    expected = DropSimulator(RarityTable.default()).expected_sell_value()
    assert expected == pytest.approx(560 / 31.40505)


def test_claim_simulation_stays_within_bands():
    summary = simulate_claims(DEFAULT_CLAIM_TIERS, draws=2_000, rng=Random(9))
    assert summary.minimum >= 500
    assert summary.maximum <= 1500
    assert all(amount % 50 == 0 for amount in summary.histogram)
    assert sum(summary.histogram.values()) == 2_000


def test_checklist_on_default_config():
    issues = run_checklist(GameApp(CookitConfig()))
    severities = {issue.severity for issue in issues}
    assert "error" not in severities
    assert any("placeholder3" in issue.message for issue in issues)
    assert any(issue.severity == "info" and "31.4" in issue.message for issue in issues)


def test_checklist_flags_generous_and_broken_setups():
    table = RarityTable.of(
        [
            RarityTier("Gold", 60, ("Midas",), 500),
            RarityTier("Empty", 40, (), 1),
        ]
    )
    app = GameApp(
        CookitConfig(packs=PackConfig(prices={"og": 0}), claim=ClaimConfig(round_to=0)),
        rarity_table=table,
    )
    messages = [(issue.severity, issue.message) for issue in run_checklist(app)]
    assert ("error", "Rarity 'Empty' does not contain any cooks.") in messages
    assert ("error", "Pack og has non-positive price.") in messages


def test_checklist_warns_when_pack_is_underpriced():
    table = RarityTable.of([RarityTier("Gold", 100, ("Midas",), 500)])
    app = GameApp(CookitConfig(claim=ClaimConfig(round_to=0)), rarity_table=table)
    messages = [(issue.severity, issue.message) for issue in run_checklist(app)]
    assert any(severity == "warning" and "expected sell value" in msg for severity, msg in messages)
    assert ("error", "Claim rounding step must be positive.") in messages


def test_validate_command(tmp_path, monkeypatch, capsys):
    good = tmp_path / "good.json"
    good.write_text(json.dumps(dump_rarity_table(RarityTable.default())), encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["cookit-validate", "--table", str(good)])
    run_validate()
    assert "valid" in capsys.readouterr().out

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"tiers": []}), encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["cookit-validate", "--table", str(bad)])
    with pytest.raises(SystemExit) as excinfo:
        run_validate()
    assert excinfo.value.code == 1


def test_generated_tables_pass_the_checklist(memory_app):
    table = RarityTableFactory(rng=Random(4)).build(tiers=4)
    assert table.validate() == []
    app = GameApp(memory_app.config, rarity_table=table)
    assert not [issue for issue in run_checklist(app) if issue.severity == "error"]
    result = DropSimulator(table, rng=Random(4)).simulate(pulls=1_000)
    assert set(result.tier_counts) == {tier.label for tier in table}
