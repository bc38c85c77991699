"""Load the rarity table from JSON definitions."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from ..domain.exceptions import ConfigError
from ..domain.rarity import DEFAULT_ICON, RarityTable, RarityTier


def load_rarity_table(path: str | Path) -> RarityTable:
    """Read, validate and parse a rarity table JSON file."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read rarity table {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in rarity table {path}: {exc}") from exc
    return parse_rarity_dict(data)


def parse_rarity_dict(data: dict[str, Any]) -> RarityTable:
    """Parse a JSON dict (already decoded) into an immutable table."""
    errors = validate_rarity_dict(data)
    if errors:
        raise ConfigError(_format_errors("Rarity table validation failed", errors))
    return RarityTable.of(parse_tier(entry) for entry in data["tiers"])


def parse_tier(entry: dict[str, Any]) -> RarityTier:
    return RarityTier(
        label=entry["label"],
        weight=float(entry["weight"]),
        candidates=tuple(map(str, entry["cooks"])),
        sell_value=int(entry["sellValue"]),
        icon=entry.get("icon") or DEFAULT_ICON,
    )


def dump_rarity_table(table: RarityTable) -> dict[str, Any]:
    return {
        "tiers": [
            {
                "label": tier.label,
                "weight": tier.weight,
                "cooks": list(tier.candidates),
                "sellValue": tier.sell_value,
                "icon": tier.icon,
            }
            for tier in table
        ]
    }


def validate_rarity_file(path: str | Path) -> list[str]:
    """Validate rarity table JSON file and return a list of errors."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        return [f"Cannot read file: {exc}"]
    except json.JSONDecodeError as exc:
        return [f"Invalid JSON: {exc}"]
    return validate_rarity_dict(data)


def validate_rarity_dict(data: Any) -> list[str]:
    errors: list[str] = []
    if not isinstance(data, dict):
        return ["Rarity table must be a JSON object."]

    tiers_raw = data.get("tiers")
    if not isinstance(tiers_raw, list) or not tiers_raw:
        return ["Rarity table must contain non-empty 'tiers' array."]

    labels: set[str] = set()
    for idx, entry in enumerate(tiers_raw, start=1):
        if not isinstance(entry, dict):
            errors.append(f"Tier #{idx} must be an object.")
            continue
        label = entry.get("label")
        if not isinstance(label, str) or not label.strip():
            errors.append(f"Tier #{idx} must define non-empty 'label'.")
            continue
        if label in labels:
            errors.append(f"Tier '{label}' defined multiple times.")
        labels.add(label)

        weight = entry.get("weight")
        if isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight <= 0:
            errors.append(f"Tier '{label}' has invalid 'weight' value '{weight}'.")

        cooks = entry.get("cooks")
        if not isinstance(cooks, list) or not cooks:
            errors.append(f"Tier '{label}' must define non-empty 'cooks' array.")
        elif any(not isinstance(name, str) or not name.strip() for name in cooks):
            errors.append(f"Tier '{label}' cooks must be non-empty strings.")

        sell_value = entry.get("sellValue")
        if isinstance(sell_value, bool) or not isinstance(sell_value, int) or sell_value < 0:
            errors.append(f"Tier '{label}' 'sellValue' must be non-negative integer.")

        icon = entry.get("icon")
        if icon is not None and (not isinstance(icon, str) or not icon.strip()):
            errors.append(f"Tier '{label}' icon must be a non-empty string.")

    return errors


def _format_errors(prefix: str, errors: Iterable[str]) -> str:
    formatted = "\n".join(f"- {err}" for err in errors)
    return f"{prefix}:\n{formatted}"
