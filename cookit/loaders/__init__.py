"""Loaders for declarative configuration (JSON)."""

from .json_loader import (
    dump_rarity_table,
    load_rarity_table,
    parse_rarity_dict,
    validate_rarity_dict,
    validate_rarity_file,
)

__all__ = [
    "dump_rarity_table",
    "load_rarity_table",
    "parse_rarity_dict",
    "validate_rarity_dict",
    "validate_rarity_file",
]
