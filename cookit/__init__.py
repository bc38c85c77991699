"""Cook'it game core public API."""

from .app import GameApp
from .config import CookitConfig
from .domain.exceptions import CookitError, describe_error
from .domain.rarity import RarityTable, RarityTier

__all__ = [
    "GameApp",
    "CookitConfig",
    "CookitError",
    "describe_error",
    "RarityTable",
    "RarityTier",
]
