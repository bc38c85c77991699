"""Domain models and services."""

from .rarity import RarityTable, RarityTier
from .packs import Pack, PackCatalog, PackEngine, PackOutcome
from .claims import ClaimEngine, ClaimOutcome, ClaimStatus
from .trades import TradeEngine, TradePartner, TradeView
from .accounts import (
    AccountProfile,
    AccountService,
    InventoryStack,
    LeaderboardEntry,
    SaleOutcome,
)
from .exceptions import (
    AccountNotFound,
    AlreadyClaimed,
    Banned,
    CompensationFailure,
    ConfigError,
    CookitError,
    HandleTaken,
    InsufficientFunds,
    InvalidCredentials,
    ItemNotFound,
    NotFound,
    NotPermitted,
    OwnershipError,
    PackOpenFailed,
    StaleTrade,
    TradeClosed,
    TradeNotFound,
    UnknownPack,
    describe_error,
)

__all__ = [
    "RarityTable",
    "RarityTier",
    "Pack",
    "PackCatalog",
    "PackEngine",
    "PackOutcome",
    "ClaimEngine",
    "ClaimOutcome",
    "ClaimStatus",
    "TradeEngine",
    "TradePartner",
    "TradeView",
    "AccountProfile",
    "AccountService",
    "InventoryStack",
    "LeaderboardEntry",
    "SaleOutcome",
    "AccountNotFound",
    "AlreadyClaimed",
    "Banned",
    "CompensationFailure",
    "ConfigError",
    "CookitError",
    "HandleTaken",
    "InsufficientFunds",
    "InvalidCredentials",
    "ItemNotFound",
    "NotFound",
    "NotPermitted",
    "OwnershipError",
    "PackOpenFailed",
    "StaleTrade",
    "TradeClosed",
    "TradeNotFound",
    "UnknownPack",
    "describe_error",
]
