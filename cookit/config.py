"""Configuration models for Cook'it."""

from __future__ import annotations

import os
import json
from dataclasses import dataclass, field
from typing import Literal, Mapping, Sequence


StorageBackend = Literal["memory", "sqlalchemy"]


@dataclass(slots=True)
class StorageConfig:
    """Configure where accounts, cooks and trades are persisted."""

    backend: StorageBackend = "memory"
    dsn: str | None = None
    echo_sql: bool = False

    def resolve_dsn(self) -> str | None:
        if self.dsn:
            return self.dsn
        if self.backend == "sqlalchemy":
            return "sqlite+aiosqlite:///./cookit.db"
        return None


@dataclass(slots=True)
class PackConfig:
    """Pack prices keyed by pack id.

    With ``transactional`` the debit and the item grant share one storage
    transaction; otherwise a failed grant is compensated by a refund.
    """

    prices: Mapping[str, int] = field(default_factory=lambda: {"og": 25})
    transactional: bool = True


@dataclass(frozen=True, slots=True)
class ClaimTier:
    """Daily claim bucket: drawn while the roll is below ``threshold``."""

    threshold: float
    low: int
    high: int


DEFAULT_CLAIM_TIERS: tuple[ClaimTier, ...] = (
    ClaimTier(0.4, 500, 700),
    ClaimTier(0.7, 701, 900),
    ClaimTier(0.9, 901, 1200),
    ClaimTier(1.0, 1201, 1500),
)


@dataclass(slots=True)
class ClaimConfig:
    cooldown_seconds: int = 24 * 60 * 60
    round_to: int = 50
    tiers: Sequence[ClaimTier] = DEFAULT_CLAIM_TIERS


@dataclass(slots=True)
class AccountConfig:
    starting_balance: int = 100
    password_iterations: int = 120_000


@dataclass(slots=True)
class AdminConfig:
    """Admin tooling switches. Demoting, banning or deleting admins needs the master password."""

    master_password: str | None = None
    enable_audit_logs: bool = True


@dataclass(slots=True)
class CookitConfig:
    """Top-level configuration container."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    packs: PackConfig = field(default_factory=PackConfig)
    claim: ClaimConfig = field(default_factory=ClaimConfig)
    accounts: AccountConfig = field(default_factory=AccountConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    rarity_table_path: str | None = None
    rng_seed: int | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "CookitConfig":
        """Create config from environment variables prefixed with COOKIT_."""
        prefix = "COOKIT_"
        storage_backend = os.getenv(f"{prefix}STORAGE_BACKEND", "memory")
        dsn = os.getenv(f"{prefix}STORAGE_DSN")
        echo_sql = _flag(os.getenv(f"{prefix}STORAGE_ECHO_SQL", "false"))

        packs = PackConfig(
            prices=_parse_pack_prices(os.getenv(f"{prefix}PACK_PRICES")),
            transactional=_flag(os.getenv(f"{prefix}PACK_TRANSACTIONAL", "true")),
        )
        claim = ClaimConfig(
            cooldown_seconds=int(os.getenv(f"{prefix}CLAIM_COOLDOWN", str(24 * 60 * 60))),
            round_to=int(os.getenv(f"{prefix}CLAIM_ROUND_TO", "50")),
        )
        accounts = AccountConfig(
            starting_balance=int(os.getenv(f"{prefix}STARTING_BALANCE", "100")),
        )
        admin = AdminConfig(
            master_password=os.getenv(f"{prefix}ADMIN_PASSWORD") or None,
            enable_audit_logs=_flag(os.getenv(f"{prefix}ADMIN_ENABLE_AUDIT_LOGS", "true")),
        )

        return cls(
            storage=StorageConfig(backend=storage_backend, dsn=dsn, echo_sql=echo_sql),
            packs=packs,
            claim=claim,
            accounts=accounts,
            admin=admin,
            rarity_table_path=os.getenv(f"{prefix}RARITY_TABLE") or None,
            rng_seed=(
                int(os.getenv(f"{prefix}RNG_SEED")) if os.getenv(f"{prefix}RNG_SEED") else None
            ),
            log_level=os.getenv(f"{prefix}LOG_LEVEL", "INFO").upper(),
        )


def _flag(raw: str) -> bool:
    return raw.lower() in {"1", "true", "yes"}


def _parse_pack_prices(raw: str | None) -> Mapping[str, int]:
    if not raw:
        return {"og": 25}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid JSON for COOKIT_PACK_PRICES") from exc
    if not isinstance(data, dict):
        raise ValueError("COOKIT_PACK_PRICES must be a JSON object")
    return {str(k): int(v) for k, v in data.items()}
