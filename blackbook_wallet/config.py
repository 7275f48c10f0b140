"""
TOML-based configuration for the BlackBook wallet SDK.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from blackbook_wallet.config import load_config
    cfg = load_config("blackbook.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[import,no-redef]

from blackbook_wallet.crypto_backend import Argon2Params


@dataclass
class ServicesConfig:
    """Remote service endpoints. Credential and ledger may share a host."""
    credential_url: str = "http://localhost:8080"
    ledger_url: str = "http://localhost:8080"
    l2_url: str = ""                 # empty = same as ledger_url
    request_timeout: float = 15.0    # seconds, per request


@dataclass
class KDFConfig:
    """Argon2id cost for the vault fork. Lowering these weakens every vault."""
    time_cost: int = 3
    memory_cost: int = 65536         # KiB
    parallelism: int = 4

    def to_params(self) -> Argon2Params:
        return Argon2Params(
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
        )


@dataclass
class SigningConfig:
    chain_id: int = 1
    max_signature_age: int = 300     # verifier tolerance, seconds


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class WalletSDKConfig:
    """Top-level configuration container."""
    services: ServicesConfig = field(default_factory=ServicesConfig)
    kdf: KDFConfig = field(default_factory=KDFConfig)
    signing: SigningConfig = field(default_factory=SigningConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def load_config(path: str | None = None) -> WalletSDKConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        BLACKBOOK_CREDENTIAL_URL -> services.credential_url
        BLACKBOOK_LEDGER_URL     -> services.ledger_url
        BLACKBOOK_L2_URL         -> services.l2_url
        BLACKBOOK_TIMEOUT        -> services.request_timeout
        BLACKBOOK_CHAIN_ID       -> signing.chain_id
        BLACKBOOK_LOG_LEVEL      -> logging.level
        BLACKBOOK_LOG_FMT        -> logging.format
    """
    cfg = WalletSDKConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("services", cfg.services),
                ("kdf", cfg.kdf),
                ("signing", cfg.signing),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("BLACKBOOK_CREDENTIAL_URL"):
        cfg.services.credential_url = v
    if v := os.environ.get("BLACKBOOK_LEDGER_URL"):
        cfg.services.ledger_url = v
    if v := os.environ.get("BLACKBOOK_L2_URL"):
        cfg.services.l2_url = v
    if v := os.environ.get("BLACKBOOK_TIMEOUT"):
        cfg.services.request_timeout = float(v)
    if v := os.environ.get("BLACKBOOK_CHAIN_ID"):
        cfg.signing.chain_id = int(v)
    if v := os.environ.get("BLACKBOOK_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("BLACKBOOK_LOG_FMT"):
        cfg.logging.format = v

    return cfg
