"""
Password fork: one password, two independent keys.

    password ─┬─ auth_key  = SHA256(AUTH_DOMAIN + auth_salt + password)      -> sent to server
              └─ vault_key = Argon2id(VAULT_DOMAIN + vault_salt + password,
                                      salt=vault_salt)                        -> never sent

The server re-hardens auth_key with bcrypt before storing it. The vault
key is the only key that opens the vault and never leaves the client.
Salts travel as 64-char lower-case hex; the hex text is what gets hashed.
"""

from __future__ import annotations

from dataclasses import dataclass

from blackbook_wallet.crypto_backend import (
    DEFAULT_ARGON2,
    DEFAULT_BACKEND,
    Argon2Params,
    CryptoBackend,
    sha256_hex,
    wipe,
)

AUTH_FORK_DOMAIN = "BLACKBOOK_AUTH_V2"
VAULT_FORK_DOMAIN = "BLACKBOOK_VAULT_V2"
FORK_VERSION = 2
SALT_BYTES = 32

__all__ = [
    "AUTH_FORK_DOMAIN",
    "VAULT_FORK_DOMAIN",
    "FORK_VERSION",
    "Argon2Params",
    "ForkedSecrets",
    "generate_salt",
    "derive_auth_key",
    "derive_vault_key",
    "fork_password",
]


@dataclass
class ForkedSecrets:
    """Result of a password fork. ``vault_key`` is None for an auth-only fork."""
    auth_key: str
    vault_key: bytearray | None = None

    def wipe(self) -> None:
        wipe(self.vault_key)

    def __repr__(self) -> str:
        return f"ForkedSecrets(auth_key={self.auth_key[:8]}..., vault_key=<redacted>)"


def generate_salt(backend: CryptoBackend = DEFAULT_BACKEND) -> str:
    """32 random bytes as lower-case hex."""
    return backend.random_bytes(SALT_BYTES).hex()


def derive_auth_key(password: str, auth_salt: str) -> str:
    """Fast fork. Only exists so the raw password is never transmitted."""
    return sha256_hex(AUTH_FORK_DOMAIN + auth_salt + password)


def derive_vault_key(
    password: str,
    vault_salt: str,
    params: Argon2Params = DEFAULT_ARGON2,
    backend: CryptoBackend = DEFAULT_BACKEND,
) -> bytearray:
    """Slow, memory-hard fork. The caller owns the returned buffer and must wipe it."""
    if not vault_salt:
        raise ValueError("vault salt is required to derive the vault key")
    secret = bytearray((VAULT_FORK_DOMAIN + vault_salt + password).encode("utf-8"))
    try:
        return backend.memory_hard_kdf(bytes(secret), vault_salt.encode("utf-8"), params)
    finally:
        wipe(secret)


def fork_password(
    password: str,
    auth_salt: str,
    vault_salt: str | None = None,
    params: Argon2Params = DEFAULT_ARGON2,
    backend: CryptoBackend = DEFAULT_BACKEND,
) -> ForkedSecrets:
    """
    Split *password* into an auth key and a vault key.

    At login the vault salt is unknown until the server has accepted the
    auth key, so *vault_salt* may be omitted; only the auth fork is
    computed in that case.
    """
    auth_key = derive_auth_key(password, auth_salt)
    if not vault_salt:
        return ForkedSecrets(auth_key=auth_key)
    return ForkedSecrets(
        auth_key=auth_key,
        vault_key=derive_vault_key(password, vault_salt, params, backend),
    )
