"""
Vault encryption for the BlackBook wallet.

The mnemonic is sealed with AES-256-GCM under the vault key. The vault
salt is bound in as associated data, so a blob served with the wrong salt
fails authentication instead of decrypting to garbage.

Wire format (version 2):
    {"version": 2, "salt": <vault salt hex>, "ciphertext": <base64 ct||tag>,
     "nonce": <hex, 12 bytes>, "address": "L1_...", "created_at": <ms>}
"""

from __future__ import annotations

import base64
import binascii
import time
from dataclasses import dataclass
from typing import Any, Callable

from blackbook_wallet.crypto_backend import (
    AES_KEY_SIZE,
    DEFAULT_BACKEND,
    GCM_NONCE_SIZE,
    CryptoBackend,
)
from blackbook_wallet.errors import VaultDecryptionError, VaultIntegrityError

VAULT_VERSION = 2


@dataclass(frozen=True)
class EncryptedVault:
    """The server-stored form of a mnemonic. Never mutated; re-encryption makes a new one."""
    salt: str
    ciphertext: str
    nonce: str
    version: int = VAULT_VERSION
    address: str = ""
    created_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "salt": self.salt,
            "ciphertext": self.ciphertext,
            "nonce": self.nonce,
            "address": self.address,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EncryptedVault:
        try:
            return cls(
                salt=data["salt"],
                ciphertext=data["ciphertext"],
                nonce=data["nonce"],
                version=int(data.get("version", VAULT_VERSION)),
                address=data.get("address", ""),
                created_at=int(data.get("created_at", 0)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise VaultIntegrityError(f"malformed vault record: {exc}") from exc


def encrypt_vault(
    mnemonic: str,
    vault_key: bytes | bytearray,
    vault_salt: str,
    backend: CryptoBackend = DEFAULT_BACKEND,
) -> tuple[str, str]:
    """Seal *mnemonic*. Returns (base64 ciphertext, hex nonce); nonce is fresh every call."""
    if len(vault_key) != AES_KEY_SIZE:
        raise ValueError(f"vault key must be {AES_KEY_SIZE} bytes")
    nonce = backend.random_bytes(GCM_NONCE_SIZE)
    sealed = backend.aead_encrypt(
        vault_key, nonce, mnemonic.encode("utf-8"), vault_salt.encode("utf-8"),
    )
    return base64.b64encode(sealed).decode("ascii"), nonce.hex()


def decrypt_vault(
    ciphertext: str,
    nonce: str,
    vault_key: bytes | bytearray,
    vault_salt: str,
    backend: CryptoBackend = DEFAULT_BACKEND,
) -> str:
    """
    Open a sealed mnemonic.

    Every failure (tag mismatch, malformed base64 or nonce, wrong key size,
    undecodable plaintext) surfaces as the same VaultDecryptionError.
    """
    try:
        sealed = base64.b64decode(ciphertext, validate=True)
        nonce_bytes = bytes.fromhex(nonce)
        plaintext = backend.aead_decrypt(
            vault_key, nonce_bytes, sealed, vault_salt.encode("utf-8"),
        )
        return plaintext.decode("utf-8")
    except (ValueError, TypeError, binascii.Error) as exc:
        raise VaultDecryptionError() from exc


def seal_mnemonic(
    mnemonic: str,
    vault_key: bytes | bytearray,
    vault_salt: str,
    address: str = "",
    backend: CryptoBackend = DEFAULT_BACKEND,
    clock: Callable[[], float] = time.time,
) -> EncryptedVault:
    """Encrypt and wrap into a complete EncryptedVault record."""
    ciphertext, nonce = encrypt_vault(mnemonic, vault_key, vault_salt, backend)
    return EncryptedVault(
        salt=vault_salt,
        ciphertext=ciphertext,
        nonce=nonce,
        address=address,
        created_at=int(clock() * 1000),
    )
