"""
Key derivation and addresses for the BlackBook wallet.

  seed (32 bytes) -> Ed25519 keypair
  public key      -> "L1_" / "L2_" + upper-hex(SHA256(pubkey)[0:20])

Both layers share the same hash; only the prefix differs.
"""

from __future__ import annotations

import re

from blackbook_wallet.crypto_backend import (
    DEFAULT_BACKEND,
    ED25519_SEED_SIZE,
    CryptoBackend,
    sha256,
    wipe,
)
from blackbook_wallet.mnemonic_codec import mnemonic_to_seed

CHAIN_L1 = "L1"
CHAIN_L2 = "L2"
ADDRESS_HASH_BYTES = 20

_ADDRESS_RE = re.compile(r"^(L1_|L2_)[0-9A-F]{40}$")


class Keypair:
    """
    An Ed25519 keypair whose secret half lives in a wipeable buffer.

    ``secret_key`` holds the 32-byte RFC 8032 seed. After ``destroy()`` the
    buffer is all zeros and signing is refused.
    """

    __slots__ = ("public_key", "secret_key", "_destroyed")

    def __init__(self, public_key: bytes, secret_key: bytearray):
        if len(secret_key) != ED25519_SEED_SIZE:
            raise ValueError("secret key must be 32 bytes")
        self.public_key = bytes(public_key)
        self.secret_key = secret_key
        self._destroyed = False

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def sign(self, message: bytes, backend: CryptoBackend = DEFAULT_BACKEND) -> bytes:
        if self._destroyed:
            raise ValueError("keypair has been destroyed")
        return backend.ed25519_sign(self.secret_key, message)

    def destroy(self) -> None:
        wipe(self.secret_key)
        self._destroyed = True

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else "live"
        return f"Keypair(public_key={self.public_key.hex()}, {state})"


def seed_to_keypair(seed: bytes, backend: CryptoBackend = DEFAULT_BACKEND) -> Keypair:
    """Standard Ed25519 keypair-from-seed."""
    if len(seed) != ED25519_SEED_SIZE:
        raise ValueError(f"seed must be {ED25519_SEED_SIZE} bytes, got {len(seed)}")
    secret = bytearray(seed)
    return Keypair(backend.ed25519_public_key(secret), secret)


def mnemonic_to_keypair(mnemonic: str, passphrase: str = "",
                        backend: CryptoBackend = DEFAULT_BACKEND) -> Keypair:
    seed = bytearray(mnemonic_to_seed(mnemonic, passphrase))
    try:
        return seed_to_keypair(bytes(seed), backend)
    finally:
        wipe(seed)


def derive_address(public_key: bytes | str, chain: str = CHAIN_L1) -> str:
    """Chain-tagged address for an Ed25519 public key (raw bytes or hex)."""
    if chain not in (CHAIN_L1, CHAIN_L2):
        raise ValueError(f"unknown chain tag: {chain!r}")
    if isinstance(public_key, str):
        public_key = bytes.fromhex(public_key)
    digest = sha256(bytes(public_key))[:ADDRESS_HASH_BYTES]
    return f"{chain}_{digest.hex().upper()}"


def validate_address(address: str) -> bool:
    return isinstance(address, str) and _ADDRESS_RE.match(address) is not None


def get_address_type(address: str) -> str | None:
    if address.startswith("L1_"):
        return CHAIN_L1
    if address.startswith("L2_"):
        return CHAIN_L2
    return None


def l1_to_l2_address(address: str) -> str:
    if not address.startswith("L1_"):
        raise ValueError("Invalid L1 address format")
    return "L2_" + address[3:]


def l2_to_l1_address(address: str) -> str:
    if not address.startswith("L2_"):
        raise ValueError("Invalid L2 address format")
    return "L1_" + address[3:]
