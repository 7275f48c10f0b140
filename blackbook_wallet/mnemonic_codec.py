"""
BIP-39 mnemonic support for the BlackBook wallet.

  - 24-word phrase generation from 256 bits of entropy + 8-bit checksum
  - Checksum validation for 12/15/18/21/24-word phrases
  - Phrase -> 32-byte Ed25519 seed (PBKDF2-HMAC-SHA512, 2048 rounds)

Encoding, decoding and checksums come from the ``mnemonic`` package.
Phrases are accepted in any case and spacing, but only the canonical form
(NFKD, lower case, single spaces) is ever stretched into a seed or stored.
"""

from __future__ import annotations

import unicodedata

from mnemonic import Mnemonic

from blackbook_wallet.crypto_backend import DEFAULT_BACKEND, CryptoBackend

_ENGLISH = Mnemonic("english")
WORDLIST: tuple[str, ...] = tuple(_ENGLISH.wordlist)

MNEMONIC_STRENGTH = 256          # bits of entropy for a 24-word phrase
SEED_LENGTH = 32


def normalize_mnemonic(phrase: str) -> str:
    """Canonical spelling of *phrase*: NFKD, lower case, single spaces."""
    return " ".join(unicodedata.normalize("NFKD", phrase).lower().split())


def entropy_to_mnemonic(entropy: bytes) -> str:
    """Encode 16/20/24/28/32 bytes of entropy as a BIP-39 phrase."""
    return _ENGLISH.to_mnemonic(bytes(entropy))


def mnemonic_to_entropy(phrase: str) -> bytes:
    """Decode a phrase back to its entropy. Raises ValueError on a bad phrase."""
    try:
        return bytes(_ENGLISH.to_entropy(normalize_mnemonic(phrase)))
    except LookupError as exc:
        raise ValueError(str(exc)) from exc


def generate_mnemonic(backend: CryptoBackend = DEFAULT_BACKEND) -> str:
    """Generate a fresh 24-word phrase."""
    return entropy_to_mnemonic(backend.random_bytes(MNEMONIC_STRENGTH // 8))


def validate_mnemonic(phrase: str) -> bool:
    """True when the canonical phrase has known words and a matching checksum."""
    if not isinstance(phrase, str):
        return False
    return _ENGLISH.check(normalize_mnemonic(phrase))


def mnemonic_to_seed(phrase: str, passphrase: str = "") -> bytes:
    """
    Derive the 32-byte Ed25519 seed.

    Standard BIP-39 stretching (salt ``"mnemonic" + passphrase``) produces
    64 bytes; the wallet keeps the first 32. *phrase* is stretched exactly
    as given, so callers pass the canonical form.
    """
    return Mnemonic.to_seed(phrase, passphrase)[:SEED_LENGTH]
