"""
Cryptographic capability layer for the BlackBook wallet.

All primitives the wallet core needs sit behind one object so the rest of
the package never imports a crypto library directly:

  - random_bytes        secrets (OS CSPRNG)
  - aead_encrypt/open   AES-256-GCM via pycryptodome
  - memory_hard_kdf     Argon2id via argon2-cffi
  - ed25519_*           Ed25519 via PyNaCl

A different backend (hardware token, test double) only has to provide the
same methods.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass

from argon2.low_level import Type, hash_secret_raw
from Crypto.Cipher import AES
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

AES_KEY_SIZE = 32
GCM_NONCE_SIZE = 12   # 96-bit nonce, the GCM recommended size
GCM_TAG_SIZE = 16
ED25519_SEED_SIZE = 32
ED25519_PUBLIC_KEY_SIZE = 32
ED25519_SIGNATURE_SIZE = 64


@dataclass(frozen=True)
class Argon2Params:
    """Argon2id cost parameters (memory_cost in KiB)."""
    time_cost: int = 3
    memory_cost: int = 65536    # 64 MiB
    parallelism: int = 4
    hash_len: int = 32


DEFAULT_ARGON2 = Argon2Params()


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def sha256_hex(data: str | bytes) -> str:
    """Lower-case hex SHA-256 of *data* (str is UTF-8 encoded)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def wipe(buf: bytearray | None) -> None:
    """Overwrite a mutable buffer with zeros in place."""
    if buf is None:
        return
    buf[:] = bytes(len(buf))


class CryptoBackend:
    """Default backend: OS randomness, pycryptodome, argon2-cffi, PyNaCl."""

    # ---- entropy ----

    def random_bytes(self, length: int) -> bytes:
        if length <= 0:
            raise ValueError("length must be positive")
        return secrets.token_bytes(length)

    # ---- AEAD ----

    def aead_encrypt(self, key: bytes, nonce: bytes, plaintext: bytes, aad: bytes) -> bytes:
        """AES-256-GCM seal. Returns ciphertext || 16-byte tag."""
        if len(key) != AES_KEY_SIZE:
            raise ValueError(f"AES-256 key must be {AES_KEY_SIZE} bytes, got {len(key)}")
        if len(nonce) != GCM_NONCE_SIZE:
            raise ValueError(f"GCM nonce must be {GCM_NONCE_SIZE} bytes, got {len(nonce)}")
        cipher = AES.new(bytes(key), AES.MODE_GCM, nonce=nonce, mac_len=GCM_TAG_SIZE)
        cipher.update(aad)
        ciphertext, tag = cipher.encrypt_and_digest(plaintext)
        return ciphertext + tag

    def aead_decrypt(self, key: bytes, nonce: bytes, sealed: bytes, aad: bytes) -> bytes:
        """AES-256-GCM open. Raises ValueError on any failure, including tag mismatch."""
        if len(key) != AES_KEY_SIZE:
            raise ValueError("bad key length")
        if len(nonce) != GCM_NONCE_SIZE:
            raise ValueError("bad nonce length")
        if len(sealed) < GCM_TAG_SIZE:
            raise ValueError("ciphertext shorter than tag")
        ciphertext, tag = sealed[:-GCM_TAG_SIZE], sealed[-GCM_TAG_SIZE:]
        cipher = AES.new(bytes(key), AES.MODE_GCM, nonce=nonce, mac_len=GCM_TAG_SIZE)
        cipher.update(aad)
        return cipher.decrypt_and_verify(ciphertext, tag)

    # ---- memory-hard KDF ----

    def memory_hard_kdf(self, secret: bytes, salt: bytes,
                        params: Argon2Params = DEFAULT_ARGON2) -> bytearray:
        """Argon2id. Returned as a bytearray so the caller can wipe it."""
        raw = hash_secret_raw(
            secret=secret,
            salt=salt,
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=params.hash_len,
            type=Type.ID,
        )
        return bytearray(raw)

    # ---- Ed25519 ----

    def ed25519_public_key(self, seed: bytes) -> bytes:
        if len(seed) != ED25519_SEED_SIZE:
            raise ValueError(f"Ed25519 seed must be {ED25519_SEED_SIZE} bytes, got {len(seed)}")
        return bytes(SigningKey(bytes(seed)).verify_key)

    def ed25519_sign(self, seed: bytes, message: bytes) -> bytes:
        if len(seed) != ED25519_SEED_SIZE:
            raise ValueError(f"Ed25519 seed must be {ED25519_SEED_SIZE} bytes, got {len(seed)}")
        return bytes(SigningKey(bytes(seed)).sign(message).signature)

    def ed25519_verify(self, public_key: bytes, message: bytes, signature: bytes) -> bool:
        if len(public_key) != ED25519_PUBLIC_KEY_SIZE or len(signature) != ED25519_SIGNATURE_SIZE:
            return False
        try:
            VerifyKey(bytes(public_key)).verify(message, bytes(signature))
        except BadSignatureError:
            return False
        return True


DEFAULT_BACKEND = CryptoBackend()
