"""
Test suite for blackbook_wallet.crypto_backend: primitive capability layer.

Covers:
  - random_bytes length and freshness
  - AES-256-GCM seal/open, AAD binding, tag tamper detection
  - Argon2id determinism and parameter sensitivity
  - Ed25519 against the RFC 8032 test vector
  - sha256_hex / wipe helpers
"""

import unittest

from blackbook_wallet.crypto_backend import (
    DEFAULT_BACKEND,
    GCM_TAG_SIZE,
    Argon2Params,
    CryptoBackend,
    sha256_hex,
    wipe,
)

RFC8032_SEED = bytes.fromhex("9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60")
RFC8032_PUB = bytes.fromhex("d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a")
RFC8032_SIG = bytes.fromhex(
    "e5564300c360ac729086e2cc806e828a84877f1eb8e5d974d873e065224901555"
    "fb8821590a33bacc61e39701cf9b46bd25bf5f0595bbe24655141438e7a100b"
)

FAST = Argon2Params(time_cost=1, memory_cost=1024, parallelism=1)


class TestRandomBytes(unittest.TestCase):

    def test_length(self):
        self.assertEqual(len(DEFAULT_BACKEND.random_bytes(12)), 12)
        self.assertEqual(len(DEFAULT_BACKEND.random_bytes(32)), 32)

    def test_fresh_each_call(self):
        self.assertNotEqual(DEFAULT_BACKEND.random_bytes(32), DEFAULT_BACKEND.random_bytes(32))

    def test_rejects_non_positive(self):
        with self.assertRaises(ValueError):
            DEFAULT_BACKEND.random_bytes(0)


class TestAEAD(unittest.TestCase):

    def setUp(self):
        self.backend = CryptoBackend()
        self.key = bytes(range(32))
        self.nonce = bytes(12)

    def test_seal_open(self):
        sealed = self.backend.aead_encrypt(self.key, self.nonce, b"hello vault", b"aad")
        self.assertEqual(len(sealed), len(b"hello vault") + GCM_TAG_SIZE)
        opened = self.backend.aead_decrypt(self.key, self.nonce, sealed, b"aad")
        self.assertEqual(opened, b"hello vault")

    def test_wrong_aad_fails(self):
        sealed = self.backend.aead_encrypt(self.key, self.nonce, b"hello", b"salt-a")
        with self.assertRaises(ValueError):
            self.backend.aead_decrypt(self.key, self.nonce, sealed, b"salt-b")

    def test_flipped_tag_fails(self):
        sealed = bytearray(self.backend.aead_encrypt(self.key, self.nonce, b"hello", b""))
        sealed[-1] ^= 0x01
        with self.assertRaises(ValueError):
            self.backend.aead_decrypt(self.key, self.nonce, bytes(sealed), b"")

    def test_wrong_key_fails(self):
        sealed = self.backend.aead_encrypt(self.key, self.nonce, b"hello", b"")
        with self.assertRaises(ValueError):
            self.backend.aead_decrypt(bytes(32), self.nonce, sealed, b"")

    def test_bad_sizes_rejected(self):
        with self.assertRaises(ValueError):
            self.backend.aead_encrypt(bytes(16), self.nonce, b"x", b"")
        with self.assertRaises(ValueError):
            self.backend.aead_encrypt(self.key, bytes(8), b"x", b"")
        with self.assertRaises(ValueError):
            self.backend.aead_decrypt(self.key, self.nonce, b"short", b"")

    def test_bytearray_key_accepted(self):
        key = bytearray(self.key)
        sealed = self.backend.aead_encrypt(key, self.nonce, b"x", b"")
        self.assertEqual(self.backend.aead_decrypt(key, self.nonce, sealed, b""), b"x")


class TestMemoryHardKDF(unittest.TestCase):

    def test_deterministic(self):
        a = DEFAULT_BACKEND.memory_hard_kdf(b"secret", b"saltsaltsalt", FAST)
        b = DEFAULT_BACKEND.memory_hard_kdf(b"secret", b"saltsaltsalt", FAST)
        self.assertEqual(a, b)
        self.assertEqual(len(a), 32)

    def test_returns_wipeable_buffer(self):
        out = DEFAULT_BACKEND.memory_hard_kdf(b"secret", b"saltsaltsalt", FAST)
        self.assertIsInstance(out, bytearray)

    def test_salt_and_params_matter(self):
        base = DEFAULT_BACKEND.memory_hard_kdf(b"secret", b"saltsaltsalt", FAST)
        other_salt = DEFAULT_BACKEND.memory_hard_kdf(b"secret", b"saltsaltsal2", FAST)
        other_cost = DEFAULT_BACKEND.memory_hard_kdf(
            b"secret", b"saltsaltsalt", Argon2Params(time_cost=2, memory_cost=1024, parallelism=1),
        )
        self.assertNotEqual(base, other_salt)
        self.assertNotEqual(base, other_cost)

    def test_default_params(self):
        p = Argon2Params()
        self.assertEqual((p.time_cost, p.memory_cost, p.parallelism, p.hash_len), (3, 65536, 4, 32))


class TestEd25519(unittest.TestCase):

    def test_rfc8032_public_key(self):
        self.assertEqual(DEFAULT_BACKEND.ed25519_public_key(RFC8032_SEED), RFC8032_PUB)

    def test_rfc8032_signature(self):
        self.assertEqual(DEFAULT_BACKEND.ed25519_sign(RFC8032_SEED, b""), RFC8032_SIG)

    def test_verify(self):
        self.assertTrue(DEFAULT_BACKEND.ed25519_verify(RFC8032_PUB, b"", RFC8032_SIG))
        self.assertFalse(DEFAULT_BACKEND.ed25519_verify(RFC8032_PUB, b"x", RFC8032_SIG))

    def test_verify_malformed_inputs_false(self):
        self.assertFalse(DEFAULT_BACKEND.ed25519_verify(RFC8032_PUB[:31], b"", RFC8032_SIG))
        self.assertFalse(DEFAULT_BACKEND.ed25519_verify(RFC8032_PUB, b"", RFC8032_SIG[:63]))

    def test_seed_length_enforced(self):
        with self.assertRaises(ValueError):
            DEFAULT_BACKEND.ed25519_public_key(bytes(31))


class TestHelpers(unittest.TestCase):

    def test_sha256_hex_str_and_bytes(self):
        empty = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        self.assertEqual(sha256_hex(""), empty)
        self.assertEqual(sha256_hex(b""), empty)

    def test_wipe_zeroes_in_place(self):
        buf = bytearray(b"\xff" * 32)
        wipe(buf)
        self.assertEqual(buf, bytearray(32))

    def test_wipe_none_is_noop(self):
        wipe(None)


if __name__ == "__main__":
    unittest.main()
