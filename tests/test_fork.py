"""
Test suite for blackbook_wallet.fork: password fork.

Covers:
  - auth_key formula and format
  - vault_key determinism, length, salt and password sensitivity
  - Independence of the two forks and of different salt pairs
  - Auth-only fork (login before the vault salt is known)
  - ForkedSecrets.wipe and redacted repr
"""

import hashlib
import unittest

from blackbook_wallet.fork import (
    AUTH_FORK_DOMAIN,
    VAULT_FORK_DOMAIN,
    ForkedSecrets,
    derive_auth_key,
    derive_vault_key,
    fork_password,
    generate_salt,
)

from fake_services import FAST_KDF

PASSWORD = "Sup3rSecret!"


class TestSalt(unittest.TestCase):

    def test_format(self):
        salt = generate_salt()
        self.assertEqual(len(salt), 64)
        self.assertEqual(salt, salt.lower())
        bytes.fromhex(salt)

    def test_unique(self):
        self.assertNotEqual(generate_salt(), generate_salt())


class TestAuthFork(unittest.TestCase):

    def test_formula(self):
        salt = "ab" * 32
        expected = hashlib.sha256((AUTH_FORK_DOMAIN + salt + PASSWORD).encode()).hexdigest()
        self.assertEqual(derive_auth_key(PASSWORD, salt), expected)

    def test_domains_differ(self):
        self.assertNotEqual(AUTH_FORK_DOMAIN, VAULT_FORK_DOMAIN)

    def test_salt_sensitive(self):
        self.assertNotEqual(
            derive_auth_key(PASSWORD, "00" * 32), derive_auth_key(PASSWORD, "01" * 32),
        )


class TestVaultFork(unittest.TestCase):

    def test_deterministic_32_bytes(self):
        a = derive_vault_key(PASSWORD, "cd" * 32, FAST_KDF)
        b = derive_vault_key(PASSWORD, "cd" * 32, FAST_KDF)
        self.assertEqual(a, b)
        self.assertEqual(len(a), 32)
        self.assertIsInstance(a, bytearray)

    def test_password_sensitive(self):
        self.assertNotEqual(
            derive_vault_key(PASSWORD, "cd" * 32, FAST_KDF),
            derive_vault_key(PASSWORD + "x", "cd" * 32, FAST_KDF),
        )

    def test_empty_salt_rejected(self):
        with self.assertRaises(ValueError):
            derive_vault_key(PASSWORD, "", FAST_KDF)


class TestForkPassword(unittest.TestCase):

    def test_full_fork(self):
        secrets = fork_password(PASSWORD, "aa" * 32, "bb" * 32, FAST_KDF)
        self.assertEqual(secrets.auth_key, derive_auth_key(PASSWORD, "aa" * 32))
        self.assertEqual(secrets.vault_key, derive_vault_key(PASSWORD, "bb" * 32, FAST_KDF))

    def test_auth_only_when_vault_salt_missing(self):
        self.assertIsNone(fork_password(PASSWORD, "aa" * 32).vault_key)
        self.assertIsNone(fork_password(PASSWORD, "aa" * 32, "").vault_key)

    def test_forks_are_unrelated(self):
        secrets = fork_password(PASSWORD, "aa" * 32, "aa" * 32, FAST_KDF)
        self.assertNotIn(bytes(secrets.vault_key).hex(), secrets.auth_key)
        self.assertNotEqual(bytes(secrets.vault_key).hex(), secrets.auth_key)

    def test_different_salt_pairs_independent(self):
        one = fork_password(PASSWORD, generate_salt(), generate_salt(), FAST_KDF)
        two = fork_password(PASSWORD, generate_salt(), generate_salt(), FAST_KDF)
        self.assertNotEqual(one.auth_key, two.auth_key)
        self.assertNotEqual(one.vault_key, two.vault_key)
        # No shared 4-byte window between the two vault keys.
        windows = {bytes(one.vault_key[i:i + 4]) for i in range(29)}
        self.assertFalse(any(bytes(two.vault_key[i:i + 4]) in windows for i in range(29)))

    def test_wipe(self):
        secrets = fork_password(PASSWORD, "aa" * 32, "bb" * 32, FAST_KDF)
        key = secrets.vault_key
        secrets.wipe()
        self.assertEqual(key, bytearray(32))

    def test_repr_redacts(self):
        secrets = ForkedSecrets(auth_key="f" * 64, vault_key=bytearray(b"\x11" * 32))
        self.assertNotIn("f" * 64, repr(secrets))
        self.assertNotIn("11" * 32, repr(secrets))


if __name__ == "__main__":
    unittest.main()
