"""
Shared pytest fixtures for the BlackBook wallet test suite.
"""

import pytest

from blackbook_wallet.keys import mnemonic_to_keypair, seed_to_keypair
from blackbook_wallet.test_accounts import get_test_account

from fake_services import FAST_KDF

# 32 zero bytes of entropy.
ZERO_MNEMONIC = " ".join(["abandon"] * 23 + ["art"])


@pytest.fixture
def fast_kdf():
    """Argon2id parameters cheap enough for unit tests."""
    return FAST_KDF


@pytest.fixture
def mnemonic():
    """Fixed, checksum-valid 24-word phrase."""
    return ZERO_MNEMONIC


@pytest.fixture
def keypair():
    """Keypair derived from the fixed mnemonic; destroyed after the test."""
    kp = mnemonic_to_keypair(ZERO_MNEMONIC)
    yield kp
    kp.destroy()


@pytest.fixture
def alice_keypair():
    """Deterministic keypair for the alice development account."""
    kp = seed_to_keypair(bytes.fromhex(get_test_account("alice").seed))
    yield kp
    kp.destroy()
