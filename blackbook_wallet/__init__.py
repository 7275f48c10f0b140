"""
BlackBook Wallet - client-side core of a self-custodied Ed25519 wallet.

Key features:
- Fork Architecture: one password split into a server auth key and a local vault key
- AES-256-GCM vault for the BIP-39 mnemonic (Argon2id key, salt bound as AAD)
- BIP-39 mnemonic -> Ed25519 keypair -> L1/L2 addresses
- Canonical, domain-separated, replay-resistant request signing
- Async session manager for register / login / password change / recovery
"""

__version__ = "2.0.0"
__all__ = [
    "crypto_backend",
    "mnemonic_codec",
    "keys",
    "fork",
    "vault",
    "signer",
    "client",
    "session",
    "config",
    "errors",
]
