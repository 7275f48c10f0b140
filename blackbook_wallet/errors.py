"""
Error taxonomy for the BlackBook wallet core.

Every failure the core can produce is raised as one of these types:
  - InputValidationError     bad username / password / PIN / mnemonic / address
  - AuthenticationError      credential service rejected the user
  - MigrationRequiredError   account still on fork version 1
  - VaultDecryptionError     AEAD open failed (always one generic message)
  - VaultIntegrityError      malformed or incomplete vault record
  - SchemaError              unknown operation type or missing payload field
  - RecoveryError            recovery endpoint refused the backup share
  - RecoveryIntegrityError   recovered mnemonic does not match its public key
  - SignatureRejectedError   envelope failed verification (bad sig, stale, replay)
  - SessionStateError        operation not allowed in the current session state
  - ServiceError             service answered with ``success: false``
  - TransportError           timeout, connection failure or unparseable body
"""

from __future__ import annotations

VAULT_DECRYPTION_FAILED = "vault decryption failed: wrong password or corrupted vault"
INVALID_CREDENTIALS = "invalid username or password"


class WalletError(Exception):
    """Base class for all wallet-core errors."""


class InputValidationError(WalletError, ValueError):
    """Caller-supplied input is malformed; raised before any network or crypto work."""


class AuthenticationError(WalletError):
    """The credential service refused the login.

    The message never distinguishes an unknown user from a wrong password.
    """

    def __init__(self, message: str = INVALID_CREDENTIALS):
        super().__init__(message)


class MigrationRequiredError(AuthenticationError):
    """The account predates the fork architecture (fork_version < 2)."""

    def __init__(self, fork_version: int):
        self.fork_version = fork_version
        super().__init__(
            f"account uses fork version {fork_version}; V1 vaults require migration"
        )


class VaultDecryptionError(WalletError, ValueError):
    def __init__(self, message: str = VAULT_DECRYPTION_FAILED):
        super().__init__(message)


class VaultIntegrityError(WalletError):
    pass


class SchemaError(WalletError, ValueError):
    """Programmer / integration error in a signing payload. Not retryable."""


class RecoveryError(WalletError):
    pass


class RecoveryIntegrityError(RecoveryError):
    """A recovered mnemonic did not derive the expected public key."""


class SignatureRejectedError(WalletError):
    pass


class SessionStateError(WalletError):
    pass


class ServiceError(WalletError):
    """A remote service answered but reported failure."""

    def __init__(self, message: str, response: dict | None = None):
        super().__init__(message)
        self.response = response or {}


class TransportError(WalletError):
    """Network-level failure. Retrying is the caller's decision."""
