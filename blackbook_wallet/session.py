"""
Wallet session manager.

Orchestrates the fork, vault, key and signer layers into the account
flows a wallet front-end needs:

  register   -> generate/accept mnemonic, fork password, seal vault, upload
  login      -> fetch auth salt, auth fork, authenticate, vault fork, open vault
  change_password / recover_after_password_reset
             -> new salts, re-fork, re-seal, push one atomic update
  transfer / bridge_* / social_post / create_prop
             -> one signing pass under the session lock, one ledger round trip

State machine::

    UNLOADED --register/login--> READY --change_password/recover--> READY
        \\                          |
         `------ destroy() --------+--> DESTROYED (terminal)

A failed transition falls back to the state it started from. The mnemonic
and secret key never leave this object; callers only see addresses,
signatures and signed envelopes.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import hmac
import logging
import math
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable

from blackbook_wallet.client import ServiceClient
from blackbook_wallet.config import WalletSDKConfig
from blackbook_wallet.crypto_backend import (
    DEFAULT_ARGON2,
    DEFAULT_BACKEND,
    Argon2Params,
    CryptoBackend,
    sha256_hex,
    wipe,
)
from blackbook_wallet.errors import (
    AuthenticationError,
    InputValidationError,
    MigrationRequiredError,
    RecoveryError,
    RecoveryIntegrityError,
    ServiceError,
    SessionStateError,
    VaultIntegrityError,
)
from blackbook_wallet.fork import (
    FORK_VERSION,
    ForkedSecrets,
    derive_auth_key,
    derive_vault_key,
    fork_password,
    generate_salt,
)
from blackbook_wallet.keys import (
    CHAIN_L2,
    Keypair,
    derive_address,
    mnemonic_to_keypair,
    seed_to_keypair,
    validate_address,
)
from blackbook_wallet.mnemonic_codec import (
    generate_mnemonic,
    normalize_mnemonic,
    validate_mnemonic,
)
from blackbook_wallet.signer import (
    CHAIN_ID_L1,
    BridgeDeposit,
    BridgeWithdraw,
    NonceGenerator,
    Operation,
    PropCreate,
    SignedRequest,
    SocialPost,
    Transfer,
    sign_request,
)
from blackbook_wallet.test_accounts import get_test_account
from blackbook_wallet.vault import decrypt_vault, seal_mnemonic

logger = logging.getLogger("blackbook_session")

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 8
MIN_PROP_LIQUIDITY = 100.0
_PIN_RE = re.compile(r"[0-9]{6}")


class SessionState(Enum):
    UNLOADED = "unloaded"
    REGISTERING = "registering"
    LOGGING_IN = "logging_in"
    READY = "ready"
    RECOVERING = "recovering"
    CHANGING_PASSWORD = "changing_password"
    DESTROYED = "destroyed"


@dataclass
class _WalletSession:
    """Everything secret the manager holds for one authenticated user."""
    username: str = ""
    address: str = ""
    mnemonic: str | None = None
    keypair: Keypair | None = None
    auth_salt: str = ""
    auth_digest: str = ""   # sha256(auth_key), checked by change_password

    def clear(self) -> None:
        if self.keypair is not None:
            self.keypair.destroy()
        self.keypair = None
        self.mnemonic = None
        self.auth_salt = ""
        self.auth_digest = ""


# ── input validation ─────────────────────────────────────────────

def _check_username(username: str) -> None:
    if not isinstance(username, str) or len(username) < MIN_USERNAME_LENGTH:
        raise InputValidationError(
            f"Username must be at least {MIN_USERNAME_LENGTH} characters"
        )


def _check_password(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise InputValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )


def _check_pin(pin: str) -> None:
    if not isinstance(pin, str) or _PIN_RE.fullmatch(pin) is None:
        raise InputValidationError("PIN must be exactly 6 digits")


def _check_amount(amount: float) -> None:
    if (
        isinstance(amount, bool)
        or not isinstance(amount, (int, float))
        or not math.isfinite(amount)
        or amount <= 0
    ):
        raise InputValidationError(f"amount must be a positive number, got {amount!r}")


def _check_address(address: str) -> None:
    if not validate_address(address):
        raise InputValidationError(f"invalid address: {address!r}")


# ── worker-thread helpers ────────────────────────────────────────

def _discard_result(fut: asyncio.Future) -> None:
    """Zero secret material produced by a worker whose caller was cancelled."""
    if fut.cancelled() or fut.exception() is not None:
        return
    result = fut.result()
    if isinstance(result, bytearray):
        wipe(result)
    elif isinstance(result, Keypair):
        result.destroy()
    elif isinstance(result, ForkedSecrets):
        result.wipe()


async def _off_loop(func: Callable, *args: Any) -> Any:
    """Run CPU-heavy derivation in the default executor."""
    loop = asyncio.get_running_loop()
    fut = loop.run_in_executor(None, functools.partial(func, *args))
    try:
        return await asyncio.shield(fut)
    except asyncio.CancelledError:
        fut.add_done_callback(_discard_result)
        raise


def _require_success(resp: dict[str, Any], what: str) -> dict[str, Any]:
    if not resp.get("success"):
        raise ServiceError(resp.get("error") or f"{what} failed", resp)
    return resp


class WalletSessionManager:
    """
    Owns exactly one wallet session and the HTTP client it talks through.

    Usage::

        async with WalletSessionManager(config=load_config()) as wallet:
            await wallet.login("alice", "Sup3rSecret!")
            await wallet.transfer("L1_...", 25)
    """

    def __init__(
        self,
        client: ServiceClient | None = None,
        config: WalletSDKConfig | None = None,
        *,
        kdf_params: Argon2Params | None = None,
        chain_id: int | None = None,
        backend: CryptoBackend = DEFAULT_BACKEND,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config or WalletSDKConfig()
        services = self._config.services
        self._owns_client = client is None
        self._client = client or ServiceClient(
            services.credential_url,
            services.ledger_url,
            services.l2_url or None,
            timeout=services.request_timeout,
        )
        if kdf_params is not None:
            self._kdf = kdf_params
        elif config is not None:
            self._kdf = config.kdf.to_params()
        else:
            self._kdf = DEFAULT_ARGON2
        self._chain_id = chain_id if chain_id is not None else self._config.signing.chain_id
        self._backend = backend
        self._clock = clock
        self._nonces = NonceGenerator()
        self._lock = asyncio.Lock()
        self._session = _WalletSession()
        self._state = SessionState.UNLOADED

    # ---- introspection ----

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    @property
    def username(self) -> str:
        return self._session.username

    @property
    def address(self) -> str:
        return self._session.address

    @property
    def l2_address(self) -> str:
        if not self._session.address:
            return ""
        return "L2_" + self._session.address[3:]

    @property
    def public_key(self) -> str:
        kp = self._session.keypair
        return kp.public_key_hex if kp is not None else ""

    def __repr__(self) -> str:
        return (
            f"WalletSessionManager(state={self._state.value}, "
            f"username={self._session.username!r}, address={self._session.address!r})"
        )

    # ---- lifecycle ----

    async def __aenter__(self) -> WalletSessionManager:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def destroy(self) -> None:
        """Zero the secret key, drop the mnemonic and enter DESTROYED. Idempotent."""
        if self._state is SessionState.DESTROYED:
            return
        self._session.clear()
        self._state = SessionState.DESTROYED
        logger.info("session destroyed")

    async def close(self) -> None:
        self.destroy()
        if self._owns_client:
            await self._client.close()

    @contextlib.asynccontextmanager
    async def _transition(
        self, allowed: set[SessionState], during: SessionState,
    ) -> AsyncIterator[None]:
        async with self._lock:
            if self._state not in allowed:
                raise SessionStateError(
                    f"cannot enter {during.value} from {self._state.value}"
                )
            prior = self._state
            self._state = during
            logger.debug("state %s -> %s", prior.value, during.value, extra={"state": during.value})
            try:
                yield
            except BaseException:
                if self._state is not SessionState.DESTROYED:
                    self._state = prior
                raise
            if self._state is not SessionState.DESTROYED:
                self._state = SessionState.READY

    def _adopt(
        self,
        username: str,
        keypair: Keypair,
        mnemonic: str | None,
        auth_salt: str = "",
        auth_key: str = "",
    ) -> None:
        """Install a freshly derived identity, replacing (and wiping) any previous one."""
        if self._state is SessionState.DESTROYED:
            raise SessionStateError("session was destroyed during the operation")
        self._session.clear()
        self._session = _WalletSession(
            username=username,
            address=derive_address(keypair.public_key),
            mnemonic=mnemonic,
            keypair=keypair,
            auth_salt=auth_salt,
            auth_digest=sha256_hex(auth_key) if auth_key else "",
        )

    def _require_ready(self) -> Keypair:
        if self._state is SessionState.DESTROYED:
            raise SessionStateError("session has been destroyed")
        kp = self._session.keypair
        if self._state is not SessionState.READY or kp is None:
            raise SessionStateError("Wallet not initialized")
        return kp

    async def _new_vault_credentials(
        self, username: str, mnemonic: str, password: str, address: str,
    ) -> tuple[dict[str, Any], str, str]:
        """
        Fork *password* with two fresh salts and seal *mnemonic* under the new vault key.

        Returns the credential-update body plus the auth salt and auth key
        the session should remember.
        """
        auth_salt = generate_salt(self._backend)
        vault_salt = generate_salt(self._backend)
        forked = await _off_loop(
            fork_password, password, auth_salt, vault_salt, self._kdf, self._backend,
        )
        try:
            vault = seal_mnemonic(
                mnemonic, forked.vault_key, vault_salt, address,
                backend=self._backend, clock=self._clock,
            )
        finally:
            forked.wipe()
        body = {
            "username": username,
            "encrypted_vault": vault.to_dict(),
            "auth_key": forked.auth_key,
            "auth_salt": auth_salt,
            "fork_version": FORK_VERSION,
        }
        return body, auth_salt, forked.auth_key

    async def _fetch_auth_salt(self, username: str) -> tuple[str, int]:
        resp = await self._client.post_credential("/auth/salt", {"username": username})
        if not resp.get("success"):
            logger.debug("auth salt lookup for %s refused: %s", username, resp.get("error"))
            raise AuthenticationError()
        try:
            fork_version = int(resp.get("fork_version", FORK_VERSION))
        except (TypeError, ValueError) as exc:
            raise VaultIntegrityError("server returned a malformed fork_version") from exc
        auth_salt = resp.get("auth_salt")
        if not isinstance(auth_salt, str) or not auth_salt:
            raise VaultIntegrityError("server did not return auth_salt")
        return auth_salt, fork_version

    # ---- account flows ----

    async def register(
        self, username: str, password: str, mnemonic: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a new account.

        A mnemonic is generated when none is supplied. The vault salt and
        auth salt are fresh for every registration.
        """
        _check_username(username)
        _check_password(password)
        if mnemonic is not None:
            if not validate_mnemonic(mnemonic):
                raise InputValidationError("mnemonic failed BIP-39 validation")
            mnemonic = normalize_mnemonic(mnemonic)

        async with self._transition({SessionState.UNLOADED}, SessionState.REGISTERING):
            keypair: Keypair | None = None
            try:
                if mnemonic is None:
                    mnemonic = generate_mnemonic(self._backend)
                keypair = await _off_loop(mnemonic_to_keypair, mnemonic, "", self._backend)
                address = derive_address(keypair.public_key)
                body, auth_salt, auth_key = await self._new_vault_credentials(
                    username, mnemonic, password, address,
                )
                body["public_key"] = keypair.public_key_hex

                resp = _require_success(
                    await self._client.post_credential("/auth/register", body),
                    "registration",
                )
                self._adopt(username, keypair, mnemonic, auth_salt, auth_key)
                keypair = None
            finally:
                if keypair is not None:
                    keypair.destroy()

        logger.info("registered", extra={"username": username, "address": address})
        return {**resp, "success": True, "address": address}

    async def login(self, username: str, password: str) -> dict[str, Any]:
        """
        Authenticate and open the vault.

        The vault salt is only known once the auth fork has been accepted,
        so the vault key is derived in a second step.
        """
        if not username or not password:
            raise InputValidationError("username and password are required")

        async with self._transition({SessionState.UNLOADED}, SessionState.LOGGING_IN):
            vault_key: bytearray | None = None
            keypair: Keypair | None = None
            try:
                auth_salt, fork_version = await self._fetch_auth_salt(username)
                if fork_version < FORK_VERSION:
                    raise MigrationRequiredError(fork_version)

                auth_key = derive_auth_key(password, auth_salt)
                resp = await self._client.post_credential(
                    "/auth/login", {"username": username, "auth_key": auth_key},
                )
                if not resp.get("success"):
                    logger.debug("login for %s refused: %s", username, resp.get("error"))
                    raise AuthenticationError()

                vault_salt = resp.get("vault_salt")
                if not vault_salt:
                    raise VaultIntegrityError(
                        "server did not return vault_salt; the account record may be corrupted"
                    )
                blob, nonce = resp.get("encrypted_blob"), resp.get("nonce")
                if not blob or not nonce:
                    raise VaultIntegrityError("server did not return the encrypted vault")

                vault_key = await _off_loop(
                    derive_vault_key, password, vault_salt, self._kdf, self._backend,
                )
                mnemonic = decrypt_vault(blob, nonce, vault_key, vault_salt, self._backend)
                keypair = await _off_loop(mnemonic_to_keypair, mnemonic, "", self._backend)
                self._adopt(username, keypair, mnemonic, auth_salt, auth_key)
                keypair = None
            finally:
                wipe(vault_key)
                if keypair is not None:
                    keypair.destroy()

        logger.info("logged in", extra={"username": username, "address": self._session.address})
        return {"success": True, "address": self._session.address}

    async def change_password(self, old_password: str, new_password: str) -> dict[str, Any]:
        """Re-seal the in-memory mnemonic under a new password and push the new vault."""
        _check_password(new_password)

        async with self._transition({SessionState.READY}, SessionState.CHANGING_PASSWORD):
            session = self._session
            if session.mnemonic is None:
                raise SessionStateError("Wallet not fully loaded. Login first.")
            if not session.auth_digest:
                raise SessionStateError("no stored credential to check the current password against")
            old_digest = sha256_hex(derive_auth_key(old_password, session.auth_salt))
            if not hmac.compare_digest(old_digest, session.auth_digest):
                raise AuthenticationError()

            body, auth_salt, auth_key = await self._new_vault_credentials(
                session.username, session.mnemonic, new_password, session.address,
            )
            resp = _require_success(
                await self._client.post_credential("/auth/change-password", body),
                "password change",
            )
            if self._state is SessionState.DESTROYED:
                raise SessionStateError("session was destroyed during the operation")
            session.auth_salt = auth_salt
            session.auth_digest = sha256_hex(auth_key)

        logger.info("password changed", extra={"username": session.username})
        return resp

    async def check_recovery_status(self, username: str) -> bool:
        """True when the credential service has flagged *username* for recovery."""
        resp = await self._client.post_credential(
            "/wallet/recovery-status", {"username": username},
        )
        return bool(resp.get("needs_recovery", False))

    async def recover_after_password_reset(
        self,
        username: str,
        new_password: str,
        pin: str,
        encrypted_backup_share: str,
    ) -> dict[str, Any]:
        """
        Rebuild the vault after an out-of-band password reset.

        The recovery service is trusted only as far as the mnemonic it
        returns derives the public key it claims; a mismatch aborts before
        anything is re-encrypted or sent.
        """
        _check_pin(pin)
        _check_password(new_password)
        if not username:
            raise InputValidationError("username is required")

        async with self._transition(
            {SessionState.UNLOADED, SessionState.READY}, SessionState.RECOVERING,
        ):
            keypair: Keypair | None = None
            try:
                await self._fetch_auth_salt(username)
                rec = await self._client.post_credential("/wallet/recover", {
                    "username": username,
                    "pin": pin,
                    "encrypted_backup_share": encrypted_backup_share,
                })
                if not rec.get("success"):
                    raise RecoveryError(
                        rec.get("error") or "recovery failed; check PIN and backup share"
                    )

                mnemonic, expected = rec.get("mnemonic"), rec.get("public_key")
                if not isinstance(mnemonic, str) or not isinstance(expected, str):
                    raise RecoveryIntegrityError("recovery response is incomplete")
                if not validate_mnemonic(mnemonic):
                    raise RecoveryIntegrityError("recovered mnemonic failed BIP-39 validation")
                mnemonic = normalize_mnemonic(mnemonic)
                keypair = await _off_loop(mnemonic_to_keypair, mnemonic, "", self._backend)
                if not hmac.compare_digest(
                    keypair.public_key_hex.encode("utf-8"),
                    expected.strip().lower().encode("utf-8"),
                ):
                    logger.warning("recovery for %s returned a mismatched public key", username)
                    raise RecoveryIntegrityError(
                        "recovered wallet does not match its public key; shares may be corrupted"
                    )

                body, auth_salt, auth_key = await self._new_vault_credentials(
                    username, mnemonic, new_password, derive_address(keypair.public_key),
                )
                _require_success(
                    await self._client.post_credential("/wallet/update-vault", body),
                    "vault update",
                )
                self._adopt(username, keypair, mnemonic, auth_salt, auth_key)
                keypair = None
            finally:
                if keypair is not None:
                    keypair.destroy()

        logger.info("recovered", extra={"username": username, "address": self._session.address})
        return {
            "success": True,
            "address": self._session.address,
            "message": "Wallet recovered and re-encrypted with new password",
        }

    # ---- development helpers ----

    def init_from_seed(
        self, seed_hex: str, known_address: str | None = None, username: str = "",
    ) -> str:
        """
        Load a raw 32-byte seed (no vault, no mnemonic).

        Used for pre-funded development accounts. Password change is not
        available for a session loaded this way.
        """
        if self._state is not SessionState.UNLOADED or self._lock.locked():
            raise SessionStateError(f"cannot load a seed from {self._state.value}")
        try:
            seed = bytes.fromhex(seed_hex)
        except (TypeError, ValueError) as exc:
            raise InputValidationError("seed must be hex") from exc
        if len(seed) != 32:
            raise InputValidationError("Seed must be exactly 32 bytes (64 hex chars)")

        keypair = seed_to_keypair(seed, self._backend)
        address = derive_address(keypair.public_key)
        if known_address and known_address not in (
            address, derive_address(keypair.public_key, CHAIN_L2),
        ):
            keypair.destroy()
            raise InputValidationError("known address does not match the seed")
        self._adopt(username, keypair, None)
        self._state = SessionState.READY
        logger.info("loaded seed wallet", extra={"address": address})
        return address

    def init_from_test_account(self, name: str) -> str:
        account = get_test_account(name)
        return self.init_from_seed(account.seed, account.l1_address, account.username)

    # ---- signing ----

    async def sign(
        self,
        operation: Operation,
        *,
        chain_id: int | None = None,
        request_path: str | None = None,
    ) -> SignedRequest:
        """Sign *operation* without sending it."""
        if chain_id is None and operation.default_chain_id == CHAIN_ID_L1:
            chain_id = self._chain_id
        async with self._lock:
            keypair = self._require_ready()
            return sign_request(
                keypair,
                operation,
                chain_id=chain_id,
                request_path=request_path,
                nonces=self._nonces,
                clock=self._clock,
                backend=self._backend,
            )

    async def transfer(self, to: str, amount: float) -> dict[str, Any]:
        _check_address(to)
        _check_amount(amount)
        signed = await self.sign(Transfer(sender=self.address, to=to, amount=amount))
        resp = await self._client.post_ledger(signed.request_path, signed.to_dict())
        logger.info("transfer %s -> %s (%s)", self.address, to, amount)
        return _require_success(resp, "transfer")

    async def bridge_to_l2(self, amount: float) -> dict[str, Any]:
        """Lock *amount* on L1 for release on L2."""
        _check_amount(amount)
        signed = await self.sign(BridgeDeposit(sender=self.address, amount=amount))
        resp = await self._client.post_ledger(
            signed.request_path, {**signed.to_dict(), "target_layer": "L2"},
        )
        return _require_success(resp, "bridge deposit")

    async def bridge_withdraw(self, amount: float, to: str | None = None) -> dict[str, Any]:
        _check_amount(amount)
        if to is not None:
            _check_address(to)
        signed = await self.sign(BridgeWithdraw(to=to or self.address, amount=amount))
        resp = await self._client.post_l2(signed.request_path, signed.to_dict())
        return _require_success(resp, "bridge withdraw")

    async def social_post(self, content: str) -> dict[str, Any]:
        if not isinstance(content, str) or not content.strip():
            raise InputValidationError("post content is empty")
        signed = await self.sign(SocialPost(content=content, author=self.address))
        resp = await self._client.post_ledger(signed.request_path, signed.to_dict())
        return _require_success(resp, "social post")

    async def create_prop(
        self,
        parent_market_id: str,
        title: str,
        closes_at: int,
        outcomes: tuple[str, ...] | list[str] = ("Yes", "No"),
        initial_liquidity: float = MIN_PROP_LIQUIDITY,
        description: str = "",
        resolution_criteria: str = "",
    ) -> dict[str, Any]:
        """Propose a prop market under *parent_market_id* on L2."""
        if not parent_market_id or not title:
            raise InputValidationError("parent market id and title are required")
        if len(outcomes) < 2:
            raise InputValidationError("a prop needs at least two outcomes")
        _check_amount(initial_liquidity)
        if initial_liquidity < MIN_PROP_LIQUIDITY:
            raise InputValidationError(
                f"initial liquidity must be at least {MIN_PROP_LIQUIDITY:g}"
            )
        signed = await self.sign(PropCreate(
            creator=self.address,
            parent_market_id=parent_market_id,
            title=title,
            closes_at=int(closes_at),
            outcomes=tuple(outcomes),
            initial_liquidity=initial_liquidity,
        ))
        resp = await self._client.post_l2(signed.request_path, {
            **signed.to_dict(),
            "description": description,
            "resolution_criteria": resolution_criteria,
        })
        return _require_success(resp, "prop creation")

    # ---- read-only ----

    async def get_balance(self) -> dict[str, Any]:
        self._require_ready()
        return await self.get_balance_for(self.address)

    async def get_balance_for(self, address: str) -> dict[str, Any]:
        _check_address(address)
        return await self._client.get_ledger(f"/balance/{address}")

    async def get_bridge_status(self, lock_id: str) -> dict[str, Any]:
        return await self._client.get_ledger(f"/bridge/status/{lock_id}")

    async def get_transaction(self, tx_id: str) -> dict[str, Any]:
        return await self._client.get_ledger(f"/explorer/tx/{tx_id}")

    async def get_account_history(self, limit: int = 50, offset: int = 0) -> dict[str, Any]:
        self._require_ready()
        return await self._client.get_ledger(
            f"/explorer/account/{self.address}/history",
            params={"limit": str(limit), "offset": str(offset)},
        )
