"""
Canonical request signing (schema version 2).

Every ledger operation has a fixed field order. Signing a request:

  1. merge the operation's fields with a fresh ``timestamp`` and ``nonce``
  2. render the fields in *schema* order, join with ``|``, SHA-256 -> payload_hash
  3. message = "BLACKBOOK_L{chain_id}{request_path}\\n{payload_hash}\\n{timestamp}\\n{nonce}"
  4. Ed25519-sign the UTF-8 message

The domain prefix pins a signature to one chain and one endpoint; the
timestamp/nonce pair makes every envelope single-use.
"""

from __future__ import annotations

import hmac
import itertools
import json
import logging
import math
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, ClassVar, Mapping, Union

from blackbook_wallet.config import SigningConfig
from blackbook_wallet.crypto_backend import DEFAULT_BACKEND, CryptoBackend, sha256_hex
from blackbook_wallet.errors import SchemaError, SignatureRejectedError
from blackbook_wallet.keys import Keypair

logger = logging.getLogger("blackbook_signer")

CHAIN_ID_L1 = 0x01
CHAIN_ID_L2 = 0x02
SCHEMA_VERSION = 2
DOMAIN_TAG = "BLACKBOOK"

PAYLOAD_SCHEMAS: Mapping[str, tuple[str, ...]] = {
    "transfer": ("from", "to", "amount", "timestamp", "nonce"),
    "bridge_deposit": ("from", "amount", "timestamp", "nonce"),
    "bridge_withdraw": ("to", "amount", "timestamp", "nonce"),
    "social_post": ("content", "author", "timestamp", "nonce"),
    "prop_create": (
        "creator", "parent_market_id", "title", "outcomes",
        "initial_liquidity", "closes_at", "timestamp", "nonce",
    ),
}


# ===================================================================
#  Operations
# ===================================================================

@dataclass(frozen=True)
class Transfer:
    sender: str
    to: str
    amount: float

    operation_type: ClassVar[str] = "transfer"
    default_chain_id: ClassVar[int] = CHAIN_ID_L1

    @property
    def request_path(self) -> str:
        return "/transfer"

    def fields(self) -> dict[str, Any]:
        return {"from": self.sender, "to": self.to, "amount": self.amount}


@dataclass(frozen=True)
class BridgeDeposit:
    """Lock funds on L1 for release on L2."""
    sender: str
    amount: float

    operation_type: ClassVar[str] = "bridge_deposit"
    default_chain_id: ClassVar[int] = CHAIN_ID_L1

    @property
    def request_path(self) -> str:
        return "/bridge/initiate"

    def fields(self) -> dict[str, Any]:
        return {"from": self.sender, "amount": self.amount}


@dataclass(frozen=True)
class BridgeWithdraw:
    """Release funds from L2 back to an L1 address."""
    to: str
    amount: float

    operation_type: ClassVar[str] = "bridge_withdraw"
    default_chain_id: ClassVar[int] = CHAIN_ID_L2

    @property
    def request_path(self) -> str:
        return "/bridge/withdraw"

    def fields(self) -> dict[str, Any]:
        return {"to": self.to, "amount": self.amount}


@dataclass(frozen=True)
class SocialPost:
    content: str
    author: str

    operation_type: ClassVar[str] = "social_post"
    default_chain_id: ClassVar[int] = CHAIN_ID_L1

    @property
    def request_path(self) -> str:
        return "/social/post"

    def fields(self) -> dict[str, Any]:
        return {"content": self.content, "author": self.author}


@dataclass(frozen=True)
class PropCreate:
    """A user-created prop market under an existing L2 market."""
    creator: str
    parent_market_id: str
    title: str
    closes_at: int
    outcomes: tuple[str, ...] = ("Yes", "No")
    initial_liquidity: float = 100.0

    operation_type: ClassVar[str] = "prop_create"
    default_chain_id: ClassVar[int] = CHAIN_ID_L2

    @property
    def request_path(self) -> str:
        return f"/market/{self.parent_market_id}/prop/create"

    def fields(self) -> dict[str, Any]:
        return {
            "creator": self.creator,
            "parent_market_id": self.parent_market_id,
            "title": self.title,
            "outcomes": list(self.outcomes),
            "initial_liquidity": self.initial_liquidity,
            "closes_at": self.closes_at,
        }


Operation = Union[Transfer, BridgeDeposit, BridgeWithdraw, SocialPost, PropCreate]


# ===================================================================
#  Nonces
# ===================================================================

class NonceGenerator:
    """Random uuid4 token suffixed with a per-generator monotonic counter."""

    def __init__(self) -> None:
        self._counter = itertools.count(1)

    def next(self) -> str:
        return f"{uuid.uuid4()}-{next(self._counter):x}"


# ===================================================================
#  Canonical hashing
# ===================================================================

def _js_number(value: float) -> str:
    """``String(value)`` as JavaScript prints a double."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    # repr() already gives the shortest round-trip digits; only the layout differs
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(map(str, digit_tuple)).rstrip("0")
    exponent += len(digit_tuple) - len(digits)
    k = len(digits)
    n = exponent + k
    if k <= n <= 21:
        body = digits + "0" * (n - k)
    elif 0 < n <= 21:
        body = digits[:n] + "." + digits[n:]
    elif -6 < n <= 0:
        body = "0." + "0" * -n + digits
    else:
        mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
        body = f"{mantissa}e{'+' if n > 0 else '-'}{abs(n - 1)}"
    return sign + body


def _render(value: Any) -> str:
    """Stringify one field the way every consumer of the schema does."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float):
        return _js_number(value)
    if isinstance(value, (int, str)):
        return str(value)
    if isinstance(value, tuple):
        value = list(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def schema_for(operation_type: str) -> tuple[str, ...]:
    schema = PAYLOAD_SCHEMAS.get(operation_type)
    if schema is None:
        raise SchemaError(f"Unknown operation type: {operation_type}")
    return schema


def canonical_payload_string(operation_type: str, fields: Mapping[str, Any]) -> str:
    schema = schema_for(operation_type)
    parts = []
    for key in schema:
        if key not in fields:
            raise SchemaError(f"Missing field: {key}")
        parts.append(_render(fields[key]))
    return "|".join(parts)


def canonical_payload_hash(operation_type: str, fields: Mapping[str, Any]) -> str:
    """SHA-256 (hex) of the schema-ordered payload; insertion order of *fields* is irrelevant."""
    return sha256_hex(canonical_payload_string(operation_type, fields))


def domain_prefix(chain_id: int, request_path: str) -> str:
    return f"{DOMAIN_TAG}_L{chain_id}{request_path}"


def build_signing_message(prefix: str, payload_hash: str, timestamp: int, nonce: str) -> str:
    return f"{prefix}\n{payload_hash}\n{timestamp}\n{nonce}"


# ===================================================================
#  Signed envelopes
# ===================================================================

@dataclass(frozen=True)
class SignedRequest:
    public_key: str
    payload_hash: str
    payload_fields: dict[str, Any]
    operation_type: str
    timestamp: int
    nonce: str
    chain_id: int
    request_path: str
    signature: str
    schema_version: int = SCHEMA_VERSION

    @property
    def message(self) -> str:
        return build_signing_message(
            domain_prefix(self.chain_id, self.request_path),
            self.payload_hash, self.timestamp, self.nonce,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "public_key": self.public_key,
            "payload_hash": self.payload_hash,
            "payload_fields": dict(self.payload_fields),
            "operation_type": self.operation_type,
            "schema_version": self.schema_version,
            "timestamp": self.timestamp,
            "nonce": self.nonce,
            "chain_id": self.chain_id,
            "request_path": self.request_path,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SignedRequest:
        try:
            return cls(
                public_key=str(data["public_key"]),
                payload_hash=str(data["payload_hash"]),
                payload_fields=dict(data["payload_fields"]),
                operation_type=str(data["operation_type"]),
                timestamp=int(data["timestamp"]),
                nonce=str(data["nonce"]),
                chain_id=int(data["chain_id"]),
                request_path=str(data["request_path"]),
                signature=str(data["signature"]),
                schema_version=int(data.get("schema_version", SCHEMA_VERSION)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise SchemaError(f"malformed signed request: {exc}") from exc


def sign_request(
    keypair: Keypair,
    operation: Operation,
    *,
    chain_id: int | None = None,
    request_path: str | None = None,
    nonces: NonceGenerator | None = None,
    clock: Callable[[], float] = time.time,
    backend: CryptoBackend = DEFAULT_BACKEND,
) -> SignedRequest:
    """Build and sign the envelope for one operation. One signing pass per call."""
    op_type = getattr(operation, "operation_type", None)
    if not isinstance(op_type, str):
        raise SchemaError(f"not a signable operation: {type(operation).__name__}")
    schema_for(op_type)

    chain = operation.default_chain_id if chain_id is None else chain_id
    path = request_path or operation.request_path
    timestamp = int(clock())
    nonce = (nonces or NonceGenerator()).next()

    payload_fields = {**operation.fields(), "timestamp": timestamp, "nonce": nonce}
    payload_hash = canonical_payload_hash(op_type, payload_fields)
    message = build_signing_message(domain_prefix(chain, path), payload_hash, timestamp, nonce)
    signature = keypair.sign(message.encode("utf-8"), backend)

    logger.debug("signed %s for %s (chain %d)", op_type, path, chain, extra={"operation": op_type})
    return SignedRequest(
        public_key=keypair.public_key_hex,
        payload_hash=payload_hash,
        payload_fields=payload_fields,
        operation_type=op_type,
        timestamp=timestamp,
        nonce=nonce,
        chain_id=chain,
        request_path=path,
        signature=signature.hex(),
    )


def verify_signed_request(
    request: SignedRequest | Mapping[str, Any],
    backend: CryptoBackend = DEFAULT_BACKEND,
) -> bool:
    """
    Recompute the payload hash and message, then check the signature.

    Returns False for any mismatch or malformed envelope.
    """
    try:
        if not isinstance(request, SignedRequest):
            request = SignedRequest.from_dict(request)
        recomputed = canonical_payload_hash(request.operation_type, request.payload_fields)
        public_key = bytes.fromhex(request.public_key)
        signature = bytes.fromhex(request.signature)
    except (SchemaError, ValueError):
        return False
    if not hmac.compare_digest(recomputed, request.payload_hash.lower()):
        return False
    return backend.ed25519_verify(public_key, request.message.encode("utf-8"), signature)


@dataclass
class SignatureVerifier:
    """
    Envelope verification with a freshness window and replay rejection.

    Seen ``public_key:nonce`` pairs are kept in a bounded LRU.
    """
    max_age: int = 300
    cache_size: int = 1000
    clock: Callable[[], float] = time.time
    backend: CryptoBackend = DEFAULT_BACKEND
    _seen: OrderedDict = field(default_factory=OrderedDict, init=False, repr=False)

    def verify(self, request: SignedRequest | Mapping[str, Any]) -> SignedRequest:
        if not isinstance(request, SignedRequest):
            request = SignedRequest.from_dict(request)

        now = self.clock()
        if request.timestamp < now - self.max_age:
            raise SignatureRejectedError(f"signature expired: signed at {request.timestamp}")
        if request.timestamp > now + self.max_age:
            raise SignatureRejectedError(f"signature from the future: signed at {request.timestamp}")

        replay_key = f"{request.public_key.lower()}:{request.nonce}"
        if replay_key in self._seen:
            raise SignatureRejectedError("replayed nonce")
        if not verify_signed_request(request, self.backend):
            raise SignatureRejectedError("invalid signature")

        self._seen[replay_key] = request.timestamp
        while len(self._seen) > self.cache_size:
            self._seen.popitem(last=False)
        return request

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def clear(self) -> None:
        self._seen.clear()

    @classmethod
    def from_config(cls, signing: SigningConfig, **kwargs: Any) -> SignatureVerifier:
        return cls(max_age=signing.max_signature_age, **kwargs)
