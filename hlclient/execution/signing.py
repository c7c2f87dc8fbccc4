"""L1 action signing.

Every write action is wrapped in an envelope together with the chain id, the
nonce and the vault address, serialized to canonical JSON, hashed with
keccak-256 and signed with secp256k1. The venue recomputes the same bytes to
verify the signature, so the envelope layout and the serializer settings here
are part of the wire protocol:

* keys sorted at every nesting level, no whitespace, UTF-8 output;
* the action embedded as a nested JSON value, not as a pre-serialized string;
* ``vaultAddress`` present always, ``""`` when trading for the signer itself.
"""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from eth_keys import keys
from eth_utils import keccak, to_checksum_address

from hlclient.errors import SigningError

MAINNET_CHAIN_ID = "0x1"
TESTNET_CHAIN_ID = "0x66eee"
SIGNATURE_V_OFFSET = 27

PrivateKeyLike = Union[str, bytes, keys.PrivateKey]


def chain_id(is_mainnet: bool) -> str:
    return MAINNET_CHAIN_ID if is_mainnet else TESTNET_CHAIN_ID


def get_timestamp_ms() -> int:
    return int(time.time() * 1000)


class NonceManager:
    """Hands out millisecond nonces that strictly increase within a process."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def next_nonce(self) -> int:
        with self._lock:
            nonce = max(get_timestamp_ms(), self._last + 1)
            self._last = nonce
            return nonce


@dataclass
class PendingAction:
    """An action being signed and submitted; lives for one request only."""

    action: Dict[str, Any]
    nonce: int
    vault_address: Optional[str] = None

    @property
    def action_type(self) -> Optional[str]:
        return self.action.get("type")


def load_private_key(value: PrivateKeyLike) -> keys.PrivateKey:
    """Accept a ``0x`` hex string, bare hex, 32 raw bytes or a ``PrivateKey``."""

    if isinstance(value, keys.PrivateKey):
        return value
    try:
        if isinstance(value, str):
            text = value[2:] if value.startswith(("0x", "0X")) else value
            raw = bytes.fromhex(text)
        elif isinstance(value, (bytes, bytearray)):
            raw = bytes(value)
        else:
            raise TypeError(f"unsupported private key type {type(value).__name__}")
        return keys.PrivateKey(raw)
    except Exception as exc:
        raise SigningError(f"invalid private key: {exc}") from exc


def address_of(private_key: PrivateKeyLike) -> str:
    """Checksum address controlled by ``private_key``."""

    return load_private_key(private_key).public_key.to_checksum_address()


def action_envelope(
    action: Dict[str, Any],
    vault_address: Optional[str],
    nonce: int,
    is_mainnet: bool,
) -> Dict[str, Any]:
    return {
        "action": action,
        "chainId": chain_id(is_mainnet),
        "nonce": nonce,
        "vaultAddress": vault_address or "",
    }


def canonical_bytes(envelope: Dict[str, Any]) -> bytes:
    try:
        text = json.dumps(
            envelope,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as exc:
        raise SigningError(f"failed to serialize action: {exc}") from exc
    return text.encode("utf-8")


def action_hash(
    action: Dict[str, Any],
    vault_address: Optional[str],
    nonce: int,
    is_mainnet: bool,
) -> bytes:
    return keccak(canonical_bytes(action_envelope(action, vault_address, nonce, is_mainnet)))


def sign_hash(private_key: PrivateKeyLike, message_hash: bytes) -> str:
    """Sign a 32-byte hash; returns ``0x`` + r || s || (v + 27) as hex."""

    key = load_private_key(private_key)
    try:
        signature = key.sign_msg_hash(message_hash)
    except Exception as exc:
        raise SigningError(f"failed to sign message: {exc}") from exc
    raw = bytearray(signature.to_bytes())
    raw[64] += SIGNATURE_V_OFFSET
    return "0x" + raw.hex()


def sign_l1_action(
    private_key: PrivateKeyLike,
    action: Dict[str, Any],
    vault_address: Optional[str],
    nonce: int,
    is_mainnet: bool,
) -> str:
    """Sign ``action`` for submission to ``/exchange``."""

    return sign_hash(private_key, action_hash(action, vault_address, nonce, is_mainnet))


def sign_pending_action(private_key: PrivateKeyLike, pending: PendingAction, is_mainnet: bool) -> str:
    return sign_l1_action(private_key, pending.action, pending.vault_address, pending.nonce, is_mainnet)


def recover_signer(
    signature: str,
    action: Dict[str, Any],
    vault_address: Optional[str],
    nonce: int,
    is_mainnet: bool,
) -> str:
    """Return the checksum address that produced ``signature`` for this action."""

    try:
        raw = bytearray(bytes.fromhex(signature[2:] if signature.startswith("0x") else signature))
        if len(raw) != 65:
            raise ValueError(f"expected 65 signature bytes, got {len(raw)}")
        raw[64] -= SIGNATURE_V_OFFSET
        parsed = keys.Signature(signature_bytes=bytes(raw))
        public_key = parsed.recover_public_key_from_msg_hash(
            action_hash(action, vault_address, nonce, is_mainnet)
        )
    except SigningError:
        raise
    except Exception as exc:
        raise SigningError(f"failed to recover signer: {exc}") from exc
    return to_checksum_address(public_key.to_canonical_address())


__all__ = [
    "MAINNET_CHAIN_ID",
    "TESTNET_CHAIN_ID",
    "NonceManager",
    "PendingAction",
    "action_envelope",
    "action_hash",
    "address_of",
    "canonical_bytes",
    "chain_id",
    "get_timestamp_ms",
    "load_private_key",
    "recover_signer",
    "sign_hash",
    "sign_l1_action",
    "sign_pending_action",
]
