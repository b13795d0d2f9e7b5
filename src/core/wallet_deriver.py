"""
Deterministic sub-wallet derivation.

    private_key = keccak256(master_key || utf8(opaque_id) || uint256(index))

Pure functions only: nothing is read from or written to disk or the network,
so any sub-wallet can be recreated from the three inputs alone. Derived keys
are meant to live only for the duration of a signing operation.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from eth_account import Account
from eth_utils.crypto import keccak

from core.base_types import Address
from core.wallet_manager import WalletManager, _mask_private_key

logger = logging.getLogger(__name__)

MAX_INDEX = 2**32 - 1
# secp256k1 group order; a valid private key is in [1, N).
_SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def _key_bytes(master_key: str | bytes) -> bytes:
    if isinstance(master_key, (bytes, bytearray)):
        raw = bytes(master_key)
    elif isinstance(master_key, str):
        hex_value = master_key[2:] if master_key.startswith("0x") else master_key
        try:
            raw = bytes.fromhex(hex_value)
        except ValueError as exc:
            raise ValueError(
                f"Invalid master key: {_mask_private_key(master_key)}"
            ) from exc
    else:
        raise TypeError("master_key must be hex str or bytes")
    if len(raw) != 32:
        raise ValueError(f"Invalid master key: {_mask_private_key(master_key)}")
    return raw


def derive_private_key(master_key: str | bytes, opaque_id: str, index: int) -> bytes:
    """Return the 32-byte sub-wallet key for ``(master_key, opaque_id, index)``."""
    if not isinstance(opaque_id, str) or opaque_id == "":
        raise ValueError("opaque_id must be a non-empty string")
    if not isinstance(index, int) or isinstance(index, bool):
        raise TypeError("index must be an int")
    if not 0 <= index <= MAX_INDEX:
        raise ValueError("index must fit in uint32")

    preimage = (
        _key_bytes(master_key)
        + opaque_id.encode("utf-8")
        + index.to_bytes(32, "big")
    )
    key = keccak(preimage)
    if not 0 < int.from_bytes(key, "big") < _SECP256K1_N:
        raise ValueError(f"Derived key out of range for {opaque_id}/{index}")
    return key


@dataclass(frozen=True)
class DerivedKeyPair:
    index: int
    address: Address
    private_key: bytes = field(repr=False)

    def __repr__(self) -> str:
        return f"DerivedKeyPair(index={self.index}, address={self.address})"


@dataclass
class SubWallet:
    """Public view of a derived wallet; never carries key material."""

    index: int
    address: Address
    funded_amount: int = 0
    last_trade_at: float | None = None


class WalletDeriver:
    """
    Derives per-campaign sub-wallets from the master key.

    The master key is kept only to derive; it is never handed to a signer.
    """

    def __init__(self, master_key: str | bytes) -> None:
        self._master_key = _key_bytes(master_key)
        self._master_address = Address(Account.from_key(self._master_key).address)

    @property
    def master_address(self) -> Address:
        return self._master_address

    def derive(self, opaque_id: str, index: int) -> DerivedKeyPair:
        key = derive_private_key(self._master_key, opaque_id, index)
        address = Address(Account.from_key(key).address)
        return DerivedKeyPair(index=index, address=address, private_key=key)

    def sub_wallets(self, opaque_id: str, count: int) -> list[SubWallet]:
        """Addresses for indexes ``0..count-1``; keys are discarded immediately."""
        if count < 0:
            raise ValueError("count must be non-negative")
        return [
            SubWallet(index=i, address=self.derive(opaque_id, i).address)
            for i in range(count)
        ]

    @contextmanager
    def signer(self, opaque_id: str, index: int) -> Iterator[WalletManager]:
        """Yield a transient signer for one sub-wallet."""
        pair = self.derive(opaque_id, index)
        logger.debug("derived signer %s/%d -> %s", opaque_id, index, pair.address)
        wallet = WalletManager(pair.private_key)
        try:
            yield wallet
        finally:
            del wallet
            del pair

    def __repr__(self) -> str:
        return f"WalletDeriver(master={self._master_address})"
