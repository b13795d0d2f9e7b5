"""Signing wallet with secure key handling."""

from __future__ import annotations

import logging
import os
from typing import Any

from eth_account import Account
from eth_account.datastructures import SignedTransaction
from eth_utils.address import to_checksum_address

logger = logging.getLogger(__name__)

# Every signature this keeper produces is chain-bound and nonce-pinned.
REQUIRED_TX_FIELDS = ("chainId", "nonce", "gas")


def _mask_private_key(private_key: Any) -> str:
    raw = private_key.hex() if isinstance(private_key, (bytes, bytearray)) else str(private_key)
    raw = raw.removeprefix("0x")
    if len(raw) < 10:
        return "<redacted>"
    return f"0x{raw[:6]}...{raw[-4:]}"


class WalletManager:
    """
    Holds one signing key: the treasury, the arb contract owner, or a derived
    sub-wallet. Sub-wallet instances are short-lived; the deriver creates one
    right before signing and drops it afterwards.

    CRITICAL: Private key must never appear in logs, errors, or string
    representations.
    """

    def __init__(self, private_key: str | bytes) -> None:
        try:
            self._account = Account.from_key(private_key)
        except Exception as exc:
            raise ValueError(f"Invalid private key: {_mask_private_key(private_key)}") from exc

    @classmethod
    def from_env(cls, env_var: str = "MASTER_PRIVATE_KEY") -> "WalletManager":
        value = os.environ.get(env_var)
        if not value:
            raise ValueError(f"Environment variable {env_var} is not set")
        return cls(value)

    @property
    def address(self) -> str:
        """Checksummed address."""
        return to_checksum_address(self._account.address)

    def sign_transaction(self, tx: dict) -> SignedTransaction:
        """Sign a transaction dict as produced by ``TransactionRequest.to_dict``."""
        if not isinstance(tx, dict):
            raise TypeError("tx must be a dict")
        if not tx:
            raise ValueError("tx must not be empty")
        missing = [field for field in REQUIRED_TX_FIELDS if tx.get(field) is None]
        if missing:
            raise ValueError(f"tx is missing {', '.join(missing)}")
        logger.debug("signing from %s nonce=%d chain=%d", self.address, tx["nonce"], tx["chainId"])
        return self._account.sign_transaction(tx)

    def __repr__(self) -> str:
        """MUST NOT expose private key."""
        return f"WalletManager(address={self.address})"

    __str__ = __repr__
