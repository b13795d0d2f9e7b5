"""Chain-specific exceptions for RPC and transaction failures."""

from __future__ import annotations

from typing import Optional

from eth_abi import decode as abi_decode

from core.base_types import TransactionReceipt

_ERROR_STRING_SELECTOR = bytes.fromhex("08c379a0")  # Error(string)
_PANIC_SELECTOR = bytes.fromhex("4e487b71")  # Panic(uint256)


class ChainError(Exception):
    """Base class for chain errors."""


class RPCError(ChainError):
    """RPC request failed."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Optional[object] = None,
    ):
        self.code = code
        self.data = data
        super().__init__(message)

    @property
    def revert_reason(self) -> Optional[str]:
        return decode_revert_reason(self.data)


class TransactionFailed(ChainError):
    """Transaction mined but reverted."""

    def __init__(self, tx_hash: str, receipt: TransactionReceipt):
        self.tx_hash = tx_hash
        self.receipt = receipt
        super().__init__(f"Transaction {tx_hash} reverted")


class ReceiptTimeout(ChainError, TimeoutError):
    """Gave up waiting for a receipt; the transaction may still land."""

    def __init__(self, tx_hash: str, timeout: float):
        self.tx_hash = tx_hash
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for receipt {tx_hash}")


class InsufficientFunds(ChainError):
    """Not enough balance for transaction."""


class NonceTooLow(ChainError):
    """Nonce already used."""


class ReplacementUnderpriced(ChainError):
    """Replacement transaction gas too low."""


def decode_revert_reason(data: object) -> Optional[str]:
    """
    Best-effort decoding of revert data returned with an eth_call error.

    Handles ``Error(string)`` and ``Panic(uint256)``; any other payload is
    reported by its 4-byte selector so custom errors stay identifiable.
    """
    if isinstance(data, dict):
        data = data.get("data")
    if not isinstance(data, str) or not data.startswith("0x"):
        return None
    try:
        raw = bytes.fromhex(data[2:])
    except ValueError:
        return None
    if len(raw) < 4:
        return None

    selector, payload = raw[:4], raw[4:]
    try:
        if selector == _ERROR_STRING_SELECTOR:
            (reason,) = abi_decode(["string"], payload)
            return reason
        if selector == _PANIC_SELECTOR:
            (code,) = abi_decode(["uint256"], payload)
            return f"Panic(0x{code:x})"
    except Exception:
        return f"0x{selector.hex()}"
    return f"0x{selector.hex()}"
