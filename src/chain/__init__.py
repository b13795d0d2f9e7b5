from .client import ChainClient, GasPrice, encode_call
from .errors import (
    ChainError,
    InsufficientFunds,
    NonceTooLow,
    ReceiptTimeout,
    ReplacementUnderpriced,
    RPCError,
    TransactionFailed,
    decode_revert_reason,
)
from .nonce_manager import NonceLease, NonceManager
from .transaction_builder import TransactionBuilder

__all__ = [
    "ChainClient",
    "GasPrice",
    "encode_call",
    "NonceManager",
    "NonceLease",
    "TransactionBuilder",
    "ChainError",
    "RPCError",
    "TransactionFailed",
    "ReceiptTimeout",
    "InsufficientFunds",
    "NonceTooLow",
    "ReplacementUnderpriced",
    "decode_revert_reason",
]
