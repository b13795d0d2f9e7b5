"""Core type definitions shared by the chain, pricing and router modules."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from eth_abi import encode as abi_encode
from eth_utils.address import is_address, to_checksum_address
from eth_utils.crypto import keccak

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class Address:
    """Ethereum address with validation and checksumming."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise TypeError("Address value must be a string")
        if not is_address(self.value):
            raise ValueError("Invalid Ethereum address")
        object.__setattr__(self, "value", to_checksum_address(self.value))

    @classmethod
    def from_string(cls, s: str) -> "Address":
        return cls(s)

    @property
    def checksum(self) -> str:
        return self.value

    @property
    def lower(self) -> str:
        return self.value.lower()

    @property
    def is_zero(self) -> bool:
        return self.lower == ZERO_ADDRESS

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Address):
            return self.lower == other.lower
        if isinstance(other, str):
            return self.lower == other.lower()
        return False

    def __hash__(self) -> int:
        return hash(self.lower)

    def __str__(self) -> str:
        return self.value


# Native asset (MON/ETH) is addressed as the zero currency in V4 pools.
NATIVE = Address(ZERO_ADDRESS)


@dataclass(frozen=True)
class TokenAmount:
    """
    Represents a token amount with proper decimal handling.

    Internally stores raw integer (wei-equivalent).
    """

    raw: int
    decimals: int = 18
    symbol: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.raw, int):
            raise TypeError("raw must be an int")
        if not isinstance(self.decimals, int) or self.decimals < 0:
            raise ValueError("decimals must be a non-negative integer")

    @classmethod
    def from_human(
        cls, amount: str | Decimal, decimals: int = 18, symbol: str | None = None
    ) -> "TokenAmount":
        """Create from human-readable amount (e.g., '1.5' MON)."""
        if isinstance(amount, float):
            raise TypeError("amount must be a string or Decimal, not float")
        decimal_amount = Decimal(amount) if isinstance(amount, str) else amount
        if not isinstance(decimal_amount, Decimal):
            raise TypeError("amount must be a string or Decimal")

        raw_decimal = decimal_amount * (Decimal(10) ** decimals)
        if raw_decimal != raw_decimal.to_integral_value():
            raise ValueError("amount has more precision than decimals allow")
        return cls(raw=int(raw_decimal), decimals=decimals, symbol=symbol)

    @property
    def human(self) -> Decimal:
        return Decimal(self.raw) / (Decimal(10) ** self.decimals)

    def __str__(self) -> str:
        return f"{self.human} {self.symbol or ''}".strip()


@dataclass(frozen=True)
class PoolKey:
    """
    Identifies a singleton-manager pool.

    Currencies are sorted by address; the native asset is the zero address
    and therefore always currency0 when present.
    """

    currency0: Address
    currency1: Address
    fee: int
    tick_spacing: int
    hooks: Address = NATIVE

    def __post_init__(self) -> None:
        if int(self.currency0.lower, 16) >= int(self.currency1.lower, 16):
            raise ValueError("currency0 must sort strictly below currency1")
        if not 0 <= self.fee < 2**24:
            raise ValueError("fee must fit in uint24")
        if not 0 < self.tick_spacing < 2**23:
            raise ValueError("tick_spacing must be a positive int24")

    @classmethod
    def for_pair(
        cls,
        token_a: Address,
        token_b: Address,
        fee: int,
        tick_spacing: int,
        hooks: Address = NATIVE,
    ) -> "PoolKey":
        """Build a key from an unordered pair."""
        if int(token_a.lower, 16) < int(token_b.lower, 16):
            return cls(token_a, token_b, fee, tick_spacing, hooks)
        return cls(token_b, token_a, fee, tick_spacing, hooks)

    @property
    def pool_id(self) -> bytes:
        encoded = abi_encode(
            ["address", "address", "uint24", "int24", "address"],
            [
                self.currency0.checksum,
                self.currency1.checksum,
                self.fee,
                self.tick_spacing,
                self.hooks.checksum,
            ],
        )
        return keccak(encoded)

    @property
    def is_native_pool(self) -> bool:
        return self.currency0.is_zero

    def contains(self, currency: Address) -> bool:
        return currency == self.currency0 or currency == self.currency1

    def other(self, currency: Address) -> Address:
        if currency == self.currency0:
            return self.currency1
        if currency == self.currency1:
            return self.currency0
        raise ValueError(f"{currency} is not a currency of this pool")


@dataclass
class TransactionRequest:
    """A transaction ready to be simulated or signed."""

    to: Address
    value: TokenAmount
    data: bytes
    nonce: Optional[int] = None
    gas_limit: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee: Optional[int] = None
    chain_id: int = 1
    sender: Optional[Address] = None

    def to_dict(self) -> dict:
        """Convert to the dict eth-account signs."""
        payload: dict[str, object] = {
            "to": self.to.checksum,
            "value": self.value.raw,
            "data": f"0x{self.data.hex()}",
            "chainId": self.chain_id,
        }
        if self.nonce is not None:
            payload["nonce"] = self.nonce
        if self.gas_limit is not None:
            payload["gas"] = self.gas_limit
        if self.max_fee_per_gas is not None:
            payload["maxFeePerGas"] = self.max_fee_per_gas
        if self.max_priority_fee is not None:
            payload["maxPriorityFeePerGas"] = self.max_priority_fee
        return payload

    def to_call_dict(self) -> dict:
        """JSON-RPC call object (hex quantities) for eth_call / eth_estimateGas."""
        payload: dict[str, object] = {
            "to": self.to.checksum,
            "value": hex(self.value.raw),
            "data": f"0x{self.data.hex()}",
        }
        if self.sender is not None:
            payload["from"] = self.sender.checksum
        if self.gas_limit:
            payload["gas"] = hex(self.gas_limit)
        return payload


@dataclass
class TransactionReceipt:
    """Parsed transaction receipt."""

    tx_hash: str
    block_number: int
    status: bool
    gas_used: int
    effective_gas_price: int
    logs: list

    @property
    def tx_fee(self) -> TokenAmount:
        return TokenAmount(raw=self.gas_used * self.effective_gas_price)

    @classmethod
    def from_rpc(cls, receipt: dict) -> "TransactionReceipt":
        """Parse from a JSON-RPC receipt dict."""
        tx_hash = receipt.get("transactionHash")
        tx_hash_value = tx_hash.hex() if hasattr(tx_hash, "hex") else str(tx_hash)

        status_value = receipt.get("status")
        if isinstance(status_value, bool):
            status = status_value
        elif isinstance(status_value, (int, str)):
            status = _to_int(status_value) == 1
        else:
            raise ValueError("Invalid status in receipt")

        return cls(
            tx_hash=tx_hash_value,
            block_number=_to_int(receipt.get("blockNumber")),
            status=status,
            gas_used=_to_int(receipt.get("gasUsed")),
            effective_gas_price=_to_int(receipt.get("effectiveGasPrice", 0)),
            logs=receipt.get("logs", []),
        )


def _to_int(value: object) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    raise ValueError("Expected integer-like value")
