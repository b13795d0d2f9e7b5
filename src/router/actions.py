"""
Router action vocabulary.

Each action is a one-byte opcode in the ``actions`` byte string plus one
ABI-encoded parameter blob. Every opcode has its own typed variant; decoding
an opcode outside the vocabulary is an error, never a best-effort coercion.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode

from core.base_types import Address, NATIVE

SWAP_EXACT_IN = 0x07
SETTLE = 0x0B
TAKE = 0x0E

# Universal-router command wrapping a V4 action stream.
V4_SWAP = 0x10

UINT128_MAX = 2**128 - 1
UINT256_MAX = 2**256 - 1

_PATH_KEY = "(address,uint24,int24,address,bytes)"
_EXACT_INPUT_PARAMS = f"(address,{_PATH_KEY}[],uint128,uint128)"
_SETTLE_PARAMS = ["address", "uint256", "bool"]
_TAKE_PARAMS = ["address", "address", "uint256"]


class UnknownActionError(ValueError):
    def __init__(self, opcode: int):
        super().__init__(f"unknown router action opcode 0x{opcode:02x}")
        self.opcode = opcode


@dataclass(frozen=True)
class PathKey:
    """One hop: the currency received from the pool plus the pool's params."""

    intermediate_currency: Address
    fee: int
    tick_spacing: int
    hooks: Address = NATIVE
    hook_data: bytes = b""

    def as_tuple(self) -> tuple:
        return (
            self.intermediate_currency.checksum,
            self.fee,
            self.tick_spacing,
            self.hooks.checksum,
            self.hook_data,
        )


@dataclass(frozen=True)
class SwapExactIn:
    currency_in: Address
    path: tuple[PathKey, ...]
    amount_in: int
    amount_out_minimum: int

    opcode = SWAP_EXACT_IN

    @property
    def currency_out(self) -> Address:
        return self.path[-1].intermediate_currency

    def encode(self) -> bytes:
        params = (
            self.currency_in.checksum,
            [hop.as_tuple() for hop in self.path],
            self.amount_in,
            self.amount_out_minimum,
        )
        return abi_encode([_EXACT_INPUT_PARAMS], [params])

    @classmethod
    def decode(cls, blob: bytes) -> "SwapExactIn":
        ((currency_in, path, amount_in, amount_out_minimum),) = abi_decode(
            [_EXACT_INPUT_PARAMS], blob
        )
        hops = tuple(
            PathKey(
                intermediate_currency=Address(currency),
                fee=fee,
                tick_spacing=tick_spacing,
                hooks=Address(hooks),
                hook_data=bytes(hook_data),
            )
            for currency, fee, tick_spacing, hooks, hook_data in path
        )
        return cls(Address(currency_in), hops, amount_in, amount_out_minimum)


@dataclass(frozen=True)
class Settle:
    """Pay ``amount`` of ``currency`` into the pool manager."""

    currency: Address
    amount: int
    payer_is_user: bool = True

    opcode = SETTLE

    def encode(self) -> bytes:
        return abi_encode(
            _SETTLE_PARAMS, [self.currency.checksum, self.amount, self.payer_is_user]
        )

    @classmethod
    def decode(cls, blob: bytes) -> "Settle":
        currency, amount, payer_is_user = abi_decode(_SETTLE_PARAMS, blob)
        return cls(Address(currency), amount, payer_is_user)


@dataclass(frozen=True)
class Take:
    """Withdraw ``currency`` owed by the pool manager to ``recipient``."""

    currency: Address
    recipient: Address
    min_amount: int = 0

    opcode = TAKE

    def encode(self) -> bytes:
        return abi_encode(
            _TAKE_PARAMS,
            [self.currency.checksum, self.recipient.checksum, self.min_amount],
        )

    @classmethod
    def decode(cls, blob: bytes) -> "Take":
        currency, recipient, min_amount = abi_decode(_TAKE_PARAMS, blob)
        return cls(Address(currency), Address(recipient), min_amount)


Action = Union[SwapExactIn, Settle, Take]

ACTION_TYPES: dict[int, type] = {
    SWAP_EXACT_IN: SwapExactIn,
    SETTLE: Settle,
    TAKE: Take,
}


def encode_actions(actions: list[Action]) -> tuple[bytes, list[bytes]]:
    return bytes(action.opcode for action in actions), [a.encode() for a in actions]


def decode_actions(action_bytes: bytes, params: list[bytes]) -> list[Action]:
    if len(action_bytes) != len(params):
        raise ValueError(
            f"{len(action_bytes)} opcodes but {len(params)} parameter blobs"
        )
    decoded: list[Action] = []
    for opcode, blob in zip(action_bytes, params):
        action_type = ACTION_TYPES.get(opcode)
        if action_type is None:
            raise UnknownActionError(opcode)
        decoded.append(action_type.decode(bytes(blob)))
    return decoded
