"""
Single-hop exact-in swaps for the universal router.

Every plan becomes the same three-action stream::

    SWAP_EXACT_IN(currency_in, [hop], amount_in, min_out)
    SETTLE(currency_in, amount_in, payer_is_user=True)
    TAKE(currency_out, recipient, min_out)

wrapped in one ``V4_SWAP`` command of ``execute(bytes,bytes[],uint256)``.
The stream is validated locally before any bytes leave this module.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils.crypto import keccak

from core.base_types import Address, PoolKey

from .actions import (
    UINT128_MAX,
    V4_SWAP,
    Action,
    PathKey,
    Settle,
    SwapExactIn,
    Take,
    decode_actions,
    encode_actions,
)

logger = logging.getLogger(__name__)

EXECUTE_SIGNATURE = "execute(bytes,bytes[],uint256)"
EXECUTE_SELECTOR = keccak(text=EXECUTE_SIGNATURE)[:4]
DEFAULT_DEADLINE_SECONDS = 600


class EncodingError(ValueError):
    """The action stream would be rejected by the router; never simulate it."""


@dataclass(frozen=True)
class SwapPlan:
    token_in: Address
    token_out: Address
    amount_in: int
    min_amount_out: int
    pool_key: PoolKey
    recipient: Address

    @property
    def zero_for_one(self) -> bool:
        return self.token_in == self.pool_key.currency0

    @property
    def sells_native(self) -> bool:
        return self.token_in.is_zero

    @property
    def buys_native(self) -> bool:
        return self.token_out.is_zero


@dataclass(frozen=True)
class EncodedSwap:
    actions: tuple[Action, ...]
    action_bytes: bytes
    params: tuple[bytes, ...]
    value: int
    # ERC-20 the router pulls through Permit2; None when paying in native.
    approval_token: Optional[Address] = None

    def v4_swap_input(self) -> bytes:
        return abi_encode(["bytes", "bytes[]"], [self.action_bytes, list(self.params)])

    def router_calldata(self, deadline: Optional[int] = None) -> bytes:
        if deadline is None:
            deadline = int(time.time()) + DEFAULT_DEADLINE_SECONDS
        body = abi_encode(
            ["bytes", "bytes[]", "uint256"],
            [bytes([V4_SWAP]), [self.v4_swap_input()], deadline],
        )
        return EXECUTE_SELECTOR + body


@dataclass(frozen=True)
class SwapSummary:
    currency_in: Address
    currency_out: Address
    amount_in: int
    min_amount_out: int
    recipient: Address
    payer_is_user: bool
    deadline: Optional[int] = None


class SwapEncoder:
    """Pure and side-effect free: plans in, bytes out."""

    def encode_swap(self, plan: SwapPlan) -> EncodedSwap:
        self._check_plan(plan)
        hop = PathKey(
            intermediate_currency=plan.token_out,
            fee=plan.pool_key.fee,
            tick_spacing=plan.pool_key.tick_spacing,
            hooks=plan.pool_key.hooks,
        )
        swap = SwapExactIn(
            currency_in=plan.token_in,
            path=(hop,),
            amount_in=plan.amount_in,
            amount_out_minimum=plan.min_amount_out,
        )
        settle = Settle(plan.token_in, plan.amount_in, payer_is_user=True)
        take = Take(plan.token_out, plan.recipient, plan.min_amount_out)

        if plan.sells_native:
            # Paid out of msg.value; there is no token contract to approve.
            value = plan.amount_in
            approval_token = None
        else:
            # Pulled from the caller through Permit2.
            value = 0
            approval_token = plan.token_in

        actions = (swap, settle, take)
        validate_actions(list(actions))
        action_bytes, params = encode_actions(list(actions))
        logger.debug(
            "encoded swap %s -> %s amount_in=%d min_out=%d value=%d",
            plan.token_in,
            plan.token_out,
            plan.amount_in,
            plan.min_amount_out,
            value,
        )
        return EncodedSwap(
            actions=actions,
            action_bytes=action_bytes,
            params=tuple(params),
            value=value,
            approval_token=approval_token,
        )

    @staticmethod
    def _check_plan(plan: SwapPlan) -> None:
        if plan.token_in == plan.token_out:
            raise EncodingError("token_in and token_out must differ")
        for token in (plan.token_in, plan.token_out):
            if not plan.pool_key.contains(token):
                raise EncodingError(f"{token} is not a currency of the pool key")
        if not 0 < plan.amount_in <= UINT128_MAX:
            raise EncodingError(f"amount_in out of range: {plan.amount_in}")
        if not 0 <= plan.min_amount_out <= UINT128_MAX:
            raise EncodingError(f"min_amount_out out of range: {plan.min_amount_out}")
        if plan.recipient.is_zero:
            raise EncodingError("recipient must not be the zero address")


def validate_actions(actions: list[Action]) -> None:
    """Router ordering and currency consistency checks."""
    if not actions or not isinstance(actions[0], SwapExactIn):
        raise EncodingError("SWAP_EXACT_IN must be the first action")
    swap = actions[0]
    if not swap.path:
        raise EncodingError("swap path is empty")

    settled = taken = False
    for action in actions[1:]:
        if isinstance(action, SwapExactIn):
            raise EncodingError("only one SWAP_EXACT_IN per stream")
        if isinstance(action, Settle):
            if action.currency != swap.currency_in:
                raise EncodingError(
                    f"SETTLE currency {action.currency} != swap input {swap.currency_in}"
                )
            settled = True
        elif isinstance(action, Take):
            if action.currency != swap.currency_out:
                raise EncodingError(
                    f"TAKE currency {action.currency} != swap output {swap.currency_out}"
                )
            taken = True
    if not (settled and taken):
        raise EncodingError("stream needs both SETTLE and TAKE after the swap")


def decode_v4_swap_input(blob: bytes) -> list[Action]:
    action_bytes, params = abi_decode(["bytes", "bytes[]"], blob)
    return decode_actions(bytes(action_bytes), [bytes(p) for p in params])


def decode_router_calldata(calldata: bytes) -> tuple[bytes, list[bytes], int]:
    """Split ``execute`` calldata into (commands, inputs, deadline)."""
    if calldata[:4] != EXECUTE_SELECTOR:
        raise ValueError(f"not an execute() call: 0x{calldata[:4].hex()}")
    commands, inputs, deadline = abi_decode(
        ["bytes", "bytes[]", "uint256"], calldata[4:]
    )
    return bytes(commands), [bytes(i) for i in inputs], deadline


def summarize(calldata: bytes) -> SwapSummary:
    commands, inputs, deadline = decode_router_calldata(calldata)
    if len(commands) != len(inputs):
        raise ValueError(f"{len(commands)} commands but {len(inputs)} inputs")
    for command, blob in zip(commands, inputs):
        if command != V4_SWAP:
            raise ValueError(f"unsupported router command 0x{command:02x}")
        actions = decode_v4_swap_input(blob)
        validate_actions(actions)
        return summarize_actions(actions, deadline)
    raise ValueError("execute() call carries no commands")


def summarize_actions(actions: list[Action], deadline: Optional[int] = None) -> SwapSummary:
    swap = actions[0]
    settle = next(a for a in actions if isinstance(a, Settle))
    take = next(a for a in actions if isinstance(a, Take))
    return SwapSummary(
        currency_in=swap.currency_in,
        currency_out=swap.currency_out,
        amount_in=swap.amount_in,
        min_amount_out=max(swap.amount_out_minimum, take.min_amount),
        recipient=take.recipient,
        payer_is_user=settle.payer_is_user,
        deadline=deadline,
    )
