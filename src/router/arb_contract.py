"""
Calldata for the atomic two-venue arb contract.

The contract buys on one venue and sells on the other inside a single
transaction and reverts unless it ends up with at least ``minProfit`` more
native than it was sent. The pool leg is a router action stream produced by
:class:`SwapEncoder` with the contract itself as recipient.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from eth_abi import encode as abi_encode
from eth_utils.crypto import keccak

from core.base_types import NATIVE, Address, PoolKey
from strategy.opportunity import Direction

from .actions import V4_SWAP
from .encoder import SwapEncoder, SwapPlan

logger = logging.getLogger(__name__)

ARB_BUY_CURVE_SELL_POOL = "arbBuyNadSellV4(address,address,uint256,uint256,bytes,bytes[])"
ARB_BUY_POOL_SELL_CURVE = "arbBuyV4SellNad(address,address,uint256,bytes,bytes[],uint256)"
WITHDRAW = "withdraw()"

ARB_GAS_LIMIT = 5_000_000
DEFAULT_MIN_PROFIT_FRACTION = 0.2
DEFAULT_CURVE_SLIPPAGE_BPS = 1_500


def _selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


@dataclass(frozen=True)
class ArbCall:
    to: Address
    data: bytes
    value: int
    min_profit: int
    gas_limit: int = ARB_GAS_LIMIT


class ArbContract:
    def __init__(
        self,
        address: Address,
        encoder: SwapEncoder | None = None,
        slippage_bps: int = 100,
        curve_slippage_bps: int = DEFAULT_CURVE_SLIPPAGE_BPS,
        min_profit_fraction: float = DEFAULT_MIN_PROFIT_FRACTION,
    ):
        if not 0 <= slippage_bps < 10_000 or not 0 <= curve_slippage_bps < 10_000:
            raise ValueError("slippage must be in [0, 10000) bps")
        self.address = address
        self._encoder = encoder or SwapEncoder()
        self._slippage_bps = slippage_bps
        self._curve_slippage_bps = curve_slippage_bps
        self._min_profit_fraction = min_profit_fraction

    def min_profit(self, expected_profit: float) -> int:
        return max(int(expected_profit * self._min_profit_fraction), 0)

    def build(
        self,
        direction: Direction,
        token: Address,
        curve_router: Address,
        pool_key: PoolKey,
        amount_in: int,
        expected_tokens: int,
        expected_profit: float,
    ) -> ArbCall:
        """
        ``expected_tokens`` is what the buy leg should yield: the lens quote
        when buying on the curve, the pool estimate when buying in the pool.
        """
        if amount_in <= 0:
            raise ValueError("amount_in must be positive")
        if expected_tokens <= 0:
            raise ValueError("expected_tokens must be positive")

        min_profit = self.min_profit(expected_profit)
        if direction is Direction.BUY_B_SELL_A:
            curve_min_tokens = _apply_slippage(expected_tokens, self._curve_slippage_bps)
            # Sell only what the curve leg is guaranteed to deliver.
            sell = self._encoder.encode_swap(
                SwapPlan(
                    token_in=token,
                    token_out=NATIVE,
                    amount_in=curve_min_tokens,
                    min_amount_out=0,
                    pool_key=pool_key,
                    recipient=self.address,
                )
            )
            data = _selector(ARB_BUY_CURVE_SELL_POOL) + abi_encode(
                ["address", "address", "uint256", "uint256", "bytes", "bytes[]"],
                [
                    token.checksum,
                    curve_router.checksum,
                    min_profit,
                    curve_min_tokens,
                    bytes([V4_SWAP]),
                    [sell.v4_swap_input()],
                ],
            )
        else:
            buy = self._encoder.encode_swap(
                SwapPlan(
                    token_in=NATIVE,
                    token_out=token,
                    amount_in=amount_in,
                    min_amount_out=_apply_slippage(expected_tokens, self._slippage_bps),
                    pool_key=pool_key,
                    recipient=self.address,
                )
            )
            # The contract's own profit check bounds the curve sell.
            curve_min_native = 0
            data = _selector(ARB_BUY_POOL_SELL_CURVE) + abi_encode(
                ["address", "address", "uint256", "bytes", "bytes[]", "uint256"],
                [
                    token.checksum,
                    curve_router.checksum,
                    min_profit,
                    bytes([V4_SWAP]),
                    [buy.v4_swap_input()],
                    curve_min_native,
                ],
            )

        logger.debug(
            "arb call %s token=%s amount_in=%d min_profit=%d",
            direction.value,
            token,
            amount_in,
            min_profit,
        )
        return ArbCall(to=self.address, data=data, value=amount_in, min_profit=min_profit)

    def withdraw_calldata(self) -> bytes:
        return _selector(WITHDRAW)


def _apply_slippage(amount: int, slippage_bps: int) -> int:
    return amount * (10_000 - slippage_bps) // 10_000
