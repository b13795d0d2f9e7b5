"""
Concentrated-liquidity pool math at the current tick.

Everything here works on the in-range liquidity only: reserves are the
"virtual" reserves implied by ``L`` and the current sqrt price, and swaps are
approximated as constant-product against them. Trades that cross an
initialized tick will diverge from what the pool actually returns, so the
numbers are estimates; on-chain minimum-output checks remain the guard.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

Q96 = 2**96
FEE_DENOMINATOR = 1_000_000  # lp fees are quoted in pips (1e-6)


class PoolUninitialized(ValueError):
    """Pool has zero liquidity or zero price; nothing to trade against."""


@dataclass(frozen=True)
class PoolState:
    """slot0 + liquidity snapshot. Never reuse across decisions."""

    sqrt_price_x96: int
    tick: int
    liquidity: int
    lp_fee: int  # pips
    protocol_fee: int = 0

    @property
    def fee_bps(self) -> float:
        return self.lp_fee / 100

    @property
    def is_initialized(self) -> bool:
        return self.sqrt_price_x96 > 0 and self.liquidity > 0


@dataclass(frozen=True)
class VirtualReserves:
    """
    In-range reserves at the current price.

    ``reserve_base`` is currency0, ``reserve_quote`` is currency1, matching
    the pool's own price orientation (currency1 per currency0).
    """

    reserve_base: float
    reserve_quote: float
    liquidity: float
    fee_pips: int = 0

    @property
    def k(self) -> float:
        return self.reserve_base * self.reserve_quote

    @property
    def price(self) -> float:
        """Quote per base."""
        return self.reserve_quote / self.reserve_base


@dataclass(frozen=True)
class PriceImpact:
    amount_out: float
    effective_price: float  # output per unit input, after fee
    impact_bps: float


def price_from_sqrt(sqrt_price_x96: int) -> float:
    """currency1 per currency0."""
    if sqrt_price_x96 <= 0:
        raise PoolUninitialized("sqrt_price_x96 must be positive")
    sqrt_price = sqrt_price_x96 / Q96
    return sqrt_price * sqrt_price


def inverse_price_from_sqrt(sqrt_price_x96: int) -> float:
    """currency0 per currency1."""
    if sqrt_price_x96 <= 0:
        raise PoolUninitialized("sqrt_price_x96 must be positive")
    inverse_sqrt = Q96 / sqrt_price_x96
    return inverse_sqrt * inverse_sqrt


def tick_to_price(tick: int) -> float:
    """Raw pool price (currency1 per currency0) at ``tick``."""
    return 1.0001**tick


def virtual_reserves(state: PoolState) -> Optional[VirtualReserves]:
    """Reserves at the current tick, or None for an uninitialized pool."""
    if not state.is_initialized:
        return None
    sqrt_price = state.sqrt_price_x96 / Q96
    liquidity = float(state.liquidity)
    return VirtualReserves(
        reserve_base=liquidity / sqrt_price,
        reserve_quote=liquidity * sqrt_price,
        liquidity=liquidity,
        fee_pips=state.lp_fee,
    )


def require_reserves(state: PoolState, label: str = "pool") -> VirtualReserves:
    reserves = virtual_reserves(state)
    if reserves is None:
        raise PoolUninitialized(
            f"{label} uninitialized (sqrtPriceX96={state.sqrt_price_x96}, "
            f"liquidity={state.liquidity})"
        )
    return reserves


def spot_price(reserves: VirtualReserves, zero_for_one: bool) -> float:
    """Marginal output per unit input before fees."""
    if zero_for_one:
        return reserves.reserve_quote / reserves.reserve_base
    return reserves.reserve_base / reserves.reserve_quote


def amount_out(reserves: VirtualReserves, amount_in: float, zero_for_one: bool) -> float:
    """
    Exact-in output using the local constant-product approximation:

        new_other = k / (reserve_self + dx)
        out = (reserve_other - new_other) * (1 - fee)
    """
    if amount_in <= 0:
        raise ValueError("amount_in must be positive")
    if zero_for_one:
        reserve_self, reserve_other = reserves.reserve_base, reserves.reserve_quote
    else:
        reserve_self, reserve_other = reserves.reserve_quote, reserves.reserve_base
    new_other = reserves.k / (reserve_self + amount_in)
    gross = reserve_other - new_other
    return gross * (1 - reserves.fee_pips / FEE_DENOMINATOR)


def price_impact(
    reserves: VirtualReserves, amount_in: float, zero_for_one: bool
) -> PriceImpact:
    out = amount_out(reserves, amount_in, zero_for_one)
    effective = out / amount_in
    spot = spot_price(reserves, zero_for_one)
    impact_bps = (1 - effective / spot) * 10_000
    return PriceImpact(amount_out=out, effective_price=effective, impact_bps=impact_bps)


def depth_ladder(
    reserves: VirtualReserves, sizes: list[float], zero_for_one: bool
) -> list[tuple[float, PriceImpact]]:
    """Impact at each size, smallest first; used for depth reports."""
    return [
        (size, price_impact(reserves, size, zero_for_one))
        for size in sorted(sizes)
        if size > 0
    ]


def reserves_consistent(reserves: VirtualReserves, rel_tol: float = 1e-9) -> bool:
    """Check reserve_base * reserve_quote == liquidity ** 2."""
    return math.isclose(reserves.k, reserves.liquidity**2, rel_tol=rel_tol)
