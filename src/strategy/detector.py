"""
Two-venue spread detection and trade sizing.

Venue A is the concentrated-liquidity pool, venue B the bonding curve; both
are modelled as virtual reserves so one impact function serves both. Sizing
walks a fixed ladder of native amounts because the two impact curves are
nonlinear and asymmetric, so there is no closed-form optimum to solve for.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from pricing.amm_math import FEE_DENOMINATOR, VirtualReserves, amount_out

from .opportunity import ArbOpportunity, Direction

logger = logging.getLogger(__name__)

DEFAULT_SIZE_LADDER: tuple[int, ...] = tuple(
    int(x * 10**18) for x in (0.1, 0.25, 0.5, 1, 2, 5, 10, 25, 50)
)


@dataclass(frozen=True)
class VenueModel:
    """
    Depth model of one venue.

    ``native_is_base`` says whether the native asset is the reserves' base
    (currency0) side, which fixes the swap direction for buys and sells.
    """

    name: str
    reserves: VirtualReserves
    native_is_base: bool = True

    @property
    def fee_bps(self) -> float:
        return self.reserves.fee_pips / FEE_DENOMINATOR * 10_000

    @property
    def price_native_per_token(self) -> float:
        if self.native_is_base:
            return self.reserves.reserve_base / self.reserves.reserve_quote
        return self.reserves.reserve_quote / self.reserves.reserve_base

    def tokens_for_native(self, native_in: float) -> float:
        return amount_out(self.reserves, native_in, zero_for_one=self.native_is_base)

    def native_for_tokens(self, tokens_in: float) -> float:
        return amount_out(self.reserves, tokens_in, zero_for_one=not self.native_is_base)


@dataclass(frozen=True)
class RoundTrip:
    amount_in: int
    tokens: float
    amount_back: float
    gas_cost: float = 0.0

    @property
    def profit(self) -> float:
        return self.amount_back - self.amount_in - self.gas_cost


def round_trip(
    direction: Direction,
    venue_a: VenueModel,
    venue_b: VenueModel,
    amount_in: int,
    gas_cost: float = 0.0,
) -> RoundTrip:
    """Spend ``amount_in`` native on the buy venue, sell everything on the other."""
    buy, sell = (venue_a, venue_b) if direction.buys_on_a else (venue_b, venue_a)
    tokens = buy.tokens_for_native(amount_in)
    back = sell.native_for_tokens(tokens) if tokens > 0 else 0.0
    return RoundTrip(amount_in=amount_in, tokens=tokens, amount_back=back, gas_cost=gas_cost)


@dataclass
class ArbDetector:
    min_profit_bps: int = 50
    size_ladder: Sequence[int] = field(default_factory=lambda: DEFAULT_SIZE_LADDER)

    @staticmethod
    def spread_bps(price_a: float, price_b: float) -> int:
        if price_b <= 0:
            raise ValueError("price_b must be positive")
        return round((price_a - price_b) / price_b * 10_000)

    def detect(
        self,
        price_a: float,
        price_b: float,
        fee_a_bps: float,
        fee_b_bps: float,
        min_profit_bps: Optional[int] = None,
        target: str = "",
    ) -> Optional[ArbOpportunity]:
        """
        Spread gate net of both venues' fees. The returned opportunity is not
        sized (``trade_amount`` is None).
        """
        if price_a <= 0 or price_b <= 0:
            return None
        threshold = self.min_profit_bps if min_profit_bps is None else min_profit_bps
        spread = self.spread_bps(price_a, price_b)
        if spread == 0:
            return None
        if abs(spread) - fee_a_bps - fee_b_bps < threshold:
            return None
        direction = Direction.BUY_B_SELL_A if spread > 0 else Direction.BUY_A_SELL_B
        return ArbOpportunity(
            target=target,
            price_a=price_a,
            price_b=price_b,
            spread_bps=spread,
            direction=direction,
        )

    def best_size(
        self,
        direction: Direction,
        venue_a: VenueModel,
        venue_b: VenueModel,
        gas_cost: float = 0.0,
    ) -> Optional[RoundTrip]:
        """Largest ladder size with the maximal positive round-trip profit."""
        best: Optional[RoundTrip] = None
        for size in sorted(self.size_ladder):
            if size <= 0:
                continue
            trip = round_trip(direction, venue_a, venue_b, size, gas_cost)
            if trip.profit <= 0:
                continue
            if best is None or trip.profit >= best.profit:
                best = trip
        return best

    def evaluate(
        self,
        venue_a: VenueModel,
        venue_b: VenueModel,
        target: str = "",
        gas_cost: float = 0.0,
        min_profit_bps: Optional[int] = None,
    ) -> Optional[ArbOpportunity]:
        opportunity = self.detect(
            venue_a.price_native_per_token,
            venue_b.price_native_per_token,
            venue_a.fee_bps,
            venue_b.fee_bps,
            min_profit_bps=min_profit_bps,
            target=target,
        )
        if opportunity is None:
            return None

        trip = self.best_size(opportunity.direction, venue_a, venue_b, gas_cost)
        if trip is None:
            logger.info(
                "%s: spread %d bps but no profitable size on the ladder",
                target,
                opportunity.spread_bps,
            )
            return None

        return ArbOpportunity(
            target=target,
            price_a=opportunity.price_a,
            price_b=opportunity.price_b,
            spread_bps=opportunity.spread_bps,
            direction=opportunity.direction,
            trade_amount=trip.amount_in,
            expected_profit=trip.profit,
            opportunity_id=opportunity.opportunity_id,
        )
