"""
Bonding-curve launch venue reads.

The curve prices tokens as a constant product over *virtual* reserves, so the
same local approximation used for pools applies. Native is the base side and
the token the quote side, mirroring native pools where the zero-address
currency is always currency0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from chain.client import ChainClient
from core.base_types import Address

from .amm_math import PoolUninitialized, VirtualReserves

logger = logging.getLogger(__name__)

CURVES = "curves(address)"
GET_AMOUNT_OUT = "getAmountOut(address,uint256,bool)"

DEFAULT_CURVE_FEE_PIPS = 10_000  # 1%


@dataclass(frozen=True)
class BondingCurveState:
    real_native: int
    real_token: int
    virtual_native: int
    virtual_token: int
    target_token: int
    fee_pips: int = DEFAULT_CURVE_FEE_PIPS

    @property
    def is_active(self) -> bool:
        return self.virtual_native > 0 and self.virtual_token > 0

    @property
    def price_native_per_token(self) -> float:
        if not self.is_active:
            raise PoolUninitialized("bonding curve has no virtual reserves")
        return self.virtual_native / self.virtual_token

    def to_reserves(self) -> VirtualReserves:
        if not self.is_active:
            raise PoolUninitialized("bonding curve has no virtual reserves")
        native = float(self.virtual_native)
        token = float(self.virtual_token)
        return VirtualReserves(
            reserve_base=native,
            reserve_quote=token,
            liquidity=(native * token) ** 0.5,
            fee_pips=self.fee_pips,
        )


@dataclass(frozen=True)
class CurveQuote:
    router: Address
    amount_in: int
    amount_out: int
    is_buy: bool


class BondingCurveReader:
    def __init__(
        self,
        client: ChainClient,
        curve: Address,
        lens: Address,
        fee_pips: int = DEFAULT_CURVE_FEE_PIPS,
    ):
        self._client = client
        self._curve = curve
        self._lens = lens
        self._fee_pips = fee_pips

    def read(self, token: Address) -> BondingCurveState:
        (
            real_native,
            real_token,
            virtual_native,
            virtual_token,
            _k,
            target_token,
            _init_virtual_native,
            _init_virtual_token,
        ) = self._client.call_function(
            self._curve,
            CURVES,
            ["address"],
            [token.checksum],
            ["uint256"] * 8,
        )
        return BondingCurveState(
            real_native=real_native,
            real_token=real_token,
            virtual_native=virtual_native,
            virtual_token=virtual_token,
            target_token=target_token,
            fee_pips=self._fee_pips,
        )

    def quote(self, token: Address, amount_in: int, is_buy: bool) -> CurveQuote:
        """
        Lens quote; also resolves which router (curve or post-graduation DEX)
        currently serves the token.
        """
        if amount_in <= 0:
            raise ValueError("amount_in must be positive")
        router, amount_out = self._client.call_function(
            self._lens,
            GET_AMOUNT_OUT,
            ["address", "uint256", "bool"],
            [token.checksum, amount_in, is_buy],
            ["address", "uint256"],
        )
        logger.debug(
            "curve quote %s in=%d out=%d buy=%s router=%s",
            token,
            amount_in,
            amount_out,
            is_buy,
            router,
        )
        return CurveQuote(
            router=Address(router),
            amount_in=amount_in,
            amount_out=amount_out,
            is_buy=is_buy,
        )
