from __future__ import annotations

import logging

from chain.client import ChainClient, ContractCall
from core.base_types import Address, PoolKey

from .amm_math import PoolState

logger = logging.getLogger(__name__)

GET_SLOT0 = "getSlot0(bytes32)"
GET_LIQUIDITY = "getLiquidity(bytes32)"


class PoolStateReader:
    """
    Reads slot0 and in-range liquidity through the StateView lens.

    Both reads go out in one batch so price and liquidity come from the same
    node state. Read-only and stateless: every call hits the chain, nothing is
    cached, so concurrent readers never share state.
    """

    def __init__(self, client: ChainClient, state_view: Address):
        self._client = client
        self._state_view = state_view

    def read(self, pool: PoolKey | bytes) -> PoolState:
        pool_id = pool.pool_id if isinstance(pool, PoolKey) else pool
        if len(pool_id) != 32:
            raise ValueError("pool id must be 32 bytes")

        slot0, (liquidity,) = self._client.call_many(
            [
                ContractCall(
                    self._state_view,
                    GET_SLOT0,
                    ["bytes32"],
                    [pool_id],
                    ["uint160", "int24", "uint24", "uint24"],
                ),
                ContractCall(
                    self._state_view, GET_LIQUIDITY, ["bytes32"], [pool_id], ["uint128"]
                ),
            ]
        )
        sqrt_price_x96, tick, protocol_fee, lp_fee = slot0
        state = PoolState(
            sqrt_price_x96=sqrt_price_x96,
            tick=tick,
            liquidity=liquidity,
            lp_fee=lp_fee,
            protocol_fee=protocol_fee,
        )
        logger.debug(
            "pool 0x%s: tick=%d liquidity=%d fee=%d",
            pool_id.hex()[:12],
            tick,
            liquidity,
            lp_fee,
        )
        return state
