from .actions import (
    SETTLE,
    SWAP_EXACT_IN,
    TAKE,
    V4_SWAP,
    PathKey,
    Settle,
    SwapExactIn,
    Take,
    UnknownActionError,
    decode_actions,
    encode_actions,
)
from .arb_contract import ArbCall, ArbContract
from .encoder import (
    EncodedSwap,
    EncodingError,
    SwapEncoder,
    SwapPlan,
    SwapSummary,
    decode_router_calldata,
    summarize,
    validate_actions,
)

__all__ = [
    "SWAP_EXACT_IN",
    "SETTLE",
    "TAKE",
    "V4_SWAP",
    "PathKey",
    "SwapExactIn",
    "Settle",
    "Take",
    "UnknownActionError",
    "encode_actions",
    "decode_actions",
    "ArbCall",
    "ArbContract",
    "EncodedSwap",
    "EncodingError",
    "SwapEncoder",
    "SwapPlan",
    "SwapSummary",
    "decode_router_calldata",
    "summarize",
    "validate_actions",
]
