import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Direction(Enum):
    BUY_A_SELL_B = "buy_a_sell_b"
    BUY_B_SELL_A = "buy_b_sell_a"

    @property
    def buys_on_a(self) -> bool:
        return self is Direction.BUY_A_SELL_B


@dataclass(frozen=True)
class ArbOpportunity:
    """
    One detection-cycle result. Discarded after a single execution run.

    Prices are native per token on each venue. ``trade_amount`` is the native
    amount (wei) spent on the cheap venue, or None when detection ran without
    depth information.
    """

    target: str
    price_a: float
    price_b: float
    spread_bps: int
    direction: Direction
    trade_amount: Optional[int] = None
    expected_profit: Optional[float] = None
    opportunity_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: float = field(default_factory=time.time)

    @property
    def is_sized(self) -> bool:
        return self.trade_amount is not None and self.trade_amount > 0

    def age_seconds(self) -> float:
        return time.time() - self.created_at
