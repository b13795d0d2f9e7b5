"""Rate-limited rotation over a campaign's derived sub-wallets."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from core.wallet_deriver import SubWallet, WalletDeriver
from core.wallet_manager import WalletManager

logger = logging.getLogger(__name__)


class SubWalletPool:
    """
    Hands out the least-recently-traded wallet that is idle and outside its
    minimum trade interval. A wallet stays reserved from ``acquire`` until
    ``release`` so two executions never share it.
    """

    def __init__(
        self,
        deriver: WalletDeriver,
        campaign_id: str,
        count: int,
        min_trade_interval: float = 0.0,
        clock: Callable[[], float] = time.time,
    ):
        if count <= 0:
            raise ValueError("count must be positive")
        self.campaign_id = campaign_id
        self.min_trade_interval = min_trade_interval
        self._deriver = deriver
        self._clock = clock
        self._wallets = deriver.sub_wallets(campaign_id, count)
        self._reserved: set[int] = set()
        self._lock = threading.Lock()

    @property
    def wallets(self) -> list[SubWallet]:
        return list(self._wallets)

    def _ready(self, wallet: SubWallet, now: float) -> bool:
        if wallet.index in self._reserved:
            return False
        if wallet.last_trade_at is None:
            return True
        return now - wallet.last_trade_at >= self.min_trade_interval

    def acquire(self, min_balance: int = 0) -> Optional[SubWallet]:
        """Reserve the best candidate, or None when every wallet is busy or resting."""
        with self._lock:
            now = self._clock()
            candidates = [
                w
                for w in self._wallets
                if self._ready(w, now) and w.funded_amount >= min_balance
            ]
            if not candidates:
                return None
            wallet = min(
                candidates,
                key=lambda w: (w.last_trade_at is not None, w.last_trade_at or 0.0, w.index),
            )
            self._reserved.add(wallet.index)
            return wallet

    def release(self, wallet: SubWallet, traded: bool = True) -> None:
        with self._lock:
            self._reserved.discard(wallet.index)
            if traded:
                wallet.last_trade_at = self._clock()

    @contextmanager
    def signer(self, wallet: SubWallet) -> Iterator[WalletManager]:
        with self._deriver.signer(self.campaign_id, wallet.index) as signer:
            yield signer
