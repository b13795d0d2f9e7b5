"""
Per-address nonce tracking.

A wallet's nonce is a strictly increasing sequence, so exactly one actor may
hold it at a time. ``hold(address)`` takes the address lock for a whole
execution (simulate -> broadcast -> confirm); inside it, ``lease.next()``
hands out nonces, reading the chain on first use and incrementing locally
afterwards. ``lease.invalidate()`` forces a chain re-read on the next call,
e.g. after a rejected broadcast.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

from core.base_types import Address

from .client import ChainClient

logger = logging.getLogger(__name__)


@dataclass
class _NonceState:
    lock: threading.Lock = field(default_factory=threading.Lock)
    current: Optional[int] = None


class NonceLease:
    """Nonce access granted while the address lock is held."""

    def __init__(self, manager: "NonceManager", address: Address, state: _NonceState):
        self._manager = manager
        self._address = address
        self._state = state

    @property
    def address(self) -> Address:
        return self._address

    def next(self) -> int:
        if self._state.current is None:
            self._state.current = self._manager.client.get_nonce(self._address)
            logger.debug("nonce for %s read from chain: %d", self._address, self._state.current)
        nonce = self._state.current
        self._state.current += 1
        return nonce

    def invalidate(self) -> None:
        self._state.current = None


class NonceManager:
    def __init__(self, client: ChainClient) -> None:
        self.client = client
        self._states: dict[str, _NonceState] = {}
        self._registry_lock = threading.Lock()

    def _state(self, address: Address) -> _NonceState:
        with self._registry_lock:
            state = self._states.get(address.lower)
            if state is None:
                state = _NonceState()
                self._states[address.lower] = state
            return state

    def is_busy(self, address: Address) -> bool:
        return self._state(address).lock.locked()

    @contextmanager
    def hold(self, address: Address, timeout: float = -1) -> Iterator[NonceLease]:
        """Exclusive nonce access for ``address`` until the block exits."""
        state = self._state(address)
        if not state.lock.acquire(timeout=timeout):
            raise TimeoutError(f"nonce lock for {address} not acquired")
        try:
            yield NonceLease(self, address, state)
        finally:
            state.lock.release()

    def reset(self) -> None:
        """Forget all cached nonces (locks held elsewhere stay valid)."""
        with self._registry_lock:
            for state in self._states.values():
                state.current = None
