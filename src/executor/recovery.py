"""
Failure classification and target cooldowns.

Failure Classifier
~~~~~~~~~~~~~~~~~~
Maps raw revert reasons / RPC error strings onto buckets. The pipeline only
splits a trade when the bucket is SIZE: the revert came from the trade
being too large for current depth (slippage, too little received, the arb
contract's own profit floor). Anything else would fail again at half size.

Target Cooldown
~~~~~~~~~~~~~~~
After any execution attempt on a target (success or not), that target is
skipped for ``cooldown_seconds`` so a closing spread is not chased every
cycle.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from enum import Enum, auto
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# ╔══════════════════════════════════════════════════════════════════╗
# ║  Failure Classifier                                             ║
# ╚══════════════════════════════════════════════════════════════════╝


class FailureCategory(Enum):
    SIZE = auto()  # slippage / min-out / profit floor: retry smaller
    FUNDS = auto()  # sender cannot pay value + gas
    NONCE = auto()  # nonce too low / replacement underpriced
    TRANSIENT = auto()  # timeout, network blip
    PERMANENT = auto()  # anything the router rejects for other reasons
    UNKNOWN = auto()


# Ordered list of (regex, category). First match wins.
_PATTERNS: list[tuple[re.Pattern, FailureCategory]] = [
    (re.compile(r"slippage", re.I), FailureCategory.SIZE),
    (re.compile(r"too ?little ?received", re.I), FailureCategory.SIZE),
    (re.compile(r"too ?much ?requested", re.I), FailureCategory.SIZE),
    (re.compile(r"insufficient (profit|output|liquidity)", re.I), FailureCategory.SIZE),
    (re.compile(r"min(imum)?.?(amount|out|tokens)", re.I), FailureCategory.SIZE),
    (re.compile(r"insufficient funds", re.I), FailureCategory.FUNDS),
    (re.compile(r"nonce too low|underpriced", re.I), FailureCategory.NONCE),
    (re.compile(r"timeout|timed out|temporarily", re.I), FailureCategory.TRANSIENT),
    (re.compile(r"connection|network|429", re.I), FailureCategory.TRANSIENT),
    (re.compile(r"revert|invalid|expired", re.I), FailureCategory.PERMANENT),
]


class FailureClassifier:
    """Classify an error string into a :class:`FailureCategory`."""

    @staticmethod
    def classify(error: Optional[str]) -> FailureCategory:
        if not error:
            return FailureCategory.UNKNOWN
        for pattern, category in _PATTERNS:
            if pattern.search(error):
                return category
        return FailureCategory.UNKNOWN

    def is_size_related(self, error: Optional[str]) -> bool:
        return self.classify(error) is FailureCategory.SIZE


# ╔══════════════════════════════════════════════════════════════════╗
# ║  Target Cooldown                                                ║
# ╚══════════════════════════════════════════════════════════════════╝


class TargetCooldown:
    def __init__(
        self,
        cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._last: dict[str, float] = {}
        self._lock = threading.Lock()

    def start(self, target: str) -> None:
        with self._lock:
            self._last[target] = self._clock()

    def is_cooling(self, target: str) -> bool:
        return self.remaining(target) > 0

    def remaining(self, target: str) -> float:
        with self._lock:
            started = self._last.get(target)
        if started is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (self._clock() - started))

    def clear(self, target: Optional[str] = None) -> None:
        with self._lock:
            if target is None:
                self._last.clear()
            else:
                self._last.pop(target, None)
