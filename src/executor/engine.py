"""
Simulate-before-broadcast execution with bounded split retries.

One :meth:`ExecutionPipeline.execute` call owns a wallet for its whole
attempt chain::

    BUILT -> SIMULATED -> BROADCAST -> CONFIRMING -> SUCCESS
          \\-> SIM_FAILED                          \\-> REVERTED | TIMED_OUT

Every attempt re-plans from scratch through the caller's planner (which
re-reads venue state), so a split retry never reuses old calldata. Only
REVERTED and size-related SIM_FAILED attempts are split; a timeout is
ambiguous and is never retried.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Optional

from chain import ChainClient, ChainError, NonceLease, NonceManager, TransactionBuilder
from chain.errors import (
    InsufficientFunds,
    NonceTooLow,
    ReceiptTimeout,
    ReplacementUnderpriced,
    RPCError,
    TransactionFailed,
)
from core.base_types import Address, TokenAmount
from core.wallet_manager import WalletManager
from pricing.amm_math import PoolUninitialized
from router.encoder import EncodingError

from .recovery import FailureClassifier

logger = logging.getLogger(__name__)

# The node answered and refused the transaction, so its hash was never accepted.
_REFUSED = (RPCError, InsufficientFunds, NonceTooLow, ReplacementUnderpriced)
# Blocks of landed-arb history kept for same-block detection.
_LANDED_WINDOW = 64


class PipelineState(Enum):
    BUILT = auto()
    SIMULATED = auto()
    SIM_FAILED = auto()
    BROADCAST = auto()
    CONFIRMING = auto()
    SUCCESS = auto()
    REVERTED = auto()
    TIMED_OUT = auto()


class ExecutionStatus(Enum):
    SUCCESS = "success"
    REVERTED = "reverted"
    TIMED_OUT = "timed_out"
    SIM_FAILED = "sim_failed"
    INVALID = "invalid"  # local encoding validation failed
    REJECTED = "rejected"  # never reached the node, or the node refused it
    STALE = "stale"  # re-plan found nothing to send, or venue reads failed


class DuplicateBroadcast(RuntimeError):
    """A signed transaction hash was about to be sent a second time."""


@dataclass(frozen=True)
class RouterCall:
    """Everything needed to simulate and then broadcast one attempt."""

    to: Address
    data: bytes
    value: int = 0
    gas_limit: Optional[int] = None
    # Account whose native balance change across the receipt block is the
    # realized profit.
    profit_account: Optional[Address] = None


Planner = Callable[[int], Optional[RouterCall]]


@dataclass
class ExecutionResult:
    status: ExecutionStatus
    amount_in: int
    split_depth: int = 0
    tx_hash: Optional[str] = None
    gas_used: Optional[int] = None
    realized_profit: Optional[int] = None
    error: Optional[str] = None
    states: list[PipelineState] = field(default_factory=list)

    @property
    def broadcast(self) -> bool:
        return PipelineState.BROADCAST in self.states


@dataclass
class PipelineOutcome:
    wallet: Address
    attempts: list[ExecutionResult] = field(default_factory=list)

    @property
    def final(self) -> ExecutionResult:
        return self.attempts[-1]

    @property
    def succeeded(self) -> bool:
        return bool(self.attempts) and self.final.status is ExecutionStatus.SUCCESS

    @property
    def broadcasts(self) -> int:
        return sum(1 for attempt in self.attempts if attempt.broadcast)


@dataclass
class PipelineConfig:
    max_split_depth: int = 2
    receipt_timeout: float = 120.0
    poll_interval: float = 1.0
    gas_priority: str = "medium"
    gas_buffer: float = 1.2
    chain_id: int = 1
    min_amount: int = 1


class ExecutionPipeline:
    """Execute router calls for sub-wallets. Safe to share across threads."""

    def __init__(
        self,
        client: ChainClient,
        nonces: NonceManager,
        config: Optional[PipelineConfig] = None,
        classifier: Optional[FailureClassifier] = None,
    ):
        self.client = client
        self.nonces = nonces
        self.config = config or PipelineConfig()
        self.classifier = classifier or FailureClassifier()
        self._sent: set[str] = set()
        self._landed: dict[tuple[str, int], list[ExecutionResult]] = {}
        self._lock = threading.Lock()

    def execute(self, wallet: WalletManager, planner: Planner, amount_in: int) -> PipelineOutcome:
        if amount_in <= 0:
            raise ValueError("amount_in must be positive")
        sender = Address.from_string(wallet.address)
        outcome = PipelineOutcome(wallet=sender)

        with self.nonces.hold(sender) as lease:
            amount = amount_in
            depth = 0
            while True:
                result = self._attempt(wallet, lease, planner, amount, depth)
                outcome.attempts.append(result)
                self._log_result(sender, result)
                if not self._should_split(result):
                    break
                if depth >= self.config.max_split_depth:
                    logger.info("split depth %d exhausted for %s", depth, sender)
                    break
                amount //= 2
                depth += 1
                if amount < self.config.min_amount:
                    break
                logger.info("retrying %s at half size: %d", sender, amount)
        return outcome

    def _should_split(self, result: ExecutionResult) -> bool:
        if result.status is ExecutionStatus.REVERTED:
            return True
        if result.status is ExecutionStatus.SIM_FAILED:
            return self.classifier.is_size_related(result.error)
        return False

    def _attempt(
        self,
        wallet: WalletManager,
        lease: NonceLease,
        planner: Planner,
        amount: int,
        depth: int,
    ) -> ExecutionResult:
        result = ExecutionResult(status=ExecutionStatus.STALE, amount_in=amount, split_depth=depth)

        try:
            call = planner(amount)
        except EncodingError as exc:
            result.status = ExecutionStatus.INVALID
            result.error = str(exc)
            return result
        except (PoolUninitialized, ChainError) as exc:
            result.error = str(exc)
            return result
        if call is None:
            result.error = "no profitable plan at this size"
            return result
        result.states.append(PipelineState.BUILT)

        builder = (
            TransactionBuilder(self.client, wallet)
            .to(call.to)
            .value(TokenAmount(raw=call.value))
            .data(call.data)
            .chain_id(self.config.chain_id)
        )
        if call.gas_limit:
            builder.gas_limit(call.gas_limit)

        try:
            builder.simulate()
            if not call.gas_limit:
                builder.with_gas_estimate(self.config.gas_buffer)
        except RPCError as exc:
            result.states.append(PipelineState.SIM_FAILED)
            result.status = ExecutionStatus.SIM_FAILED
            result.error = exc.revert_reason or str(exc)
            return result
        except ChainError as exc:
            result.states.append(PipelineState.SIM_FAILED)
            result.status = ExecutionStatus.SIM_FAILED
            result.error = str(exc)
            return result
        result.states.append(PipelineState.SIMULATED)

        try:
            builder.with_gas_price(self.config.gas_priority)
        except ChainError as exc:
            result.status = ExecutionStatus.REJECTED
            result.error = str(exc)
            return result

        # A nonce taken here is either sent or invalidated.
        tx_hash = None
        try:
            signed = builder.nonce(lease.next()).build_and_sign()
            tx_hash = "0x" + bytes(signed.hash).hex()
            self._claim(tx_hash)
            self.client.send_transaction(signed.raw_transaction)
        except DuplicateBroadcast:
            lease.invalidate()
            raise
        except (ChainError, ValueError) as exc:
            lease.invalidate()
            if tx_hash is not None and isinstance(exc, _REFUSED):
                self._release(tx_hash)
            result.status = ExecutionStatus.REJECTED
            result.error = str(exc)
            return result
        result.tx_hash = tx_hash
        result.states.append(PipelineState.BROADCAST)

        result.states.append(PipelineState.CONFIRMING)
        try:
            receipt = self.client.wait_for_receipt(
                tx_hash,
                timeout=self.config.receipt_timeout,
                poll_interval=self.config.poll_interval,
            )
        except ReceiptTimeout as exc:
            result.states.append(PipelineState.TIMED_OUT)
            result.status = ExecutionStatus.TIMED_OUT
            result.error = str(exc)
            return result
        except TransactionFailed as exc:
            result.states.append(PipelineState.REVERTED)
            result.status = ExecutionStatus.REVERTED
            result.gas_used = exc.receipt.gas_used
            result.error = str(exc)
            return result

        result.states.append(PipelineState.SUCCESS)
        result.status = ExecutionStatus.SUCCESS
        result.gas_used = receipt.gas_used
        if call.profit_account is not None:
            self._measure_profit(call.profit_account, receipt.block_number, result)
        return result

    def _claim(self, tx_hash: str) -> None:
        with self._lock:
            if tx_hash in self._sent:
                raise DuplicateBroadcast(tx_hash)
            self._sent.add(tx_hash)

    def _release(self, tx_hash: str) -> None:
        with self._lock:
            self._sent.discard(tx_hash)

    def _measure_profit(self, account: Address, block: int, result: ExecutionResult) -> None:
        """
        Balance change of ``account`` across the receipt's block.

        Two successes of this pipeline on the same account in the same block
        cannot be told apart; both are left without a realized profit.
        """
        key = (account.lower, block)
        with self._lock:
            landed = self._landed.setdefault(key, [])
            landed.append(result)
            if len(landed) > 1:
                for other in landed:
                    other.realized_profit = None
                logger.warning("%d arbs on %s landed in block %d", len(landed), account, block)
                return
            for stale in [k for k in self._landed if k[1] < block - _LANDED_WINDOW]:
                del self._landed[stale]

        try:
            before = self.client.get_balance(account, block=block - 1).raw
            after = self.client.get_balance(account, block=block).raw
        except ChainError as exc:
            logger.warning("profit of %s unknown: %s", result.tx_hash, exc)
            return
        with self._lock:
            if len(self._landed.get(key, [result])) == 1:
                result.realized_profit = after - before

    @staticmethod
    def _log_result(sender: Address, result: ExecutionResult) -> None:
        if result.status is ExecutionStatus.SUCCESS:
            logger.info(
                "%s: success tx=%s amount=%d gas=%s profit=%s",
                sender,
                result.tx_hash,
                result.amount_in,
                result.gas_used,
                result.realized_profit,
            )
        else:
            logger.warning(
                "%s: %s amount=%d depth=%d tx=%s error=%s",
                sender,
                result.status.value,
                result.amount_in,
                result.split_depth,
                result.tx_hash,
                result.error,
            )
