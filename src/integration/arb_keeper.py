"""
Keeper loop: scan every target, execute what is profitable.

Each cycle reads both venues for every target concurrently (reads share no
state), sizes any opportunity, and dispatches executions to distinct
sub-wallets in parallel. Every execution attempt ends in the ledger and puts
its target on cooldown, whatever the outcome. Results are written and profit
is withdrawn once per cycle, after every execution has landed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from chain import ChainClient, ChainError, TransactionBuilder
from config import ArbTarget
from core.base_types import Address, TokenAmount
from core.wallet_manager import WalletManager
from executor.engine import ExecutionPipeline, PipelineOutcome, Planner, RouterCall
from executor.recovery import TargetCooldown
from inventory.ledger import LedgerEntry, TradeLedger
from inventory.sub_wallets import SubWalletPool
from pricing.amm_math import PoolState, PoolUninitialized, require_reserves
from pricing.bonding_curve import BondingCurveReader, BondingCurveState
from pricing.pool_state import PoolStateReader
from router.arb_contract import ArbContract
from strategy.detector import ArbDetector, VenueModel, round_trip
from strategy.opportunity import ArbOpportunity, Direction

logger = logging.getLogger(__name__)

DEFAULT_GAS_UNITS = 500_000


@dataclass
class KeeperContext:
    """Everything the keeper touches; no module-level clients or keys."""

    client: ChainClient
    pools: PoolStateReader
    curve: BondingCurveReader
    detector: ArbDetector
    arb: ArbContract
    pipeline: ExecutionPipeline
    wallets: SubWalletPool
    cooldown: TargetCooldown
    ledger: Optional[TradeLedger] = None
    # Arb contract owner; withdraws accumulated profit after a cycle with a success.
    owner: Optional[WalletManager] = None
    gas_units: int = DEFAULT_GAS_UNITS
    gas_priority: str = "medium"
    chain_id: int = 1


@dataclass(frozen=True)
class VenueSnapshot:
    target: ArbTarget
    pool_state: PoolState
    curve_state: BondingCurveState
    venue_a: VenueModel
    venue_b: VenueModel


class ArbKeeper:
    def __init__(
        self,
        ctx: KeeperContext,
        targets: list[ArbTarget],
        poll_interval: float = 5.0,
    ):
        for target in targets:
            if not target.pool_key.is_native_pool:
                raise ValueError(f"{target.name}: pool must pair the token with native")
        self.ctx = ctx
        self.targets = list(targets)
        self.poll_interval = poll_interval
        self.running = False

    # ── reads ────────────────────────────────────────────────────

    def snapshot(self, target: ArbTarget) -> VenueSnapshot:
        """Fresh state of both venues; raises PoolUninitialized if either is empty."""
        pool_state = self.ctx.pools.read(target.pool_key)
        venue_a = VenueModel(
            name="pool",
            reserves=require_reserves(pool_state, target.name),
            native_is_base=True,
        )
        curve_state = self.ctx.curve.read(target.token)
        venue_b = VenueModel(name="curve", reserves=curve_state.to_reserves())
        return VenueSnapshot(target, pool_state, curve_state, venue_a, venue_b)

    def gas_cost(self) -> float:
        max_fee = self.ctx.client.get_gas_price().get_max_fee(self.ctx.gas_priority)
        return float(self.ctx.gas_units * max_fee)

    def scan_target(self, target: ArbTarget, gas_cost: float = 0.0) -> Optional[ArbOpportunity]:
        try:
            snap = self.snapshot(target)
        except PoolUninitialized as exc:
            logger.info("%s skipped: %s", target.name, exc)
            return None
        opportunity = self.ctx.detector.evaluate(
            snap.venue_a, snap.venue_b, target=target.name, gas_cost=gas_cost
        )
        if opportunity is not None:
            logger.info(
                "%s: spread=%d bps dir=%s pool=%.10f curve=%.10f size=%s",
                target.name,
                opportunity.spread_bps,
                opportunity.direction.value,
                opportunity.price_a,
                opportunity.price_b,
                TokenAmount(opportunity.trade_amount or 0).human,
            )
        return opportunity

    # ── execution ────────────────────────────────────────────────

    def planner(self, target: ArbTarget, direction: Direction, gas_cost: float = 0.0) -> Planner:
        """Re-plan from fresh state at whatever size the pipeline asks for."""

        def plan(amount: int) -> Optional[RouterCall]:
            snap = self.snapshot(target)
            trip = round_trip(direction, snap.venue_a, snap.venue_b, amount, gas_cost)
            if trip.profit <= 0:
                logger.info("%s: no profit left at %d", target.name, amount)
                return None
            if direction is Direction.BUY_B_SELL_A:
                quote = self.ctx.curve.quote(target.token, amount, is_buy=True)
                expected_tokens = quote.amount_out
            else:
                expected_tokens = int(trip.tokens)
                quote = self.ctx.curve.quote(target.token, max(expected_tokens, 1), is_buy=False)
            call = self.ctx.arb.build(
                direction,
                target.token,
                quote.router,
                target.pool_key,
                amount,
                expected_tokens,
                trip.profit,
            )
            return RouterCall(
                to=call.to,
                data=call.data,
                value=call.value,
                gas_limit=call.gas_limit,
                profit_account=self.ctx.arb.address,
            )

        return plan

    def execute(
        self, target: ArbTarget, opportunity: ArbOpportunity, gas_cost: float = 0.0
    ) -> Optional[PipelineOutcome]:
        """
        Run one opportunity on an idle sub-wallet. The outcome is not recorded
        here: realized profits are final only once every execution of the
        cycle has landed, see :meth:`run_cycle`.
        """
        amount = opportunity.trade_amount
        if amount is None:
            raise ValueError("opportunity has no trade size")
        wallet = self.ctx.wallets.acquire(min_balance=amount)
        if wallet is None:
            logger.warning("%s: no idle funded wallet for %d", target.name, amount)
            return None

        outcome: Optional[PipelineOutcome] = None
        try:
            with self.ctx.wallets.signer(wallet) as signer:
                outcome = self.ctx.pipeline.execute(
                    signer,
                    self.planner(target, opportunity.direction, gas_cost),
                    amount,
                )
        finally:
            traded = outcome is not None and outcome.broadcasts > 0
            self.ctx.wallets.release(wallet, traded=traded)
            self.ctx.cooldown.start(target.name)

        if traded:
            try:
                wallet.funded_amount = self.ctx.client.get_balance(wallet.address).raw
            except ChainError as exc:
                logger.warning("%s: balance refresh failed: %s", wallet.address, exc)
        return outcome

    def record(
        self, target: ArbTarget, opportunity: ArbOpportunity, outcome: PipelineOutcome
    ) -> None:
        if self.ctx.ledger is None:
            return
        for attempt in outcome.attempts:
            self.ctx.ledger.record(
                LedgerEntry(
                    target=target.name,
                    opportunity_id=opportunity.opportunity_id,
                    direction=opportunity.direction.value,
                    wallet=outcome.wallet.checksum,
                    status=attempt.status.value,
                    amount_in=attempt.amount_in,
                    split_depth=attempt.split_depth,
                    tx_hash=attempt.tx_hash,
                    gas_used=attempt.gas_used,
                    expected_profit=opportunity.expected_profit,
                    realized_profit=attempt.realized_profit,
                    spread_bps=opportunity.spread_bps,
                    error=attempt.error,
                )
            )

    def withdraw_profit(self) -> Optional[str]:
        """
        Sweep the arb contract's native balance to its owner.

        Called between cycles, when no arb transaction is in flight; the
        owner's nonce is held for the whole send.
        """
        if self.ctx.owner is None:
            return None
        balance = self.ctx.client.get_balance(self.ctx.arb.address)
        if balance.raw == 0:
            return None
        owner = Address.from_string(self.ctx.owner.address)
        with self.ctx.pipeline.nonces.hold(owner) as lease:
            try:
                receipt = (
                    TransactionBuilder(self.ctx.client, self.ctx.owner)
                    .to(self.ctx.arb.address)
                    .value(TokenAmount(raw=0))
                    .data(self.ctx.arb.withdraw_calldata())
                    .chain_id(self.ctx.chain_id)
                    .with_gas_estimate()
                    .with_gas_price(self.ctx.gas_priority)
                    .nonce(lease.next())
                    .send_and_wait()
                )
            except ChainError as exc:
                lease.invalidate()
                logger.warning("withdraw of %s failed: %s", balance.human, exc)
                return None
        logger.info("withdrew %s profit (tx %s)", balance.human, receipt.tx_hash)
        return receipt.tx_hash

    # ── loop ─────────────────────────────────────────────────────

    async def run_cycle(self) -> list[PipelineOutcome]:
        active = [t for t in self.targets if not self.ctx.cooldown.is_cooling(t.name)]
        if not active:
            return []
        gas_cost = await asyncio.to_thread(self.gas_cost)
        scans = await asyncio.gather(
            *(asyncio.to_thread(self.scan_target, t, gas_cost) for t in active),
            return_exceptions=True,
        )

        pending = []
        for target, result in zip(active, scans):
            if isinstance(result, Exception):
                logger.error("%s: scan failed: %s", target.name, result)
                continue
            if result is not None:
                pending.append((target, result))

        results = await asyncio.gather(
            *(asyncio.to_thread(self.execute, t, opp, gas_cost) for t, opp in pending),
            return_exceptions=True,
        )

        outcomes = []
        for (target, opportunity), result in zip(pending, results):
            if isinstance(result, Exception):
                logger.error("%s: execution failed: %s", target.name, result)
            elif result is not None:
                self.record(target, opportunity, result)
                outcomes.append(result)
        if any(outcome.succeeded for outcome in outcomes):
            await asyncio.to_thread(self.withdraw_profit)
        return outcomes

    async def run(self, max_cycles: Optional[int] = None) -> None:
        self.running = True
        logger.info("keeper watching %d targets", len(self.targets))
        cycles = 0
        while self.running:
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("cycle failed")
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            await asyncio.sleep(self.poll_interval)
        self.running = False

    def stop(self) -> None:
        self.running = False
