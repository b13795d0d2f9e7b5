"""Tests for integration.arb_keeper: one keeper wired to fake chain reads."""

import dataclasses
import threading

import pytest
from eth_account import Account

from chain.client import GasPrice
from chain.errors import ChainError, RPCError
from chain.nonce_manager import NonceManager
from config import ArbTarget
from core.base_types import NATIVE, Address, PoolKey, TokenAmount, TransactionReceipt
from core.wallet_deriver import WalletDeriver
from core.wallet_manager import WalletManager
from executor.engine import ExecutionPipeline, ExecutionStatus, PipelineConfig
from executor.recovery import TargetCooldown
from integration.arb_keeper import ArbKeeper, KeeperContext
from inventory.ledger import TradeLedger
from inventory.sub_wallets import SubWalletPool
from pricing.amm_math import Q96
from pricing.bonding_curve import CURVES, GET_AMOUNT_OUT, BondingCurveReader
from pricing.pool_state import GET_LIQUIDITY, GET_SLOT0, PoolStateReader
from router.arb_contract import ArbContract
from strategy.detector import ArbDetector
from strategy.opportunity import Direction

E18 = 10**18
TOKEN = Address("0x1111111111111111111111111111111111111111")
STATE_VIEW = Address("0x2222222222222222222222222222222222222222")
CURVE = Address("0x3333333333333333333333333333333333333333")
LENS = Address("0x4444444444444444444444444444444444444444")
CURVE_ROUTER = "0x5555555555555555555555555555555555555555"
ARB = Address("0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa")
MASTER = "0x" + "11" * 32


class _FakeChain:
    """Pool at 1.0 native/token, curve at 1.2: buy in the pool, sell on the curve."""

    def __init__(self, liquidity=10**24, profit=E18 // 10):
        self.liquidity = liquidity
        self.pending_profit = profit
        self.balances = {ARB: 0}
        self.sim_error = None
        self.quote_error = None
        self.reads = 0
        self.sent = []
        self.block = 0
        self.history = {0: 0}
        self._lock = threading.Lock()

    def call_many(self, calls):
        return [
            self.call_function(c.to, c.signature, c.arg_types, c.args, c.return_types)
            for c in calls
        ]

    def call_function(self, to, signature, arg_types, args, return_types):
        self.reads += 1
        if signature == GET_SLOT0:
            return (Q96, 0, 0, 3000)
        if signature == GET_LIQUIDITY:
            return (self.liquidity,)
        if signature == CURVES:
            return (0, 0, 12 * 10**23, 10**24, 0, 0, 0, 0)
        if signature == GET_AMOUNT_OUT:
            if self.quote_error is not None:
                raise self.quote_error
            token, amount, is_buy = args
            return (CURVE_ROUTER, amount * 118 // 100)
        raise AssertionError(f"unexpected read {signature}")

    def get_gas_price(self):
        return GasPrice(base_fee=10, priority_fee_low=1, priority_fee_medium=2, priority_fee_high=3)

    def call(self, tx):
        if self.sim_error is not None:
            raise self.sim_error
        return b""

    def estimate_gas(self, tx):
        return 50_000

    def get_nonce(self, address):
        return 0

    def send_transaction(self, raw):
        self.sent.append(raw)
        return "0x" + "00" * 32

    def wait_for_receipt(self, tx_hash, timeout=120, poll_interval=1.0):
        with self._lock:
            self.block += 1
            self.balances[ARB] += self.pending_profit
            self.pending_profit = 0
            self.history[self.block] = self.balances[ARB]
            block = self.block
        return TransactionReceipt(tx_hash, block, True, 250_000, 14, [])

    def get_balance(self, address, block="latest"):
        if address == ARB and isinstance(block, int):
            return TokenAmount(raw=self.history[block])
        return TokenAmount(raw=self.balances.get(address, 10 * E18))


def _target():
    return ArbTarget(name="MEME", token=TOKEN, pool_key=PoolKey.for_pair(TOKEN, NATIVE, 3000, 60))


def _keeper(chain, tmp_path, owner=None, funded=10 * E18):
    wallets = SubWalletPool(WalletDeriver(MASTER), "campaign-1", 2)
    for wallet in wallets.wallets:
        wallet.funded_amount = funded
    ctx = KeeperContext(
        client=chain,
        pools=PoolStateReader(chain, STATE_VIEW),
        curve=BondingCurveReader(chain, CURVE, LENS),
        detector=ArbDetector(min_profit_bps=50, size_ladder=[E18]),
        arb=ArbContract(ARB),
        pipeline=ExecutionPipeline(chain, NonceManager(chain), PipelineConfig(chain_id=143)),
        wallets=wallets,
        cooldown=TargetCooldown(30),
        ledger=TradeLedger(tmp_path / "trades.csv"),
        owner=owner,
        chain_id=143,
    )
    return ArbKeeper(ctx, [_target()], poll_interval=0)


def test_scan_finds_pool_to_curve_opportunity(tmp_path):
    keeper = _keeper(_FakeChain(), tmp_path)
    opp = keeper.scan_target(_target())
    assert opp is not None
    assert opp.direction is Direction.BUY_A_SELL_B
    assert opp.trade_amount == E18
    assert opp.spread_bps < 0


def test_uninitialized_pool_is_skipped(tmp_path):
    keeper = _keeper(_FakeChain(liquidity=0), tmp_path)
    assert keeper.scan_target(_target()) is None


def test_pool_must_pair_with_native(tmp_path):
    other = Address("0x9999999999999999999999999999999999999999")
    target = ArbTarget(name="X", token=TOKEN, pool_key=PoolKey.for_pair(TOKEN, other, 3000, 60))
    keeper = _keeper(_FakeChain(), tmp_path)
    with pytest.raises(ValueError, match="native"):
        ArbKeeper(keeper.ctx, [target])


def test_no_idle_wallet_means_no_execution(tmp_path):
    chain = _FakeChain()
    keeper = _keeper(chain, tmp_path, funded=0)
    opp = keeper.scan_target(_target())
    assert keeper.execute(_target(), opp) is None
    assert chain.sent == []


def test_unsized_opportunity_is_refused(tmp_path):
    chain = _FakeChain()
    keeper = _keeper(chain, tmp_path)
    opp = dataclasses.replace(keeper.scan_target(_target()), trade_amount=None)
    with pytest.raises(ValueError, match="trade size"):
        keeper.execute(_target(), opp)
    assert chain.sent == []


@pytest.mark.asyncio
async def test_cycle_executes_records_and_withdraws(tmp_path):
    chain = _FakeChain()
    owner = WalletManager(Account.create().key)
    keeper = _keeper(chain, tmp_path, owner=owner)

    outcomes = await keeper.run_cycle()

    assert len(outcomes) == 1
    outcome = outcomes[0]
    assert outcome.succeeded
    assert outcome.final.realized_profit == E18 // 10
    # arb transaction, then the owner's withdraw
    assert len(chain.sent) == 2
    assert keeper.ctx.cooldown.is_cooling("MEME")

    rows = keeper.ctx.ledger.read()
    assert [row["status"] for row in rows] == ["success"]
    assert rows[0]["direction"] == "buy_a_sell_b"
    assert rows[0]["realized_profit"] == str(E18 // 10)


@pytest.mark.asyncio
async def test_failed_simulation_is_recorded_without_broadcast(tmp_path):
    chain = _FakeChain()
    chain.sim_error = RPCError("execution reverted: not owner")
    keeper = _keeper(chain, tmp_path)

    outcomes = await keeper.run_cycle()

    assert outcomes[0].final.status is ExecutionStatus.SIM_FAILED
    assert chain.sent == []
    assert keeper.ctx.cooldown.is_cooling("MEME")
    assert [row["status"] for row in keeper.ctx.ledger.read()] == ["sim_failed"]
    assert all(w.last_trade_at is None for w in keeper.ctx.wallets.wallets)


@pytest.mark.asyncio
async def test_cooling_target_is_not_read(tmp_path):
    chain = _FakeChain()
    keeper = _keeper(chain, tmp_path)
    keeper.ctx.cooldown.start("MEME")

    assert await keeper.run_cycle() == []
    assert chain.reads == 0


@pytest.mark.asyncio
async def test_run_stops_after_max_cycles(tmp_path):
    chain = _FakeChain(liquidity=0)
    keeper = _keeper(chain, tmp_path)

    await keeper.run(max_cycles=3)

    assert not keeper.running
    # slot0 + liquidity per cycle; curve is never read for an empty pool
    assert chain.reads == 6


@pytest.mark.asyncio
async def test_quote_read_failure_is_recorded_as_stale(tmp_path):
    chain = _FakeChain()
    chain.quote_error = ChainError("RPC request eth_call failed")
    keeper = _keeper(chain, tmp_path)

    outcomes = await keeper.run_cycle()

    assert outcomes[0].final.status is ExecutionStatus.STALE
    assert "eth_call" in outcomes[0].final.error
    assert chain.sent == []
    assert [row["status"] for row in keeper.ctx.ledger.read()] == ["stale"]


@pytest.mark.asyncio
async def test_profit_is_withdrawn_once_per_cycle(tmp_path):
    chain = _FakeChain()
    owner = WalletManager(Account.create().key)
    keeper = _keeper(chain, tmp_path, owner=owner)
    second = ArbTarget(
        name="MEME2", token=TOKEN, pool_key=PoolKey.for_pair(TOKEN, NATIVE, 10_000, 200)
    )
    keeper = ArbKeeper(keeper.ctx, [_target(), second], poll_interval=0)

    outcomes = await keeper.run_cycle()

    assert len(outcomes) == 2
    assert all(outcome.succeeded for outcome in outcomes)
    assert sum(o.final.realized_profit for o in outcomes) == E18 // 10
    # two arb transactions, then a single withdraw
    assert len(chain.sent) == 3
    rows = keeper.ctx.ledger.read()
    assert sorted(row["status"] for row in rows) == ["success", "success"]
