"""CLI entrypoint for the arbitrage keeper."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from chain import ChainClient, ChainError, NonceManager
from config import ArbTarget, KeeperSettings, load_settings
from core.base_types import TokenAmount
from core.wallet_deriver import WalletDeriver
from core.wallet_manager import WalletManager
from executor.engine import ExecutionPipeline, PipelineConfig
from executor.recovery import TargetCooldown
from integration.arb_keeper import ArbKeeper, KeeperContext
from inventory.funding import FundingCoordinator, FundingError, describe
from inventory.ledger import TradeLedger
from inventory.sub_wallets import SubWalletPool
from pricing.amm_math import (
    PoolUninitialized,
    depth_ladder,
    inverse_price_from_sqrt,
    price_from_sqrt,
    require_reserves,
    tick_to_price,
)
from pricing.bonding_curve import BondingCurveReader
from pricing.pool_state import PoolStateReader
from router.arb_contract import ArbContract
from router.encoder import SwapEncoder
from strategy.detector import DEFAULT_SIZE_LADDER, ArbDetector

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bonding-curve / pool arbitrage keeper")
    subparsers = parser.add_subparsers(dest="command", required=True)

    derive = subparsers.add_parser("derive", help="Print the campaign's sub-wallet addresses")
    derive.add_argument("--campaign", help="Campaign id (default CAMPAIGN_ID)")
    derive.add_argument("--count", type=int, help="Number of wallets (default WALLET_COUNT)")

    fund = subparsers.add_parser("fund", help="Top up sub-wallets to the funding target")
    fund.add_argument("--amount", help="Per-wallet target in native units")
    fund.add_argument("--dry-run", action="store_true", help="Only print deficits")

    pool = subparsers.add_parser("pool", help="Depth report for one target")
    pool.add_argument("--target", help="Target name (default: first configured)")

    subparsers.add_parser("scan", help="Run one detection pass without trading")

    run = subparsers.add_parser("run", help="Fund wallets, then trade until stopped")
    run.add_argument("--cycles", type=int, help="Stop after N cycles")
    run.add_argument("--skip-funding", action="store_true")
    return parser


def _client(settings: KeeperSettings) -> ChainClient:
    return ChainClient(list(settings.rpc_urls))


def _pick_target(settings: KeeperSettings, name: str | None) -> ArbTarget:
    if not settings.targets:
        raise SystemExit("no arb targets configured (ARB_TARGETS_FILE or TARGET_TOKEN)")
    if name is None:
        return settings.targets[0]
    for target in settings.targets:
        if target.name == name:
            return target
    raise SystemExit(f"unknown target {name!r}")


def _wallet_pool(settings: KeeperSettings, deriver: WalletDeriver) -> SubWalletPool:
    return SubWalletPool(
        deriver,
        settings.campaign_id,
        settings.wallet_count,
        min_trade_interval=settings.wallet_min_trade_interval,
    )


def build_keeper(settings: KeeperSettings, client: ChainClient, pool: SubWalletPool) -> ArbKeeper:
    settings.require(
        "state_view_address", "curve_address", "lens_address", "arb_contract_address"
    )
    assert settings.state_view_address and settings.curve_address
    assert settings.lens_address and settings.arb_contract_address
    if not settings.targets:
        raise SystemExit("no arb targets configured (ARB_TARGETS_FILE or TARGET_TOKEN)")
    detector = ArbDetector(
        min_profit_bps=settings.min_profit_bps,
        size_ladder=settings.size_ladder or DEFAULT_SIZE_LADDER,
    )
    pipeline = ExecutionPipeline(
        client,
        NonceManager(client),
        PipelineConfig(
            max_split_depth=settings.max_split_depth,
            receipt_timeout=settings.receipt_timeout,
            gas_priority=settings.gas_priority,
            chain_id=settings.chain_id,
        ),
    )
    ctx = KeeperContext(
        client=client,
        pools=PoolStateReader(client, settings.state_view_address),
        curve=BondingCurveReader(client, settings.curve_address, settings.lens_address),
        detector=detector,
        arb=ArbContract(
            settings.arb_contract_address,
            SwapEncoder(),
            slippage_bps=settings.slippage_bps,
        ),
        pipeline=pipeline,
        wallets=pool,
        cooldown=TargetCooldown(settings.target_cooldown),
        ledger=TradeLedger(settings.ledger_path),
        owner=WalletManager(settings.treasury_key),
        gas_priority=settings.gas_priority,
        chain_id=settings.chain_id,
    )
    return ArbKeeper(ctx, list(settings.targets), poll_interval=settings.poll_interval)


def cmd_derive(settings: KeeperSettings, args: argparse.Namespace) -> None:
    deriver = WalletDeriver(settings.master_private_key)
    campaign = args.campaign or settings.campaign_id
    count = args.count if args.count is not None else settings.wallet_count
    print(f"master {deriver.master_address} campaign {campaign!r}")
    for wallet in deriver.sub_wallets(campaign, count):
        print(f"{wallet.index:>4}  {wallet.address}")


def cmd_fund(settings: KeeperSettings, args: argparse.Namespace) -> None:
    client = _client(settings)
    deriver = WalletDeriver(settings.master_private_key)
    wallets = deriver.sub_wallets(settings.campaign_id, settings.wallet_count)
    target = (
        TokenAmount.from_human(args.amount).raw
        if args.amount
        else settings.wallet_funding_target
    )
    coordinator = FundingCoordinator(
        client,
        WalletManager(settings.treasury_key),
        chain_id=settings.chain_id,
        gas_priority=settings.gas_priority,
        receipt_timeout=settings.receipt_timeout,
    )
    if args.dry_run:
        missing = coordinator.deficits(wallets, target)
        for wallet in wallets:
            gap = missing.get(wallet.index, 0)
            print(
                f"{wallet.index:>4}  {wallet.address}  "
                f"{TokenAmount(wallet.funded_amount).human}  missing {TokenAmount(gap).human}"
            )
        return
    report = coordinator.ensure_funded(wallets, target)
    print(describe(report, coordinator.treasury_address))


def cmd_pool(settings: KeeperSettings, args: argparse.Namespace) -> None:
    settings.require("state_view_address")
    assert settings.state_view_address is not None
    client = _client(settings)
    target = _pick_target(settings, args.target)
    state = PoolStateReader(client, settings.state_view_address).read(target.pool_key)

    print(f"target {target.name}  pool 0x{target.pool_key.pool_id.hex()}")
    print(f"tick {state.tick}  liquidity {state.liquidity}  lp fee {state.fee_bps} bps")
    try:
        reserves = require_reserves(state, target.name)
    except PoolUninitialized as exc:
        print(str(exc))
        return
    print(f"price token/native {price_from_sqrt(state.sqrt_price_x96):.6f}")
    print(f"price native/token {inverse_price_from_sqrt(state.sqrt_price_x96):.12f}")
    print(f"tick price         {tick_to_price(state.tick):.6f}")
    print(
        f"virtual reserves   native {TokenAmount(int(reserves.reserve_base)).human:.4f}  "
        f"token {TokenAmount(int(reserves.reserve_quote)).human:.4f}"
    )
    sizes = [float(size) for size in settings.size_ladder or DEFAULT_SIZE_LADDER]
    print("buy impact (native in):")
    for size, impact in depth_ladder(reserves, sizes, zero_for_one=True):
        print(
            f"  {TokenAmount(int(size)).human:>10}  out {impact.amount_out:.0f}  "
            f"impact {impact.impact_bps:.1f} bps"
        )

    if settings.curve_address and settings.lens_address:
        curve = BondingCurveReader(client, settings.curve_address, settings.lens_address)
        curve_state = curve.read(target.token)
        if curve_state.is_active:
            print(f"curve native/token {curve_state.price_native_per_token:.12f}")


def cmd_scan(settings: KeeperSettings, args: argparse.Namespace) -> None:
    client = _client(settings)
    pool = _wallet_pool(settings, WalletDeriver(settings.master_private_key))
    keeper = build_keeper(settings, client, pool)
    gas_cost = keeper.gas_cost()
    for target in keeper.targets:
        opportunity = keeper.scan_target(target, gas_cost)
        if opportunity is None:
            print(f"{target.name}: no opportunity")
            continue
        print(
            f"{target.name}: {opportunity.direction.value} spread {opportunity.spread_bps} bps "
            f"size {TokenAmount(opportunity.trade_amount or 0).human} "
            f"expected {TokenAmount(int(opportunity.expected_profit or 0)).human}"
        )


def cmd_run(settings: KeeperSettings, args: argparse.Namespace) -> None:
    client = _client(settings)
    pool = _wallet_pool(settings, WalletDeriver(settings.master_private_key))
    coordinator = FundingCoordinator(
        client,
        WalletManager(settings.treasury_key),
        chain_id=settings.chain_id,
        gas_priority=settings.gas_priority,
        receipt_timeout=settings.receipt_timeout,
    )
    if args.skip_funding:
        coordinator.deficits(pool.wallets, settings.wallet_funding_target)
    else:
        report = coordinator.ensure_funded(pool.wallets, settings.wallet_funding_target)
        logger.info("funding done: %d transfers", len(report.transfers))

    keeper = build_keeper(settings, client, pool)
    try:
        asyncio.run(keeper.run(max_cycles=args.cycles))
    except KeyboardInterrupt:
        keeper.stop()
        logger.info("keeper stopped")


COMMANDS = {
    "derive": cmd_derive,
    "fund": cmd_fund,
    "pool": cmd_pool,
    "scan": cmd_scan,
    "run": cmd_run,
}


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = _build_parser().parse_args(argv)
    settings = load_settings()
    try:
        COMMANDS[args.command](settings, args)
    except (ChainError, FundingError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
