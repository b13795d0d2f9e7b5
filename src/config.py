"""Environment-driven keeper configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from core.base_types import NATIVE, Address, PoolKey, TokenAmount

_ENV_LOADED = False
_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_RPC_URL = "https://rpc.monad.xyz"
DEFAULT_CHAIN_ID = 143
DEFAULT_SIZE_LADDER = "0.1,0.25,0.5,1,2,5,10,25,50"


def _load_env() -> None:
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    env_path = Path(os.environ.get("ENV_FILE", _PROJECT_ROOT / ".env"))
    load_dotenv(dotenv_path=env_path)
    _ENV_LOADED = True


def get_env(
    name: str, default: str | None = None, required: bool = False
) -> str | None:
    _load_env()
    value = os.environ.get(name, default)
    if required and (value is None or value == ""):
        raise SystemExit(f"{name} env var is required")
    return value


def _int(name: str, default: int) -> int:
    raw = get_env(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise SystemExit(f"{name} must be an integer, got {raw!r}") from None


def _float(name: str, default: float) -> float:
    raw = get_env(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise SystemExit(f"{name} must be a number, got {raw!r}") from None


def _native_amount(name: str, raw: str) -> int:
    """Human native amount ("1.5") to wei."""
    try:
        return TokenAmount.from_human(Decimal(raw.strip())).raw
    except (InvalidOperation, ValueError):
        raise SystemExit(f"{name} has an invalid amount: {raw!r}") from None


def _address(name: str) -> Optional[Address]:
    raw = get_env(name)
    if not raw:
        return None
    try:
        return Address(raw)
    except ValueError:
        raise SystemExit(f"{name} is not a valid address: {raw!r}") from None


@dataclass(frozen=True)
class ArbTarget:
    """A token tradeable on both the bonding curve and a pool."""

    name: str
    token: Address
    pool_key: PoolKey

    @classmethod
    def from_dict(cls, data: dict) -> "ArbTarget":
        token = Address(data["token"])
        quote = Address(data.get("quote", NATIVE.checksum))
        hooks = Address(data.get("hooks", NATIVE.checksum))
        pool_key = PoolKey.for_pair(
            token, quote, int(data["fee"]), int(data["tick_spacing"]), hooks
        )
        return cls(name=data.get("name") or token.checksum[:10], token=token, pool_key=pool_key)


@dataclass(frozen=True)
class KeeperSettings:
    master_private_key: str = field(repr=False)
    treasury_private_key: Optional[str] = field(default=None, repr=False)
    rpc_urls: tuple[str, ...] = (DEFAULT_RPC_URL,)
    chain_id: int = DEFAULT_CHAIN_ID
    min_profit_bps: int = 50
    poll_interval: float = 5.0
    wallet_funding_target: int = 10**18
    wallet_count: int = 5
    campaign_id: str = "default"
    wallet_min_trade_interval: float = 60.0
    state_view_address: Optional[Address] = None
    curve_address: Optional[Address] = None
    lens_address: Optional[Address] = None
    arb_contract_address: Optional[Address] = None
    max_split_depth: int = 2
    receipt_timeout: float = 120.0
    slippage_bps: int = 100
    size_ladder: tuple[int, ...] = ()
    gas_priority: str = "medium"
    target_cooldown: float = 30.0
    ledger_path: Path = Path("data/trades.csv")
    targets: tuple[ArbTarget, ...] = ()

    @property
    def treasury_key(self) -> str:
        return self.treasury_private_key or self.master_private_key

    def require(self, *names: str) -> None:
        """Fail fast when a command needs settings that were not provided."""
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            env_names = ", ".join(name.upper() for name in missing)
            raise SystemExit(f"missing configuration: {env_names}")


def _load_targets() -> tuple[ArbTarget, ...]:
    targets_file = get_env("ARB_TARGETS_FILE")
    try:
        if targets_file:
            entries = json.loads(Path(targets_file).read_text(encoding="utf-8"))
            return tuple(ArbTarget.from_dict(entry) for entry in entries)
        token = get_env("TARGET_TOKEN")
        if not token:
            return ()
        return (
            ArbTarget.from_dict(
                {
                    "name": get_env("TARGET_NAME", ""),
                    "token": token,
                    "fee": get_env("TARGET_POOL_FEE", "10000"),
                    "tick_spacing": get_env("TARGET_TICK_SPACING", "200"),
                    "hooks": get_env("TARGET_POOL_HOOKS", NATIVE.checksum),
                }
            ),
        )
    except (OSError, KeyError, ValueError) as exc:
        raise SystemExit(f"invalid arb target configuration: {exc}") from exc


def load_settings() -> KeeperSettings:
    master_key = get_env("MASTER_PRIVATE_KEY", required=True)
    assert master_key is not None

    rpc_urls = tuple(
        url.strip()
        for url in (get_env("RPC_URLS") or get_env("RPC_URL") or DEFAULT_RPC_URL).split(",")
        if url.strip()
    )
    ladder_raw = get_env("SIZE_LADDER") or DEFAULT_SIZE_LADDER
    size_ladder = tuple(
        _native_amount("SIZE_LADDER", part) for part in ladder_raw.split(",") if part.strip()
    )
    gas_priority = get_env("GAS_PRIORITY", "medium") or "medium"
    if gas_priority not in ("low", "medium", "high"):
        raise SystemExit(f"GAS_PRIORITY must be low, medium or high, got {gas_priority!r}")

    return KeeperSettings(
        master_private_key=master_key,
        treasury_private_key=get_env("TREASURY_PRIVATE_KEY") or None,
        rpc_urls=rpc_urls,
        chain_id=_int("CHAIN_ID", DEFAULT_CHAIN_ID),
        min_profit_bps=_int("MIN_PROFIT_BPS", 50),
        poll_interval=_float("POLL_INTERVAL_SECONDS", 5.0),
        wallet_funding_target=_native_amount(
            "WALLET_FUNDING_TARGET", get_env("WALLET_FUNDING_TARGET", "1") or "1"
        ),
        wallet_count=_int("WALLET_COUNT", 5),
        campaign_id=get_env("CAMPAIGN_ID", "default") or "default",
        wallet_min_trade_interval=_float("WALLET_MIN_TRADE_INTERVAL", 60.0),
        state_view_address=_address("STATE_VIEW_ADDRESS"),
        curve_address=_address("CURVE_ADDRESS"),
        lens_address=_address("LENS_ADDRESS"),
        arb_contract_address=_address("ARB_CONTRACT_ADDRESS"),
        max_split_depth=_int("MAX_SPLIT_DEPTH", 2),
        receipt_timeout=_float("RECEIPT_TIMEOUT", 120.0),
        slippage_bps=_int("SLIPPAGE_BPS", 100),
        size_ladder=size_ladder,
        gas_priority=gas_priority,
        target_cooldown=_float("TARGET_COOLDOWN_SECONDS", 30.0),
        ledger_path=Path(get_env("LEDGER_PATH", "data/trades.csv") or "data/trades.csv"),
        targets=_load_targets(),
    )
