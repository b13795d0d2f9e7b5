"""
Top up sub-wallets from the treasury before a campaign starts.

Idempotent: every balance is read live and only the deficit to the target is
sent, so re-running a funded campaign sends nothing. The whole batch is
priced up front; if the treasury cannot cover every deficit plus gas, no
transfer is made at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from chain import ChainClient, ChainError, TransactionBuilder
from core.base_types import Address, TokenAmount
from core.wallet_deriver import SubWallet
from core.wallet_manager import WalletManager

logger = logging.getLogger(__name__)

TRANSFER_GAS = 21_000


class FundingError(Exception):
    """Base class for funding failures."""


class FundingShortfall(FundingError):
    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"treasury holds {TokenAmount(available).human} but the batch needs "
            f"{TokenAmount(required).human} including gas"
        )


@dataclass(frozen=True)
class FundingTransfer:
    index: int
    address: Address
    amount: int
    tx_hash: str


@dataclass
class FundingReport:
    target: int
    treasury_balance_before: int = 0
    transfers: list[FundingTransfer] = field(default_factory=list)
    skipped: list[Address] = field(default_factory=list)

    @property
    def total_sent(self) -> int:
        return sum(t.amount for t in self.transfers)


class FundingInterrupted(FundingError):
    """A transfer failed mid-batch; ``report`` lists what already went out."""

    def __init__(self, report: FundingReport, wallet: SubWallet, reason: str):
        self.report = report
        self.wallet = wallet
        super().__init__(
            f"funding stopped at wallet {wallet.index} ({wallet.address}) after "
            f"{len(report.transfers)} transfers: {reason}"
        )


class FundingCoordinator:
    def __init__(
        self,
        client: ChainClient,
        treasury: WalletManager,
        chain_id: int = 1,
        gas_priority: str = "medium",
        receipt_timeout: float = 120,
    ):
        self.client = client
        self.treasury = treasury
        self.chain_id = chain_id
        self.gas_priority = gas_priority
        self.receipt_timeout = receipt_timeout

    @property
    def treasury_address(self) -> Address:
        return Address.from_string(self.treasury.address)

    def deficits(self, wallets: list[SubWallet], per_wallet_amount: int) -> dict[int, int]:
        """Read every balance; return ``{index: missing wei}`` for underfunded wallets."""
        missing: dict[int, int] = {}
        for wallet in wallets:
            balance = self.client.get_balance(wallet.address).raw
            wallet.funded_amount = balance
            if balance < per_wallet_amount:
                missing[wallet.index] = per_wallet_amount - balance
        return missing

    def ensure_funded(
        self, wallets: list[SubWallet], per_wallet_amount: int
    ) -> FundingReport:
        if per_wallet_amount <= 0:
            raise ValueError("per_wallet_amount must be positive")

        report = FundingReport(target=per_wallet_amount)
        missing = self.deficits(wallets, per_wallet_amount)
        report.skipped = [w.address for w in wallets if w.index not in missing]
        if not missing:
            logger.info("all %d wallets already at target", len(wallets))
            return report

        max_fee = self.client.get_gas_price().get_max_fee(self.gas_priority)
        required = sum(missing.values()) + TRANSFER_GAS * max_fee * len(missing)
        available = self.client.get_balance(self.treasury_address).raw
        report.treasury_balance_before = available
        if available < required:
            raise FundingShortfall(required, available)

        logger.info(
            "funding %d of %d wallets, %s total",
            len(missing),
            len(wallets),
            TokenAmount(sum(missing.values())).human,
        )
        for wallet in wallets:
            amount = missing.get(wallet.index)
            if amount is None:
                continue
            tx_hash = self._transfer(report, wallet, amount)
            wallet.funded_amount += amount
            report.transfers.append(
                FundingTransfer(
                    index=wallet.index,
                    address=wallet.address,
                    amount=amount,
                    tx_hash=tx_hash,
                )
            )
            logger.info(
                "funded wallet %d %s with %s (tx %s)",
                wallet.index,
                wallet.address,
                TokenAmount(amount).human,
                tx_hash,
            )
        return report

    def _transfer(self, report: FundingReport, wallet: SubWallet, amount: int) -> str:
        try:
            receipt = (
                TransactionBuilder(self.client, self.treasury)
                .to(wallet.address)
                .value(TokenAmount(raw=amount))
                .chain_id(self.chain_id)
                .gas_limit(TRANSFER_GAS)
                .with_gas_price(self.gas_priority)
                .send_and_wait(timeout=self.receipt_timeout)
            )
        except ChainError as exc:
            raise FundingInterrupted(report, wallet, str(exc)) from exc
        return receipt.tx_hash


def describe(report: FundingReport, treasury: Optional[Address] = None) -> str:
    lines = [
        f"target per wallet: {TokenAmount(report.target).human}",
        f"transfers: {len(report.transfers)}  skipped: {len(report.skipped)}",
        f"total sent: {TokenAmount(report.total_sent).human}",
    ]
    if treasury is not None:
        lines.append(
            f"treasury {treasury}: {TokenAmount(report.treasury_balance_before).human} before"
        )
    return "\n".join(lines)
