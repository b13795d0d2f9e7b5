"""Fluent transaction builder: simulate, sign and send from one wallet."""

from __future__ import annotations

from dataclasses import dataclass, replace

from eth_account.datastructures import SignedTransaction

from core.base_types import Address, TokenAmount, TransactionReceipt, TransactionRequest
from core.wallet_manager import WalletManager

from .client import ChainClient


@dataclass
class _Draft:
    to: Address | None = None
    value: TokenAmount | None = None
    data: bytes = b""
    nonce: int | None = None
    gas_limit: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee: int | None = None
    chain_id: int = 1


class TransactionBuilder:
    """
    Fluent builder for one transaction.

    Usage:
        signed = (TransactionBuilder(client, wallet)
            .to(router)
            .value(TokenAmount(raw=amount_in))
            .data(calldata)
            .nonce(lease.next())
            .chain_id(143)
            .with_gas_estimate()
            .with_gas_price("high")
            .build_and_sign())

    The same draft backs ``simulate()``, ``with_gas_estimate()`` and
    ``build()``, so the eth_call sees exactly the sender, value and data that
    ``send()`` broadcasts.
    """

    def __init__(self, client: ChainClient, wallet: WalletManager):
        self._client = client
        self._wallet = wallet
        self._draft = _Draft()

    # ── fields ───────────────────────────────────────────────────

    def to(self, address: Address) -> "TransactionBuilder":
        self._draft.to = address
        return self

    def value(self, amount: TokenAmount) -> "TransactionBuilder":
        self._draft.value = amount
        return self

    def data(self, calldata: bytes) -> "TransactionBuilder":
        self._draft.data = calldata
        return self

    def nonce(self, nonce: int) -> "TransactionBuilder":
        """Nonce handed out by the nonce manager; fetched as pending otherwise."""
        self._draft.nonce = nonce
        return self

    def gas_limit(self, limit: int) -> "TransactionBuilder":
        if limit <= 0:
            raise ValueError("gas_limit must be positive")
        self._draft.gas_limit = limit
        return self

    def chain_id(self, chain_id: int) -> "TransactionBuilder":
        if chain_id <= 0:
            raise ValueError("chain_id must be positive")
        self._draft.chain_id = chain_id
        return self

    # ── network-derived fields ───────────────────────────────────

    def with_gas_estimate(self, buffer: float = 1.2) -> "TransactionBuilder":
        """eth_estimateGas on the draft, padded by ``buffer``."""
        if buffer <= 0:
            raise ValueError("buffer must be positive")
        self._draft.gas_limit = int(self._client.estimate_gas(self.call_request()) * buffer)
        return self

    def with_gas_price(self, priority: str = "medium") -> "TransactionBuilder":
        gas = self._client.get_gas_price()
        self._draft.max_priority_fee = gas.priority_fee(priority)
        self._draft.max_fee_per_gas = gas.get_max_fee(priority)
        return self

    # ── outputs ──────────────────────────────────────────────────

    def call_request(self) -> TransactionRequest:
        """The draft as an eth_call/eth_estimateGas request from the signer."""
        draft = self._draft
        if draft.to is None:
            raise ValueError("to address is required")
        if draft.value is None:
            raise ValueError("value is required")
        return TransactionRequest(
            to=draft.to,
            value=draft.value,
            data=draft.data,
            gas_limit=draft.gas_limit,
            chain_id=draft.chain_id,
            sender=self._sender(),
        )

    def simulate(self) -> bytes:
        """eth_call the draft; a revert raises RPCError carrying the reason."""
        return self._client.call(self.call_request())

    def build(self) -> TransactionRequest:
        """Signable request; gas and fees must already be set."""
        request = self.call_request()
        draft = self._draft
        if draft.gas_limit is None:
            raise ValueError("gas_limit is required (call with_gas_estimate)")
        if draft.max_fee_per_gas is None:
            raise ValueError("max_fee_per_gas is required (call with_gas_price)")
        if draft.max_priority_fee is None:
            raise ValueError("max_priority_fee is required (call with_gas_price)")
        if draft.nonce is None:
            draft.nonce = self._client.get_nonce(request.sender)
        return replace(
            request,
            nonce=draft.nonce,
            max_fee_per_gas=draft.max_fee_per_gas,
            max_priority_fee=draft.max_priority_fee,
        )

    def build_and_sign(self) -> SignedTransaction:
        return self._wallet.sign_transaction(self.build().to_dict())

    def send(self) -> str:
        """Sign and broadcast; returns the node's tx hash."""
        return self._client.send_transaction(self.build_and_sign().raw_transaction)

    def send_and_wait(self, timeout: float = 120) -> TransactionReceipt:
        return self._client.wait_for_receipt(self.send(), timeout=timeout)

    def _sender(self) -> Address:
        return Address.from_string(self._wallet.address)
