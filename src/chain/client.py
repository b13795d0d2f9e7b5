"""JSON-RPC client for the keeper: retries, endpoint fallback, error classification."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import requests
from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import keccak

from core.base_types import Address, TokenAmount, TransactionReceipt, TransactionRequest

from .errors import (
    ChainError,
    InsufficientFunds,
    NonceTooLow,
    ReceiptTimeout,
    ReplacementUnderpriced,
    RPCError,
    TransactionFailed,
)

logger = logging.getLogger(__name__)

_PRIORITIES = ("low", "medium", "high")


@dataclass(frozen=True)
class GasPrice:
    """EIP-1559 fee snapshot for the latest block."""

    base_fee: int
    priority_fee_low: int
    priority_fee_medium: int
    priority_fee_high: int

    def priority_fee(self, priority: str = "medium") -> int:
        if priority not in _PRIORITIES:
            raise ValueError("priority must be low, medium, or high")
        return getattr(self, f"priority_fee_{priority}")

    def get_max_fee(self, priority: str = "medium", buffer: float = 1.2) -> int:
        """maxFeePerGas: base fee with headroom for the next blocks, plus the tip."""
        if buffer <= 0:
            raise ValueError("buffer must be positive")
        return int(self.base_fee * buffer) + self.priority_fee(priority)


@dataclass(frozen=True)
class ContractCall:
    """One view call for :meth:`ChainClient.call_many`."""

    to: Address
    signature: str
    arg_types: list[str]
    args: list[Any]
    return_types: list[str]

    def calldata(self) -> bytes:
        return encode_call(self.signature, self.arg_types, self.args)


class ChainClient:
    """
    Thin RPC client shared by every reader and sender in the keeper.

    Endpoints are tried in order; each gets ``max_retries`` attempts with
    exponential backoff on transport failures (timeouts, dropped connections,
    unparseable bodies). JSON-RPC errors are never retried: they are mapped
    onto the ``chain.errors`` hierarchy and raised, with ``code`` and ``data``
    kept so revert reasons can be decoded upstream.
    """

    def __init__(
        self,
        rpc_urls: list[str],
        timeout: int = 30,
        max_retries: int = 3,
    ):
        if not rpc_urls:
            raise ValueError("rpc_urls must not be empty")
        self._rpc_urls = rpc_urls
        self._timeout = timeout
        self._max_retries = max_retries
        self._session = requests.Session()

    # ── account state ────────────────────────────────────────────

    def get_balance(self, address: Address, block: str | int = "latest") -> TokenAmount:
        """Native balance; ``block`` is a tag or a block number."""
        tag = hex(block) if isinstance(block, int) else block
        raw = self._rpc_call("eth_getBalance", [address.checksum, tag])
        return TokenAmount(raw=_hex_to_int(raw))

    def get_nonce(self, address: Address, block: str = "pending") -> int:
        return _hex_to_int(self._rpc_call("eth_getTransactionCount", [address.checksum, block]))

    # ── fees ─────────────────────────────────────────────────────

    def get_gas_price(self) -> GasPrice:
        block = self._rpc_call("eth_getBlockByNumber", ["latest", False])
        tip = _hex_to_int(self._rpc_call("eth_maxPriorityFeePerGas", []))
        return GasPrice(
            base_fee=_hex_to_int(block.get("baseFeePerGas", "0x0")),
            priority_fee_low=tip,
            priority_fee_medium=tip,
            priority_fee_high=int(tip * 1.5),
        )

    def estimate_gas(self, tx: TransactionRequest) -> int:
        return _hex_to_int(self._rpc_call("eth_estimateGas", [tx.to_call_dict()]))

    # ── transactions ─────────────────────────────────────────────

    def send_transaction(self, signed_tx: bytes) -> str:
        return str(self._rpc_call("eth_sendRawTransaction", [f"0x{signed_tx.hex()}"]))

    def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        data = self._rpc_call("eth_getTransactionReceipt", [tx_hash])
        return None if data is None else TransactionReceipt.from_rpc(data)

    def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float = 120,
        poll_interval: float = 1.0,
    ) -> TransactionReceipt:
        """
        Poll until the receipt appears.

        Raises TransactionFailed on a reverted receipt and ReceiptTimeout when
        ``timeout`` elapses first; a timeout says nothing about whether the
        transaction will still land.
        """
        deadline = time.time() + timeout
        while time.time() < deadline:
            receipt = self.get_receipt(tx_hash)
            if receipt is not None:
                if not receipt.status:
                    raise TransactionFailed(tx_hash, receipt)
                return receipt
            time.sleep(poll_interval)
        raise ReceiptTimeout(tx_hash, timeout)

    # ── contract reads ───────────────────────────────────────────

    def call(self, tx: TransactionRequest, block: str = "latest") -> bytes:
        """Read-only eth_call. Reverts surface as RPCError with revert data."""
        return _hex_to_bytes(self._rpc_call("eth_call", [tx.to_call_dict(), block]))

    def call_function(
        self,
        to: Address,
        signature: str,
        arg_types: list[str],
        args: list[Any],
        return_types: list[str],
    ) -> tuple:
        """eth_call a view function and ABI-decode its return values."""
        request = TransactionRequest(
            to=to,
            value=TokenAmount(raw=0),
            data=encode_call(signature, arg_types, args),
        )
        return _decode_return(self.call(request), return_types, signature, to)

    def call_many(self, calls: list[ContractCall], block: str = "latest") -> list[tuple]:
        """
        Several view calls in one JSON-RPC batch, so they all see the same
        node state (slot0 and liquidity of one pool, for instance).
        """
        if not calls:
            return []
        requests_ = [
            (
                "eth_call",
                [
                    TransactionRequest(
                        to=c.to, value=TokenAmount(raw=0), data=c.calldata()
                    ).to_call_dict(),
                    block,
                ],
            )
            for c in calls
        ]
        results = self._rpc_batch(requests_)
        return [
            _decode_return(_hex_to_bytes(raw), c.return_types, c.signature, c.to)
            for c, raw in zip(calls, results)
        ]

    # ── transport ────────────────────────────────────────────────

    def _rpc_call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        data = self._post(payload, method)
        if "error" in data:
            self._raise_rpc_error(data["error"])
        return data.get("result")

    def _rpc_batch(self, calls: list[tuple[str, list[Any]]]) -> list[Any]:
        payload = [
            {"jsonrpc": "2.0", "id": idx + 1, "method": method, "params": params}
            for idx, (method, params) in enumerate(calls)
        ]
        data = self._post(payload, f"batch[{len(calls)}]")
        if not isinstance(data, list):
            raise RPCError("Invalid batch response")
        results: dict[int, Any] = {}
        for entry in data:
            if "error" in entry:
                self._raise_rpc_error(entry["error"])
            results[int(entry["id"])] = entry.get("result")
        try:
            return [results[idx + 1] for idx in range(len(calls))]
        except KeyError as exc:
            raise RPCError(f"Batch response missing id {exc}") from None

    def _post(self, payload: Any, label: str) -> Any:
        """
        POST with endpoint fallback; returns the decoded JSON body.

        A 5xx abandons the endpoint for the next one; a 4xx is raised as is.
        """
        last_error: Optional[Exception] = None
        for url in self._rpc_urls:
            for attempt in range(self._max_retries):
                start = time.perf_counter()
                try:
                    response = self._session.post(url, json=payload, timeout=self._timeout)
                    logger.info(
                        "rpc %s %s in %.3fs", label, url, time.perf_counter() - start
                    )
                    if response.status_code >= 500:
                        last_error = RPCError(f"HTTP {response.status_code} from {url}")
                        logger.warning("rpc %s: %s, trying next endpoint", label, last_error)
                        break
                    if response.status_code >= 400:
                        raise RPCError(f"HTTP {response.status_code} from {url}")
                    return response.json()
                except (requests.Timeout, requests.ConnectionError, json.JSONDecodeError) as exc:
                    last_error = exc
                    logger.warning("rpc %s %s attempt %d failed: %s", label, url, attempt + 1, exc)
                    self._sleep_backoff(attempt)
        raise ChainError(f"RPC request {label} failed") from last_error

    def _sleep_backoff(self, attempt: int) -> None:
        time.sleep(0.5 * (2**attempt))

    def _raise_rpc_error(self, error: dict) -> None:
        message = str(error.get("message", "RPC error"))
        lowered = message.lower()
        if "insufficient funds" in lowered:
            raise InsufficientFunds(message)
        if "nonce too low" in lowered:
            raise NonceTooLow(message)
        if "replacement transaction underpriced" in lowered:
            raise ReplacementUnderpriced(message)
        raise RPCError(message, code=error.get("code"), data=error.get("data"))


def encode_call(signature: str, arg_types: list[str], args: list[Any]) -> bytes:
    """4-byte selector of ``signature`` followed by the ABI-encoded args."""
    return keccak(text=signature)[:4] + abi_encode(arg_types, args)


def _decode_return(raw: bytes, return_types: list[str], signature: str, to: Address) -> tuple:
    if not raw:
        raise RPCError(f"Empty return data from {signature} at {to}")
    return tuple(abi_decode(return_types, raw))


def _hex_to_int(value: str) -> int:
    if not isinstance(value, str):
        raise RPCError("Expected hex string result")
    return int(value, 16)


def _hex_to_bytes(value: str) -> bytes:
    if not isinstance(value, str):
        raise RPCError("Expected hex string result")
    normalized = value[2:] if value.startswith("0x") else value
    return bytes.fromhex(normalized) if normalized else b""
