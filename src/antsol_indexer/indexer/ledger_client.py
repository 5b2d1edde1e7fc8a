"""Ledger access for the scan loop.

The scan loop only depends on the :class:`LedgerClient` protocol. The
production implementation, :class:`SolanaRpcClient`, speaks JSON-RPC 2.0 over
HTTP with ``requests``; tests substitute an in-memory ledger.

Two failure modes are kept apart:

- A slot that was skipped by the cluster, is not yet available, or has been
  pruned is not an error. ``get_block`` returns ``None`` and the scan loop
  treats the slot as processed.
- Anything else (timeout, refused connection, HTTP error, malformed payload,
  unexpected RPC error) raises :class:`LedgerTransportError`.

Every request is bounded by the configured timeout.
"""

from __future__ import annotations

import itertools
import logging
from datetime import UTC, datetime
from typing import Any, Protocol

import requests

from antsol_indexer.indexer.types import Block, LedgerTransaction

logger = logging.getLogger(__name__)

# JSON-RPC error codes meaning "no block here" rather than "request failed":
# -32001 block cleaned up, -32004 block not available, -32007 slot skipped,
# -32009 slot skipped / missing in long-term storage.
UNAVAILABLE_BLOCK_CODES = frozenset({-32001, -32004, -32007, -32009})
UNAVAILABLE_BLOCK_PHRASES = ("skipped", "not available")


class LedgerTransportError(Exception):
    """The ledger could not be reached or answered with an unusable response."""


class LedgerClient(Protocol):
    def get_tip(self) -> int: ...

    def get_block(self, slot: int) -> Block | None: ...


class SolanaRpcClient:
    """Blocking JSON-RPC client for ``getSlot`` and ``getBlock``.

    Args:
        rpc_url: HTTP(S) endpoint of the ledger RPC node.
        commitment: ``processed``, ``confirmed`` or ``finalized``.
        timeout: Per-request timeout in seconds.
        session: Optional ``requests.Session``; a new one is created if omitted.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        commitment: str = "confirmed",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._commitment = commitment
        self._timeout = timeout
        self._session = session or requests.Session()
        self._ids = itertools.count(1)

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    def get_tip(self) -> int:
        result = self._call("getSlot", [{"commitment": self._commitment}])
        if not isinstance(result, int):
            raise LedgerTransportError(f"getSlot returned non-integer result: {result!r}")
        return result

    def get_block(self, slot: int) -> Block | None:
        params = [
            slot,
            {
                "encoding": "json",
                "transactionDetails": "full",
                "rewards": False,
                "maxSupportedTransactionVersion": 0,
                "commitment": self._commitment,
            },
        ]
        try:
            result = self._call("getBlock", params)
        except _RpcError as exc:
            if exc.is_unavailable_block:
                logger.debug("Slot %d unavailable: %s", slot, exc)
                return None
            raise LedgerTransportError(f"getBlock({slot}) failed: {exc}") from exc

        if result is None:
            return None
        if not isinstance(result, dict):
            raise LedgerTransportError(f"getBlock({slot}) returned {type(result).__name__}")
        return _block_from_result(slot, result)

    # -- internals ------------------------------------------------------------

    def _call(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = self._session.post(self._rpc_url, json=payload, timeout=self._timeout)
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.Timeout as exc:
            raise LedgerTransportError(
                f"{method} timed out after {self._timeout:.1f}s ({self._rpc_url})"
            ) from exc
        except requests.exceptions.ConnectionError as exc:
            raise LedgerTransportError(f"cannot connect to {self._rpc_url}") from exc
        except requests.exceptions.RequestException as exc:
            raise LedgerTransportError(f"{method} request failed: {exc}") from exc
        except ValueError as exc:
            raise LedgerTransportError(f"{method} returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise LedgerTransportError(f"{method} returned a non-object response")
        error = body.get("error")
        if error:
            if not isinstance(error, dict):
                raise LedgerTransportError(f"{method} returned error {error!r}")
            rpc_error = _RpcError(error.get("code"), str(error.get("message", "")))
            if method == "getBlock":
                raise rpc_error
            raise LedgerTransportError(f"{method} failed: {rpc_error}")
        return body.get("result")


class _RpcError(Exception):
    def __init__(self, code: Any, message: str) -> None:
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message

    @property
    def is_unavailable_block(self) -> bool:
        if self.code in UNAVAILABLE_BLOCK_CODES:
            return True
        lowered = self.message.lower()
        return any(phrase in lowered for phrase in UNAVAILABLE_BLOCK_PHRASES)


def _block_from_result(slot: int, result: dict[str, Any]) -> Block:
    block_time = result.get("blockTime")
    transactions = []
    for entry in result.get("transactions") or ():
        tx = _transaction_from_entry(entry)
        if tx is not None:
            transactions.append(tx)
    return Block(
        slot=slot,
        block_time=datetime.fromtimestamp(block_time, UTC) if block_time is not None else None,
        transactions=tuple(transactions),
    )


def _transaction_from_entry(entry: Any) -> LedgerTransaction | None:
    """Build a transaction from a ``json``-encoded ``getBlock`` entry.

    Entries without a signature cannot be deduplicated and are dropped.
    """
    if not isinstance(entry, dict):
        return None
    transaction = entry.get("transaction") or {}
    signatures = transaction.get("signatures") if isinstance(transaction, dict) else None
    if not signatures:
        return None
    meta = entry.get("meta") or {}
    logs = meta.get("logMessages") or ()
    return LedgerTransaction(
        signature=str(signatures[0]),
        succeeded=meta.get("err") is None,
        logs=tuple(str(line) for line in logs),
    )
