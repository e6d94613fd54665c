"""JSON-RPC transport to the ledger node.

Only the three calls the click loop needs. Every failure mode (connection,
timeout, HTTP status, JSON-RPC error object) comes out as TransportError with
the node's error message and data preserved, so callers can classify by
substring.
"""
import asyncio
import base64
import binascii
import itertools
import json
import logging
from typing import Any

import httpx
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction

import clicker.constants as C
from clicker.errors import TransportError

log = logging.getLogger("clicker.rpc")


def _format_rpc_error(method: str, err: Any) -> str:
    if not isinstance(err, dict):
        return f"{method} error: {err}"
    msg = f"{method} error {err.get('code')}: {err.get('message')}"
    if err.get("data") is not None:
        msg += f" {json.dumps(err['data'], default=str)}"
    return msg


class LedgerClient:
    def __init__(
        self,
        url: str,
        *,
        timeout: float = C.RPC_TIMEOUT,
        submit_timeout: float = C.SUBMIT_TIMEOUT,
        commitment: str = "confirmed",
        http: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.submit_timeout = submit_timeout
        self.commitment = commitment
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request(self, method: str, params: list | None = None, *, timeout: float | None = None) -> Any:
        t = timeout or self.timeout
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            resp = await asyncio.wait_for(self._http.post(self.url, json=payload), timeout=t)
        except asyncio.TimeoutError as e:
            raise TransportError(f"{method} timed out after {t}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} failed: {e.__class__.__name__} - {e}") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise TransportError(f"{method} returned non-JSON body (HTTP {resp.status_code})") from e

        if isinstance(body, dict) and body.get("error"):
            raise TransportError(_format_rpc_error(method, body["error"]))
        if resp.is_error:
            raise TransportError(f"{method} failed: HTTP {resp.status_code}")
        if not isinstance(body, dict) or "result" not in body:
            raise TransportError(f"{method} returned no result: {body!r}")
        return body["result"]

    async def get_account_data(self, address: Pubkey, *, timeout: float | None = None) -> bytes | None:
        """Raw account data, or None if the account doesn't exist."""
        result = await self.request(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": self.commitment}],
            timeout=timeout,
        )
        value = result.get("value") if isinstance(result, dict) else None
        if value is None:
            return None
        try:
            encoded, encoding = value["data"]
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"getAccountInfo returned unexpected data for {address}: {value!r}") from e
        if encoding != "base64":
            raise TransportError(f"getAccountInfo returned {encoding!r} encoding for {address}")
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise TransportError(f"getAccountInfo returned undecodable data for {address}: {e}") from e

    async def get_latest_blockhash(self) -> Hash:
        result = await self.request("getLatestBlockhash", [{"commitment": self.commitment}])
        try:
            return Hash.from_string(result["value"]["blockhash"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"getLatestBlockhash returned unexpected result: {result!r}") from e

    async def send_transaction(self, tx: Transaction) -> str:
        """Submit a signed transaction, returning its signature."""
        blob = base64.b64encode(bytes(tx)).decode("ascii")
        signature = await self.request(
            "sendTransaction",
            [blob, {"encoding": "base64", "preflightCommitment": self.commitment}],
            timeout=self.submit_timeout,
        )
        log.debug("Submitted %s", signature)
        return signature
