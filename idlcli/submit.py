"""Dry-run validation and sequencer submission of assembled payloads."""

from __future__ import annotations

from dataclasses import replace
import json
import socket
import time
import urllib.error
import urllib.request
from typing import Any, Callable, List, Optional, Sequence

from .codec import encode_base58
from .constants import CONFIRM_ATTEMPTS, CONFIRM_INTERVAL, DEFAULT_TIMEOUT
from .errors import ConnectionFailed, LedgerRejected, SubmissionTimeout
from .pda import ProgramId
from .schema import Idl
from .tx import Invocation, Payload, SignedTransaction, assemble, sign
from .wallet import Wallet


def _rejection_message(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message")
        data = error.get("data")
        if isinstance(message, str) and message:
            if data:
                return f"{message}: {data}" if isinstance(data, str) else f"{message}: {json.dumps(data)}"
            return message
    if isinstance(error, str):
        return error
    return json.dumps(error)


class SequencerClient:
    """JSON-RPC client for the sequencer endpoint.

    Each call is a single request bounded by ``timeout``; nothing is retried.
    """

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.url = url
        self.timeout = timeout

    def _rpc_request(self, method: str, params: Any) -> Any:
        payload = json.dumps({"jsonrpc": "2.0", "id": 1, "method": method, "params": params}).encode()
        req = urllib.request.Request(self.url, data=payload, headers={"Content-Type": "application/json"})
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                body = resp.read().decode()
        except urllib.error.HTTPError as exc:
            body = exc.read().decode(errors="replace")
            try:
                data = json.loads(body)
            except json.JSONDecodeError:
                data = None
            if isinstance(data, dict) and "error" in data:
                raise LedgerRejected(_rejection_message(data["error"])) from exc
            raise ConnectionFailed(f"{self.url}: HTTP {exc.code} {exc.reason}") from exc
        except urllib.error.URLError as exc:
            if isinstance(exc.reason, (socket.timeout, TimeoutError)):
                raise SubmissionTimeout(f"{self.url}: timed out after {self.timeout}s") from exc
            raise ConnectionFailed(f"{self.url}: {exc.reason}") from exc
        except (socket.timeout, TimeoutError) as exc:
            raise SubmissionTimeout(f"{self.url}: timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise ConnectionFailed(f"{self.url}: {exc}") from exc

        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise ConnectionFailed(f"{self.url}: invalid JSON-RPC response: {body[:200]}") from exc
        if isinstance(data, dict) and "error" in data:
            raise LedgerRejected(_rejection_message(data["error"]))
        return data.get("result") if isinstance(data, dict) else None

    def get_account_nonces(self, account_ids: Sequence[bytes]) -> List[int]:
        result = self._rpc_request("get_accounts_nonces", [[encode_base58(a) for a in account_ids]])
        nonces = result.get("nonces") if isinstance(result, dict) else result
        if not isinstance(nonces, list) or len(nonces) != len(account_ids):
            raise ConnectionFailed(f"{self.url}: unexpected nonce response: {result!r}")
        return [int(n) for n in nonces]

    def send_transaction(self, tx: SignedTransaction) -> str:
        result = self._rpc_request("send_tx_public", [tx.to_json()])
        tx_hash = result.get("tx_hash") if isinstance(result, dict) else result
        if not isinstance(tx_hash, str) or not tx_hash:
            raise ConnectionFailed(f"{self.url}: response missing tx_hash: {result!r}")
        return tx_hash

    def get_transaction(self, tx_hash: str) -> Optional[Any]:
        result = self._rpc_request("get_transaction_by_hash", [tx_hash])
        if isinstance(result, dict) and "transaction" in result:
            return result["transaction"]
        return result

    def wait_for_confirmation(
        self,
        tx_hash: str,
        attempts: int = CONFIRM_ATTEMPTS,
        interval: float = CONFIRM_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ) -> bool:
        for attempt in range(attempts):
            if self.get_transaction(tx_hash):
                return True
            if attempt + 1 < attempts:
                sleep(interval)
        return False


def dry_run(
    idl: Idl,
    invocation: Invocation,
    program_id: ProgramId,
    wallet: Optional[Wallet] = None,
    **kwargs: Any,
) -> Payload:
    """Validate and assemble locally. Never opens a network connection."""
    return assemble(idl, invocation, program_id, wallet=wallet, **kwargs)


def submit(
    idl: Idl,
    invocation: Invocation,
    program_id: ProgramId,
    client: SequencerClient,
    wallet: Optional[Wallet] = None,
    **kwargs: Any,
) -> tuple[Payload, str]:
    """Assemble locally, then fetch signer nonces, sign, and send once."""
    payload = assemble(idl, invocation, program_id, wallet=wallet, **kwargs)
    signer_ids = payload.signer_ids
    if signer_ids:
        payload = replace(payload, nonces=tuple(client.get_account_nonces(signer_ids)))
    signed = sign(payload, wallet if wallet is not None else Wallet())
    return payload, client.send_transaction(signed)
