from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests
from spl.memo.constants import MEMO_PROGRAM_ID

from .errors import SubmissionError

RPC_TIMEOUT = 15


def rpc_call(url: str, method: str, params: Optional[List[Any]] = None) -> Any:
    body = {"jsonrpc": "2.0", "id": "memo-clients", "method": method, "params": params or []}
    try:
        resp = requests.post(url, json=body, timeout=RPC_TIMEOUT)
        resp.raise_for_status()
        payload = resp.json()
    except Exception as exc:  # noqa: BLE001
        raise SubmissionError(f"{method} request failed: {exc}", raw=str(exc)) from exc
    if payload.get("error"):
        raise SubmissionError(f"{method} returned an error: {payload['error']}", raw=str(payload["error"]))
    return payload.get("result")


def get_transaction(url: str, signature: str) -> Optional[Dict[str, Any]]:
    return rpc_call(
        url,
        "getTransaction",
        [signature, {"encoding": "jsonParsed", "commitment": "confirmed", "maxSupportedTransactionVersion": 0}],
    )


def transaction_memos(tx: Optional[Dict[str, Any]]) -> List[bytes]:
    """Memo instruction data, in instruction order, from a jsonParsed transaction."""
    if not tx:
        return []
    instructions = tx.get("transaction", {}).get("message", {}).get("instructions", [])
    memos: List[bytes] = []
    for ix in instructions:
        if ix.get("programId") != str(MEMO_PROGRAM_ID):
            continue
        parsed = ix.get("parsed")
        if isinstance(parsed, str):
            memos.append(parsed.encode("utf-8"))
    return memos


def transaction_logs(tx: Optional[Dict[str, Any]]) -> List[str]:
    if not tx:
        return []
    return list((tx.get("meta") or {}).get("logMessages") or [])


def fetch_transaction_memos(url: str, signature: str) -> List[bytes]:
    return transaction_memos(get_transaction(url, signature))
