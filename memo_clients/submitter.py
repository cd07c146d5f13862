from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Union

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.rpc.responses import SendTransactionResp
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .errors import SubmissionError, classify_error

logger = logging.getLogger("memo_clients")


def extract_sig(resp: Union[SendTransactionResp, dict, str, None]) -> str:
    if isinstance(resp, SendTransactionResp):
        return str(resp.value)
    if isinstance(resp, dict):
        return str(resp.get("result") or resp.get("value") or "")
    if resp is None:
        return ""
    return str(resp)


def to_signature(sig: Union[str, Signature, None]) -> Optional[Signature]:
    if isinstance(sig, Signature):
        return sig
    if isinstance(sig, str) and sig:
        try:
            return Signature.from_string(sig)
        except ValueError:
            return None
    return None


def error_logs(exc: BaseException) -> List[str]:
    """Program logs attached to a preflight failure, if the RPC returned any."""
    for arg in getattr(exc, "args", ()):
        data = getattr(arg, "data", None)
        logs = getattr(data, "logs", None)
        if logs:
            return list(logs)
    return []


def confirm_signature(client: Client, sig: Union[str, Signature], sleep_seconds: float = 0.5) -> None:
    sig_obj = to_signature(sig)
    if sig_obj is None:
        raise SubmissionError(f"Invalid transaction signature {sig!r}")
    try:
        resp = client.confirm_transaction(sig_obj, commitment=Confirmed, sleep_seconds=sleep_seconds)
    except Exception as exc:  # noqa: BLE001
        raise SubmissionError(f"Confirmation failed for {sig_obj}: {exc}", raw=str(exc)) from exc
    statuses = getattr(resp, "value", None) or []
    status = statuses[0] if statuses else None
    if status is not None and status.err is not None:
        raise SubmissionError(f"Transaction {sig_obj} failed on-chain: {status.err}", raw=str(status.err))


def send_and_confirm(
    client: Client,
    build: Callable[[], VersionedTransaction],
    retries: int = 3,
    sleep_seconds: float = 0.5,
    label: str = "tx",
) -> str:
    """Send ``build()`` and wait for confirmed commitment.

    ``build`` is called again for every attempt so a retry after an expired
    blockhash re-signs against a fresh one. Only errors classified as
    retryable are retried; program errors surface immediately.
    """
    last_exc: Optional[SubmissionError] = None
    for attempt in range(1, retries + 1):
        tx = build()
        try:
            resp = client.send_raw_transaction(
                bytes(tx), opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
            )
        except Exception as exc:  # noqa: BLE001
            logs = error_logs(exc)
            last_exc = SubmissionError(f"{label} send failed: {exc}", raw=str(exc), logs=logs)
            if classify_error(str(exc), logs) != "retryable" or attempt == retries:
                raise last_exc from exc
            logger.warning("send_retry label=%s attempt=%s error=%s", label, attempt, exc)
            time.sleep(sleep_seconds * attempt)
            continue
        sig = extract_sig(resp)
        logger.info("tx_sent label=%s sig=%s attempt=%s", label, sig, attempt)
        try:
            confirm_signature(client, sig, sleep_seconds=sleep_seconds)
        except SubmissionError as exc:
            last_exc = exc
            if exc.kind != "retryable" or attempt == retries:
                raise
            logger.warning("confirm_retry label=%s attempt=%s error=%s", label, attempt, exc)
            time.sleep(sleep_seconds * attempt)
            continue
        logger.info("tx_confirmed label=%s sig=%s", label, sig)
        return sig
    raise last_exc or SubmissionError(f"{label} was not sent")
