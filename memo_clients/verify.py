from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import VerificationError
from .memo_codec import BurnMemo, MemoPayload, decode_memo

logger = logging.getLogger("memo_clients")

Diff = Tuple[str, object, object]


def field_diffs(actual: Mapping[str, Any], expected: Mapping[str, Any]) -> List[Diff]:
    diffs: List[Diff] = []
    for name, want in expected.items():
        got = actual.get(name)
        if got != want:
            diffs.append((name, want, got))
    return diffs


def delta_diffs(actual: Mapping[str, Any], previous: Optional[Mapping[str, Any]], deltas: Mapping[str, int]) -> List[Diff]:
    diffs: List[Diff] = []
    for name, delta in deltas.items():
        before = previous.get(name, 0) if previous else 0
        want = before + delta
        if actual.get(name) != want:
            diffs.append((f"{name} (+{delta})", want, actual.get(name)))
    return diffs


def increase_diffs(actual: Mapping[str, Any], previous: Optional[Mapping[str, Any]], names: Iterable[str]) -> List[Diff]:
    diffs: List[Diff] = []
    for name in names:
        before = previous.get(name, 0) if previous else 0
        if (actual.get(name) or 0) <= before:
            diffs.append((name, f"> {before}", actual.get(name)))
    return diffs


def timestamp_diffs(actual: Mapping[str, Any], previous: Optional[Mapping[str, Any]], names: Iterable[str]) -> List[Diff]:
    diffs: List[Diff] = []
    for name in names:
        value = actual.get(name) or 0
        if value <= 0:
            diffs.append((name, "> 0", value))
            continue
        before = previous.get(name) if previous else None
        if before is not None and value < before:
            diffs.append((name, f">= {before}", value))
    return diffs


def verify_account(
    subject: str,
    actual: Optional[Mapping[str, Any]],
    equals: Optional[Mapping[str, Any]] = None,
    previous: Optional[Mapping[str, Any]] = None,
    deltas: Optional[Mapping[str, int]] = None,
    increased: Iterable[str] = (),
    timestamps: Iterable[str] = (),
) -> Mapping[str, Any]:
    """Check a decoded account against expected values and return it.

    ``deltas`` are relative to ``previous`` (a snapshot taken before the
    transaction, or None when the account did not exist). ``timestamps``
    must be positive and no earlier than in ``previous``; ``increased`` fields
    must be strictly larger than in ``previous``.
    """
    if actual is None:
        raise VerificationError(subject, [("account", "exists", None)])
    diffs = field_diffs(actual, equals or {})
    diffs += delta_diffs(actual, previous, deltas or {})
    diffs += increase_diffs(actual, previous, increased)
    diffs += timestamp_diffs(actual, previous, timestamps)
    if diffs:
        raise VerificationError(subject, diffs)
    logger.info("verify_ok subject=%s checked=%s", subject, len(equals or {}) + len(deltas or {}))
    return actual


def verify_absent(subject: str, data: Optional[bytes]) -> None:
    if data:
        raise VerificationError(subject, [("account", "closed", f"{len(data)} bytes")])


def verify_memo(
    subject: str,
    memo: bytes,
    expected: MemoPayload,
    burn_amount: Optional[int] = None,
) -> Tuple[Optional[BurnMemo], MemoPayload]:
    """Re-decode memo bytes from a confirmed transaction and compare with what was sent."""
    envelope, payload = decode_memo(memo, burn=burn_amount is not None)
    diffs: List[Diff] = []
    if envelope is not None and envelope.burn_amount != burn_amount:
        diffs.append(("burn_amount", burn_amount, envelope.burn_amount))
    if payload != expected:
        diffs.append(("payload", expected, payload))
    if diffs:
        raise VerificationError(subject, diffs)
    return envelope, payload
