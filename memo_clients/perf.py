"""Threaded batch-mint load tool.

Every worker owns its own RPC client and sends independent process_mint
transactions; the only shared state is ``PerformanceStats``.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from typing import Callable, List, Optional

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed

from .errors import MemoClientError
from .memo_codec import ascii_memo
from .operations import ClientContext, execute, process_mint
from .tx_builder import build_process_mint_ix

logger = logging.getLogger("memo_clients")

DEFAULT_THREADS = 16


class PerformanceStats:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent = 0
        self.confirmed = 0
        self.failed = 0
        self.total_latency = 0.0
        self.min_latency: Optional[float] = None
        self.max_latency: Optional[float] = None
        self.errors: List[str] = []
        self.elapsed = 0.0

    def record_success(self, latency: float) -> None:
        with self._lock:
            self.sent += 1
            self.confirmed += 1
            self.total_latency += latency
            self.min_latency = latency if self.min_latency is None else min(self.min_latency, latency)
            self.max_latency = latency if self.max_latency is None else max(self.max_latency, latency)

    def record_failure(self, error: str) -> None:
        with self._lock:
            self.sent += 1
            self.failed += 1
            self.errors.append(error)

    @property
    def average_latency(self) -> float:
        with self._lock:
            return self.total_latency / self.confirmed if self.confirmed else 0.0

    def tps(self, elapsed: float) -> float:
        with self._lock:
            return self.confirmed / elapsed if elapsed > 0 else 0.0

    def report(self, elapsed: float, threads: int) -> str:
        avg = self.average_latency
        tps = self.tps(elapsed)
        with self._lock:
            lines = [
                "=== Performance Summary ===",
                f"Threads:         {threads}",
                f"Sent:            {self.sent}",
                f"Confirmed:       {self.confirmed}",
                f"Failed:          {self.failed}",
                f"Elapsed:         {elapsed:.2f}s",
                f"TPS:             {tps:.2f}",
                f"Avg latency:     {avg:.3f}s",
                f"Min/Max latency: {self.min_latency or 0:.3f}s / {self.max_latency or 0:.3f}s",
            ]
            if self.errors:
                lines.append(f"First error:     {self.errors[0]}")
        return "\n".join(lines)


def split_work(total: int, threads: int) -> List[int]:
    """Per-thread counts; the first thread takes the remainder."""
    threads = max(1, min(threads, total)) if total else 1
    base, extra = divmod(total, threads)
    return [base + extra if i == 0 else base for i in range(threads)]


def _worker(
    thread_id: int,
    ctx: ClientContext,
    count: int,
    compute_limit: int,
    stats: PerformanceStats,
    mint: Callable[..., object],
) -> None:
    for i in range(count):
        started = time.monotonic()
        try:
            mint(ctx, ascii_memo(f"PERF{thread_id}"), compute_limit=compute_limit)
        except MemoClientError as exc:
            stats.record_failure(str(exc))
            logger.warning("perf_mint_failed thread=%s index=%s error=%s", thread_id, i, exc)
            continue
        stats.record_success(time.monotonic() - started)


def _mint_with_limit(ctx: ClientContext, memo: bytes, compute_limit: int):
    return execute(ctx, "process_mint", build_process_mint_ix(ctx.programs, ctx.pubkey), memo, compute_limit=compute_limit)


def run_batch_mint(
    ctx: ClientContext,
    total: int,
    threads: int = DEFAULT_THREADS,
    compute_limit: Optional[int] = None,
    client_factory: Optional[Callable[[str], Client]] = None,
) -> PerformanceStats:
    """Send ``total`` mints across ``threads`` workers and return the aggregated stats.

    The compute limit is sized once by a simulated mint on ``ctx`` unless
    given explicitly.
    """
    stats = PerformanceStats()
    if total <= 0:
        return stats
    if compute_limit is None:
        sent_at = time.monotonic()
        compute_limit = process_mint(ctx).compute_limit
        stats.record_success(time.monotonic() - sent_at)
        total -= 1
    factory = client_factory or (lambda endpoint: Client(endpoint, commitment=Confirmed, timeout=30))
    counts = split_work(total, threads)
    workers = []
    for thread_id, count in enumerate(counts):
        worker_ctx = dataclasses.replace(ctx, client=factory(ctx.endpoint))
        t = threading.Thread(
            target=_worker,
            args=(thread_id, worker_ctx, count, compute_limit, stats, _mint_with_limit),
            name=f"perf-mint-{thread_id}",
            daemon=True,
        )
        workers.append(t)

    logger.info("perf_start total=%s threads=%s compute_limit=%s", total, len(workers), compute_limit)
    started = time.monotonic()
    for t in workers:
        t.start()
    for t in workers:
        t.join()
    elapsed = time.monotonic() - started
    stats.elapsed = elapsed
    logger.info("perf_done confirmed=%s failed=%s elapsed=%.2f", stats.confirmed, stats.failed, elapsed)
    return stats
