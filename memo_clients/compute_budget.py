from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Callable, List, Optional

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solders.transaction import VersionedTransaction

from .assembler import MemoShape, operation
from .errors import SimulationError

logger = logging.getLogger("memo_clients")

MAX_COMPUTE_UNITS = 1_400_000
DEFAULT_MARGIN = 1.10
SIMULATION_CEILING = {
    MemoShape.BURN: 1_000_000,
    MemoShape.BARE: 400_000,
    MemoShape.ASCII: 400_000,
    MemoShape.NONE: 400_000,
}


@dataclass
class BudgetPlan:
    limit: int
    simulated_units: Optional[int]
    source: str  # "simulated" or "default"
    logs: List[str] = field(default_factory=list)


def apply_margin(units: int, margin: float = DEFAULT_MARGIN) -> int:
    # Fraction(str(...)) keeps 1.10 exact so ceil() doesn't pick up float noise.
    limit = math.ceil(Fraction(int(units)) * Fraction(str(margin)))
    return min(limit, MAX_COMPUTE_UNITS)


def simulation_ceiling(op: str) -> int:
    return SIMULATION_CEILING[operation(op).memo]


def estimate_compute_units(
    client: Client,
    build: Callable[[int], VersionedTransaction],
    op: str,
    margin: float = DEFAULT_MARGIN,
    expect_failure: bool = False,
) -> BudgetPlan:
    """Simulate ``build(ceiling)`` and size the compute-unit limit from observed consumption.

    ``build`` must return the exact instruction sequence that will be sent,
    differing only in the compute-unit limit. Simulation errors raise
    ``SimulationError`` either way; ``expect_failure`` only changes how the
    outcome is logged, callers running negative cases catch it.
    """
    if not 1.02 <= margin <= 1.20:
        raise ValueError(f"margin must lie in [1.02, 1.20], got {margin}")
    ceiling = simulation_ceiling(op)
    tx = build(ceiling)
    try:
        resp = client.simulate_transaction(tx, sig_verify=False, commitment=Confirmed)
    except Exception as exc:  # noqa: BLE001
        raise SimulationError(f"simulate_transaction failed for {op}: {exc}", raw=str(exc)) from exc
    value = resp.value
    logs = list(value.logs or [])
    if value.err is not None:
        if expect_failure:
            logger.info("compute_estimate_expected_failure op=%s err=%s", op, value.err)
        else:
            logger.error("compute_estimate_failed op=%s err=%s", op, value.err)
        raise SimulationError(f"simulation of {op} failed: {value.err}", raw=str(value.err), logs=logs)
    units = value.units_consumed
    if units:
        plan = BudgetPlan(apply_margin(units, margin), int(units), "simulated", logs)
    else:
        plan = BudgetPlan(operation(op).default_cu, None, "default", logs)
    logger.info(
        "compute_estimate op=%s units=%s limit=%s source=%s margin=%s",
        op,
        plan.simulated_units,
        plan.limit,
        plan.source,
        margin,
    )
    return plan
