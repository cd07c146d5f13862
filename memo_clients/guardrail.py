"""Mint-until-sufficient balance guardrail.

Burn operations fail on-chain when the payer's token account is short, so
callers top it up first through the memo-mint program. The mint amount
shrinks as supply grows and stops at the hard cap, so a mint that adds
nothing means supply is exhausted and looping further would never finish.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import SUPPLY_CAP_HINT, LedgerError, SupplyExhaustedError
from .memo_codec import DECIMAL_FACTOR, ascii_memo, to_tokens
from .operations import ClientContext, ensure_token_account, process_mint, read_mint_supply, read_token_balance

logger = logging.getLogger("memo_clients")

SUPPLY_CAP = 10_000_000_000_000 * DECIMAL_FACTOR

# (inclusive supply upper bound in units, amount minted per call in units)
MINT_TIERS = (
    (100_000_000 * DECIMAL_FACTOR, 1_000_000),
    (1_000_000_000 * DECIMAL_FACTOR, 100_000),
    (10_000_000_000 * DECIMAL_FACTOR, 10_000),
    (100_000_000_000 * DECIMAL_FACTOR, 1_000),
    (1_000_000_000_000 * DECIMAL_FACTOR, 100),
)
FLOOR_MINT_AMOUNT = 1

DEFAULT_MAX_MINTS = 1_000


def mint_amount_for_supply(supply: int) -> int:
    """Units one process_mint call adds at ``supply``; 0 once the cap would be crossed."""
    if supply >= SUPPLY_CAP:
        return 0
    amount = FLOOR_MINT_AMOUNT
    for bound, tier_amount in MINT_TIERS:
        if supply <= bound:
            amount = tier_amount
            break
    if supply + amount > SUPPLY_CAP:
        return 0
    return amount


@dataclass
class GuardrailReport:
    required: int
    starting_balance: int
    final_balance: int
    mints: int = 0
    signatures: List[str] = field(default_factory=list)

    @property
    def minted(self) -> int:
        return self.final_balance - self.starting_balance


def ensure_balance(ctx: ClientContext, required_units: int, max_mints: Optional[int] = DEFAULT_MAX_MINTS) -> GuardrailReport:
    """Mint until the payer holds at least ``required_units``.

    Raises SupplyExhaustedError when supply is already at the cap, when a
    mint adds nothing, or when ``max_mints`` calls were not enough.
    """
    balance = read_token_balance(ctx)
    report = GuardrailReport(required_units, balance, balance)
    if balance >= required_units:
        logger.info("balance_ok required=%s balance=%s", required_units, balance)
        return report

    supply = read_mint_supply(ctx)
    if mint_amount_for_supply(supply) == 0:
        raise SupplyExhaustedError(
            f"Cannot reach {to_tokens(required_units)} tokens: supply {to_tokens(supply)} is at the cap"
        )
    ensure_token_account(ctx)

    while balance < required_units:
        if max_mints is not None and report.mints >= max_mints:
            raise SupplyExhaustedError(
                f"Balance still {to_tokens(balance)} after {report.mints} mints (need {to_tokens(required_units)})"
            )
        logger.info(
            "balance_top_up balance=%s required=%s expected_mint=%s",
            balance,
            required_units,
            mint_amount_for_supply(supply),
        )
        try:
            result = process_mint(ctx, ascii_memo())
        except LedgerError as exc:
            if exc.hint == SUPPLY_CAP_HINT:
                raise SupplyExhaustedError(f"Mint rejected at the supply cap after {report.mints} mints: {exc}") from exc
            raise
        report.mints += 1
        report.signatures.append(result.signature)
        new_balance = read_token_balance(ctx)
        if new_balance <= balance:
            raise SupplyExhaustedError(
                "Mint operation succeeded but no tokens were minted (supply limit reached?)"
            )
        supply += new_balance - balance
        balance = new_balance
        report.final_balance = balance

    logger.info("balance_ready balance=%s mints=%s", balance, report.mints)
    return report
