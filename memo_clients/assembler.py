"""Instruction ordering per operation.

The programs read the memo through the instructions sysvar at a fixed index,
so each operation has exactly one legal layout. ``OPERATIONS`` is the single
table of record; ``assemble`` refuses anything else.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, List, Optional

from solders.instruction import Instruction


class Order(enum.Enum):
    MEMO_FIRST = "A"  # [memo, program_ix, compute_budget]
    BUDGET_FIRST = "B"  # [compute_budget, memo, program_ix]
    NO_MEMO = "admin"  # [compute_budget, program_ix]


class MemoShape(enum.Enum):
    BURN = "burn"
    BARE = "bare"
    ASCII = "ascii"
    NONE = "none"


@dataclass(frozen=True)
class OperationSpec:
    name: str
    program: str
    order: Order
    memo: MemoShape
    default_cu: int
    min_burn_tokens: int = 0


OPERATIONS: Dict[str, OperationSpec] = {
    spec.name: spec
    for spec in (
        OperationSpec("process_mint", "memo_mint", Order.MEMO_FIRST, MemoShape.ASCII, 400_000),
        OperationSpec("process_mint_to", "memo_mint", Order.MEMO_FIRST, MemoShape.ASCII, 400_000),
        OperationSpec("process_burn", "memo_burn", Order.MEMO_FIRST, MemoShape.BURN, 400_000, 1),
        OperationSpec("initialize_user_global_burn_stats", "memo_burn", Order.NO_MEMO, MemoShape.NONE, 200_000),
        OperationSpec("create_blog", "memo_blog", Order.MEMO_FIRST, MemoShape.BURN, 600_000, 1),
        OperationSpec("update_blog", "memo_blog", Order.MEMO_FIRST, MemoShape.BURN, 600_000, 1),
        OperationSpec("burn_for_blog", "memo_blog", Order.MEMO_FIRST, MemoShape.BURN, 600_000, 1),
        OperationSpec("mint_for_blog", "memo_blog", Order.MEMO_FIRST, MemoShape.BURN, 600_000),
        OperationSpec("create_chat_group", "memo_chat", Order.MEMO_FIRST, MemoShape.BURN, 600_000, 1),
        OperationSpec("send_memo_to_group", "memo_chat", Order.MEMO_FIRST, MemoShape.BARE, 400_000),
        OperationSpec("burn_tokens_for_group", "memo_chat", Order.MEMO_FIRST, MemoShape.BURN, 600_000, 1),
        OperationSpec("create_project", "memo_project", Order.MEMO_FIRST, MemoShape.BURN, 600_000, 42_069),
        OperationSpec("update_project", "memo_project", Order.MEMO_FIRST, MemoShape.BURN, 600_000, 42_069),
        OperationSpec("burn_for_project", "memo_project", Order.MEMO_FIRST, MemoShape.BURN, 600_000, 420),
        OperationSpec("create_post", "memo_forum", Order.MEMO_FIRST, MemoShape.BURN, 600_000, 1),
        OperationSpec("burn_for_post", "memo_forum", Order.MEMO_FIRST, MemoShape.BURN, 600_000, 1),
        OperationSpec("mint_for_post", "memo_forum", Order.MEMO_FIRST, MemoShape.BURN, 600_000),
        OperationSpec("create_profile", "memo_profile", Order.BUDGET_FIRST, MemoShape.BURN, 600_000, 420),
        OperationSpec("update_profile", "memo_profile", Order.MEMO_FIRST, MemoShape.BURN, 600_000, 420),
        OperationSpec("delete_profile", "memo_profile", Order.NO_MEMO, MemoShape.NONE, 100_000),
        OperationSpec("initialize_global_counter", "*", Order.NO_MEMO, MemoShape.NONE, 200_000),
        OperationSpec("initialize_burn_leaderboard", "*", Order.NO_MEMO, MemoShape.NONE, 200_000),
        OperationSpec("clear_burn_leaderboard", "*", Order.NO_MEMO, MemoShape.NONE, 200_000),
        OperationSpec("transfer_mint_authority", "memo_mint", Order.NO_MEMO, MemoShape.NONE, 200_000),
    )
}


def operation(name: str) -> OperationSpec:
    try:
        return OPERATIONS[name]
    except KeyError:
        raise KeyError(f"Unknown operation {name!r}") from None


def memo_first(memo_ix: Instruction, program_ix: Instruction, budget_ix: Instruction) -> List[Instruction]:
    return [memo_ix, program_ix, budget_ix]


def budget_first(memo_ix: Instruction, program_ix: Instruction, budget_ix: Instruction) -> List[Instruction]:
    return [budget_ix, memo_ix, program_ix]


def without_memo(program_ix: Instruction, budget_ix: Instruction) -> List[Instruction]:
    return [budget_ix, program_ix]


def assemble(op: str, memo_ix: Optional[Instruction], program_ix: Instruction, budget_ix: Instruction) -> List[Instruction]:
    spec = operation(op)
    if spec.order is Order.NO_MEMO:
        if memo_ix is not None:
            raise ValueError(f"{op} does not carry a memo instruction")
        return without_memo(program_ix, budget_ix)
    if memo_ix is None:
        raise ValueError(f"{op} requires a memo instruction")
    if spec.order is Order.BUDGET_FIRST:
        return budget_first(memo_ix, program_ix, budget_ix)
    return memo_first(memo_ix, program_ix, budget_ix)
