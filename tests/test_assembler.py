"""Tests for instruction ordering."""

import pytest

from memo_clients.assembler import OPERATIONS, MemoShape, Order, assemble, operation
from memo_clients.errors import SimulationError
from memo_clients.tx_builder import build_compute_budget_ix, build_memo_ix, build_process_burn_ix


@pytest.fixture
def parts(payer, programs):
    return (
        build_memo_ix(b"m" * 80),
        build_process_burn_ix(programs, payer.pubkey(), 1_000_000),
        build_compute_budget_ix(200_000),
    )


class TestOrderingTable:
    """Tests for the per-operation ordering table."""

    def test_create_profile_is_budget_first(self):
        """Should put the compute budget first only for create_profile."""
        budget_first = [name for name, spec in OPERATIONS.items() if spec.order is Order.BUDGET_FIRST]
        assert budget_first == ["create_profile"]

    def test_memo_less_operations(self):
        """Should carry no memo for admin, init and delete flows."""
        memo_less = {name for name, spec in OPERATIONS.items() if spec.order is Order.NO_MEMO}
        assert memo_less == {
            "initialize_user_global_burn_stats",
            "delete_profile",
            "initialize_global_counter",
            "initialize_burn_leaderboard",
            "clear_burn_leaderboard",
            "transfer_mint_authority",
        }
        assert all(OPERATIONS[name].memo is MemoShape.NONE for name in memo_less)

    def test_chat_send_is_bare(self):
        """Should send chat messages without a burn envelope."""
        assert operation("send_memo_to_group").memo is MemoShape.BARE

    def test_minimum_burns(self):
        """Should record each operation's minimum burn in tokens."""
        assert operation("create_project").min_burn_tokens == 42_069
        assert operation("burn_for_project").min_burn_tokens == 420
        assert operation("update_profile").min_burn_tokens == 420
        assert operation("burn_for_post").min_burn_tokens == 1

    def test_unknown_operation(self):
        """Should reject names not in the table."""
        with pytest.raises(KeyError, match="Unknown operation"):
            operation("transfer")


class TestAssemble:
    """Tests for assemble()."""

    def test_memo_first(self, parts):
        """Should lay out [memo, program, budget]."""
        memo, program, budget = parts
        assert assemble("process_burn", memo, program, budget) == [memo, program, budget]

    def test_budget_first(self, parts):
        """Should lay out [budget, memo, program] for create_profile."""
        memo, program, budget = parts
        assert assemble("create_profile", memo, program, budget) == [budget, memo, program]

    def test_no_memo(self, parts):
        """Should lay out [budget, program] for admin flows."""
        _, program, budget = parts
        assert assemble("delete_profile", None, program, budget) == [budget, program]

    def test_missing_memo(self, parts):
        """Should refuse to assemble a memo operation without a memo."""
        _, program, budget = parts
        with pytest.raises(ValueError, match="requires a memo"):
            assemble("create_blog", None, program, budget)

    def test_unexpected_memo(self, parts):
        """Should refuse a memo on a memo-less operation."""
        memo, program, budget = parts
        with pytest.raises(ValueError, match="does not carry"):
            assemble("clear_burn_leaderboard", memo, program, budget)


class TestOrderingBreakage:
    """A misplaced memo is rejected on-chain; the classifier names the cause."""

    def test_memo_required_hint(self):
        """Should classify the program's memo-required error."""
        logs = [
            "Program log: AnchorError thrown in programs/memo-blog/src/lib.rs:512. "
            "Error Code: MemoRequired. Error Number: 6012. Error Message: Memo instruction required.",
        ]
        exc = SimulationError("simulation of burn_for_blog failed", raw="InstructionError(1, Custom(6012))", logs=logs)
        assert exc.hint == "Missing memo instruction"
        assert exc.kind == "permanent"
