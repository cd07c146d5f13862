"""Tests for the per-operation clients against a fake RPC client."""

import struct
from types import SimpleNamespace

import pytest
from solders.pubkey import Pubkey
from spl.memo.constants import MEMO_PROGRAM_ID
from spl.token.constants import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID

from memo_clients import operations as ops
from memo_clients.errors import ConfigError, InsufficientBalanceError, PayloadValidationError, SimulationError
from memo_clients.memo_codec import CLEARED, UNCHANGED, BlogCreationData, decode_memo, to_units
from memo_clients.tx_builder import COMPUTE_BUDGET_PROGRAM_ID, decode_ix_args, sighash


def counter_account(total):
    return SimpleNamespace(value=SimpleNamespace(data=bytes(8) + struct.pack("<Q", total)))


def mint_account(owner, authority):
    data = struct.pack("<I", 1) + bytes(authority) + struct.pack("<Q", 0) + bytes([6, 1]) + bytes(36)
    return SimpleNamespace(value=SimpleNamespace(owner=owner, data=data))


def program_ids(result):
    return [ix.program_id for ix in result.instructions]


class TestExecute:
    """Tests for the shared simulate-then-send path."""

    def test_create_blog(self, ctx, fake_client, programs):
        """Should send [memo, program, budget] with a matching burn amount and margin-sized limit."""
        result = ops.create_blog(ctx, name="My Blog", description="About things", burn_amount=to_units(2))
        assert program_ids(result) == [MEMO_PROGRAM_ID, programs.blog_program, COMPUTE_BUDGET_PROGRAM_ID]
        envelope, payload = decode_memo(bytes(result.instructions[0].data))
        _, args = decode_ix_args(bytes(result.instructions[1].data))
        assert envelope.burn_amount == args[0] == to_units(2)
        assert payload == BlogCreationData(creator=str(ctx.pubkey), name="My Blog", description="About things")
        assert result.simulated_units == 12_345
        assert result.compute_limit == 13_580
        assert fake_client.send_raw_transaction.call_count == 1

    def test_explicit_limit_skips_simulation(self, ctx, fake_client):
        """Should not simulate when the caller fixes the compute limit."""
        result = ops.execute(ctx, "process_mint", ops.build_process_mint_ix(ctx.programs, ctx.pubkey), b"m" * 69, compute_limit=50_000)
        assert result.compute_limit == 50_000
        assert result.simulated_units is None
        fake_client.simulate_transaction.assert_not_called()

    def test_simulation_failure_not_sent(self, ctx, fake_client, simulated):
        """Should stop before sending when simulation fails."""
        fake_client.simulate_transaction.return_value = simulated(err="InstructionError(1, Custom(6012))", logs=["Error Code: MemoRequired"])
        with pytest.raises(SimulationError) as info:
            ops.burn_for_blog(ctx, to_units(1), "hello")
        assert info.value.hint == "Missing memo instruction"
        fake_client.send_raw_transaction.assert_not_called()

    def test_reorder(self, ctx, programs):
        """Should send the rearranged sequence when a reorder hook is given."""
        ix = ops.build_burn_for_blog_ix(programs, ctx.pubkey, to_units(1))
        result = ops.execute(ctx, "burn_for_blog", ix, b"m" * 80, reorder=ops.swap_memo_and_program)
        assert program_ids(result)[:2] == [programs.blog_program, MEMO_PROGRAM_ID]


class TestOrdering:
    """Tests for per-operation instruction order."""

    def test_create_profile_budget_first(self, ctx, programs):
        """Should put the compute budget ahead of the memo for create_profile."""
        result = ops.create_profile(ctx, username="alice", about_me="hi")
        assert program_ids(result) == [COMPUTE_BUDGET_PROGRAM_ID, MEMO_PROGRAM_ID, programs.profile_program]

    def test_delete_profile_has_no_memo(self, ctx, programs):
        """Should send only budget and program instructions."""
        result = ops.delete_profile(ctx)
        assert program_ids(result) == [COMPUTE_BUDGET_PROGRAM_ID, programs.profile_program]
        assert result.memo is None

    def test_chat_message_is_bare(self, ctx):
        """Should send chat messages without a burn envelope."""
        result = ops.send_memo_to_group(ctx, 3, "Hello from the smoke test!")
        envelope, payload = decode_memo(result.memo, burn=False)
        assert envelope is None
        assert payload.group_id == 3
        assert payload.sender == str(ctx.pubkey)


class TestValidation:
    """Client-side checks that run before anything is sent."""

    def test_fractional_burn(self, ctx, fake_client):
        """Should reject a burn that is not a whole number of tokens."""
        with pytest.raises(PayloadValidationError, match="whole number"):
            ops.burn_for_blog(ctx, 1_500_000)
        fake_client.simulate_transaction.assert_not_called()

    def test_below_minimum(self, ctx):
        """Should reject a project burn under the 42,069-token minimum."""
        with pytest.raises(PayloadValidationError, match="too small"):
            ops.create_project(ctx, name="P", burn_amount=to_units(1), project_id=0)

    def test_zero_burn_below_minimum(self, ctx, fake_client):
        """Should reject a zero burn where the operation has a minimum."""
        with pytest.raises(PayloadValidationError, match="too small"):
            ops.burn_for_blog(ctx, 0)
        fake_client.simulate_transaction.assert_not_called()

    def test_mint_has_no_minimum(self, ctx, fake_client):
        """Should send a zero-amount envelope for operations without a minimum."""
        result = ops.mint_for_post(ctx, 0, "gm")
        envelope, payload = decode_memo(result.memo)
        assert envelope.burn_amount == 0
        assert payload.message == "gm"
        fake_client.send_raw_transaction.assert_called_once()

    def test_skip_validation(self, ctx, fake_client):
        """Should send an under-minimum burn when validation is off."""
        ops.burn_for_project(ctx, 0, to_units(1), validate=False)
        fake_client.send_raw_transaction.assert_called_once()

    def test_empty_username(self, ctx):
        """Should reject an empty username."""
        with pytest.raises(PayloadValidationError, match="Empty username"):
            ops.create_profile(ctx, username="")


class TestProfileUpdate:
    """Tests for tri-state about_me updates."""

    @pytest.mark.parametrize("about_me", [UNCHANGED, CLEARED])
    def test_about_me_round_trip(self, ctx, about_me):
        """Should carry Unchanged and Cleared distinctly through the memo."""
        result = ops.update_profile(ctx, username="bob", about_me=about_me)
        _, payload = decode_memo(result.memo)
        assert payload.about_me == about_me
        assert payload.username == "bob"


class TestCounters:
    """Tests for id discovery from the global counter."""

    def test_next_group_id(self, ctx, fake_client):
        """Should use the counter total as the next group id."""
        fake_client.get_account_info.return_value = counter_account(7)
        result = ops.create_chat_group(ctx, name="Group")
        _, args = decode_ix_args(bytes(result.instructions[1].data))
        assert args[0] == 7
        _, payload = decode_memo(result.memo)
        assert payload.group_id == 7

    def test_missing_counter(self, ctx):
        """Should ask for the counter to be initialized first."""
        with pytest.raises(PayloadValidationError, match="initialize it first"):
            ops.next_post_id(ctx)


class TestAdmin:
    """Tests for admin flows."""

    def test_forum_has_no_leaderboard(self, ctx):
        """Should refuse a leaderboard for the forum program."""
        with pytest.raises(PayloadValidationError, match="no burn leaderboard"):
            ops.initialize_burn_leaderboard(ctx, "forum")

    def test_init_counter(self, ctx, programs):
        """Should target the selected program with no memo."""
        result = ops.initialize_global_counter(ctx, "project")
        assert program_ids(result) == [COMPUTE_BUDGET_PROGRAM_ID, programs.project_program]
        assert bytes(result.instructions[1].data) == sighash("initialize_global_counter")

    def test_transfer_mint_authority(self, ctx, fake_client, programs):
        """Should move MintTokens authority on the token mint to the memo_mint PDA."""
        fake_client.get_account_info.return_value = mint_account(TOKEN_2022_PROGRAM_ID, ctx.pubkey)
        result = ops.transfer_mint_authority(ctx)
        assert program_ids(result) == [COMPUTE_BUDGET_PROGRAM_ID, TOKEN_2022_PROGRAM_ID]
        ix = result.instructions[1]
        assert [meta.pubkey for meta in ix.accounts] == [programs.token_mint, ctx.pubkey]
        assert bytes(ix.data)[:3] == bytes([6, 0, 1])
        assert bytes(ix.data)[3:35] == bytes(programs.mint_authority())
        assert result.memo is None

    def test_transfer_mint_authority_legacy_token(self, ctx, fake_client):
        """Should follow a mint owned by the legacy token program."""
        fake_client.get_account_info.return_value = mint_account(TOKEN_PROGRAM_ID, ctx.pubkey)
        result = ops.transfer_mint_authority(ctx)
        assert result.instructions[1].program_id == TOKEN_PROGRAM_ID

    def test_transfer_mint_authority_already_set(self, ctx, fake_client, programs):
        """Should send nothing when the PDA already holds the authority."""
        fake_client.get_account_info.return_value = mint_account(TOKEN_2022_PROGRAM_ID, programs.mint_authority())
        assert ops.transfer_mint_authority(ctx) is None
        fake_client.send_raw_transaction.assert_not_called()

    def test_transfer_mint_authority_not_a_token_mint(self, ctx, fake_client):
        """Should refuse a mint account owned by some other program."""
        fake_client.get_account_info.return_value = mint_account(Pubkey.new_unique(), ctx.pubkey)
        with pytest.raises(ConfigError, match="not a token program"):
            ops.transfer_mint_authority(ctx)

    def test_transfer_mint_authority_foreign_authority(self, ctx, fake_client):
        """Should refuse when the payer does not hold the mint authority."""
        fake_client.get_account_info.return_value = mint_account(TOKEN_2022_PROGRAM_ID, Pubkey.new_unique())
        with pytest.raises(PayloadValidationError, match="not the mint authority"):
            ops.transfer_mint_authority(ctx)
        fake_client.simulate_transaction.assert_not_called()


class TestPreconditions:
    """Tests for balance and account preconditions."""

    def test_low_sol(self, ctx, fake_client):
        """Should fail when the payer cannot cover fees."""
        fake_client.get_balance.return_value = SimpleNamespace(value=1_000)
        with pytest.raises(InsufficientBalanceError, match="Insufficient SOL"):
            ops.check_sol_balance(ctx)

    def test_creates_missing_token_account(self, ctx, fake_client):
        """Should create the associated token account when it is missing."""
        assert ops.ensure_token_account(ctx) == ctx.token_account
        fake_client.send_raw_transaction.assert_called_once()

    def test_existing_token_account(self, ctx, fake_client):
        """Should leave an existing token account alone."""
        fake_client.get_account_info.return_value = SimpleNamespace(value=SimpleNamespace(data=bytes(165)))
        ops.ensure_token_account(ctx)
        fake_client.send_raw_transaction.assert_not_called()
