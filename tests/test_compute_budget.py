"""Tests for compute-unit estimation."""

import pytest
from solders.hash import Hash

from memo_clients.compute_budget import MAX_COMPUTE_UNITS, apply_margin, estimate_compute_units, simulation_ceiling
from memo_clients.errors import SimulationError
from memo_clients.tx_builder import (
    build_compute_budget_ix,
    build_create_blog_ix,
    build_memo_ix,
    compile_transaction,
    find_compute_limit,
)


@pytest.fixture
def build(payer, programs):
    built = []

    def _build(limit):
        ixs = [
            build_memo_ix(b"m" * 80),
            build_create_blog_ix(programs, payer.pubkey(), 1_000_000),
            build_compute_budget_ix(limit),
        ]
        tx = compile_transaction(ixs, payer, Hash.default())
        built.append(tx)
        return tx

    _build.built = built
    return _build


class TestApplyMargin:
    """Tests for the safety margin."""

    def test_ceil(self):
        """Should round up U * margin."""
        assert apply_margin(12_345, 1.10) == 13_580

    def test_exact_product(self):
        """Should not add a unit when the product is already whole."""
        assert apply_margin(100_000, 1.10) == 110_000

    def test_capped(self):
        """Should never exceed the per-transaction maximum."""
        assert apply_margin(1_300_000, 1.20) == MAX_COMPUTE_UNITS


class TestEstimate:
    """Tests for estimate_compute_units()."""

    def test_simulated_limit(self, fake_client, build, simulated):
        """Should size the final limit as ceil(U * 1.10)."""
        fake_client.simulate_transaction.return_value = simulated(units=12_345)
        plan = estimate_compute_units(fake_client, build, "create_blog")
        assert plan.limit == 13_580
        assert plan.simulated_units == 12_345
        assert plan.source == "simulated"

    def test_simulates_at_ceiling(self, fake_client, build):
        """Should simulate with the generous ceiling for the memo shape."""
        estimate_compute_units(fake_client, build, "create_blog")
        assert find_compute_limit(build.built[0]) == simulation_ceiling("create_blog") == 1_000_000
        _, kwargs = fake_client.simulate_transaction.call_args
        assert kwargs["sig_verify"] is False

    def test_default_when_units_missing(self, fake_client, build, simulated):
        """Should fall back to the operation default when no units are reported."""
        fake_client.simulate_transaction.return_value = simulated(units=None)
        plan = estimate_compute_units(fake_client, build, "create_blog")
        assert plan.limit == 600_000
        assert plan.source == "default"

    def test_simulation_error(self, fake_client, build, simulated):
        """Should raise with the classified hint when simulation fails."""
        fake_client.simulate_transaction.return_value = simulated(
            units=5_000, err="InstructionError(1, Custom(6001))", logs=["Program log: Error Code: BurnAmountTooSmall"]
        )
        with pytest.raises(SimulationError) as info:
            estimate_compute_units(fake_client, build, "create_blog")
        assert info.value.hint == "Burn amount below the program minimum"

    def test_expected_failure_still_raises(self, fake_client, build, simulated):
        """Should raise for an expected failure so the caller can confirm it."""
        fake_client.simulate_transaction.return_value = simulated(err="InstructionError(0, Custom(1))")
        with pytest.raises(SimulationError):
            estimate_compute_units(fake_client, build, "create_blog", expect_failure=True)

    def test_transport_error(self, fake_client, build):
        """Should wrap RPC failures in SimulationError."""
        fake_client.simulate_transaction.side_effect = ConnectionError("connection refused")
        with pytest.raises(SimulationError, match="connection refused") as info:
            estimate_compute_units(fake_client, build, "create_blog")
        assert info.value.kind == "retryable"

    def test_margin_range(self, fake_client, build):
        """Should reject margins outside [1.02, 1.20]."""
        with pytest.raises(ValueError, match="margin"):
            estimate_compute_units(fake_client, build, "create_blog", margin=1.5)
