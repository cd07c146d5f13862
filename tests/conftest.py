"""Pytest configuration and fixtures for memo-clients tests."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from memo_clients.operations import ClientContext
from memo_clients.settings import Settings
from memo_clients.tx_builder import ProgramSet


def make_signature() -> str:
    return str(Keypair().sign_message(b"memo-clients"))


@pytest.fixture
def payer() -> Keypair:
    return Keypair.from_seed(bytes(range(32)))


@pytest.fixture
def programs() -> ProgramSet:
    return ProgramSet(
        mint_program=Pubkey.new_unique(),
        burn_program=Pubkey.new_unique(),
        blog_program=Pubkey.new_unique(),
        chat_program=Pubkey.new_unique(),
        project_program=Pubkey.new_unique(),
        forum_program=Pubkey.new_unique(),
        profile_program=Pubkey.new_unique(),
        token_mint=Pubkey.new_unique(),
    )


@pytest.fixture
def settings(monkeypatch) -> Settings:
    for name in ("SOLANA_RPC", "PAYER_KEYPAIR_PATH", "ANCHOR_TOML", "CU_MARGIN", "SEND_RETRIES", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return Settings(_env_file=None, confirm_sleep_seconds=0.0)


def simulation(units=12_345, err=None, logs=None):
    return SimpleNamespace(value=SimpleNamespace(err=err, logs=logs or [], units_consumed=units))


@pytest.fixture
def simulated():
    """Factory for simulate_transaction responses."""
    return simulation


@pytest.fixture
def fake_client() -> MagicMock:
    """A Client double that simulates, sends and confirms successfully."""
    client = MagicMock()
    client.get_latest_blockhash.return_value = SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))
    client.simulate_transaction.return_value = simulation()
    client.send_raw_transaction.return_value = make_signature()
    client.confirm_transaction.return_value = SimpleNamespace(value=[SimpleNamespace(err=None)])
    client.get_account_info.return_value = SimpleNamespace(value=None)
    client.get_balance.return_value = SimpleNamespace(value=1_000_000_000)
    return client


@pytest.fixture
def ctx(fake_client, payer, programs, settings) -> ClientContext:
    return ClientContext(fake_client, payer, programs, settings, "http://127.0.0.1:8899")
