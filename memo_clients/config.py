"""Project configuration resolved from Anchor.toml plus environment overrides.

The manifest is located by walking upward from the working directory. Endpoint
and wallet lookups degrade to documented defaults with a warning; program and
mint lookups fail hard because nothing downstream can run without them.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional

from solders.pubkey import Pubkey

from .errors import ConfigError
from .settings import Settings

logger = logging.getLogger("memo_clients")

MANIFEST_NAME = "Anchor.toml"
MAX_SEARCH_DEPTH = 5
DEFAULT_RPC_URL = "https://rpc.testnet.x1.xyz"
DEFAULT_WALLET_PATH = "~/.config/solana/id.json"
PROGRAM_ENVS = ("testnet", "mainnet")
DEFAULT_PROGRAM_ENV = "testnet"


def find_manifest(start: Optional[Path] = None, max_depth: int = MAX_SEARCH_DEPTH) -> Optional[Path]:
    path = (start or Path.cwd()).resolve()
    for _ in range(max_depth + 1):
        candidate = path / MANIFEST_NAME
        if candidate.is_file():
            return candidate
        if path.parent == path:
            break
        path = path.parent
    return None


def normalize_name(name: str) -> str:
    return name.strip().replace("-", "_")


class ClientConfig:
    def __init__(self, manifest: Optional[Dict[str, Any]], settings: Optional[Settings] = None, source: Optional[Path] = None, error: Optional[str] = None):
        self.manifest = manifest
        self.settings = settings or Settings()
        self.source = source
        self.error = error

    @classmethod
    def load(cls, path: Optional[Path] = None, settings: Optional[Settings] = None) -> "ClientConfig":
        settings = settings or Settings()
        if path is None and settings.anchor_toml:
            path = Path(settings.anchor_toml).expanduser()
        if path is None:
            path = find_manifest()
        if path is None:
            return cls(None, settings, error=f"{MANIFEST_NAME} not found within {MAX_SEARCH_DEPTH} parent directories")
        try:
            with open(path, "rb") as fh:
                data = tomllib.load(fh)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            return cls(None, settings, source=path, error=f"could not read {path}: {exc}")
        return cls(data, settings, source=path)

    def _provider(self) -> Dict[str, Any]:
        if self.manifest is None:
            return {}
        return self.manifest.get("provider", {}) or {}

    def get_endpoint(self) -> str:
        if self.settings.solana_rpc:
            return self.settings.solana_rpc
        cluster = self._provider().get("cluster")
        if not cluster:
            logger.warning("config_fallback key=provider.cluster reason=%s default=%s", self.error or "missing", DEFAULT_RPC_URL)
            return DEFAULT_RPC_URL
        return cluster

    def get_wallet_path(self) -> str:
        if self.settings.payer_keypair_path:
            return os.path.expanduser(self.settings.payer_keypair_path)
        wallet = self._provider().get("wallet")
        if not wallet:
            logger.warning("config_fallback key=provider.wallet reason=%s default=%s", self.error or "missing", DEFAULT_WALLET_PATH)
            wallet = DEFAULT_WALLET_PATH
        return os.path.expanduser(wallet)

    def get_program_env(self) -> str:
        env = str(self._provider().get("program_env", DEFAULT_PROGRAM_ENV)).strip().lower()
        if env not in PROGRAM_ENVS:
            logger.warning("config_invalid_program_env value=%s fallback=%s", env, DEFAULT_PROGRAM_ENV)
            return DEFAULT_PROGRAM_ENV
        return env

    def _table(self, section: str) -> Dict[str, str]:
        if self.manifest is None:
            raise ConfigError(f"Cannot resolve {section}: {self.error}")
        env = self.get_program_env()
        table = (self.manifest.get(section, {}) or {}).get(env)
        if table is None:
            raise ConfigError(f"[{section}.{env}] section missing from {self.source}")
        return {normalize_name(key): value for key, value in table.items()}

    def _lookup(self, section: str, name: str) -> Pubkey:
        table = self._table(section)
        value = table.get(normalize_name(name))
        if value is None:
            raise ConfigError(f"{name} not found in [{section}.{self.get_program_env()}]")
        try:
            return Pubkey.from_string(value)
        except Exception as exc:  # noqa: BLE001
            raise ConfigError(f"{name} in [{section}.{self.get_program_env()}] is not a valid pubkey: {exc}") from exc

    def get_program_id(self, name: str) -> Pubkey:
        return self._lookup("programs", name)

    def get_token_mint(self, name: str) -> Pubkey:
        return self._lookup("tokens", name)

    def get_all_program_ids(self) -> Dict[str, Pubkey]:
        return {name: self._lookup("programs", name) for name in self._table("programs")}
