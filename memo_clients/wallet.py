from __future__ import annotations

import json
import os

from solders.keypair import Keypair

from .errors import ConfigError


def load_keypair(path: str) -> Keypair:
    path = os.path.expanduser(path)
    if not os.path.exists(path):
        raise ConfigError(f"Wallet keypair file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as fh:
            raw = json.load(fh)
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(f"Failed to read wallet keypair {path}: {exc}") from exc
    if isinstance(raw, list):
        secret = bytes(raw)
    elif isinstance(raw, dict) and "secretKey" in raw:
        secret = bytes(raw["secretKey"])
    else:
        raise ConfigError(f"Unsupported keypair file format: {path}")
    try:
        return Keypair.from_bytes(secret)
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(f"Failed to parse wallet keypair {path}: {exc}") from exc
