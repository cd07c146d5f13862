from __future__ import annotations

import logging
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    solana_rpc: Optional[str] = None  # overrides provider.cluster when set
    payer_keypair_path: Optional[str] = None  # overrides provider.wallet when set
    anchor_toml: Optional[str] = None  # explicit manifest path, skips the upward search
    cu_margin: float = 1.10
    send_retries: int = 3
    confirm_sleep_seconds: float = 0.5
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @field_validator("cu_margin")
    @classmethod
    def _margin_in_range(cls, value: float) -> float:
        if not 1.02 <= value <= 1.20:
            raise ValueError(f"cu_margin must lie in [1.02, 1.20], got {value}")
        return value

    @field_validator("send_retries")
    @classmethod
    def _retries_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("send_retries must be at least 1")
        return value


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    name = (level or Settings().log_level).upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO))
    return logging.getLogger("memo_clients")
