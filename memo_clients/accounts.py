from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Dict, List, Optional

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solders.pubkey import Pubkey
from spl.token._layouts import ACCOUNT_LAYOUT, MINT_LAYOUT

logger = logging.getLogger("memo_clients")

DISCRIMINATOR_SIZE = 8


class AccountReader:
    """Sequential reader over account data; stops when fields run out, ignores trailing padding."""

    def __init__(self, data: bytes, offset: int = DISCRIMINATOR_SIZE):
        self.data = bytes(data)
        self.o = offset

    def _take(self, size: int) -> bytes:
        if self.o + size > len(self.data):
            raise ValueError(f"account data truncated at offset {self.o} (need {size} bytes, have {len(self.data) - self.o})")
        chunk = self.data[self.o : self.o + size]
        self.o += size
        return chunk

    def pubkey(self) -> Pubkey:
        return Pubkey.from_bytes(self._take(32))

    def u8(self) -> int:
        return self._take(1)[0]

    def u32(self) -> int:
        return int.from_bytes(self._take(4), "little")

    def u64(self) -> int:
        return int.from_bytes(self._take(8), "little", signed=False)

    def i64(self) -> int:
        return int.from_bytes(self._take(8), "little", signed=True)

    def string(self) -> str:
        return self._take(self.u32()).decode("utf-8")

    def option(self, read: Callable[[], Any]) -> Any:
        return read() if self.u8() == 1 else None

    def vec(self, read: Callable[[], Any]) -> List[Any]:
        return [read() for _ in range(self.u32())]


def _parse(data: Optional[bytes], walk: Callable[[AccountReader], Dict[str, Any]]) -> Optional[dict]:
    if not data or len(data) <= DISCRIMINATOR_SIZE:
        return None
    try:
        return walk(AccountReader(data))
    except (ValueError, UnicodeDecodeError) as exc:
        logger.warning("account_decode_failed walker=%s error=%s", walk.__name__, exc)
        return None


def _walk_blog(r: AccountReader) -> Dict[str, Any]:
    return {
        "creator": r.pubkey(),
        "created_at": r.i64(),
        "last_updated": r.i64(),
        "name": r.string(),
        "description": r.string(),
        "image": r.string(),
        "memo_count": r.u64(),
        "burned_amount": r.u64(),
        "minted_amount": r.u64(),
        "last_memo_time": r.i64(),
        "bump": r.u8(),
    }


def _walk_chat_group(r: AccountReader) -> Dict[str, Any]:
    return {
        "group_id": r.u64(),
        "creator": r.pubkey(),
        "created_at": r.i64(),
        "name": r.string(),
        "description": r.string(),
        "image": r.string(),
        "tags": r.vec(r.string),
        "memo_count": r.u64(),
        "burned_amount": r.u64(),
        "min_memo_interval": r.i64(),
        "last_memo_time": r.i64(),
        "bump": r.u8(),
    }


def _walk_project(r: AccountReader) -> Dict[str, Any]:
    return {
        "project_id": r.u64(),
        "creator": r.pubkey(),
        "created_at": r.i64(),
        "last_updated": r.i64(),
        "memo_count": r.u64(),
        "burned_amount": r.u64(),
        "last_memo_time": r.i64(),
        "bump": r.u8(),
        "name": r.string(),
        "description": r.string(),
        "image": r.string(),
        "website": r.string(),
        "tags": r.vec(r.string),
    }


def _walk_post(r: AccountReader) -> Dict[str, Any]:
    return {
        "post_id": r.u64(),
        "creator": r.pubkey(),
        "created_at": r.i64(),
        "last_updated": r.i64(),
        "title": r.string(),
        "content": r.string(),
        "image": r.string(),
        "reply_count": r.u64(),
        "burned_amount": r.u64(),
        "last_reply_time": r.i64(),
        "bump": r.u8(),
    }


def _walk_profile(r: AccountReader) -> Dict[str, Any]:
    return {
        "user": r.pubkey(),
        "username": r.string(),
        "image": r.string(),
        "created_at": r.i64(),
        "last_updated": r.i64(),
        "about_me": r.option(r.string),
        "bump": r.u8(),
    }


def _walk_burn_stats(r: AccountReader) -> Dict[str, Any]:
    return {
        "user": r.pubkey(),
        "total_burned": r.u64(),
        "burn_count": r.u64(),
        "last_burn_time": r.i64(),
        "bump": r.u8(),
    }


def _walk_leaderboard(r: AccountReader) -> Dict[str, Any]:
    current_size = r.u8()
    entries = r.vec(lambda: {"id": r.u64(), "burned_amount": r.u64()})
    return {"current_size": current_size, "entries": entries}


def _walk_counter(r: AccountReader) -> Dict[str, Any]:
    return {"total": r.u64()}


def parse_blog_account(data: Optional[bytes]) -> Optional[dict]:
    return _parse(data, _walk_blog)


def parse_chat_group_account(data: Optional[bytes]) -> Optional[dict]:
    return _parse(data, _walk_chat_group)


def parse_project_account(data: Optional[bytes]) -> Optional[dict]:
    return _parse(data, _walk_project)


def parse_post_account(data: Optional[bytes]) -> Optional[dict]:
    return _parse(data, _walk_post)


def parse_profile_account(data: Optional[bytes]) -> Optional[dict]:
    return _parse(data, _walk_profile)


def parse_burn_stats_account(data: Optional[bytes]) -> Optional[dict]:
    return _parse(data, _walk_burn_stats)


def parse_leaderboard_account(data: Optional[bytes]) -> Optional[dict]:
    return _parse(data, _walk_leaderboard)


def parse_counter_account(data: Optional[bytes]) -> Optional[dict]:
    return _parse(data, _walk_counter)


def _account_bytes(data: Any) -> bytes:
    if isinstance(data, (list, tuple)):
        raw = data[0] if data else b""
        return base64.b64decode(raw) if not isinstance(raw, (bytes, bytearray)) else bytes(raw)
    return bytes(data)


def fetch_account_data(client: Client, address: Pubkey) -> Optional[bytes]:
    info = client.get_account_info(address, commitment=Confirmed).value
    if info is None:
        return None
    return _account_bytes(info.data)


def fetch_account(client: Client, address: Pubkey, parser: Callable[[Optional[bytes]], Optional[dict]]) -> Optional[dict]:
    return parser(fetch_account_data(client, address))


def token_balance(client: Client, token_account: Pubkey) -> int:
    """Raw unit balance of a token account; a missing account counts as zero."""
    data = fetch_account_data(client, token_account)
    if data is None:
        return 0
    return ACCOUNT_LAYOUT.parse(data).amount


def mint_supply(client: Client, mint: Pubkey) -> int:
    data = fetch_account_data(client, mint)
    if data is None:
        raise ValueError(f"Mint account {mint} does not exist")
    return MINT_LAYOUT.parse(data).supply


def fetch_mint(client: Client, mint: Pubkey) -> Optional[dict]:
    """Owning token program, mint authority and supply of a mint account."""
    info = client.get_account_info(mint, commitment=Confirmed).value
    if info is None:
        return None
    layout = MINT_LAYOUT.parse(_account_bytes(info.data))
    authority = Pubkey.from_bytes(bytes(layout.mint_authority)) if layout.mint_authority_option else None
    return {"owner": info.owner, "mint_authority": authority, "supply": layout.supply}
