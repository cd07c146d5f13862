from __future__ import annotations

from functools import lru_cache
from typing import Sequence, Tuple

from solders.pubkey import Pubkey
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID

MINT_AUTHORITY_SEED = b"mint_authority"
USER_GLOBAL_BURN_STATS_SEED = b"user_global_burn_stats"
GLOBAL_COUNTER_SEED = b"global_counter"
CHAT_GROUP_SEED = b"chat_group"
PROJECT_SEED = b"project"
POST_SEED = b"post"
BLOG_SEED = b"blog"
PROFILE_SEED = b"profile"
BURN_LEADERBOARD_SEED = b"burn_leaderboard"


def u64_seed(value: int) -> bytes:
    return int(value).to_bytes(8, "little")


@lru_cache(maxsize=1024)
def _find(seeds: Tuple[bytes, ...], program_id: Pubkey) -> Tuple[Pubkey, int]:
    return Pubkey.find_program_address(list(seeds), program_id)


def find_pda(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Derive ``(address, bump)`` for ``seeds`` under ``program_id``; results are cached per process."""
    return _find(tuple(bytes(seed) for seed in seeds), program_id)


def mint_authority_pda(mint_program: Pubkey) -> Tuple[Pubkey, int]:
    return find_pda([MINT_AUTHORITY_SEED], mint_program)


def user_global_burn_stats_pda(user: Pubkey, burn_program: Pubkey) -> Tuple[Pubkey, int]:
    return find_pda([USER_GLOBAL_BURN_STATS_SEED, bytes(user)], burn_program)


def global_counter_pda(program_id: Pubkey) -> Tuple[Pubkey, int]:
    return find_pda([GLOBAL_COUNTER_SEED], program_id)


def chat_group_pda(group_id: int, chat_program: Pubkey) -> Tuple[Pubkey, int]:
    return find_pda([CHAT_GROUP_SEED, u64_seed(group_id)], chat_program)


def project_pda(project_id: int, project_program: Pubkey) -> Tuple[Pubkey, int]:
    return find_pda([PROJECT_SEED, u64_seed(project_id)], project_program)


def post_pda(post_id: int, forum_program: Pubkey) -> Tuple[Pubkey, int]:
    return find_pda([POST_SEED, u64_seed(post_id)], forum_program)


def blog_pda(user: Pubkey, blog_program: Pubkey) -> Tuple[Pubkey, int]:
    return find_pda([BLOG_SEED, bytes(user)], blog_program)


def profile_pda(user: Pubkey, profile_program: Pubkey) -> Tuple[Pubkey, int]:
    return find_pda([PROFILE_SEED, bytes(user)], profile_program)


def burn_leaderboard_pda(program_id: Pubkey) -> Tuple[Pubkey, int]:
    return find_pda([BURN_LEADERBOARD_SEED], program_id)


def derive_ata(owner: Pubkey, mint: Pubkey, token_program: Pubkey = TOKEN_2022_PROGRAM_ID) -> Pubkey:
    return find_pda([bytes(owner), bytes(token_program), bytes(mint)], ASSOCIATED_TOKEN_PROGRAM_ID)[0]


def cache_info():
    return _find.cache_info()
