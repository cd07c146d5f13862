from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from solders.compute_budget import set_compute_unit_limit
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from spl.memo.constants import MEMO_PROGRAM_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID
from spl.token.instructions import AuthorityType, SetAuthorityParams, set_authority

from .pdas import (
    blog_pda,
    burn_leaderboard_pda,
    chat_group_pda,
    derive_ata,
    global_counter_pda,
    mint_authority_pda,
    post_pda,
    profile_pda,
    project_pda,
    user_global_burn_stats_pda,
)

SYS_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
INSTRUCTIONS_SYSVAR_ID = Pubkey.from_string("Sysvar1nstructions1111111111111111111111111")
COMPUTE_BUDGET_PROGRAM_ID = Pubkey.from_string("ComputeBudget111111111111111111111111111111")

PROGRAM_NAMES = ("memo_mint", "memo_burn", "memo_blog", "memo_chat", "memo_project", "memo_forum", "memo_profile")


@dataclass(frozen=True)
class ProgramSet:
    mint_program: Pubkey
    burn_program: Pubkey
    blog_program: Pubkey
    chat_program: Pubkey
    project_program: Pubkey
    forum_program: Pubkey
    profile_program: Pubkey
    token_mint: Pubkey

    @classmethod
    def from_config(cls, config, token_name: str = "memo_token") -> "ProgramSet":
        return cls(
            mint_program=config.get_program_id("memo_mint"),
            burn_program=config.get_program_id("memo_burn"),
            blog_program=config.get_program_id("memo_blog"),
            chat_program=config.get_program_id("memo_chat"),
            project_program=config.get_program_id("memo_project"),
            forum_program=config.get_program_id("memo_forum"),
            profile_program=config.get_program_id("memo_profile"),
            token_mint=config.get_token_mint(token_name),
        )

    def token_account(self, owner: Pubkey) -> Pubkey:
        return derive_ata(owner, self.token_mint)

    def mint_authority(self) -> Pubkey:
        return mint_authority_pda(self.mint_program)[0]

    def burn_stats(self, user: Pubkey) -> Pubkey:
        return user_global_burn_stats_pda(user, self.burn_program)[0]


def sighash(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def u64(value: int) -> bytes:
    return int(value).to_bytes(8, "little")


def encode_ix_data(name: str, *args: int) -> bytes:
    data = sighash(name)
    for arg in args:
        data += u64(arg)
    return data


def decode_ix_args(data: bytes) -> Tuple[bytes, List[int]]:
    """Split instruction data into its discriminator and trailing u64 arguments."""
    body = data[8:]
    if len(body) % 8:
        raise ValueError(f"instruction args are not a whole number of u64 words ({len(body)} bytes)")
    return data[:8], [int.from_bytes(body[i : i + 8], "little") for i in range(0, len(body), 8)]


def _signer(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey, True, True)


def _writable(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey, False, True)


def _readonly(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey, False, False)


def build_memo_ix(memo: bytes, signers: Sequence[Pubkey] = ()) -> Instruction:
    accounts = [AccountMeta(signer, True, False) for signer in signers]
    return Instruction(MEMO_PROGRAM_ID, bytes(memo), accounts)


def build_compute_budget_ix(units: int) -> Instruction:
    return set_compute_unit_limit(int(units))


def build_create_ata_ix(payer: Pubkey, owner: Pubkey, mint: Pubkey, token_program: Pubkey = TOKEN_2022_PROGRAM_ID) -> Instruction:
    ata = derive_ata(owner, mint, token_program)
    accounts = [
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(ata, is_signer=False, is_writable=True),
        AccountMeta(owner, is_signer=False, is_writable=False),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(SYS_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(token_program, is_signer=False, is_writable=False),
    ]
    # 1 = CreateIdempotent
    return Instruction(ASSOCIATED_TOKEN_PROGRAM_ID, bytes([1]), accounts)


# memo-mint


def build_process_mint_ix(programs: ProgramSet, user: Pubkey) -> Instruction:
    # user, mint, mint_authority, token_account, token_program, instructions
    accounts = [
        _signer(user),
        _writable(programs.token_mint),
        _readonly(programs.mint_authority()),
        _writable(programs.token_account(user)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]
    return Instruction(programs.mint_program, encode_ix_data("process_mint"), accounts)


def build_process_mint_to_ix(programs: ProgramSet, caller: Pubkey, recipient: Pubkey) -> Instruction:
    # caller, mint, mint_authority, recipient_token_account, token_program, instructions
    accounts = [
        _signer(caller),
        _writable(programs.token_mint),
        _readonly(programs.mint_authority()),
        _writable(programs.token_account(recipient)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]
    return Instruction(programs.mint_program, encode_ix_data("process_mint_to"), accounts)


# memo-burn


def build_process_burn_ix(programs: ProgramSet, user: Pubkey, amount: int) -> Instruction:
    # user, mint, token_account, user_global_burn_stats, token_program, instructions
    accounts = [
        _signer(user),
        _writable(programs.token_mint),
        _writable(programs.token_account(user)),
        _writable(programs.burn_stats(user)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]
    return Instruction(programs.burn_program, encode_ix_data("process_burn", amount), accounts)


def build_init_burn_stats_ix(programs: ProgramSet, user: Pubkey) -> Instruction:
    # user, user_global_burn_stats, system_program
    accounts = [
        _signer(user),
        _writable(programs.burn_stats(user)),
        _readonly(SYS_PROGRAM_ID),
    ]
    return Instruction(programs.burn_program, encode_ix_data("initialize_user_global_burn_stats"), accounts)


# memo-blog


def _blog_burn_accounts(programs: ProgramSet, user: Pubkey) -> List[AccountMeta]:
    return [
        _signer(user),
        _writable(blog_pda(user, programs.blog_program)[0]),
        _writable(programs.token_mint),
        _writable(programs.token_account(user)),
        _writable(programs.burn_stats(user)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(programs.burn_program),
    ]


def build_create_blog_ix(programs: ProgramSet, user: Pubkey, burn_amount: int) -> Instruction:
    # creator, blog, mint, token_account, burn_stats, token_program, memo_burn, system_program, instructions
    accounts = _blog_burn_accounts(programs, user) + [_readonly(SYS_PROGRAM_ID), _readonly(INSTRUCTIONS_SYSVAR_ID)]
    return Instruction(programs.blog_program, encode_ix_data("create_blog", burn_amount), accounts)


def build_update_blog_ix(programs: ProgramSet, user: Pubkey, burn_amount: int) -> Instruction:
    # creator, blog, mint, token_account, burn_stats, token_program, memo_burn, instructions
    accounts = _blog_burn_accounts(programs, user) + [_readonly(INSTRUCTIONS_SYSVAR_ID)]
    return Instruction(programs.blog_program, encode_ix_data("update_blog", burn_amount), accounts)


def build_burn_for_blog_ix(programs: ProgramSet, user: Pubkey, amount: int) -> Instruction:
    accounts = _blog_burn_accounts(programs, user) + [_readonly(INSTRUCTIONS_SYSVAR_ID)]
    return Instruction(programs.blog_program, encode_ix_data("burn_for_blog", amount), accounts)


def build_mint_for_blog_ix(programs: ProgramSet, user: Pubkey) -> Instruction:
    # minter, blog, mint, mint_authority, token_account, token_program, memo_mint, instructions
    accounts = [
        _signer(user),
        _writable(blog_pda(user, programs.blog_program)[0]),
        _writable(programs.token_mint),
        _readonly(programs.mint_authority()),
        _writable(programs.token_account(user)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(programs.mint_program),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]
    return Instruction(programs.blog_program, encode_ix_data("mint_for_blog"), accounts)


# memo-chat


def build_create_chat_group_ix(programs: ProgramSet, creator: Pubkey, group_id: int, burn_amount: int) -> Instruction:
    # creator, global_counter, chat_group, burn_leaderboard, mint, token_account,
    # burn_stats, token_program, memo_burn, system_program, instructions
    accounts = [
        _signer(creator),
        _writable(global_counter_pda(programs.chat_program)[0]),
        _writable(chat_group_pda(group_id, programs.chat_program)[0]),
        _writable(burn_leaderboard_pda(programs.chat_program)[0]),
        _writable(programs.token_mint),
        _writable(programs.token_account(creator)),
        _writable(programs.burn_stats(creator)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(programs.burn_program),
        _readonly(SYS_PROGRAM_ID),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]
    return Instruction(programs.chat_program, encode_ix_data("create_chat_group", group_id, burn_amount), accounts)


def build_send_memo_to_group_ix(programs: ProgramSet, sender: Pubkey, group_id: int) -> Instruction:
    # sender, chat_group, mint, mint_authority, token_account, token_program, memo_mint, instructions
    accounts = [
        _signer(sender),
        _writable(chat_group_pda(group_id, programs.chat_program)[0]),
        _writable(programs.token_mint),
        _readonly(programs.mint_authority()),
        _writable(programs.token_account(sender)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(programs.mint_program),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]
    return Instruction(programs.chat_program, encode_ix_data("send_memo_to_group", group_id), accounts)


def build_burn_tokens_for_group_ix(programs: ProgramSet, burner: Pubkey, group_id: int, amount: int) -> Instruction:
    # burner, chat_group, burn_leaderboard, mint, token_account, burn_stats, token_program, memo_burn, instructions
    accounts = [
        _signer(burner),
        _writable(chat_group_pda(group_id, programs.chat_program)[0]),
        _writable(burn_leaderboard_pda(programs.chat_program)[0]),
        _writable(programs.token_mint),
        _writable(programs.token_account(burner)),
        _writable(programs.burn_stats(burner)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(programs.burn_program),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]
    return Instruction(programs.chat_program, encode_ix_data("burn_tokens_for_group", group_id, amount), accounts)


# memo-project


def build_create_project_ix(programs: ProgramSet, creator: Pubkey, project_id: int, burn_amount: int) -> Instruction:
    # creator, global_counter, project, burn_leaderboard, mint, token_account,
    # burn_stats, token_program, memo_burn, system_program, instructions
    accounts = [
        _signer(creator),
        _writable(global_counter_pda(programs.project_program)[0]),
        _writable(project_pda(project_id, programs.project_program)[0]),
        _writable(burn_leaderboard_pda(programs.project_program)[0]),
        _writable(programs.token_mint),
        _writable(programs.token_account(creator)),
        _writable(programs.burn_stats(creator)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(programs.burn_program),
        _readonly(SYS_PROGRAM_ID),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]
    return Instruction(programs.project_program, encode_ix_data("create_project", project_id, burn_amount), accounts)


def _project_burn_accounts(programs: ProgramSet, user: Pubkey, project_id: int) -> List[AccountMeta]:
    # user, project, burn_leaderboard, mint, token_account, burn_stats, token_program, memo_burn, instructions
    return [
        _signer(user),
        _writable(project_pda(project_id, programs.project_program)[0]),
        _writable(burn_leaderboard_pda(programs.project_program)[0]),
        _writable(programs.token_mint),
        _writable(programs.token_account(user)),
        _writable(programs.burn_stats(user)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(programs.burn_program),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]


def build_update_project_ix(programs: ProgramSet, updater: Pubkey, project_id: int, burn_amount: int) -> Instruction:
    accounts = _project_burn_accounts(programs, updater, project_id)
    return Instruction(programs.project_program, encode_ix_data("update_project", project_id, burn_amount), accounts)


def build_burn_for_project_ix(programs: ProgramSet, burner: Pubkey, project_id: int, amount: int) -> Instruction:
    accounts = _project_burn_accounts(programs, burner, project_id)
    return Instruction(programs.project_program, encode_ix_data("burn_for_project", project_id, amount), accounts)


# memo-forum


def build_create_post_ix(programs: ProgramSet, creator: Pubkey, post_id: int, burn_amount: int) -> Instruction:
    # creator, global_counter, post, mint, token_account, burn_stats, token_program, memo_burn, system_program, instructions
    accounts = [
        _signer(creator),
        _writable(global_counter_pda(programs.forum_program)[0]),
        _writable(post_pda(post_id, programs.forum_program)[0]),
        _writable(programs.token_mint),
        _writable(programs.token_account(creator)),
        _writable(programs.burn_stats(creator)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(programs.burn_program),
        _readonly(SYS_PROGRAM_ID),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]
    return Instruction(programs.forum_program, encode_ix_data("create_post", post_id, burn_amount), accounts)


def build_burn_for_post_ix(programs: ProgramSet, user: Pubkey, post_id: int, amount: int) -> Instruction:
    # user, post, mint, token_account, burn_stats, token_program, memo_burn, instructions
    accounts = [
        _signer(user),
        _writable(post_pda(post_id, programs.forum_program)[0]),
        _writable(programs.token_mint),
        _writable(programs.token_account(user)),
        _writable(programs.burn_stats(user)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(programs.burn_program),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]
    return Instruction(programs.forum_program, encode_ix_data("burn_for_post", post_id, amount), accounts)


def build_mint_for_post_ix(programs: ProgramSet, user: Pubkey, post_id: int) -> Instruction:
    # user, post, mint, mint_authority, token_account, token_program, memo_mint, instructions
    accounts = [
        _signer(user),
        _writable(post_pda(post_id, programs.forum_program)[0]),
        _writable(programs.token_mint),
        _readonly(programs.mint_authority()),
        _writable(programs.token_account(user)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(programs.mint_program),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]
    return Instruction(programs.forum_program, encode_ix_data("mint_for_post", post_id), accounts)


# memo-profile


def build_create_profile_ix(programs: ProgramSet, user: Pubkey, burn_amount: int) -> Instruction:
    # user, profile, mint, token_account, burn_stats, token_program, memo_burn, system_program, instructions
    accounts = [
        _signer(user),
        _writable(profile_pda(user, programs.profile_program)[0]),
        _writable(programs.token_mint),
        _writable(programs.token_account(user)),
        _writable(programs.burn_stats(user)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(programs.burn_program),
        _readonly(SYS_PROGRAM_ID),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
    ]
    return Instruction(programs.profile_program, encode_ix_data("create_profile", burn_amount), accounts)


def build_update_profile_ix(programs: ProgramSet, user: Pubkey, burn_amount: int) -> Instruction:
    # user, mint, token_account, profile, burn_stats, token_program, instructions, memo_burn
    accounts = [
        _signer(user),
        _writable(programs.token_mint),
        _writable(programs.token_account(user)),
        _writable(profile_pda(user, programs.profile_program)[0]),
        _writable(programs.burn_stats(user)),
        _readonly(TOKEN_2022_PROGRAM_ID),
        _readonly(INSTRUCTIONS_SYSVAR_ID),
        _readonly(programs.burn_program),
    ]
    return Instruction(programs.profile_program, encode_ix_data("update_profile", burn_amount), accounts)


def build_delete_profile_ix(programs: ProgramSet, user: Pubkey) -> Instruction:
    # user, profile
    accounts = [_signer(user), _writable(profile_pda(user, programs.profile_program)[0])]
    return Instruction(programs.profile_program, encode_ix_data("delete_profile"), accounts)


# admin


def build_initialize_global_counter_ix(program_id: Pubkey, admin: Pubkey) -> Instruction:
    accounts = [_signer(admin), _writable(global_counter_pda(program_id)[0]), _readonly(SYS_PROGRAM_ID)]
    return Instruction(program_id, encode_ix_data("initialize_global_counter"), accounts)


def build_initialize_burn_leaderboard_ix(program_id: Pubkey, admin: Pubkey) -> Instruction:
    accounts = [_signer(admin), _writable(burn_leaderboard_pda(program_id)[0]), _readonly(SYS_PROGRAM_ID)]
    return Instruction(program_id, encode_ix_data("initialize_burn_leaderboard"), accounts)


def build_clear_burn_leaderboard_ix(program_id: Pubkey, admin: Pubkey) -> Instruction:
    accounts = [_signer(admin), _writable(burn_leaderboard_pda(program_id)[0])]
    return Instruction(program_id, encode_ix_data("clear_burn_leaderboard"), accounts)


def build_transfer_mint_authority_ix(
    programs: ProgramSet, current_authority: Pubkey, token_program: Pubkey = TOKEN_2022_PROGRAM_ID
) -> Instruction:
    """Hand minting rights on the token mint to the memo_mint authority PDA."""
    return set_authority(
        SetAuthorityParams(
            program_id=token_program,
            account=programs.token_mint,
            authority=AuthorityType.MINT_TOKENS,
            current_authority=current_authority,
            new_authority=programs.mint_authority(),
        )
    )


def instruction_to_dict(ix: Instruction) -> Dict[str, object]:
    return {
        "program_id": str(ix.program_id),
        "data": bytes(ix.data).hex(),
        "accounts": [
            {"pubkey": str(meta.pubkey), "is_signer": meta.is_signer, "is_writable": meta.is_writable}
            for meta in ix.accounts
        ],
    }


def compile_transaction(ixs: Sequence[Instruction], payer, blockhash: Hash) -> VersionedTransaction:
    message = MessageV0.try_compile(payer.pubkey(), list(ixs), [], blockhash)
    return VersionedTransaction(message, [payer])


def message_program_ids(tx: VersionedTransaction) -> List[Pubkey]:
    """Program id of each instruction in the compiled message, in execution order."""
    keys = tx.message.account_keys
    return [keys[ix.program_id_index] for ix in tx.message.instructions]


def find_compute_limit(tx: VersionedTransaction) -> Optional[int]:
    keys = tx.message.account_keys
    for ix in tx.message.instructions:
        data = bytes(ix.data)
        # 2 = SetComputeUnitLimit(u32)
        if keys[ix.program_id_index] == COMPUTE_BUDGET_PROGRAM_ID and data[:1] == b"\x02":
            return int.from_bytes(data[1:5], "little")
    return None
