"""One function per on-chain operation.

Each builds the memo payload, validates it against the signer and the scalar
arguments, builds the program instruction, sizes the compute budget by
simulation and submits. The instruction sequence that is simulated is the
one that is sent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from spl.token.constants import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID

from . import accounts
from .assembler import assemble, operation
from .compute_budget import estimate_compute_units
from .config import ClientConfig
from .errors import ConfigError, InsufficientBalanceError, PayloadValidationError
from .memo_codec import (
    UNCHANGED,
    BlogBurnData,
    BlogCreationData,
    BlogMintData,
    BlogUpdateData,
    ChatGroupBurnData,
    ChatGroupCreationData,
    ChatMessageData,
    FieldUpdate,
    MemoPayload,
    PostBurnData,
    PostCreationData,
    PostMintData,
    ProfileCreationData,
    ProfileUpdateData,
    ProjectBurnData,
    ProjectCreationData,
    ProjectUpdateData,
    ascii_memo,
    check_burn_amount,
    check_mint_memo,
    encode_bare_memo,
    encode_burn_memo,
    to_units,
)
from .pdas import (
    blog_pda,
    burn_leaderboard_pda,
    chat_group_pda,
    global_counter_pda,
    post_pda,
    profile_pda,
    project_pda,
)
from .settings import Settings
from .submitter import send_and_confirm
from .tx_builder import (
    ProgramSet,
    build_burn_for_blog_ix,
    build_burn_for_post_ix,
    build_burn_for_project_ix,
    build_burn_tokens_for_group_ix,
    build_clear_burn_leaderboard_ix,
    build_compute_budget_ix,
    build_create_ata_ix,
    build_create_blog_ix,
    build_create_chat_group_ix,
    build_create_post_ix,
    build_create_profile_ix,
    build_create_project_ix,
    build_delete_profile_ix,
    build_init_burn_stats_ix,
    build_initialize_burn_leaderboard_ix,
    build_initialize_global_counter_ix,
    build_memo_ix,
    build_mint_for_blog_ix,
    build_mint_for_post_ix,
    build_process_burn_ix,
    build_process_mint_ix,
    build_process_mint_to_ix,
    build_send_memo_to_group_ix,
    build_transfer_mint_authority_ix,
    build_update_blog_ix,
    build_update_profile_ix,
    build_update_project_ix,
    compile_transaction,
)
from .wallet import load_keypair

logger = logging.getLogger("memo_clients")

LAMPORTS_PER_SOL = 1_000_000_000
MIN_FEE_LAMPORTS = 10_000_000  # 0.01 SOL covers fees and small rent


@dataclass
class ClientContext:
    client: Client
    payer: Keypair
    programs: ProgramSet
    settings: Settings = field(default_factory=Settings)
    endpoint: str = ""

    @classmethod
    def from_config(cls, config: Optional[ClientConfig] = None, payer: Optional[Keypair] = None) -> "ClientContext":
        config = config or ClientConfig.load()
        endpoint = config.get_endpoint()
        payer = payer or load_keypair(config.get_wallet_path())
        programs = ProgramSet.from_config(config)
        logger.info("client_context endpoint=%s payer=%s env=%s", endpoint, payer.pubkey(), config.get_program_env())
        return cls(Client(endpoint, commitment=Confirmed, timeout=30), payer, programs, config.settings, endpoint)

    @property
    def pubkey(self) -> Pubkey:
        return self.payer.pubkey()

    @property
    def token_account(self) -> Pubkey:
        return self.programs.token_account(self.pubkey)


@dataclass
class OperationResult:
    op: str
    signature: str
    compute_limit: int
    simulated_units: Optional[int]
    memo: Optional[bytes]
    instructions: List[Instruction]


Reorder = Callable[[List[Instruction]], List[Instruction]]


def execute(
    ctx: ClientContext,
    op: str,
    program_ix: Instruction,
    memo: Optional[bytes] = None,
    expect_failure: bool = False,
    compute_limit: Optional[int] = None,
    reorder: Optional[Reorder] = None,
) -> OperationResult:
    """Simulate, size and submit one operation.

    ``reorder`` rearranges the canonical sequence and exists only for
    negative tests that prove the programs reject a misplaced memo.
    """
    memo_ix = build_memo_ix(memo) if memo is not None else None
    sent: List[Instruction] = []

    def build(limit: int) -> VersionedTransaction:
        ixs = assemble(op, memo_ix, program_ix, build_compute_budget_ix(limit))
        if reorder is not None:
            ixs = reorder(list(ixs))
        sent[:] = ixs
        blockhash = ctx.client.get_latest_blockhash(commitment=Confirmed).value.blockhash
        return compile_transaction(ixs, ctx.payer, blockhash)

    simulated = None
    if compute_limit is None:
        plan = estimate_compute_units(ctx.client, build, op, margin=ctx.settings.cu_margin, expect_failure=expect_failure)
        compute_limit, simulated = plan.limit, plan.simulated_units
    signature = send_and_confirm(
        ctx.client,
        lambda: build(compute_limit),
        retries=ctx.settings.send_retries,
        sleep_seconds=ctx.settings.confirm_sleep_seconds,
        label=op,
    )
    return OperationResult(op, signature, compute_limit, simulated, memo, list(sent))


def swap_memo_and_program(ixs: List[Instruction]) -> List[Instruction]:
    """[memo, program, budget] -> [program, memo, budget]."""
    if len(ixs) < 2:
        return ixs
    return [ixs[1], ixs[0]] + ixs[2:]


def burn_memo(
    ctx: ClientContext,
    op: str,
    payload: MemoPayload,
    burn_amount: int,
    expected_id: Optional[int] = None,
    validate: bool = True,
) -> bytes:
    if validate:
        payload.validate(ctx.pubkey, expected_id)
        minimum = operation(op).min_burn_tokens
        if minimum:
            check_burn_amount(burn_amount, minimum)
    return encode_burn_memo(burn_amount, payload, check_length=validate)


def bare_memo(ctx: ClientContext, payload: MemoPayload, expected_id: Optional[int] = None, validate: bool = True) -> bytes:
    if validate:
        payload.validate(ctx.pubkey, expected_id)
    return encode_bare_memo(payload, check_length=validate)


# preconditions


def check_sol_balance(ctx: ClientContext, minimum_lamports: int = MIN_FEE_LAMPORTS) -> int:
    balance = ctx.client.get_balance(ctx.pubkey, commitment=Confirmed).value
    if balance < minimum_lamports:
        raise InsufficientBalanceError(
            f"Insufficient SOL: {balance / LAMPORTS_PER_SOL:.4f} SOL, need {minimum_lamports / LAMPORTS_PER_SOL:.4f} SOL"
        )
    return balance


def ensure_token_account(ctx: ClientContext) -> Pubkey:
    ata = ctx.token_account
    if accounts.fetch_account_data(ctx.client, ata) is not None:
        return ata
    logger.info("create_token_account owner=%s ata=%s", ctx.pubkey, ata)
    ix = build_create_ata_ix(ctx.pubkey, ctx.pubkey, ctx.programs.token_mint)

    def build() -> VersionedTransaction:
        blockhash = ctx.client.get_latest_blockhash(commitment=Confirmed).value.blockhash
        return compile_transaction([ix], ctx.payer, blockhash)

    send_and_confirm(ctx.client, build, retries=ctx.settings.send_retries, label="create_token_account")
    return ata


def ensure_burn_stats(ctx: ClientContext) -> Optional[OperationResult]:
    if accounts.fetch_account_data(ctx.client, ctx.programs.burn_stats(ctx.pubkey)) is not None:
        return None
    return initialize_user_global_burn_stats(ctx)


# memo-mint


def process_mint(ctx: ClientContext, memo: Optional[bytes] = None, validate: bool = True, expect_failure: bool = False) -> OperationResult:
    memo = memo if memo is not None else ascii_memo()
    if validate:
        check_mint_memo(memo)
    ix = build_process_mint_ix(ctx.programs, ctx.pubkey)
    return execute(ctx, "process_mint", ix, memo, expect_failure)


def process_mint_to(
    ctx: ClientContext, recipient: Pubkey, memo: Optional[bytes] = None, validate: bool = True, expect_failure: bool = False
) -> OperationResult:
    memo = memo if memo is not None else ascii_memo("MINT_TO")
    if validate:
        check_mint_memo(memo)
    ix = build_process_mint_to_ix(ctx.programs, ctx.pubkey, recipient)
    return execute(ctx, "process_mint_to", ix, memo, expect_failure)


# memo-burn


def initialize_user_global_burn_stats(ctx: ClientContext) -> OperationResult:
    ix = build_init_burn_stats_ix(ctx.programs, ctx.pubkey)
    return execute(ctx, "initialize_user_global_burn_stats", ix)


def process_burn(
    ctx: ClientContext, amount: int, message: Optional[bytes] = None, validate: bool = True, expect_failure: bool = False
) -> OperationResult:
    message = message if message is not None else ascii_memo("BURN", 64)
    if validate:
        check_burn_amount(amount, operation("process_burn").min_burn_tokens)
    memo = encode_burn_memo(amount, message, check_length=validate)
    ix = build_process_burn_ix(ctx.programs, ctx.pubkey, amount)
    return execute(ctx, "process_burn", ix, memo, expect_failure)


# memo-blog


def create_blog(
    ctx: ClientContext,
    name: str,
    description: str = "",
    image: str = "",
    burn_amount: int = to_units(1),
    validate: bool = True,
    expect_failure: bool = False,
) -> OperationResult:
    payload = BlogCreationData(creator=str(ctx.pubkey), name=name, description=description, image=image)
    memo = burn_memo(ctx, "create_blog", payload, burn_amount, validate=validate)
    ix = build_create_blog_ix(ctx.programs, ctx.pubkey, burn_amount)
    return execute(ctx, "create_blog", ix, memo, expect_failure)


def update_blog(
    ctx: ClientContext,
    name: Optional[str] = None,
    description: Optional[str] = None,
    image: Optional[str] = None,
    burn_amount: int = to_units(1),
    validate: bool = True,
    expect_failure: bool = False,
) -> OperationResult:
    payload = BlogUpdateData(creator=str(ctx.pubkey), name=name, description=description, image=image)
    memo = burn_memo(ctx, "update_blog", payload, burn_amount, validate=validate)
    ix = build_update_blog_ix(ctx.programs, ctx.pubkey, burn_amount)
    return execute(ctx, "update_blog", ix, memo, expect_failure)


def burn_for_blog(
    ctx: ClientContext, amount: int, message: str = "", validate: bool = True, expect_failure: bool = False
) -> OperationResult:
    payload = BlogBurnData(burner=str(ctx.pubkey), message=message)
    memo = burn_memo(ctx, "burn_for_blog", payload, amount, validate=validate)
    ix = build_burn_for_blog_ix(ctx.programs, ctx.pubkey, amount)
    return execute(ctx, "burn_for_blog", ix, memo, expect_failure)


def mint_for_blog(ctx: ClientContext, message: str = "", validate: bool = True, expect_failure: bool = False) -> OperationResult:
    payload = BlogMintData(minter=str(ctx.pubkey), message=message)
    memo = burn_memo(ctx, "mint_for_blog", payload, 0, validate=validate)
    ix = build_mint_for_blog_ix(ctx.programs, ctx.pubkey)
    return execute(ctx, "mint_for_blog", ix, memo, expect_failure)


# memo-chat


def next_group_id(ctx: ClientContext) -> int:
    return _next_id(ctx, ctx.programs.chat_program)


def create_chat_group(
    ctx: ClientContext,
    name: str,
    description: str = "",
    image: str = "",
    tags: Sequence[str] = (),
    min_memo_interval: Optional[int] = None,
    burn_amount: int = to_units(1),
    group_id: Optional[int] = None,
    validate: bool = True,
    expect_failure: bool = False,
) -> OperationResult:
    group_id = next_group_id(ctx) if group_id is None else group_id
    payload = ChatGroupCreationData(
        group_id=group_id,
        name=name,
        description=description,
        image=image,
        tags=list(tags),
        min_memo_interval=min_memo_interval,
    )
    memo = burn_memo(ctx, "create_chat_group", payload, burn_amount, expected_id=group_id, validate=validate)
    ix = build_create_chat_group_ix(ctx.programs, ctx.pubkey, group_id, burn_amount)
    return execute(ctx, "create_chat_group", ix, memo, expect_failure)


def send_memo_to_group(
    ctx: ClientContext,
    group_id: int,
    message: str,
    receiver: Optional[str] = None,
    reply_to_sig: Optional[str] = None,
    validate: bool = True,
    expect_failure: bool = False,
) -> OperationResult:
    payload = ChatMessageData(
        group_id=group_id, sender=str(ctx.pubkey), message=message, receiver=receiver, reply_to_sig=reply_to_sig
    )
    memo = bare_memo(ctx, payload, expected_id=group_id, validate=validate)
    ix = build_send_memo_to_group_ix(ctx.programs, ctx.pubkey, group_id)
    return execute(ctx, "send_memo_to_group", ix, memo, expect_failure)


def burn_tokens_for_group(
    ctx: ClientContext, group_id: int, amount: int, message: str = "", validate: bool = True, expect_failure: bool = False
) -> OperationResult:
    payload = ChatGroupBurnData(group_id=group_id, burner=str(ctx.pubkey), message=message)
    memo = burn_memo(ctx, "burn_tokens_for_group", payload, amount, expected_id=group_id, validate=validate)
    ix = build_burn_tokens_for_group_ix(ctx.programs, ctx.pubkey, group_id, amount)
    return execute(ctx, "burn_tokens_for_group", ix, memo, expect_failure)


# memo-project


def next_project_id(ctx: ClientContext) -> int:
    return _next_id(ctx, ctx.programs.project_program)


def create_project(
    ctx: ClientContext,
    name: str,
    description: str = "",
    image: str = "",
    website: str = "",
    tags: Sequence[str] = (),
    burn_amount: int = to_units(42_069),
    project_id: Optional[int] = None,
    validate: bool = True,
    expect_failure: bool = False,
) -> OperationResult:
    project_id = next_project_id(ctx) if project_id is None else project_id
    payload = ProjectCreationData(
        project_id=project_id, name=name, description=description, image=image, website=website, tags=list(tags)
    )
    memo = burn_memo(ctx, "create_project", payload, burn_amount, expected_id=project_id, validate=validate)
    ix = build_create_project_ix(ctx.programs, ctx.pubkey, project_id, burn_amount)
    return execute(ctx, "create_project", ix, memo, expect_failure)


def update_project(
    ctx: ClientContext,
    project_id: int,
    name: Optional[str] = None,
    description: Optional[str] = None,
    image: Optional[str] = None,
    website: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    burn_amount: int = to_units(42_069),
    validate: bool = True,
    expect_failure: bool = False,
) -> OperationResult:
    payload = ProjectUpdateData(
        project_id=project_id,
        name=name,
        description=description,
        image=image,
        website=website,
        tags=list(tags) if tags is not None else None,
    )
    memo = burn_memo(ctx, "update_project", payload, burn_amount, expected_id=project_id, validate=validate)
    ix = build_update_project_ix(ctx.programs, ctx.pubkey, project_id, burn_amount)
    return execute(ctx, "update_project", ix, memo, expect_failure)


def burn_for_project(
    ctx: ClientContext, project_id: int, amount: int, message: str = "", validate: bool = True, expect_failure: bool = False
) -> OperationResult:
    payload = ProjectBurnData(project_id=project_id, burner=str(ctx.pubkey), message=message)
    memo = burn_memo(ctx, "burn_for_project", payload, amount, expected_id=project_id, validate=validate)
    ix = build_burn_for_project_ix(ctx.programs, ctx.pubkey, project_id, amount)
    return execute(ctx, "burn_for_project", ix, memo, expect_failure)


# memo-forum


def next_post_id(ctx: ClientContext) -> int:
    return _next_id(ctx, ctx.programs.forum_program)


def create_post(
    ctx: ClientContext,
    title: str,
    content: str,
    image: str = "",
    burn_amount: int = to_units(1),
    post_id: Optional[int] = None,
    validate: bool = True,
    expect_failure: bool = False,
) -> OperationResult:
    post_id = next_post_id(ctx) if post_id is None else post_id
    payload = PostCreationData(creator=str(ctx.pubkey), post_id=post_id, title=title, content=content, image=image)
    memo = burn_memo(ctx, "create_post", payload, burn_amount, expected_id=post_id, validate=validate)
    ix = build_create_post_ix(ctx.programs, ctx.pubkey, post_id, burn_amount)
    return execute(ctx, "create_post", ix, memo, expect_failure)


def burn_for_post(
    ctx: ClientContext, post_id: int, amount: int, message: str = "", validate: bool = True, expect_failure: bool = False
) -> OperationResult:
    payload = PostBurnData(user=str(ctx.pubkey), post_id=post_id, message=message)
    memo = burn_memo(ctx, "burn_for_post", payload, amount, expected_id=post_id, validate=validate)
    ix = build_burn_for_post_ix(ctx.programs, ctx.pubkey, post_id, amount)
    return execute(ctx, "burn_for_post", ix, memo, expect_failure)


def mint_for_post(
    ctx: ClientContext, post_id: int, message: str = "", validate: bool = True, expect_failure: bool = False
) -> OperationResult:
    payload = PostMintData(user=str(ctx.pubkey), post_id=post_id, message=message)
    memo = burn_memo(ctx, "mint_for_post", payload, 0, expected_id=post_id, validate=validate)
    ix = build_mint_for_post_ix(ctx.programs, ctx.pubkey, post_id)
    return execute(ctx, "mint_for_post", ix, memo, expect_failure)


# memo-profile


def create_profile(
    ctx: ClientContext,
    username: str,
    image: str = "",
    about_me: Optional[str] = None,
    burn_amount: int = to_units(420),
    validate: bool = True,
    expect_failure: bool = False,
) -> OperationResult:
    payload = ProfileCreationData(user_pubkey=str(ctx.pubkey), username=username, image=image, about_me=about_me)
    memo = burn_memo(ctx, "create_profile", payload, burn_amount, validate=validate)
    ix = build_create_profile_ix(ctx.programs, ctx.pubkey, burn_amount)
    return execute(ctx, "create_profile", ix, memo, expect_failure)


def update_profile(
    ctx: ClientContext,
    username: Optional[str] = None,
    image: Optional[str] = None,
    about_me: FieldUpdate = UNCHANGED,
    burn_amount: int = to_units(420),
    validate: bool = True,
    expect_failure: bool = False,
) -> OperationResult:
    payload = ProfileUpdateData(user_pubkey=str(ctx.pubkey), username=username, image=image, about_me=about_me)
    memo = burn_memo(ctx, "update_profile", payload, burn_amount, validate=validate)
    ix = build_update_profile_ix(ctx.programs, ctx.pubkey, burn_amount)
    return execute(ctx, "update_profile", ix, memo, expect_failure)


def delete_profile(ctx: ClientContext, expect_failure: bool = False) -> OperationResult:
    ix = build_delete_profile_ix(ctx.programs, ctx.pubkey)
    return execute(ctx, "delete_profile", ix, None, expect_failure)


# admin


def _admin_program(ctx: ClientContext, program: str) -> Pubkey:
    mapping = {
        "chat": ctx.programs.chat_program,
        "project": ctx.programs.project_program,
        "forum": ctx.programs.forum_program,
    }
    try:
        return mapping[program]
    except KeyError:
        raise PayloadValidationError(f"Unknown program {program!r}; expected one of {sorted(mapping)}") from None


def initialize_global_counter(ctx: ClientContext, program: str) -> OperationResult:
    ix = build_initialize_global_counter_ix(_admin_program(ctx, program), ctx.pubkey)
    return execute(ctx, "initialize_global_counter", ix)


def initialize_burn_leaderboard(ctx: ClientContext, program: str) -> OperationResult:
    if program == "forum":
        raise PayloadValidationError("memo_forum has no burn leaderboard")
    ix = build_initialize_burn_leaderboard_ix(_admin_program(ctx, program), ctx.pubkey)
    return execute(ctx, "initialize_burn_leaderboard", ix)


def clear_burn_leaderboard(ctx: ClientContext, program: str) -> OperationResult:
    if program == "forum":
        raise PayloadValidationError("memo_forum has no burn leaderboard")
    ix = build_clear_burn_leaderboard_ix(_admin_program(ctx, program), ctx.pubkey)
    return execute(ctx, "clear_burn_leaderboard", ix)


def transfer_mint_authority(ctx: ClientContext) -> Optional[OperationResult]:
    """Make the memo_mint authority PDA the mint authority of the token mint.

    The payer must hold the current authority. Returns None when the PDA
    already owns minting rights.
    """
    mint = accounts.fetch_mint(ctx.client, ctx.programs.token_mint)
    if mint is None:
        raise ConfigError(f"Token mint {ctx.programs.token_mint} does not exist")
    if mint["owner"] not in (TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID):
        raise ConfigError(f"Token mint {ctx.programs.token_mint} is owned by {mint['owner']}, not a token program")
    target = ctx.programs.mint_authority()
    if mint["mint_authority"] == target:
        logger.info("mint_authority_already_set mint=%s authority=%s", ctx.programs.token_mint, target)
        return None
    if mint["mint_authority"] != ctx.pubkey:
        raise PayloadValidationError(
            f"Payer {ctx.pubkey} is not the mint authority (current: {mint['mint_authority']})"
        )
    ix = build_transfer_mint_authority_ix(ctx.programs, ctx.pubkey, token_program=mint["owner"])
    return execute(ctx, "transfer_mint_authority", ix)


# readers


def _next_id(ctx: ClientContext, program_id: Pubkey) -> int:
    counter = accounts.fetch_account(ctx.client, global_counter_pda(program_id)[0], accounts.parse_counter_account)
    if counter is None:
        raise PayloadValidationError(f"Global counter for {program_id} does not exist; initialize it first")
    return counter["total"]


def read_blog(ctx: ClientContext, owner: Optional[Pubkey] = None) -> Optional[dict]:
    address = blog_pda(owner or ctx.pubkey, ctx.programs.blog_program)[0]
    return accounts.fetch_account(ctx.client, address, accounts.parse_blog_account)


def read_chat_group(ctx: ClientContext, group_id: int) -> Optional[dict]:
    address = chat_group_pda(group_id, ctx.programs.chat_program)[0]
    return accounts.fetch_account(ctx.client, address, accounts.parse_chat_group_account)


def read_project(ctx: ClientContext, project_id: int) -> Optional[dict]:
    address = project_pda(project_id, ctx.programs.project_program)[0]
    return accounts.fetch_account(ctx.client, address, accounts.parse_project_account)


def read_post(ctx: ClientContext, post_id: int) -> Optional[dict]:
    address = post_pda(post_id, ctx.programs.forum_program)[0]
    return accounts.fetch_account(ctx.client, address, accounts.parse_post_account)


def read_profile(ctx: ClientContext, owner: Optional[Pubkey] = None) -> Optional[dict]:
    address = profile_pda(owner or ctx.pubkey, ctx.programs.profile_program)[0]
    return accounts.fetch_account(ctx.client, address, accounts.parse_profile_account)


def read_burn_stats(ctx: ClientContext, owner: Optional[Pubkey] = None) -> Optional[dict]:
    return accounts.fetch_account(ctx.client, ctx.programs.burn_stats(owner or ctx.pubkey), accounts.parse_burn_stats_account)


def read_leaderboard(ctx: ClientContext, program: str) -> Optional[dict]:
    address = burn_leaderboard_pda(_admin_program(ctx, program))[0]
    return accounts.fetch_account(ctx.client, address, accounts.parse_leaderboard_account)


def read_counter(ctx: ClientContext, program: str) -> Optional[dict]:
    address = global_counter_pda(_admin_program(ctx, program))[0]
    return accounts.fetch_account(ctx.client, address, accounts.parse_counter_account)


def read_token_balance(ctx: ClientContext, owner: Optional[Pubkey] = None) -> int:
    return accounts.token_balance(ctx.client, ctx.programs.token_account(owner or ctx.pubkey))


def read_mint_supply(ctx: ClientContext) -> int:
    return accounts.mint_supply(ctx.client, ctx.programs.token_mint)

