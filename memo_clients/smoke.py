"""End-to-end smoke scenarios against a live cluster.

Each scenario tops up the payer first, then runs its operations in order and
checks the decoded account after every step. A failed check raises
VerificationError and stops the scenario.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from . import accounts
from .errors import MemoClientError, SimulationError, VerificationError
from .guardrail import ensure_balance
from .memo_codec import BlogBurnData, SetTo, decode_memo, to_units
from .operations import (
    ClientContext,
    OperationResult,
    burn_for_blog,
    burn_for_post,
    burn_for_project,
    burn_memo,
    burn_tokens_for_group,
    create_blog,
    create_chat_group,
    create_post,
    create_profile,
    create_project,
    delete_profile,
    ensure_burn_stats,
    execute,
    mint_for_blog,
    mint_for_post,
    next_group_id,
    next_post_id,
    next_project_id,
    process_burn,
    read_blog,
    read_burn_stats,
    read_chat_group,
    read_post,
    read_profile,
    read_project,
    send_memo_to_group,
    swap_memo_and_program,
    update_blog,
    update_profile,
    update_project,
)
from .pdas import profile_pda
from .rpc import fetch_transaction_memos
from .tx_builder import build_burn_for_blog_ix
from .verify import verify_absent, verify_account, verify_memo

logger = logging.getLogger("memo_clients")

ONE_TOKEN = to_units(1)


@dataclass
class ScenarioReport:
    name: str
    steps: List[str] = field(default_factory=list)
    signatures: Dict[str, str] = field(default_factory=dict)

    def record(self, step: str, result: Optional[OperationResult] = None) -> None:
        self.steps.append(step)
        if result is not None:
            self.signatures[step] = result.signature
            logger.info("smoke_step scenario=%s step=%s sig=%s cu=%s", self.name, step, result.signature, result.compute_limit)
        else:
            logger.info("smoke_step scenario=%s step=%s", self.name, step)


def verify_landed_memo(ctx: ClientContext, result: OperationResult, burn: bool = True) -> None:
    """Fetch the confirmed transaction and check its memo decodes to what was sent."""
    if result.memo is None:
        return
    memos = fetch_transaction_memos(ctx.endpoint, result.signature)
    if not memos:
        raise VerificationError(f"{result.op} memo", [("memo", "present", None)])
    envelope, sent_payload = decode_memo(result.memo, burn=burn)
    verify_memo(f"{result.op} memo", memos[0], sent_payload, envelope.burn_amount if envelope else None)


def blog_lifecycle(ctx: ClientContext) -> ScenarioReport:
    report = ScenarioReport("blog")
    ensure_balance(ctx, to_units(10))

    before = read_blog(ctx)
    if before is None:
        result = create_blog(
            ctx,
            name="Smoke Test Blog",
            description="A comprehensive test blog",
            image="https://example.com/blog-cover.png",
            burn_amount=ONE_TOKEN,
        )
        verify_landed_memo(ctx, result)
        before = verify_account(
            "blog after create",
            read_blog(ctx),
            equals={
                "creator": ctx.pubkey,
                "name": "Smoke Test Blog",
                "description": "A comprehensive test blog",
                "image": "https://example.com/blog-cover.png",
                "burned_amount": ONE_TOKEN,
            },
            timestamps=("created_at",),
        )
        report.record("create", result)
    else:
        logger.info("smoke_skip scenario=blog step=create reason=exists")
        report.record("create (existing)")

    result = update_blog(
        ctx, name="Updated Smoke Test Blog", description="This blog has been updated", burn_amount=ONE_TOKEN
    )
    before = verify_account(
        "blog after update",
        read_blog(ctx),
        equals={"name": "Updated Smoke Test Blog", "description": "This blog has been updated"},
        previous=before,
        deltas={"burned_amount": ONE_TOKEN},
        timestamps=("last_updated",),
    )
    report.record("update", result)

    result = burn_for_blog(ctx, ONE_TOKEN, "Supporting this awesome blog!")
    before = verify_account(
        "blog after burn",
        read_blog(ctx),
        previous=before,
        deltas={"burned_amount": ONE_TOKEN},
        increased=("memo_count",),
        timestamps=("last_memo_time",),
    )
    report.record("burn", result)

    result = mint_for_blog(ctx, "Rewarding blog creator!")
    verify_account(
        "blog after mint",
        read_blog(ctx),
        previous=before,
        increased=("memo_count", "minted_amount"),
        timestamps=("last_memo_time",),
    )
    report.record("mint", result)
    return report


def profile_crud(ctx: ClientContext) -> ScenarioReport:
    report = ScenarioReport("profile")
    ensure_balance(ctx, to_units(840))

    if read_profile(ctx) is not None:
        report.record("delete (stale)", delete_profile(ctx))

    result = create_profile(
        ctx, username="SmokeTestUser", image="c:32x32:test_image_data", about_me="Smoke test profile", burn_amount=to_units(420)
    )
    verify_landed_memo(ctx, result)
    before = verify_account(
        "profile after create",
        read_profile(ctx),
        equals={
            "user": ctx.pubkey,
            "username": "SmokeTestUser",
            "image": "c:32x32:test_image_data",
            "about_me": "Smoke test profile",
        },
        timestamps=("created_at",),
    )
    report.record("create", result)

    result = update_profile(
        ctx,
        username="UpdatedUser",
        image="c:64x64:updated_image_data",
        about_me=SetTo("Updated smoke test profile"),
        burn_amount=to_units(420),
    )
    verify_account(
        "profile after update",
        read_profile(ctx),
        equals={
            "username": "UpdatedUser",
            "image": "c:64x64:updated_image_data",
            "about_me": "Updated smoke test profile",
        },
        previous=before,
        timestamps=("last_updated",),
    )
    report.record("update", result)

    result = delete_profile(ctx)
    address = profile_pda(ctx.pubkey, ctx.programs.profile_program)[0]
    verify_absent("profile after delete", accounts.fetch_account_data(ctx.client, address))
    report.record("delete", result)
    return report


def chat_flow(ctx: ClientContext) -> ScenarioReport:
    report = ScenarioReport("chat")
    ensure_balance(ctx, to_units(3))

    group_id = next_group_id(ctx)
    result = create_chat_group(
        ctx,
        name="Smoke Test Group",
        description="Group created by the smoke test",
        tags=["smoke", "test"],
        min_memo_interval=0,
        burn_amount=ONE_TOKEN,
        group_id=group_id,
    )
    verify_landed_memo(ctx, result)
    before = verify_account(
        "chat group after create",
        read_chat_group(ctx, group_id),
        equals={"group_id": group_id, "name": "Smoke Test Group", "creator": ctx.pubkey, "burned_amount": ONE_TOKEN},
    )
    report.record("create", result)

    result = send_memo_to_group(ctx, group_id, "Hello from the smoke test!")
    verify_landed_memo(ctx, result, burn=False)
    before = verify_account(
        "chat group after send",
        read_chat_group(ctx, group_id),
        previous=before,
        deltas={"memo_count": 1},
        timestamps=("last_memo_time",),
    )
    report.record("send", result)

    result = burn_tokens_for_group(ctx, group_id, ONE_TOKEN, "Burning for the smoke test group")
    verify_account(
        "chat group after burn",
        read_chat_group(ctx, group_id),
        previous=before,
        deltas={"burned_amount": ONE_TOKEN},
    )
    report.record("burn", result)
    return report


def project_flow(ctx: ClientContext) -> ScenarioReport:
    report = ScenarioReport("project")
    create_burn = to_units(42_069)
    support_burn = to_units(420)
    ensure_balance(ctx, 2 * create_burn + support_burn)

    project_id = next_project_id(ctx)
    result = create_project(
        ctx,
        name="Smoke Test Project",
        description="Project created by the smoke test",
        image="https://example.com/project.png",
        website="https://example.com",
        tags=["smoke", "test"],
        burn_amount=create_burn,
        project_id=project_id,
    )
    verify_landed_memo(ctx, result)
    before = verify_account(
        "project after create",
        read_project(ctx, project_id),
        equals={
            "project_id": project_id,
            "creator": ctx.pubkey,
            "name": "Smoke Test Project",
            "website": "https://example.com",
            "tags": ["smoke", "test"],
            "burned_amount": create_burn,
            "memo_count": 0,
        },
    )
    report.record("create", result)

    result = burn_for_project(ctx, project_id, support_burn, "Supporting the smoke test project")
    before = verify_account(
        "project after burn",
        read_project(ctx, project_id),
        previous=before,
        deltas={"burned_amount": support_burn},
        timestamps=("last_memo_time",),
    )
    report.record("burn", result)

    result = update_project(
        ctx, project_id, name="Updated Smoke Test Project", description="Updated by the smoke test", burn_amount=create_burn
    )
    verify_account(
        "project after update",
        read_project(ctx, project_id),
        equals={"name": "Updated Smoke Test Project", "description": "Updated by the smoke test"},
        previous=before,
        deltas={"burned_amount": create_burn},
        timestamps=("last_updated",),
    )
    report.record("update", result)
    return report


def forum_flow(ctx: ClientContext) -> ScenarioReport:
    report = ScenarioReport("forum")
    ensure_balance(ctx, to_units(2))

    post_id = next_post_id(ctx)
    result = create_post(
        ctx, title="Smoke Test Post", content="Post created by the smoke test", burn_amount=ONE_TOKEN, post_id=post_id
    )
    verify_landed_memo(ctx, result)
    before = verify_account(
        "post after create",
        read_post(ctx, post_id),
        equals={"post_id": post_id, "creator": ctx.pubkey, "title": "Smoke Test Post", "burned_amount": ONE_TOKEN},
    )
    report.record("create", result)

    result = burn_for_post(ctx, post_id, ONE_TOKEN, "Burning for this post")
    before = verify_account(
        "post after burn",
        read_post(ctx, post_id),
        previous=before,
        deltas={"burned_amount": ONE_TOKEN, "reply_count": 1},
    )
    report.record("burn", result)

    result = mint_for_post(ctx, post_id, "Minting for this post")
    verify_account("post after mint", read_post(ctx, post_id), previous=before, increased=("reply_count",))
    report.record("mint", result)
    return report


def burn_flow(ctx: ClientContext) -> ScenarioReport:
    report = ScenarioReport("burn")
    init = ensure_burn_stats(ctx)
    report.record("init stats" if init else "init stats (existing)", init)
    ensure_balance(ctx, ONE_TOKEN)

    before = read_burn_stats(ctx)
    result = process_burn(ctx, ONE_TOKEN)
    verify_landed_memo(ctx, result)
    verify_account(
        "burn stats after burn",
        read_burn_stats(ctx),
        equals={"user": ctx.pubkey},
        previous=before,
        deltas={"total_burned": ONE_TOKEN, "burn_count": 1},
        timestamps=("last_burn_time",),
    )
    report.record("burn", result)
    return report


def ordering_breakage(ctx: ClientContext) -> ScenarioReport:
    """Send a blog burn with memo and program instruction swapped; the program must refuse it."""
    report = ScenarioReport("ordering")
    ensure_balance(ctx, ONE_TOKEN)
    try:
        payload = BlogBurnData(burner=str(ctx.pubkey), message="Misordered burn")
        memo = burn_memo(ctx, "burn_for_blog", payload, ONE_TOKEN)
        ix = build_burn_for_blog_ix(ctx.programs, ctx.pubkey, ONE_TOKEN)
        execute(ctx, "burn_for_blog", ix, memo, expect_failure=True, reorder=swap_memo_and_program)
    except SimulationError as exc:
        if exc.hint != "Missing memo instruction":
            raise
        report.record(f"rejected: {exc.hint}")
        return report
    raise VerificationError("misordered burn_for_blog", [("outcome", "rejected", "confirmed")])


SCENARIOS: Dict[str, Callable[[ClientContext], ScenarioReport]] = {
    "blog": blog_lifecycle,
    "profile": profile_crud,
    "chat": chat_flow,
    "project": project_flow,
    "forum": forum_flow,
    "burn": burn_flow,
    "ordering": ordering_breakage,
}


def run_scenarios(ctx: ClientContext, names: List[str]) -> Dict[str, Optional[MemoClientError]]:
    """Run each named scenario; collect the failure per scenario instead of stopping at the first."""
    outcomes: Dict[str, Optional[MemoClientError]] = {}
    for name in names:
        try:
            SCENARIOS[name](ctx)
        except MemoClientError as exc:
            logger.error("smoke_failed scenario=%s error=%s", name, exc)
            outcomes[name] = exc
        else:
            outcomes[name] = None
    return outcomes
