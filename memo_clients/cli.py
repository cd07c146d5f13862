"""
Command-line entry point for the memo-token clients.

Usage examples:
  memo-clients info
  memo-clients blog create --name "My Blog" --tokens 1
  memo-clients chat send --group-id 3 --message "gm"
  memo-clients profile update --username alice --clear-about-me
  memo-clients burn --tokens 5 --expect-failure
  memo-clients smoke blog profile

Endpoint, wallet and program ids come from Anchor.toml; SOLANA_RPC and
PAYER_KEYPAIR_PATH override the first two.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

from solders.pubkey import Pubkey

from . import operations as ops
from .config import ClientConfig
from .errors import LedgerError, MemoClientError, PayloadValidationError
from .guardrail import ensure_balance
from .memo_codec import CLEARED, UNCHANGED, SetTo, decode_memo, to_tokens, to_units
from .perf import DEFAULT_THREADS, run_batch_mint
from .rpc import fetch_transaction_memos
from .settings import Settings, configure_logging
from .smoke import SCENARIOS, run_scenarios

logger = logging.getLogger("memo_clients")


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, Pubkey):
        return str(value)
    return value


def print_result(result: ops.OperationResult) -> None:
    print(f"✅ {result.op} confirmed")
    print(f"   signature: {result.signature}")
    sim = result.simulated_units if result.simulated_units is not None else "n/a"
    print(f"   compute units: simulated={sim} limit={result.compute_limit}")


def print_account(title: str, data: Optional[dict]) -> None:
    if data is None:
        print(f"❌ {title}: account not found")
        return
    print(f"=== {title} ===")
    print(json.dumps(_jsonable(data), indent=2))


def _tokens(args: argparse.Namespace, default: int) -> int:
    return to_units(args.tokens if args.tokens is not None else default)


def _validate(args: argparse.Namespace) -> bool:
    return not args.skip_validation


def cmd_info(ctx: ops.ClientContext, args: argparse.Namespace) -> None:
    print(f"RPC:    {ctx.endpoint}")
    print(f"Payer:  {ctx.pubkey}")
    print(f"ATA:    {ctx.token_account}")
    for name, value in vars(ctx.programs).items():
        print(f"{name:16} {value}")


def cmd_balance(ctx: ops.ClientContext, args: argparse.Namespace) -> None:
    balance = ops.read_token_balance(ctx)
    supply = ops.read_mint_supply(ctx)
    sol = ops.check_sol_balance(ctx, 0)
    print(f"SOL balance:   {sol / ops.LAMPORTS_PER_SOL:.4f}")
    print(f"Token balance: {to_tokens(balance)} ({balance} units)")
    print(f"Mint supply:   {to_tokens(supply)} ({supply} units)")


def cmd_ensure_balance(ctx: ops.ClientContext, args: argparse.Namespace) -> None:
    report = ensure_balance(ctx, to_units(args.tokens), max_mints=args.max_mints)
    print(f"✅ balance {to_tokens(report.final_balance)} tokens after {report.mints} mints")


def cmd_mint(ctx: ops.ClientContext, args: argparse.Namespace) -> Any:
    ops.ensure_token_account(ctx)
    memo = args.memo.encode("utf-8") if args.memo else None
    if args.to:
        return ops.process_mint_to(ctx, Pubkey.from_string(args.to), memo, _validate(args), args.expect_failure)
    return ops.process_mint(ctx, memo, _validate(args), args.expect_failure)


def cmd_burn(ctx: ops.ClientContext, args: argparse.Namespace) -> Any:
    ops.ensure_burn_stats(ctx)
    message = args.message.encode("utf-8") if args.message else None
    return ops.process_burn(ctx, _tokens(args, 1), message, _validate(args), args.expect_failure)


def cmd_init_burn_stats(ctx: ops.ClientContext, args: argparse.Namespace) -> Any:
    result = ops.ensure_burn_stats(ctx)
    if result is None:
        print("ℹ️  burn stats already initialized")
    return result


def cmd_blog(ctx: ops.ClientContext, args: argparse.Namespace) -> Any:
    v, xf = _validate(args), args.expect_failure
    if args.action == "create":
        return ops.create_blog(ctx, args.name or "", args.description or "", args.image or "", _tokens(args, 1), v, xf)
    if args.action == "update":
        return ops.update_blog(ctx, args.name, args.description, args.image, _tokens(args, 1), v, xf)
    if args.action == "burn":
        return ops.burn_for_blog(ctx, _tokens(args, 1), args.message or "", v, xf)
    if args.action == "mint":
        return ops.mint_for_blog(ctx, args.message or "", v, xf)
    print_account("Blog", ops.read_blog(ctx))
    return None


def cmd_chat(ctx: ops.ClientContext, args: argparse.Namespace) -> Any:
    v, xf = _validate(args), args.expect_failure
    if args.action == "create":
        return ops.create_chat_group(
            ctx,
            args.name or "",
            args.description or "",
            args.image or "",
            args.tag or [],
            args.min_interval,
            _tokens(args, 1),
            args.group_id,
            v,
            xf,
        )
    if args.group_id is None:
        raise MemoClientError(f"chat {args.action} requires --group-id")
    if args.action == "send":
        return ops.send_memo_to_group(ctx, args.group_id, args.message or "", args.receiver, args.reply_to, v, xf)
    if args.action == "burn":
        return ops.burn_tokens_for_group(ctx, args.group_id, _tokens(args, 1), args.message or "", v, xf)
    print_account(f"Chat group {args.group_id}", ops.read_chat_group(ctx, args.group_id))
    return None


def cmd_project(ctx: ops.ClientContext, args: argparse.Namespace) -> Any:
    v, xf = _validate(args), args.expect_failure
    if args.action == "create":
        return ops.create_project(
            ctx,
            args.name or "",
            args.description or "",
            args.image or "",
            args.website or "",
            args.tag or [],
            _tokens(args, 42_069),
            args.project_id,
            v,
            xf,
        )
    if args.project_id is None:
        raise MemoClientError(f"project {args.action} requires --project-id")
    if args.action == "update":
        return ops.update_project(
            ctx, args.project_id, args.name, args.description, args.image, args.website, args.tag, _tokens(args, 42_069), v, xf
        )
    if args.action == "burn":
        return ops.burn_for_project(ctx, args.project_id, _tokens(args, 420), args.message or "", v, xf)
    print_account(f"Project {args.project_id}", ops.read_project(ctx, args.project_id))
    return None


def cmd_forum(ctx: ops.ClientContext, args: argparse.Namespace) -> Any:
    v, xf = _validate(args), args.expect_failure
    if args.action == "create":
        return ops.create_post(ctx, args.title or "", args.content or "", args.image or "", _tokens(args, 1), args.post_id, v, xf)
    if args.post_id is None:
        raise MemoClientError(f"forum {args.action} requires --post-id")
    if args.action == "burn":
        return ops.burn_for_post(ctx, args.post_id, _tokens(args, 1), args.message or "", v, xf)
    if args.action == "mint":
        return ops.mint_for_post(ctx, args.post_id, args.message or "", v, xf)
    print_account(f"Post {args.post_id}", ops.read_post(ctx, args.post_id))
    return None


def cmd_profile(ctx: ops.ClientContext, args: argparse.Namespace) -> Any:
    v, xf = _validate(args), args.expect_failure
    if args.action == "create":
        return ops.create_profile(ctx, args.username or "", args.image or "", args.about_me, _tokens(args, 420), v, xf)
    if args.action == "update":
        about_me = CLEARED if args.clear_about_me else (SetTo(args.about_me) if args.about_me is not None else UNCHANGED)
        return ops.update_profile(ctx, args.username, args.image, about_me, _tokens(args, 420), v, xf)
    if args.action == "delete":
        return ops.delete_profile(ctx, xf)
    print_account("Profile", ops.read_profile(ctx))
    return None


def cmd_admin(ctx: ops.ClientContext, args: argparse.Namespace) -> Any:
    if args.action == "transfer-mint-authority":
        return ops.transfer_mint_authority(ctx)
    if args.program is None:
        raise MemoClientError(f"admin {args.action} requires --program")
    if args.action == "init-counter":
        return ops.initialize_global_counter(ctx, args.program)
    if args.action == "init-leaderboard":
        return ops.initialize_burn_leaderboard(ctx, args.program)
    return ops.clear_burn_leaderboard(ctx, args.program)


def cmd_show(ctx: ops.ClientContext, args: argparse.Namespace) -> None:
    if args.what == "burn-stats":
        print_account("User burn stats", ops.read_burn_stats(ctx))
    elif args.what == "counter":
        print_account(f"{args.program} global counter", ops.read_counter(ctx, args.program))
    elif args.what == "leaderboard":
        board = ops.read_leaderboard(ctx, args.program)
        print_account(f"{args.program} burn leaderboard", board)
        for rank, entry in enumerate(sorted((board or {}).get("entries", []), key=lambda e: -e["burned_amount"]), 1):
            print(f"  #{rank:<3} id={entry['id']:<8} burned={to_tokens(entry['burned_amount'])}")


def cmd_decode_memo(ctx: ops.ClientContext, args: argparse.Namespace) -> None:
    memos = fetch_transaction_memos(ctx.endpoint, args.signature)
    if not memos:
        print(f"❌ no memo instruction in {args.signature}")
        return
    envelope, payload = decode_memo(memos[0], burn=not args.bare)
    if envelope is not None:
        print(f"Burn amount: {to_tokens(envelope.burn_amount)} tokens (version {envelope.version})")
    print(json.dumps(_jsonable(payload.to_wire()), indent=2, default=str))


def cmd_perf(ctx: ops.ClientContext, args: argparse.Namespace) -> None:
    ops.ensure_token_account(ctx)
    stats = run_batch_mint(ctx, args.count, args.threads, args.compute_limit)
    print(stats.report(stats.elapsed, args.threads))


def cmd_smoke(ctx: ops.ClientContext, args: argparse.Namespace) -> None:
    names = args.scenarios or [name for name in SCENARIOS if name != "ordering"]
    outcomes = run_scenarios(ctx, names)
    failed = [name for name, exc in outcomes.items() if exc is not None]
    for name, exc in outcomes.items():
        print(f"{'✅' if exc is None else '❌'} {name}" + (f": {exc}" if exc else ""))
    if failed:
        raise MemoClientError(f"{len(failed)} smoke scenario(s) failed: {', '.join(failed)}")


def _common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--tokens", type=int, default=None, help="Whole tokens to burn (defaults to the operation minimum).")
    parser.add_argument("--message", type=str, default=None)
    parser.add_argument("--expect-failure", action="store_true", help="Treat a rejected transaction as success.")
    parser.add_argument("--skip-validation", action="store_true", help="Send the payload without client-side checks.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="memo-clients", description="Clients for the memo-token programs.")
    parser.add_argument("--manifest", type=str, default=None, help="Path to Anchor.toml (default: search upwards).")
    parser.add_argument("--log-level", type=str, default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("info", help="Show endpoint, wallet and program ids.").set_defaults(func=cmd_info)
    sub.add_parser("balance", help="Show SOL, token balance and mint supply.").set_defaults(func=cmd_balance)

    p = sub.add_parser("ensure-balance", help="Mint until the wallet holds --tokens.")
    p.add_argument("--tokens", type=int, required=True)
    p.add_argument("--max-mints", type=int, default=1_000)
    p.set_defaults(func=cmd_ensure_balance)

    p = sub.add_parser("mint", help="process_mint, or process_mint_to with --to.")
    p.add_argument("--memo", type=str, default=None)
    p.add_argument("--to", type=str, default=None)
    p.add_argument("--expect-failure", action="store_true")
    p.add_argument("--skip-validation", action="store_true")
    p.set_defaults(func=cmd_mint)

    p = sub.add_parser("burn", help="process_burn through memo_burn.")
    _common(p)
    p.set_defaults(func=cmd_burn)

    sub.add_parser("init-burn-stats", help="Create the user burn stats account.").set_defaults(func=cmd_init_burn_stats)

    p = sub.add_parser("blog")
    p.add_argument("action", choices=["create", "update", "burn", "mint", "show"])
    p.add_argument("--name")
    p.add_argument("--description")
    p.add_argument("--image")
    _common(p)
    p.set_defaults(func=cmd_blog)

    p = sub.add_parser("chat")
    p.add_argument("action", choices=["create", "send", "burn", "show"])
    p.add_argument("--group-id", type=int, default=None)
    p.add_argument("--name")
    p.add_argument("--description")
    p.add_argument("--image")
    p.add_argument("--tag", action="append")
    p.add_argument("--min-interval", type=int, default=None)
    p.add_argument("--receiver")
    p.add_argument("--reply-to")
    _common(p)
    p.set_defaults(func=cmd_chat)

    p = sub.add_parser("project")
    p.add_argument("action", choices=["create", "update", "burn", "show"])
    p.add_argument("--project-id", type=int, default=None)
    p.add_argument("--name")
    p.add_argument("--description")
    p.add_argument("--image")
    p.add_argument("--website")
    p.add_argument("--tag", action="append")
    _common(p)
    p.set_defaults(func=cmd_project)

    p = sub.add_parser("forum")
    p.add_argument("action", choices=["create", "burn", "mint", "show"])
    p.add_argument("--post-id", type=int, default=None)
    p.add_argument("--title")
    p.add_argument("--content")
    p.add_argument("--image")
    _common(p)
    p.set_defaults(func=cmd_forum)

    p = sub.add_parser("profile")
    p.add_argument("action", choices=["create", "update", "delete", "show"])
    p.add_argument("--username")
    p.add_argument("--image")
    p.add_argument("--about-me")
    p.add_argument("--clear-about-me", action="store_true")
    _common(p)
    p.set_defaults(func=cmd_profile)

    p = sub.add_parser("admin")
    p.add_argument(
        "action", choices=["init-counter", "init-leaderboard", "clear-leaderboard", "transfer-mint-authority"]
    )
    p.add_argument("--program", choices=["chat", "project", "forum"], default=None)
    p.set_defaults(func=cmd_admin)

    p = sub.add_parser("show", help="Decode a shared account.")
    p.add_argument("what", choices=["burn-stats", "counter", "leaderboard"])
    p.add_argument("--program", choices=["chat", "project", "forum"], default="chat")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("decode-memo", help="Fetch a confirmed transaction and decode its memo.")
    p.add_argument("signature")
    p.add_argument("--bare", action="store_true", help="Memo has no burn envelope (chat messages).")
    p.set_defaults(func=cmd_decode_memo)

    p = sub.add_parser("perf", help="Threaded batch mint.")
    p.add_argument("--count", type=int, default=100)
    p.add_argument("--threads", type=int, default=DEFAULT_THREADS)
    p.add_argument("--compute-limit", type=int, default=None)
    p.set_defaults(func=cmd_perf)

    p = sub.add_parser("smoke", help="Run end-to-end scenarios.")
    p.add_argument("scenarios", nargs="*", choices=sorted(SCENARIOS))
    p.set_defaults(func=cmd_smoke)
    return parser


def run(args: argparse.Namespace, context_factory: Optional[Callable[[argparse.Namespace], ops.ClientContext]] = None) -> int:
    expect_failure = getattr(args, "expect_failure", False)
    logger.info("cli_command command=%s expect_failure=%s", args.command, expect_failure)
    try:
        ctx = (context_factory or _context)(args)
        result = args.func(ctx, args)
    except (LedgerError, PayloadValidationError) as exc:
        if expect_failure:
            print(f"✅ rejected as expected: {getattr(exc, 'hint', None) or exc}")
            return 0
        print(f"❌ {exc}")
        return 1
    except MemoClientError as exc:
        print(f"❌ {exc}")
        return 1
    if isinstance(result, ops.OperationResult):
        if expect_failure:
            print(f"❌ {result.op} confirmed but was expected to fail ({result.signature})")
            return 1
        print_result(result)
    return 0


def _context(args: argparse.Namespace) -> ops.ClientContext:
    settings = Settings()
    config = ClientConfig.load(Path(args.manifest), settings=settings) if args.manifest else ClientConfig.load(settings=settings)
    return ops.ClientContext.from_config(config)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
