"""Shareledger CLI — command-line interface for the ownership platform.

Usage:
    python -m shareledger.cli status
    python -m shareledger.cli issue-asset --asset tower-1 --name "Tower One" \\
        --manager manager-1 --shares 1000 --price 50
    python -m shareledger.cli set-kyc --party alice --party bob
    python -m shareledger.cli purchase --asset tower-1 --buyer alice --shares 100 --payment 5000
    python -m shareledger.cli deposit --asset tower-1 --amount 1000 --depositor manager-1
    python -m shareledger.cli create-distribution --asset tower-1 --amount 1000 --caller manager-1
    python -m shareledger.cli claim --distribution 1 --holder alice
    python -m shareledger.cli check-invariants

Environment (a .env file in the working directory is loaded first):
    SHARELEDGER_CONFIG_DIR   directory holding platform_params.json
    SHARELEDGER_DATA_DIR     directory for state.json and events.jsonl
    SHARELEDGER_OPERATOR_ID  overrides platform.operator_id
    SHARELEDGER_LOG_LEVEL    logging level (default WARNING)
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from shareledger.config import DEFAULT_CONFIG_DIR, ConfigError, PlatformConfig
from shareledger.errors import LedgerError, PersistenceError
from shareledger.persistence.event_log import EventLog
from shareledger.persistence.state_store import StateStore
from shareledger.service import ServiceResult, ShareLedgerService, distribution_summary


DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _load_config(config_dir: Path) -> PlatformConfig:
    config = PlatformConfig.from_config_dir(config_dir)
    operator_id = os.environ.get("SHARELEDGER_OPERATOR_ID")
    if operator_id:
        config = dataclasses.replace(config, operator_id=operator_id)
    return config


def _make_service(args: argparse.Namespace) -> ShareLedgerService:
    """Create a ShareLedgerService with durable persistence."""
    data_dir: Path = args.data
    data_dir.mkdir(parents=True, exist_ok=True)
    return ShareLedgerService(
        _load_config(args.config),
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
        state_store=StateStore(storage_path=data_dir / "state.json"),
    )


def _operator(args: argparse.Namespace, service: ShareLedgerService) -> str:
    return args.caller or service.context.operator_id


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, sort_keys=True))
        return 0
    print(f"Failed ({result.error_kind}): {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2, sort_keys=True))
    return 0


def cmd_issue_asset(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.issue_asset(
        _operator(args, service), args.asset, args.name, args.manager,
        args.shares, args.price,
    ))


def cmd_set_kyc(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.set_kyc(
        _operator(args, service), args.party, verified=not args.reject,
    ))


def cmd_purchase(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.purchase(args.asset, args.buyer, args.shares, args.payment))


def cmd_sell(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.sell(args.asset, args.holder, args.shares))


def cmd_transfer(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.transfer(args.asset, args.sender, args.recipient, args.shares))


def cmd_deposit(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.deposit_revenue(args.asset, args.amount, args.depositor))


def cmd_create_distribution(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.create_distribution(args.asset, args.amount, args.caller))


def cmd_claim(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.claim(args.distribution, args.holder))


def cmd_batch_distribute(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.batch_distribute(
        args.distribution, args.offset, args.limit, _operator(args, service),
    ))


def cmd_balance(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        data = {
            "asset_id": args.asset,
            "holder_id": args.holder,
            "balance": service.balance(args.asset, args.holder),
            "ownership_bps": service.ownership_percentage(args.asset, args.holder),
        }
    except LedgerError as exc:
        print(f"Failed ({exc.kind}): {exc}", file=sys.stderr)
        return 1
    print(json.dumps(data, indent=2, sort_keys=True))
    return 0


def cmd_distribution(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        distribution = service.get_distribution(args.distribution)
    except LedgerError as exc:
        print(f"Failed ({exc.kind}): {exc}", file=sys.stderr)
        return 1
    data = distribution_summary(distribution)
    data["claimed"] = sorted(distribution.claimed)
    print(json.dumps(data, indent=2, sort_keys=True))
    return 0


def cmd_pause(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.pause(_operator(args, service)))


def cmd_unpause(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.unpause(_operator(args, service)))


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Validate platform params and the persisted ledger state."""
    service = _make_service(args)
    errors = service.check_invariants()
    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1
    print("Invariant check passed.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shareledger",
        description="Fractional asset ownership and revenue distribution",
    )
    parser.add_argument(
        "--config", type=Path,
        default=Path(os.environ.get("SHARELEDGER_CONFIG_DIR", DEFAULT_CONFIG_DIR)),
        help="Config directory (default: ./config)",
    )
    parser.add_argument(
        "--data", type=Path,
        default=Path(os.environ.get("SHARELEDGER_DATA_DIR", DEFAULT_DATA)),
        help="Data directory for state and events (default: ./data)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show platform statistics")

    p_issue = sub.add_parser("issue-asset", help="Issue and list a new asset")
    p_issue.add_argument("--asset", required=True, help="Asset ID")
    p_issue.add_argument("--name", required=True, help="Display name")
    p_issue.add_argument("--manager", required=True, help="Manager party ID")
    p_issue.add_argument("--shares", type=int, required=True, help="Total share supply")
    p_issue.add_argument("--price", type=int, required=True, help="Price per share")
    p_issue.add_argument("--caller", help="Operator ID (default: configured operator)")

    p_kyc = sub.add_parser("set-kyc", help="Set compliance status for parties")
    p_kyc.add_argument("--party", action="append", required=True, help="Party ID (repeatable)")
    p_kyc.add_argument("--reject", action="store_true", help="Reject instead of verify")
    p_kyc.add_argument("--caller", help="Operator ID (default: configured operator)")

    p_buy = sub.add_parser("purchase", help="Buy shares from the asset treasury")
    p_buy.add_argument("--asset", required=True)
    p_buy.add_argument("--buyer", required=True)
    p_buy.add_argument("--shares", type=int, required=True)
    p_buy.add_argument("--payment", type=int, required=True, help="Amount sent (overage refunded)")

    p_sell = sub.add_parser("sell", help="Sell shares back to the asset treasury")
    p_sell.add_argument("--asset", required=True)
    p_sell.add_argument("--holder", required=True)
    p_sell.add_argument("--shares", type=int, required=True)

    p_xfer = sub.add_parser("transfer", help="Transfer shares between holders")
    p_xfer.add_argument("--asset", required=True)
    p_xfer.add_argument("--from", dest="sender", required=True)
    p_xfer.add_argument("--to", dest="recipient", required=True)
    p_xfer.add_argument("--shares", type=int, required=True)

    p_dep = sub.add_parser("deposit", help="Deposit revenue for an asset")
    p_dep.add_argument("--asset", required=True)
    p_dep.add_argument("--amount", type=int, required=True)
    p_dep.add_argument("--depositor", required=True, help="Asset manager ID")

    p_dist = sub.add_parser("create-distribution", help="Distribute pending revenue")
    p_dist.add_argument("--asset", required=True)
    p_dist.add_argument("--amount", type=int, required=True)
    p_dist.add_argument("--caller", required=True, help="Asset manager ID")

    p_claim = sub.add_parser("claim", help="Claim a distribution allocation")
    p_claim.add_argument("--distribution", type=int, required=True)
    p_claim.add_argument("--holder", required=True)

    p_batch = sub.add_parser("batch-distribute", help="Push allocations for a slice of holders")
    p_batch.add_argument("--distribution", type=int, required=True)
    p_batch.add_argument("--offset", type=int, default=0)
    p_batch.add_argument("--limit", type=int, required=True)
    p_batch.add_argument("--caller", help="Operator ID (default: configured operator)")

    p_bal = sub.add_parser("balance", help="Show a holder's balance and ownership")
    p_bal.add_argument("--asset", required=True)
    p_bal.add_argument("--holder", required=True)

    p_show = sub.add_parser("distribution", help="Show a distribution")
    p_show.add_argument("--distribution", type=int, required=True)

    for name, text in (("pause", "Engage the circuit breaker"), ("unpause", "Release the circuit breaker")):
        p = sub.add_parser(name, help=text)
        p.add_argument("--caller", help="Operator ID (default: configured operator)")

    sub.add_parser("check-invariants", help="Run ledger and distribution invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("SHARELEDGER_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "issue-asset": cmd_issue_asset,
        "set-kyc": cmd_set_kyc,
        "purchase": cmd_purchase,
        "sell": cmd_sell,
        "transfer": cmd_transfer,
        "deposit": cmd_deposit,
        "create-distribution": cmd_create_distribution,
        "claim": cmd_claim,
        "batch-distribute": cmd_batch_distribute,
        "balance": cmd_balance,
        "distribution": cmd_distribution,
        "pause": cmd_pause,
        "unpause": cmd_unpause,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except (ConfigError, PersistenceError) as exc:
        print(f"Failed: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
