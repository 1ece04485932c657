"""SealedReview CLI — read-only inspection of the on-chain review registry.

Usage:
    python -m sealedreview.cli ping
    python -m sealedreview.cli list
    python -m sealedreview.cli list --search physics
    python -m sealedreview.cli stats --window-days 30
    python -m sealedreview.cli show --id review-1700000000000

Ledger connection settings come from the environment or a .env file
(see sealedreview.settings).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

from sealedreview.errors import LifecycleError
from sealedreview.ledger.interfaces import LedgerService
from sealedreview.models.review import ReviewRecord
from sealedreview.policy.resolver import PolicyResolver
from sealedreview.review.registry import ReviewRegistry
from sealedreview.settings import LedgerSettings


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"


def _make_ledger(env_file: Optional[Path]) -> LedgerService:
    """Build the web3-backed ledger from environment settings."""
    from sealedreview.ledger.web3_ledger import Web3LedgerService

    return Web3LedgerService.from_settings(LedgerSettings.from_env(env_file))


def _record_json(record: ReviewRecord) -> dict[str, Any]:
    data = asdict(record)
    data["state"] = record.state.value
    return data


async def _loaded_registry(args: argparse.Namespace) -> ReviewRegistry:
    resolver = PolicyResolver.from_config_dir(args.config)
    registry = ReviewRegistry(_make_ledger(args.env_file), resolver)
    await registry.refresh()
    return registry


async def cmd_ping(args: argparse.Namespace) -> int:
    available = await _make_ledger(args.env_file).is_available()
    print(json.dumps({"available": available}))
    return 0 if available else 1


async def cmd_list(args: argparse.Namespace) -> int:
    registry = await _loaded_registry(args)
    records = sorted(registry.search(args.search or ""), key=lambda r: r.created_at)
    print(json.dumps([_record_json(r) for r in records], indent=2))
    return 0


async def cmd_stats(args: argparse.Namespace) -> int:
    registry = await _loaded_registry(args)
    window = timedelta(days=args.window_days) if args.window_days is not None else None
    stats = registry.compute_stats(window=window)
    data = asdict(stats)
    data["computed_at"] = stats.computed_at.isoformat()
    print(json.dumps(data, indent=2))
    return 0


async def cmd_show(args: argparse.Namespace) -> int:
    registry = await _loaded_registry(args)
    record = registry.get(args.id)
    if record is None:
        print(f"Record not found: {args.id}", file=sys.stderr)
        return 1
    print(json.dumps(_record_json(record), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sealedreview",
        description="SealedReview — confidential review registry CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file with ledger settings",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("ping", help="Check that the review contract is available")

    p_list = sub.add_parser("list", help="List review records")
    p_list.add_argument("--search", help="Filter by title, author or category")

    p_stats = sub.add_parser("stats", help="Show registry statistics")
    p_stats.add_argument(
        "--window-days", type=int, default=None,
        help="Recent-activity window in days (default: from config)",
    )

    p_show = sub.add_parser("show", help="Show one review record")
    p_show.add_argument("--id", required=True, help="Record ID")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "ping": cmd_ping,
        "list": cmd_list,
        "stats": cmd_stats,
        "show": cmd_show,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(handler(args))
    except (LifecycleError, ValueError) as exc:
        print(f"Failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
