"""
Collector CLI: run one ingestion pass for the tracked wallet and print the merge result.

Usage:
    python -m sol_tracker.tools.collect_transactions
    python -m sol_tracker.tools.collect_transactions --profile serverless --limit 50
    python -m sol_tracker.tools.collect_transactions --force --storage sqlite

Exit code 0 when the run finished (including partial runs), 1 when the
tracker is unavailable or misconfigured.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from sol_tracker.config import get_settings
from sol_tracker.config.settings import PROFILES
from sol_tracker.core.exceptions import ConfigError, TrackerUnavailableError
from sol_tracker.ingestion.service import TrackerService
from sol_tracker.tracker_logging import get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Collect SOL transfers for the tracked wallet.")
    ap.add_argument("--profile", choices=sorted(PROFILES), default=None, help="Pipeline preset (default from TRACKER_PROFILE)")
    ap.add_argument("--address", default=None, help="Wallet address (overrides TRACKED_WALLET_ADDRESS)")
    ap.add_argument("--storage", choices=("file", "memory", "sqlite"), default=None, help="Storage backend")
    ap.add_argument("--force", action="store_true", help="Clear stored records before collecting")
    ap.add_argument("--limit", type=int, default=None, help="Stop after this many new records")
    return ap


async def collect(service: TrackerService, *, force: bool = False) -> dict:
    result = await (service.force_refresh() if force else service.refresh())
    return result.to_dict()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.limit is not None and args.limit < 1:
        print("--limit must be >= 1", file=sys.stderr)
        return 1
    try:
        settings = get_settings(
            profile=args.profile,
            wallet_address=args.address,
            storage_backend=args.storage,
            record_limit=args.limit,
        )
    except ConfigError as e:
        logger.error("collect_config_error", error=str(e))
        print(f"configuration error: {e}", file=sys.stderr)
        return 1

    logger.info(
        "collect_start",
        wallet_id=settings.wallet_address,
        profile=settings.profile,
        rpc_url=settings.rpc_url,
        force=args.force,
    )
    service = TrackerService(settings)
    try:
        summary = asyncio.run(collect(service, force=args.force))
    except TrackerUnavailableError as e:
        logger.error("collect_unavailable", error=str(e))
        print(f"tracker unavailable: {e}", file=sys.stderr)
        return 1
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
