#!/usr/bin/env python3
"""Share distribution script for the Product Ledger.

Runs one distribution batch from a JSON plan file through the same engine
the API uses, recording each successful transfer in the database.

Plan file format:
    {
      "shareTokenMint": "<mint address>",
      "distributions": [
        {"recipient": "<wallet>", "amount": 10, "recipientName": "Alice"},
        ...
      ]
    }

Usage:
    # From the repo root:
    cd apps/api && python ../../scripts/distribute_shares.py plan.json
    cd apps/api && python ../../scripts/distribute_shares.py plan.json --dry-run

Flags:
    --dry-run   Validate the plan and check the sender balance without transferring.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

# Allow running from the repo root or from apps/api/
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "apps", "api"))

from pydantic import ValidationError as SchemaValidationError

from app.core.config import settings
from app.core.database import async_session_factory
from app.core.errors import ServiceError
from app.core.logging import configure_logging
from app.modules.fractionalize.distribution import DistributionEngine, validate_distribution
from app.modules.fractionalize.schemas import DistributeRequest, DistributionSuccess
from app.services.keyed_lock import KeyedLock
from app.services.ledger import SolanaLedger

import app.models  # noqa: F401  register all models


def load_plan(path: Path) -> DistributeRequest:
    with path.open(encoding="utf-8") as fh:
        return DistributeRequest.model_validate(json.load(fh))


def print_plan(plan: DistributeRequest) -> None:
    total = sum(entry.amount for entry in plan.distributions)
    print(f"  Share token:  {plan.share_token_mint}")
    print(f"  Recipients:   {len(plan.distributions)}")
    print(f"  Total amount: {total}")
    print()
    for i, entry in enumerate(plan.distributions, start=1):
        label = f" ({entry.recipient_name})" if entry.recipient_name else ""
        print(f"  {i:3d}. {entry.recipient}{label} -> {entry.amount}")


async def run(plan: DistributeRequest, dry_run: bool) -> int:
    ledger = SolanaLedger.from_settings(settings)
    try:
        print(f"\nCluster: {ledger.cluster}")
        print(f"Sender:  {ledger.owner_address}")

        if dry_run:
            validate_distribution(plan)
            balance = await ledger.get_token_balance(plan.share_token_mint)
            total = sum(entry.amount for entry in plan.distributions)
            print(f"\nSender balance: {balance if balance is not None else 'no token account'}")
            if balance is None or total > balance:
                print("[DRY RUN] Plan would be rejected: insufficient balance.")
                return 1
            print("[DRY RUN] Plan is valid. Re-run without --dry-run to transfer.")
            return 0

        engine = DistributionEngine(ledger, KeyedLock(), settings.SOLANA_SYSTEM_SENDER_NAME)
        async with async_session_factory() as db:
            result = await engine.distribute(db, plan)
    finally:
        await ledger.close()

    print("\n=== Distribution Summary ===")
    for outcome in result.distributions:
        if isinstance(outcome, DistributionSuccess):
            print(f"  [ok]      {outcome.recipient} {outcome.amount}  {outcome.explorer_link}")
        else:
            print(f"  [failed]  {outcome.recipient} {outcome.amount}  {outcome.error}")
    print(f"\n  Distributed:    {result.total_distributed} of {result.total_requested}")
    print(f"  Succeeded:      {result.success_count}")
    print(f"  Failed:         {result.failed_count}")
    print(f"  Sender balance: {result.sender_balance.before} -> {result.sender_balance.after}")
    return 0 if result.failed_count == 0 else 2


def main() -> None:
    parser = argparse.ArgumentParser(description="Distribute fractional shares from a JSON plan")
    parser.add_argument("plan", type=Path, help="Path to the distribution plan (JSON)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the plan and check the balance without transferring",
    )
    args = parser.parse_args()

    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    try:
        plan = load_plan(args.plan)
    except (OSError, json.JSONDecodeError, SchemaValidationError) as exc:
        print(f"[ERROR] Could not load plan {args.plan}: {exc}", file=sys.stderr)
        sys.exit(1)

    print("=" * 60)
    print("DRY RUN: no shares will be transferred" if args.dry_run else "Share distribution")
    print("=" * 60)
    print_plan(plan)

    try:
        code = asyncio.run(run(plan, args.dry_run))
    except ServiceError as exc:
        print(f"\n[ERROR] {exc.message}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
