#!/usr/bin/env python3
"""
Wallet Analysis Script

Runs the full conviction pipeline for one or more wallets from the command
line and prints the resulting metrics.

Features:
- Any number of wallets per run, with a progress bar
- Optional Ethos reputation multiplier
- Optional persistence (requires DATABASE_URL)
- JSON output for piping into other tools

Usage:
    python analyze_wallet.py --chain solana <address> [<address> ...]
    python analyze_wallet.py --chain base --days 90 --persist 0xabc...
    python analyze_wallet.py --chain solana --json <address> > out.json
"""

import asyncio
import argparse
import json
import sys
from dataclasses import asdict
from typing import Any, Dict, List

from loguru import logger
from tqdm import tqdm

from conviction.api import deps
from conviction.core.config import settings
from conviction.core.logging import setup_logging
from conviction.db import session as db_session
from conviction.services.analysis.pipeline import WalletAnalysis
from conviction.services.models import Chain
from conviction.services.providers import AllProvidersExhausted


def summarize(result: WalletAnalysis) -> Dict[str, Any]:
    metrics = result.metrics
    return {
        "address": result.address,
        "chain": result.chain.value,
        "timeHorizonDays": result.time_horizon_days,
        "trades": result.ingestion.count,
        "provider": result.ingestion.provider,
        "quality": result.ingestion.quality.to_dict(),
        "metrics": metrics.to_dict() if metrics else None,
        "positions": [asdict(p) for p in result.positions],
        "reputationScore": result.reputation_score,
        "persisted": result.persisted,
    }


def print_summary(summary: Dict[str, Any]):
    """Human-readable report for one wallet"""
    metrics = summary["metrics"] or {}
    print(f"\n{'=' * 60}")
    print(f"{summary['address']} ({summary['chain']}, {summary['timeHorizonDays']}d)")
    print(f"{'=' * 60}")
    print(f"Trades:          {summary['trades']} via {summary['provider'] or 'n/a'}")
    print(f"Positions:       {metrics.get('total_positions', 0)}")
    print(f"Conviction:      {metrics.get('score', 0)}")
    print(f"Archetype:       {metrics.get('archetype')}")
    print(f"Percentile:      top {metrics.get('percentile', 0)}%")
    print(f"Patience tax:    ${metrics.get('patience_tax', 0):,}")
    print(f"Upside capture:  {metrics.get('upside_capture', 0)}%")
    print(f"Win rate:        {metrics.get('win_rate', 0)}%")
    print(f"Early exits:     {metrics.get('early_exits', 0)}")
    if summary["reputationScore"] is not None:
        print(f"Ethos score:     {summary['reputationScore']}")
    if summary["persisted"]:
        print("Stored:          yes")


async def analyze_all(
    addresses: List[str],
    chain: Chain,
    days: int,
    min_value: float,
    include_reputation: bool,
    persist: bool,
) -> List[Dict[str, Any]]:
    service = deps.get_wallet_service()
    summaries: List[Dict[str, Any]] = []

    with tqdm(total=len(addresses), desc="Analyzing wallets", disable=len(addresses) < 2) as pbar:
        for address in addresses:
            session = db_session.async_session() if persist else None
            try:
                result = await service.analyze_wallet(
                    address,
                    chain,
                    time_horizon_days=days,
                    min_trade_value=min_value,
                    include_reputation=include_reputation,
                    persist=persist,
                    session=session,
                )
                summaries.append(summarize(result))
            except AllProvidersExhausted as e:
                logger.error(f"Skipping {address}: {e}")
            finally:
                if session is not None:
                    await session.close()
                pbar.update(1)

    return summaries


async def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="Run conviction analysis for one or more wallets"
    )

    parser.add_argument(
        'addresses',
        nargs='+',
        help='Wallet address(es) to analyze'
    )

    parser.add_argument(
        '--chain',
        choices=[c.value for c in Chain],
        required=True,
        help='Chain the wallets trade on'
    )

    parser.add_argument(
        '--days',
        type=int,
        default=settings.DEFAULT_TIME_HORIZON_DAYS,
        help=f'Lookback in days (default: {settings.DEFAULT_TIME_HORIZON_DAYS})'
    )

    parser.add_argument(
        '--min-value',
        type=float,
        default=settings.DEFAULT_MIN_TRADE_VALUE_USD,
        help=f'Minimum trade size in USD (default: {settings.DEFAULT_MIN_TRADE_VALUE_USD})'
    )

    parser.add_argument(
        '--reputation',
        action='store_true',
        help='Apply the Ethos reputation multiplier'
    )

    parser.add_argument(
        '--persist',
        action='store_true',
        help='Store results (requires DATABASE_URL)'
    )

    parser.add_argument(
        '--json',
        action='store_true',
        help='Print JSON instead of a report'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Verbose logging'
    )

    args = parser.parse_args()

    setup_logging(level="DEBUG" if args.verbose else "INFO", sink=sys.stderr)

    if args.persist and db_session.async_session is None:
        parser.error("--persist requires DATABASE_URL to be set")

    try:
        summaries = await analyze_all(
            args.addresses,
            Chain(args.chain),
            args.days,
            args.min_value,
            args.reputation,
            args.persist,
        )
    finally:
        await deps.shutdown_services()
        if db_session.engine is not None:
            await db_session.engine.dispose()

    if args.json:
        print(json.dumps(summaries, indent=2, default=str))
    else:
        for summary in summaries:
            print_summary(summary)

    failed = len(args.addresses) - len(summaries)
    if failed:
        logger.warning(f"{failed} wallet(s) could not be analyzed")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
