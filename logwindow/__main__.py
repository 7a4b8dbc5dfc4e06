#!/usr/bin/env python3
"""
Windowed Log-Count Cache

Runs one query repeatedly against Datadog through a single cache, so
later runs show the incremental fetch.

Usage:
    LOGWINDOW_DD_API_KEY=... LOGWINDOW_DD_APP_KEY=... \\
        python -m logwindow --query "service:web status:error" --minutes 15 --repeat 3
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from logwindow.core.config import LogWindowConfig
from logwindow.observability.logging import LogLevel, setup_logging
from logwindow.query.orchestrator import QueryOrchestrator
from logwindow.query.request import QueryRequest
from logwindow.upstream.datadog import DatadogLogSource


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logwindow",
        description="Per-minute log counts from Datadog with an incremental cache.",
    )
    parser.add_argument("--query", required=True, help="Datadog log query")
    parser.add_argument("--minutes", type=int, default=15, help="Window length ending now")
    parser.add_argument("--repeat", type=int, default=1, help="Number of runs")
    parser.add_argument("--interval", type=float, default=30.0, help="Seconds between runs")
    return parser


async def run_queries(config: LogWindowConfig, args: argparse.Namespace) -> int:
    async with DatadogLogSource(config.upstream, config.reliability) as source:
        ping = await source.ping()
        if ping.is_err():
            print(f"Upstream unreachable: {ping.error}")
            return 1

        orchestrator = QueryOrchestrator(source, config=config.cache)

        for run_index in range(args.repeat):
            if run_index:
                await asyncio.sleep(args.interval)

            end = datetime.now(timezone.utc)
            start = end - timedelta(minutes=args.minutes)
            outcome = await orchestrator.execute_detailed(QueryRequest(args.query, start, end))

            print(f"\n--- run {run_index + 1}/{args.repeat} [{start:%H:%M:%S} - {end:%H:%M:%S}] ---")
            if not outcome.succeeded:
                print(f"Query failed: {outcome.error}")
                return 1

            print(
                f"fetched {outcome.fetched_events} events in {outcome.fetched_pages} page(s) "
                f"from {outcome.resolution.fetch_start:%H:%M:%S} "
                f"({outcome.resolution.outcome.name}, {outcome.latency_ms:.0f}ms)"
            )
            for point in outcome.points:
                print(f"  {point.timestamp:%Y-%m-%d %H:%M}  {point.count}")

        print(f"\ncache: {orchestrator.store.stats.to_dict()}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config_result = LogWindowConfig.from_env()
    if config_result.is_err():
        print(config_result.error)
        return 2
    config = config_result.unwrap()

    validation = config.validate()
    if validation.is_err():
        print(f"Validation error: {validation.error}")
        return 2

    setup_logging(
        LogLevel.parse(config.observability.log_level),
        json_output=config.observability.log_json,
    )

    return asyncio.run(run_queries(config, args))


def run() -> None:
    """Synchronous entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
