from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config import OracleSettings, load_config
from .datasource.http_api import HttpBeaconDataSource, HttpBeaconDataSourceConfig
from .raffle_client import RaffleClient
from .scheduler import OracleScheduler, SchedulerResult


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )


def build_datasource(settings: OracleSettings) -> HttpBeaconDataSource:
    beacon = settings.beacon
    if not beacon.url:
        raise RuntimeError("BEACON__URL is not configured.")
    return HttpBeaconDataSource(
        HttpBeaconDataSourceConfig(
            url=beacon.url,
            round_key=beacon.round_key,
            randomness_key=beacon.randomness_key,
            signature_key=beacon.signature_key,
            timeout_seconds=beacon.timeout_seconds,
        )
    )


async def run(args: argparse.Namespace) -> Optional[SchedulerResult]:
    settings = load_config(args.env_file)
    if args.no_automation:
        settings = settings.copy(automation_enabled=False)
    configure_logging(args.verbose)
    logger = logging.getLogger("chainraffle.oracle")

    datasource = build_datasource(settings)
    client = RaffleClient(settings)
    scheduler = OracleScheduler(settings, datasource, client, logger=logger)

    try:
        if args.once:
            result = await scheduler.run_once()
            logger.info(
                "Oracle pass done: requested=%s fulfilled=%s",
                result.requested_id,
                result.fulfilled,
            )
            return result

        await scheduler.run_forever()
        return None
    finally:
        client.close()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ChainRaffle randomness oracle and automation keeper")
    parser.add_argument("--env-file", type=str, default=None, help="Path to .env file with credentials")
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit.")
    parser.add_argument(
        "--no-automation",
        action="store_true",
        help="Only answer randomness requests; never trigger draws.",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging (default INFO)."
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        print("Oracle stopped by user.")


if __name__ == "__main__":
    main()
