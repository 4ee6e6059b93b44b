"""
Chainwatch command line.

Usage:
    python -m chainwatch --exchange nse                       # batch, all tickers
    python -m chainwatch --exchange both --ci                 # CI batch, both exchanges
    python -m chainwatch --mode single --exchange mcx --symbol CRUDEOIL
    python -m chainwatch --config config/chainwatch.yaml --verbose
"""

import argparse
import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

from chainwatch.client.exchange_client import create_client
from chainwatch.config.exchange_config import AppConfig
from chainwatch.config.loader import load_config
from chainwatch.core.errors import ChainwatchError
from chainwatch.data.cache import ResultCache
from chainwatch.data.snapshot_writer import SnapshotWriter
from chainwatch.orchestration.runner import ChainRunner

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chainwatch",
        description="Fetch NSE/MCX option chains and flag anomalous strikes",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", type=str, default=None, help="YAML config file")
    parser.add_argument("--mode", choices=["batch", "single"], default=None, help="Run mode")
    parser.add_argument("--exchange", choices=["nse", "mcx", "both"], default=None, help="Exchange")
    parser.add_argument("--symbol", type=str, default=None, help="Symbol for single mode")
    parser.add_argument("--expiry", type=str, default=None, help="Expiry for single mode")
    parser.add_argument(
        "--symbols",
        type=str,
        default=None,
        help="Comma-separated subset of symbols for batch mode",
    )
    parser.add_argument("--output-dir", type=str, default=None, help="Batch output directory")
    parser.add_argument("--ci", action="store_true", help="Use CI concurrency, retry and deadline")
    parser.add_argument("--log-file", type=str, default=None, help="Also log to this file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def configure_logging(level: str, log_file: Optional[str] = None) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
    if log_file:
        logger.add(
            log_file,
            level=level.upper(),
            format=LOG_FORMAT,
            rotation="50 MB",
            retention="10 days",
            compression="zip",
        )


def apply_args(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Command line flags win over file and environment settings."""
    overrides = {
        "mode": args.mode,
        "exchange": args.exchange,
        "symbol": args.symbol,
        "expiry": args.expiry,
        "output_dir": args.output_dir,
        "log_file": args.log_file,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})
    if args.ci:
        config = replace(config, ci=True)
    if args.verbose:
        config = replace(config, log_level="DEBUG")
    return config


async def run_batch(config: AppConfig, symbols: Optional[list[str]] = None) -> int:
    exit_code = 0
    split_output = config.exchange == "both"

    for exchange_config in config.exchanges():
        output_dir = Path(config.output_dir)
        writer = SnapshotWriter(output_dir / exchange_config.name if split_output else output_dir)
        async with create_client(exchange_config.name, exchange_config, ci=config.ci) as client:
            runner = ChainRunner(client, exchange_config, ci=config.ci, writer=writer)
            try:
                summary = await runner.run_batch(symbols)
            except ChainwatchError as e:
                logger.error(f"✗ {exchange_config.name} batch aborted: {e}")
                exit_code = 1
                continue

        print(json.dumps(summary.to_dict()))
        if summary.total and not summary.succeeded:
            exit_code = 1

    return exit_code


async def run_single(config: AppConfig) -> int:
    exchange_config = config.exchange_config(config.exchange)
    async with create_client(exchange_config.name, exchange_config, ci=config.ci) as client:
        runner = ChainRunner(
            client,
            exchange_config,
            ci=config.ci,
            cache=ResultCache(ttl=config.cache_ttl),
        )
        try:
            analysis = await runner.run_single(config.symbol, config.expiry)
        except ChainwatchError as e:
            logger.error(f"✗ {config.symbol}: {e.error_type}: {e}")
            print(json.dumps({"symbol": config.symbol, "error": str(e), "error_type": e.error_type}))
            return 1

    print(json.dumps(analysis.to_dict(), ensure_ascii=False))
    return 0


async def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "INFO")

    try:
        config = apply_args(load_config(args.config, validate=False), args)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Failed to load config: {e}")
        return 2

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(error)
        return 2

    configure_logging(config.log_level, config.log_file)
    logger.info(
        f"Chainwatch starting: mode={config.mode}, exchange={config.exchange}, ci={config.ci}"
    )

    if config.mode == "single":
        return await run_single(config)

    symbols = [s.strip() for s in args.symbols.split(",") if s.strip()] if args.symbols else None
    return await run_batch(config, symbols)


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)
