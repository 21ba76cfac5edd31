import argparse
import asyncio
import csv
import logging
import sys
from typing import Iterable, Iterator, List, Optional

import structlog

from config import Settings, get_settings, get_settings_for_environment
from exceptions import IngestionError
from exporter import write_snapshots
from ingestion import OperationReader
from models import Operation
from services import ShardedRouter, get_transaction_router

logger = structlog.get_logger()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(log_level: str, log_format: str = "json") -> None:
    """Configure structured logging. Logs go to stderr so stdout stays pure CSV."""
    logging.basicConfig(
        stream=sys.stderr,
        level=log_level.upper(),
        format="%(message)s",
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tx-replay",
        description="Replay a CSV stream of transactions and print final account balances as CSV",
    )
    parser.add_argument("input", help="Path to the transactions CSV file")
    parser.add_argument("-o", "--output", help="Write balances to this file instead of stdout")
    parser.add_argument("--shards", type=int, help="Number of account shards to process concurrently")
    parser.add_argument("--log-level", choices=LOG_LEVELS, type=str.upper, help="Override the configured log level")
    parser.add_argument(
        "--env",
        choices=("development", "production", "testing"),
        help="Use the settings preset for this environment",
    )
    return parser


def _trace(operations: Iterable[Operation]) -> Iterator[Operation]:
    for operation in operations:
        logger.debug(
            "Operation read",
            operation=operation.type.value,
            client_id=operation.client_id(),
            tx_id=operation.transaction_id(),
        )
        yield operation


def _load_settings(env: Optional[str]) -> Settings:
    return get_settings_for_environment(env) if env else get_settings()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = _load_settings(args.env)

    shard_count = args.shards or settings.shard_count
    if shard_count < 1:
        print("tx-replay: --shards must be at least 1", file=sys.stderr)
        return 2

    configure_logging(args.log_level or settings.log_level, settings.log_format)
    logger.info(
        "Starting replay",
        app=settings.app_name,
        version=settings.app_version,
        input=args.input,
        shards=shard_count,
    )

    try:
        with open(args.input, newline="", encoding="utf-8", errors="surrogateescape") as stream:
            reader = OperationReader(stream)
            operations = _trace(reader) if settings.enable_detailed_logging else reader

            if shard_count > 1:
                router = ShardedRouter(shard_count, queue_size=settings.queue_size)
                summary = asyncio.run(router.process(operations))
            else:
                router = get_transaction_router()
                summary = router.process(operations)
    except (OSError, csv.Error, IngestionError) as e:
        logger.error("Failed to read input", input=args.input, error=str(e))
        return 1

    summary = summary.model_copy(update={"records_skipped": reader.skipped})

    try:
        if args.output:
            with open(args.output, "w", newline="") as out:
                write_snapshots(router.accounts(), out)
        else:
            write_snapshots(router.accounts(), sys.stdout)
    except OSError as e:
        logger.error("Failed to write balances", output=args.output, error=str(e))
        return 1

    logger.info("Replay finished", **summary.model_dump(mode="json"))
    return 0


if __name__ == "__main__":
    sys.exit(main())
