from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path

import httpx
import structlog

from rotation_tracker.config import ProbeConfig, load_probe_config
from rotation_tracker.fetcher import fetch_page
from rotation_tracker.history import HistoryStore
from rotation_tracker.probe import ProbeOutcome, run_probe


def configure_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def probe_once(config: ProbeConfig) -> ProbeOutcome:
    store = HistoryStore(config.history_file)
    async with httpx.AsyncClient(follow_redirects=False) as client:

        async def _fetch(url: str) -> str:
            return await fetch_page(
                url,
                client=client,
                timeout_seconds=config.timeout_seconds,
                max_redirects=config.max_redirects,
                headers={"User-Agent": config.user_agent},
            )

        return await run_probe(config, fetch=_fetch, store=store)


def main() -> int:
    parser = argparse.ArgumentParser(description="EU Login node rotation tracker (single probe)")
    parser.add_argument("--config", default=None, help="Optional path to YAML config")
    parser.add_argument("--url", default=None, help="Target URL (overrides EULOGIN_URL)")
    parser.add_argument("--history-file", default=None, help="History JSON path (overrides ROTATION_HISTORY_FILE)")
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (INFO, WARNING, ...)",
    )
    args = parser.parse_args()

    configure_logging(args.log_level)

    config = load_probe_config(
        Path(args.config) if args.config else None,
        url=args.url,
        history_file=args.history_file,
    )
    asyncio.run(probe_once(config))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
