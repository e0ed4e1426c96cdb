"""
News ingestion worker.

Fetches crypto news, writes the snapshot read by the API server and, in watch
mode, repeats on an interval using APScheduler.

Usage:
    python -m src.tradelog.tasks.ingest_news            # run once
    python -m src.tradelog.tasks.ingest_news --watch    # run every N minutes
"""

import argparse
import asyncio
import logging
import sys

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.tradelog.config import Settings, settings
from src.tradelog.news.aggregator import NewsAggregator, build_snapshot, create_aggregator
from src.tradelog.news.schemas import NewsSnapshot
from src.tradelog.storage import write_json_atomic

logger = logging.getLogger(__name__)


async def run_once(aggregator: NewsAggregator, config: Settings | None = None) -> NewsSnapshot:
    """
    Run one ingestion cycle and write the snapshot.

    Provider failures leave an empty contribution; a failed write raises and
    leaves the previous snapshot in place.

    Returns:
        The snapshot that was written.
    """
    config = config or settings
    logger.info("Starting news ingestion...")

    items = await aggregator.collect()
    snapshot = build_snapshot(items)

    path = write_json_atomic(config.news_path, snapshot.model_dump())
    logger.info(f"Wrote {snapshot.count} items -> {path}")
    return snapshot


async def ingest_cycle(aggregator: NewsAggregator, config: Settings | None = None) -> None:
    """Scheduled cycle: like run_once, but errors are logged instead of raised."""
    try:
        await run_once(aggregator, config)
    except Exception as e:
        logger.error(f"News ingestion cycle failed: {e}")


def get_scheduler(
    aggregator: NewsAggregator,
    config: Settings | None = None,
    interval_minutes: float | None = None,
) -> AsyncIOScheduler:
    """
    Get configured APScheduler instance.

    Raises:
        ValueError: If the interval is not positive.

    Returns:
        Configured AsyncIOScheduler.
    """
    config = config or settings
    minutes = interval_minutes if interval_minutes is not None else config.WORKER_INTERVAL_MIN
    if minutes <= 0:
        raise ValueError(f"Ingestion interval must be positive, got {minutes} minutes")

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        ingest_cycle,
        trigger=IntervalTrigger(minutes=minutes),
        args=[aggregator, config],
        id="ingest_news",
        name="Ingest crypto news",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def watch(
    aggregator: NewsAggregator,
    config: Settings | None = None,
    interval_minutes: float | None = None,
) -> None:
    """Run a cycle immediately, then on the interval until cancelled."""
    await ingest_cycle(aggregator, config)

    scheduler = get_scheduler(aggregator, config, interval_minutes)
    scheduler.start()
    logger.info("News ingestion scheduler started")
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)


def _positive_minutes(value: str) -> float:
    try:
        minutes = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number of minutes: {value!r}")
    if minutes <= 0:
        raise argparse.ArgumentTypeError(f"interval must be positive, got {value}")
    return minutes


async def _main(watch_mode: bool, interval_minutes: float | None) -> int:
    aggregator = create_aggregator(settings)
    try:
        if watch_mode:
            await watch(aggregator, settings, interval_minutes)
            return 0
        try:
            await run_once(aggregator, settings)
        except Exception as e:
            logger.error(f"News ingestion failed: {e}")
            return 1
        return 0
    finally:
        await aggregator.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Fetch crypto news into the news snapshot.")
    parser.add_argument(
        "--watch",
        action="store_true",
        default=settings.WATCH,
        help="keep running and refresh on an interval (default: WATCH env)",
    )
    parser.add_argument(
        "--interval",
        type=_positive_minutes,
        default=None,
        help="minutes between runs in watch mode (default: WORKER_INTERVAL_MIN env)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return asyncio.run(_main(args.watch, args.interval))
    except KeyboardInterrupt:
        logger.info("Stopped")
        return 0


if __name__ == "__main__":
    sys.exit(main())
