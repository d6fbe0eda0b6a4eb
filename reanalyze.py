#!/usr/bin/env python3
"""
Re-run metadata enrichment for every saved URL.

Records are processed one at a time with a pause in between so external
hosts are not hammered. Each update is committed on its own, so an
interrupted run can simply be started again.

Usage:
    # Dry-run (fetch but do not write)
    python reanalyze.py --dry-run

    # Only the 20 newest records, one second apart
    python reanalyze.py --limit 20 --delay 1
"""

import argparse
import asyncio
import logging
import os
from datetime import datetime
from typing import Optional

import httpx

from database import close_mongo_connection, connect_to_mongo
from dependencies import build_services
from repository import LinkRepository
from storage import get_storage_instance
from use_cases import AddLinkUseCase

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 0.5  # seconds between records


async def reanalyze_all(
    repository: LinkRepository,
    add_link: AddLinkUseCase,
    limit: Optional[int] = None,
    delay: float = DEFAULT_DELAY,
    dry_run: bool = False,
) -> dict:
    stats = {
        "total": 0,
        "updated": 0,
        "failed": 0,
        "start_time": datetime.now(),
    }

    records = await repository.find_all()
    if limit:
        records = records[:limit]
    stats["total"] = len(records)
    logger.info(f"Found {stats['total']} URLs to re-analyze")

    for index, record in enumerate(records, start=1):
        logger.info(f"Processing URL {index}/{stats['total']}: {record.url}")
        try:
            metadata = await add_link.enrich(record.url)
            metadata.tags = list(record.metadata.tags)  # tags are never touched here
            if dry_run:
                logger.info(f"[dry-run] {record.url} -> title={metadata.title!r}")
            else:
                record.metadata = metadata
                await repository.update(record)
            stats["updated"] += 1
        except Exception as e:
            stats["failed"] += 1
            logger.error(f"Failed to update URL: {record.url} - Error: {e}")

        if delay and index < stats["total"]:
            await asyncio.sleep(delay)

    stats["end_time"] = datetime.now()
    stats["duration_seconds"] = (stats["end_time"] - stats["start_time"]).total_seconds()
    return stats


def log_summary(stats: dict):
    logger.info("=== Re-analysis Complete ===")
    logger.info(f"Total URLs processed: {stats['total']}")
    logger.info(f"Successfully updated: {stats['updated']}")
    logger.info(f"Failed: {stats['failed']}")
    if stats["total"]:
        logger.info(f"Success rate: {100.0 * stats['updated'] / stats['total']:.2f}%")


async def run(limit: Optional[int], delay: float, dry_run: bool) -> dict:
    mongo_client, _ = await connect_to_mongo()
    try:
        async with httpx.AsyncClient(follow_redirects=True, timeout=10.0) as http_client:
            services = build_services(get_storage_instance(), http_client)
            stats = await reanalyze_all(
                services.repository, services.add_link, limit=limit, delay=delay, dry_run=dry_run
            )
    finally:
        await close_mongo_connection(mongo_client)
    return stats


def main():
    parser = argparse.ArgumentParser(description="Re-fetch metadata for every saved URL.")
    parser.add_argument("--limit", type=int, default=None, help="Process at most N records")
    parser.add_argument("--delay", type=float, default=DEFAULT_DELAY, help="Seconds between records")
    parser.add_argument("--dry-run", action="store_true", help="Fetch without writing")
    args = parser.parse_args()

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Starting URL re-analysis script...")
    try:
        stats = asyncio.run(run(args.limit, args.delay, args.dry_run))
    except KeyboardInterrupt:
        logger.info("Script interrupted.")
        return
    log_summary(stats)


if __name__ == "__main__":
    main()
