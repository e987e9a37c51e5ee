"""
Worker entrypoint for scheduled job discovery.

Runs the discovery pipeline against the given listing URLs (or the configured
defaults) every ``discovery_interval_hours``, and fills in missing details on
stored jobs every ``field_population_interval_minutes``.

Usage:
    python -m jobscout.worker [--once] [URL ...]
"""
import argparse
import asyncio
import logging
from typing import Optional, Sequence

from jobscout import database
from jobscout.config import settings
from jobscout.services.discovery_runner import DiscoveryServices, build_discovery_services, run_discovery
from jobscout.services.field_population import populate_pending_jobs

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def discovery_loop(
    services: DiscoveryServices,
    listing_urls: Optional[Sequence[str]] = None,
    once: bool = False,
) -> None:
    interval = settings.discovery_interval_hours * 3600
    while True:
        try:
            run = await run_discovery(services.pipeline, database.AsyncSessionLocal, listing_urls)
            if run is not None:
                logger.info(
                    f"Run {run.id} finished: {run.stored_count} stored, {run.skipped_count} duplicates skipped"
                )
        except Exception as e:
            # Already recorded on the run row; keep the schedule going
            logger.error(f"Discovery run failed: {e}")
            if once:
                raise

        if once:
            return
        logger.info(f"Next discovery run in {settings.discovery_interval_hours}h")
        await asyncio.sleep(interval)


async def field_population_loop(services: DiscoveryServices, once: bool = False) -> None:
    interval = settings.field_population_interval_minutes * 60
    while True:
        try:
            await populate_pending_jobs(
                database.AsyncSessionLocal,
                services.detail_extractor,
                settings.field_population_batch_size,
            )
        except Exception as e:
            logger.error(f"Error in periodic field population: {e}")
            if once:
                raise

        if once:
            return
        await asyncio.sleep(interval)


async def worker_main(listing_urls: Optional[Sequence[str]] = None, once: bool = False) -> None:
    await database.init_models()
    services = build_discovery_services(database.AsyncSessionLocal, settings)

    try:
        if once:
            await discovery_loop(services, listing_urls, once=True)
            await field_population_loop(services, once=True)
        else:
            await asyncio.gather(
                discovery_loop(services, listing_urls),
                field_population_loop(services),
            )
    finally:
        await services.close()
        await database.engine.dispose()


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Discover new job postings")
    parser.add_argument("urls", nargs="*", help="Listing page URLs (default: configured listing pages)")
    parser.add_argument("--once", action="store_true", help="Run discovery and field population once and exit")
    args = parser.parse_args(argv)

    asyncio.run(worker_main(args.urls or None, once=args.once))


if __name__ == "__main__":
    main()
