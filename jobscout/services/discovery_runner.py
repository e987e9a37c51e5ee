"""
Discovery run entry point.

Wraps the pipeline for the worker and the API: tracks the run in
``discovery_runs``, persists progress, stores the results and records the
outcome.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from openai import AsyncOpenAI
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobscout.config import Settings, settings as default_settings
from jobscout.models.discovery_run import DiscoveryRun, RunStatus
from jobscout.services.duplicate_index import SqlDuplicateIndex
from jobscout.services.extraction import PlaywrightExtractor
from jobscout.services.job_discovery import JobDiscoveryPipeline
from jobscout.services.job_store import store_discovery_result
from jobscout.services.llm_metrics import LLMMetricsBuffer
from jobscout.services.profile import session_preferences_provider
from jobscout.services.progress import ProgressCallback
from jobscout.services.relevance import OpenAIRelevanceClassifier

logger = logging.getLogger(__name__)


class RunNotFoundError(Exception):
    """Raised when a discovery run id does not exist"""
    pass


async def create_run(db: AsyncSession, listing_urls: Optional[list[str]] = None) -> DiscoveryRun:
    """Create a QUEUED run."""
    run = DiscoveryRun(listing_urls=listing_urls)
    db.add(run)
    await db.commit()
    await db.refresh(run)
    return run


async def get_run(db: AsyncSession, run_id: str) -> Optional[DiscoveryRun]:
    result = await db.execute(select(DiscoveryRun).where(DiscoveryRun.id == run_id))
    return result.scalar_one_or_none()


def progress_recorder(session_factory: async_sessionmaker, run_id: str) -> ProgressCallback:
    """
    Build a progress callback that writes checkpoints to the run row.

    Updates run as independent background tasks and may land out of order,
    so a checkpoint never lowers the stored progress. Writes are serialized.
    """
    lock = asyncio.Lock()

    async def record(percent: int, message: str) -> None:
        async with lock, session_factory() as db:
            await db.execute(
                update(DiscoveryRun)
                .where(DiscoveryRun.id == run_id, DiscoveryRun.progress <= percent)
                .values(progress=percent, message=message, updated_at=datetime.utcnow())
            )
            await db.commit()
    return record


async def _finish_run(
    session_factory: async_sessionmaker,
    run_id: str,
    status: RunStatus,
    **values,
) -> Optional[DiscoveryRun]:
    async with session_factory() as db:
        run = await get_run(db, run_id)
        if run is None:
            logger.error(f"Run {run_id} no longer exists; cannot mark it {status.value}")
            return None
        run.status = status.value
        run.completed_at = datetime.utcnow()
        for field, value in values.items():
            setattr(run, field, value)
        await db.commit()
        await db.refresh(run)
        return run


async def run_discovery(
    pipeline: JobDiscoveryPipeline,
    session_factory: async_sessionmaker,
    listing_urls: Optional[Iterable[str]] = None,
    run_id: Optional[str] = None,
    config: Settings = default_settings,
) -> Optional[DiscoveryRun]:
    """
    Run discovery end to end and store the results.

    Args:
        pipeline: Configured discovery pipeline
        session_factory: Sessionmaker for run tracking and storage
        listing_urls: Listing pages; None means the configured defaults
        run_id: Existing QUEUED run to execute; a new run is created if omitted

    Returns:
        The finished DiscoveryRun (None if the run row was deleted meanwhile)

    Raises:
        RunNotFoundError: If run_id does not exist
        Any error that aborted discovery or storage (the run is marked failed first)
    """
    async with session_factory() as db:
        if run_id is None:
            run = await create_run(db)
        else:
            run = await get_run(db, run_id)
            if run is None:
                raise RunNotFoundError(f"Run {run_id} not found")

        if listing_urls is None:
            listing_urls = run.listing_urls if run.listing_urls is not None else config.default_listing_urls
        urls = list(listing_urls)

        run.listing_urls = urls
        run.status = RunStatus.RUNNING.value
        run.started_at = datetime.utcnow()
        await db.commit()
        run_id = run.id

    logger.info(f"Running job discovery {run_id} for {len(urls)} URLs...")

    try:
        result = await pipeline.discover_jobs(urls, on_progress=progress_recorder(session_factory, run_id))
        logger.info(
            f"Discovery {run_id}: {len(result.matched)} matched, {len(result.irrelevant)} irrelevant, "
            f"{len(result.unenriched)} without details"
        )

        logger.info("Storing jobs in database...")
        async with session_factory() as db:
            summary = await store_discovery_result(db, result)
    except Exception as e:
        logger.error(f"Discovery run {run_id} failed: {e}", exc_info=True)
        await _finish_run(session_factory, run_id, RunStatus.FAILED, error=str(e) or type(e).__name__)
        raise

    return await _finish_run(
        session_factory,
        run_id,
        RunStatus.COMPLETED,
        progress=100,
        message="Job discovery completed",
        scraped_count=len(result.matched) + len(result.irrelevant) + len(result.unenriched),
        matched_count=len(result.matched),
        irrelevant_count=len(result.irrelevant),
        unenriched_count=len(result.unenriched),
        stored_count=summary.stored,
        skipped_count=summary.skipped,
    )


@dataclass
class DiscoveryServices:
    """A wired pipeline plus the resources that must be closed with it."""
    pipeline: JobDiscoveryPipeline
    list_extractor: PlaywrightExtractor
    detail_extractor: PlaywrightExtractor
    metrics: LLMMetricsBuffer

    async def close(self) -> None:
        await self.list_extractor.close()
        await self.detail_extractor.close()


def build_discovery_services(
    session_factory: async_sessionmaker,
    config: Settings = default_settings,
    metrics: Optional[LLMMetricsBuffer] = None,
) -> DiscoveryServices:
    """
    Wire the production pipeline: Playwright + OpenAI extraction (a cheaper
    model for listing pages, a stronger one for detail pages), the OpenAI
    classifier and the SQL duplicate index.
    """
    metrics = metrics if metrics is not None else LLMMetricsBuffer(config.llm_metrics_capacity)
    client = AsyncOpenAI(api_key=config.openai_api_key)

    list_extractor = PlaywrightExtractor(
        model=config.list_model_id,
        client=client,
        metrics=metrics,
        max_page_chars=config.max_page_chars,
        name="llm_scraper_list",
    )
    detail_extractor = PlaywrightExtractor(
        model=config.detail_model_id,
        client=client,
        metrics=metrics,
        max_page_chars=config.max_page_chars,
        name="llm_scraper_detail",
    )
    classifier = OpenAIRelevanceClassifier(model=config.analysis_model_id, client=client, metrics=metrics)

    pipeline = JobDiscoveryPipeline(
        extractor=list_extractor,
        classifier=classifier,
        duplicate_index=SqlDuplicateIndex(session_factory),
        preferences_provider=session_preferences_provider(session_factory),
        config=config,
        detail_extractor=detail_extractor,
    )
    return DiscoveryServices(
        pipeline=pipeline,
        list_extractor=list_extractor,
        detail_extractor=detail_extractor,
        metrics=metrics,
    )
