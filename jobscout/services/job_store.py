"""
Job store.

Maps discovery output onto ``Job`` records and persists them one at a time.
The unique constraint on ``jobs.url`` is the source of truth for duplicates:
a conflict surfaces as ``DuplicateJobError`` and the store loop skips it.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from jobscout.models.job import Job, JobStatus, JOB_SOURCE_MANUAL
from jobscout.schemas.job import ManualJobCreate
from jobscout.schemas.posting import (
    DiscoveryResult,
    ListingOnly,
    StoredPosting,
    WithDetails,
)
from jobscout.services.duplicate_index import is_job_duplicate
from jobscout.services.job_utils import parse_posted_date, source_from_url

logger = logging.getLogger(__name__)


class DuplicateJobError(Exception):
    """Raised when a job with the same URL is already stored"""

    def __init__(self, url: str):
        super().__init__(f"Job with URL {url} already exists")
        self.url = url


@dataclass
class StoreSummary:
    stored: int = 0
    skipped: int = 0


def to_job_record(posting: StoredPosting) -> Job:
    """Build a PENDING ``Job`` from a stored-posting variant."""
    item = posting.posting
    job = Job(
        title=item.title,
        url=item.link,
        source=source_from_url(item.link),
        status=JobStatus.PENDING.value,
        is_relevant=item.is_relevant,
        relevance_reasoning=item.reasoning or None,
        posted_date=parse_posted_date(item.posted_date_iso),
        notes=item.constraints or None,
    )
    if isinstance(posting, WithDetails):
        job.company = item.company
        job.description = item.role
        job.region = item.region
        job.job_type = item.job_type
        job.experience = item.experience
        job.salary = item.salary
    return job


async def _commit_new_job(db: AsyncSession, job: Job) -> None:
    """
    Commit a freshly added job. A unique-URL conflict becomes
    ``DuplicateJobError``; any other integrity error is re-raised as is.
    """
    url = job.url
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if await is_job_duplicate(db, url):
            raise DuplicateJobError(url) from e
        raise
    await db.refresh(job)


async def store_job(db: AsyncSession, posting: StoredPosting) -> Job:
    """
    Insert one job.

    Raises:
        DuplicateJobError: If the URL is already stored (e.g. a concurrent run won the race)
    """
    job = to_job_record(posting)
    db.add(job)
    await _commit_new_job(db, job)
    logger.debug(f"Stored job: {job.title}")
    return job


def postings_to_store(result: DiscoveryResult) -> List[StoredPosting]:
    """Wrap a discovery result in store variants: matched first, then the rest."""
    postings: List[StoredPosting] = [WithDetails.from_enriched(p) for p in result.matched]
    postings.extend(ListingOnly.from_classified(p) for p in result.irrelevant)
    postings.extend(ListingOnly.from_classified(p) for p in result.unenriched)
    return postings


async def store_postings(db: AsyncSession, postings: Iterable[StoredPosting]) -> StoreSummary:
    """
    Store postings sequentially. Duplicates are logged and skipped; any other
    error stops the loop and propagates.
    """
    summary = StoreSummary()
    for posting in postings:
        try:
            await store_job(db, posting)
            summary.stored += 1
        except DuplicateJobError as e:
            logger.info(f"Skipping duplicate job: {e.url}")
            summary.skipped += 1
    return summary


async def store_discovery_result(db: AsyncSession, result: DiscoveryResult) -> StoreSummary:
    summary = await store_postings(db, postings_to_store(result))
    logger.info(f"Stored {summary.stored} jobs ({summary.skipped} duplicates skipped)")
    return summary


async def create_manual_job(db: AsyncSession, data: ManualJobCreate) -> Job:
    """
    Store a job entered by hand. Manual jobs skip review: APPROVED and relevant.

    Raises:
        DuplicateJobError: If the URL is already stored
    """
    url = str(data.url)
    if await is_job_duplicate(db, url):
        logger.warning(f"Job with URL {url} already exists. Skipping creation.")
        raise DuplicateJobError(url)

    job = Job(
        title=data.title,
        company=data.company,
        url=url,
        source=JOB_SOURCE_MANUAL,
        status=JobStatus.APPROVED.value,
        is_relevant=True,
        notes=data.notes,
    )
    db.add(job)
    await _commit_new_job(db, job)

    logger.info(f"Manually added job: {job.title} (ID: {job.id})")
    return job
