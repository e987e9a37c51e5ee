"""
Field population for stored jobs.

Relevant postings whose detail scrape failed during discovery are stored
without details. This service re-scrapes a stored job's own page and fills in
whichever detail columns are still empty; it never overwrites a value.
``populate_pending_jobs`` sweeps the stored jobs that still lack details; the
worker runs it on a schedule and the API can trigger it.
"""
import logging
from dataclasses import dataclass
from typing import List

from pydantic import ValidationError
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobscout.models.job import Job, JobStatus
from jobscout.schemas.posting import JobDetailScrape
from jobscout.services.extraction import JOB_DETAIL_INSTRUCTION, ExtractionGateway
from jobscout.services.state_machine import JobNotFoundError

logger = logging.getLogger(__name__)

# Job column -> JobDetailScrape field
DETAIL_FIELDS = {
    "company": "company",
    "description": "role",
    "region": "region",
    "job_type": "job_type",
    "experience": "experience",
    "salary": "salary",
}


class FieldPopulationError(Exception):
    """Raised when the detail page could not be scraped or parsed"""
    pass


def missing_fields(job: Job) -> List[str]:
    return [column for column in DETAIL_FIELDS if not getattr(job, column)]


async def find_jobs_missing_fields(db: AsyncSession, limit: int = 20) -> List[Job]:
    """Relevant jobs still under review that lack both company and description."""
    result = await db.execute(
        select(Job)
        .where(
            and_(
                Job.is_relevant.is_(True),
                Job.status.in_([JobStatus.PENDING.value, JobStatus.APPROVED.value]),
                or_(Job.company.is_(None), Job.company == ""),
                or_(Job.description.is_(None), Job.description == ""),
            )
        )
        .order_by(Job.created_at.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def populate_missing_job_fields(
    db: AsyncSession,
    job_id: int,
    extractor: ExtractionGateway,
) -> List[str]:
    """
    Scrape a stored job's page and fill its empty detail fields.

    Returns:
        Names of the columns that were filled (empty if nothing was missing
        or the page had nothing new)

    Raises:
        JobNotFoundError: If the job does not exist
        FieldPopulationError: If scraping or parsing the page failed
    """
    result = await db.execute(select(Job).where(Job.id == job_id))
    job = result.scalar_one_or_none()
    if not job:
        raise JobNotFoundError(f"Job {job_id} not found")

    missing = missing_fields(job)
    if not missing:
        logger.info(f"Job {job_id} has no missing fields")
        return []

    scrape = await extractor.extract(job.url, JobDetailScrape, JOB_DETAIL_INSTRUCTION)
    if not scrape.success or scrape.data is None:
        raise FieldPopulationError(
            f"Failed to scrape job details from {job.url}: {scrape.error or 'No data returned'}"
        )
    try:
        details = JobDetailScrape.model_validate(scrape.data)
    except ValidationError as e:
        raise FieldPopulationError(f"Failed to parse job details from {job.url}: {e}") from e

    populated = []
    for column in missing:
        value = getattr(details, DETAIL_FIELDS[column])
        if value:
            setattr(job, column, value)
            populated.append(column)

    if populated:
        await db.commit()
        await db.refresh(job)
        logger.info(f"Populated {', '.join(populated)} for job {job_id}")
    else:
        logger.info(f"No new fields found for job {job_id}")

    return populated


@dataclass
class PopulationSweepSummary:
    checked: int = 0
    populated: int = 0
    failed: int = 0


async def populate_pending_jobs(
    session_factory: async_sessionmaker,
    extractor: ExtractionGateway,
    limit: int = 20,
) -> PopulationSweepSummary:
    """
    Fill missing details for up to ``limit`` stored jobs, oldest first.

    Jobs are handled one at a time, each on its own session. A job whose page
    cannot be scraped is logged and skipped; the sweep carries on with the
    next one. Database errors propagate.
    """
    async with session_factory() as db:
        job_ids = [job.id for job in await find_jobs_missing_fields(db, limit)]

    summary = PopulationSweepSummary()
    if not job_ids:
        logger.info("No jobs with missing fields")
        return summary

    logger.info(f"Populating missing fields for {len(job_ids)} jobs")
    for job_id in job_ids:
        summary.checked += 1
        try:
            async with session_factory() as db:
                populated = await populate_missing_job_fields(db, job_id, extractor)
        except (FieldPopulationError, JobNotFoundError) as e:
            logger.warning(f"Skipping field population for job {job_id}: {e}")
            summary.failed += 1
            continue
        if populated:
            summary.populated += 1

    logger.info(
        f"Field population finished: {summary.populated} of {summary.checked} jobs updated, "
        f"{summary.failed} failed"
    )
    return summary
