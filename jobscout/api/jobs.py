"""
Jobs API endpoints.
Handles stored job listing, manual entry, review status changes, relevance
re-analysis and field population.
"""
import logging
from typing import Optional, List
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_

from jobscout import database
from jobscout.database import get_db
from jobscout.models.job import Job, JobStatus
from jobscout.schemas.job import (
    FieldPopulationResponse,
    FieldPopulationSweepResponse,
    JobResponse,
    JobStatusUpdate,
    ManualJobCreate,
)
from jobscout.services.extraction import ExtractionGateway
from jobscout.services.field_population import (
    FieldPopulationError,
    populate_missing_job_fields,
    populate_pending_jobs,
)
from jobscout.services.job_store import DuplicateJobError, create_manual_job
from jobscout.services.relevance import rerun_job_analysis
from jobscout.services.state_machine import InvalidTransitionError, JobNotFoundError, transition_job

# Configure logger
logger = logging.getLogger(__name__)

router = APIRouter()


async def get_job_or_404(job_id: int, db: AsyncSession) -> Job:
    result = await db.execute(select(Job).where(Job.id == job_id))
    job = result.scalar_one_or_none()
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("/", response_model=JobResponse, status_code=201)
async def create_job(
    job: ManualJobCreate,
    db: AsyncSession = Depends(get_db)
):
    """
    Add a job by hand.

    Manual jobs skip review: they are stored APPROVED and relevant.
    Returns 409 if a job with the same URL is already stored.
    """
    try:
        return await create_manual_job(db, job)
    except DuplicateJobError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/", response_model=List[JobResponse])
async def list_jobs(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    status: Optional[JobStatus] = Query(None, description="Filter by review status"),
    is_relevant: Optional[bool] = Query(None, description="Filter by relevance verdict"),
    db: AsyncSession = Depends(get_db)
):
    """
    List stored jobs with optional filtering, newest first.
    Returns paginated results.
    """
    query = select(Job)

    filters = []
    if status is not None:
        filters.append(Job.status == status.value)
    if is_relevant is not None:
        filters.append(Job.is_relevant.is_(is_relevant))

    if filters:
        query = query.where(and_(*filters))

    query = query.order_by(Job.created_at.desc(), Job.id.desc()).offset(skip).limit(limit)

    result = await db.execute(query)
    jobs = result.scalars().all()

    logger.info(f"Listed {len(jobs)} jobs (filters: status={status}, is_relevant={is_relevant})")

    return jobs


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: int,
    db: AsyncSession = Depends(get_db)
):
    """
    Get a specific job by ID.
    """
    return await get_job_or_404(job_id, db)


@router.patch("/{job_id}/status", response_model=JobResponse)
async def update_job_status(
    job_id: int,
    update: JobStatusUpdate,
    db: AsyncSession = Depends(get_db)
):
    """
    Move a job through the review lifecycle.

    Returns 409 if the transition is not allowed from the job's current status.
    """
    try:
        return await transition_job(db, job_id, None, update.status, notes=update.notes)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except (InvalidTransitionError, ValueError) as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{job_id}/populate", response_model=FieldPopulationResponse)
async def populate_job_fields(
    job_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Re-scrape a stored job's page and fill in its empty detail fields.

    Existing values are never overwritten. Returns 502 if the page could not
    be scraped.
    """
    extractor = request.app.state.discovery.detail_extractor
    try:
        populated = await populate_missing_job_fields(db, job_id, extractor)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except FieldPopulationError as e:
        logger.warning(f"Field population failed for job {job_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    job = await get_job_or_404(job_id, db)
    return FieldPopulationResponse(job=JobResponse.model_validate(job), populated_fields=populated)


@router.post("/{job_id}/rerun-analysis", response_model=JobResponse)
async def rerun_analysis(
    job_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Classify a stored job's title again against the current preferences.

    A failed analysis is stored as not relevant, with the failure as reasoning.
    """
    pipeline = request.app.state.discovery.pipeline
    try:
        return await rerun_job_analysis(
            db,
            job_id,
            pipeline.classifier,
            pipeline.preferences_provider,
            timeout=pipeline.classification_timeout,
        )
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")


async def execute_field_population(extractor: ExtractionGateway, limit: int) -> None:
    """Background task body."""
    try:
        await populate_pending_jobs(database.AsyncSessionLocal, extractor, limit)
    except Exception as e:
        logger.error(f"Background field population failed: {e}")


@router.post("/populate-missing-fields", response_model=FieldPopulationSweepResponse, status_code=202)
async def trigger_field_population(
    request: Request,
    background_tasks: BackgroundTasks,
    limit: int = Query(20, ge=1, le=100),
):
    """
    Fill in missing details for stored jobs in the background.

    Picks up to ``limit`` relevant jobs still under review that have neither a
    company nor a description.
    """
    extractor = request.app.state.discovery.detail_extractor
    background_tasks.add_task(execute_field_population, extractor, limit)
    logger.info(f"Queued field population for up to {limit} jobs")
    return FieldPopulationSweepResponse(
        message="Field population queued for jobs with missing fields",
        limit=limit,
    )
