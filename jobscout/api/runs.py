"""
Discovery run endpoints.

A run is one pass of the discovery pipeline over a set of listing pages.
Creating a run returns immediately; the pipeline runs in the background and
the run row carries its progress and outcome.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select

from jobscout import database
from jobscout.database import get_db
from jobscout.models.discovery_run import DiscoveryRun
from jobscout.schemas.run import CreateRunRequest, RunResponse, RunListResponse
from jobscout.services.discovery_runner import create_run, get_run, run_discovery
from jobscout.services.job_discovery import JobDiscoveryPipeline

logger = logging.getLogger(__name__)
router = APIRouter()


async def execute_run(pipeline: JobDiscoveryPipeline, run_id: str) -> None:
    """Background task body. Failures are already recorded on the run row."""
    try:
        await run_discovery(pipeline, database.AsyncSessionLocal, run_id=run_id)
    except Exception as e:
        logger.error(f"Background discovery run {run_id} failed: {e}")


@router.post("/", response_model=RunResponse, status_code=202)
async def start_run(
    run_data: CreateRunRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db)
):
    """
    Start a discovery run.

    Omitted listing_urls fall back to the configured defaults. The response
    is the QUEUED run; poll GET /api/runs/{run_id} for progress.
    """
    pipeline = request.app.state.discovery.pipeline
    run = await create_run(db, run_data.listing_urls)
    background_tasks.add_task(execute_run, pipeline, run.id)
    logger.info(f"Queued discovery run {run.id}")
    return run


@router.get("/", response_model=RunListResponse)
async def list_runs(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """List discovery runs, newest first."""
    total = await db.scalar(select(func.count()).select_from(DiscoveryRun))
    result = await db.execute(
        select(DiscoveryRun)
        .order_by(DiscoveryRun.created_at.desc())
        .offset(skip)
        .limit(limit)
    )
    runs = result.scalars().all()
    return RunListResponse(runs=runs, total=total or 0)


@router.get("/{run_id}", response_model=RunResponse)
async def get_run_status(
    run_id: str,
    db: AsyncSession = Depends(get_db)
):
    """Get a run with its progress and outcome counts."""
    run = await get_run(db, run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return run
