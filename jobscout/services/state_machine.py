"""
State machine for the job review lifecycle.
ALL status changes on stored jobs must go through this module.
"""
import logging
from datetime import datetime
from typing import Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from jobscout.models.job import Job, JobStatus

# Configure logger
logger = logging.getLogger(__name__)


# Define allowed status transitions
ALLOWED_TRANSITIONS: Dict[JobStatus, list[JobStatus]] = {
    JobStatus.PENDING: [JobStatus.APPROVED, JobStatus.REJECTED],
    JobStatus.APPROVED: [JobStatus.APPLIED, JobStatus.REJECTED],  # Reviewer can change their mind before applying
    JobStatus.APPLIED: [JobStatus.INTERVIEW, JobStatus.REJECTED_BY_COMPANY],
    JobStatus.INTERVIEW: [JobStatus.REJECTED_BY_COMPANY],
    JobStatus.REJECTED: [],  # Terminal state (user declined)
    JobStatus.REJECTED_BY_COMPANY: [],  # Terminal state
}


class InvalidTransitionError(Exception):
    """Raised when an invalid status transition is attempted"""
    pass


class JobNotFoundError(Exception):
    """Raised when a job id does not exist"""
    pass


def can_transition(from_status: JobStatus, to_status: JobStatus) -> bool:
    """Check if a transition is allowed without touching the database"""
    return to_status in ALLOWED_TRANSITIONS.get(from_status, [])


async def transition_job(
    db: AsyncSession,
    job_id: int,
    from_status: Optional[JobStatus],
    to_status: JobStatus,
    notes: Optional[str] = None,
) -> Job:
    """
    Move a job to a new status with validation.

    Args:
        db: Database session
        job_id: ID of the job to transition
        from_status: Expected current status (optimistic check). None means use whatever is stored.
        to_status: Target status
        notes: Optional reviewer notes; replaces the stored notes when given

    Returns:
        Updated Job

    Raises:
        JobNotFoundError: If the job does not exist
        ValueError: If from_status doesn't match the stored status
        InvalidTransitionError: If the transition is not allowed
    """
    result = await db.execute(select(Job).where(Job.id == job_id))
    job = result.scalar_one_or_none()

    if not job:
        raise JobNotFoundError(f"Job {job_id} not found")

    current_status = JobStatus(job.status)

    # Optimistic locking: verify the job is still in the expected status
    if from_status is not None and current_status != from_status:
        raise ValueError(
            f"Job {job_id} is in status {current_status.value}, expected {from_status.value}"
        )

    if not can_transition(current_status, to_status):
        raise InvalidTransitionError(
            f"Invalid transition from {current_status.value} to {to_status.value}"
        )

    job.status = to_status.value
    job.updated_at = datetime.utcnow()
    if notes is not None:
        job.notes = notes

    await db.commit()
    await db.refresh(job)

    logger.info(
        f"Job status transition: {current_status.value} → {to_status.value}",
        extra={"job_id": job_id, "from_status": current_status.value, "to_status": to_status.value},
    )

    return job
