"""
Duplicate index: has a posting URL already been stored?

The lookup is an optimization in front of the unique constraint on
``jobs.url``; the store still has to handle conflicts from concurrent runs.
"""
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobscout.models.job import Job


class DuplicateIndex(Protocol):
    async def exists(self, url: str) -> bool:
        ...


async def is_job_duplicate(db: AsyncSession, url: str) -> bool:
    """Check whether a job with this URL is already stored."""
    result = await db.execute(select(Job.id).where(Job.url == url).limit(1))
    return result.scalar_one_or_none() is not None


class SqlDuplicateIndex:
    """
    Duplicate index backed by the jobs table.

    Each lookup uses its own short-lived session so concurrent checks do not
    share a connection. Database errors propagate to the caller.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def exists(self, url: str) -> bool:
        async with self._session_factory() as db:
            return await is_job_duplicate(db, url)
