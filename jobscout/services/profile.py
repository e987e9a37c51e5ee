"""Preference profile business logic."""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import flag_modified

from jobscout.models.profile import Profile

logger = logging.getLogger(__name__)

PreferencesProvider = Callable[[], Awaitable[Dict[str, Any]]]


class PreferencesNotFoundError(Exception):
    """Raised when no job preferences are stored"""
    pass


async def get_profile(db: AsyncSession) -> Optional[Profile]:
    result = await db.execute(select(Profile).order_by(Profile.id).limit(1))
    return result.scalar_one_or_none()


async def get_job_preferences(db: AsyncSession) -> Dict[str, Any]:
    """
    Load the preference profile used for relevance classification.

    Raises:
        PreferencesNotFoundError: If no profile or no preferences are stored
    """
    profile = await get_profile(db)
    if profile is None or not profile.job_preferences:
        raise PreferencesNotFoundError("Job preferences not found in profile")
    return dict(profile.job_preferences)


async def update_job_preferences(db: AsyncSession, preferences: Dict[str, Any]) -> Profile:
    """Replace the stored job preferences, creating the profile on first use."""
    profile = await get_profile(db)
    if profile is None:
        profile = Profile(job_preferences=preferences)
        db.add(profile)
    else:
        profile.job_preferences = preferences
        flag_modified(profile, "job_preferences")
    await db.commit()
    await db.refresh(profile)
    logger.info(f"Updated job preferences ({len(preferences)} keys)")
    return profile


def session_preferences_provider(session_factory: async_sessionmaker) -> PreferencesProvider:
    """Build a provider that reads the preferences on a fresh session each call."""
    async def provide() -> Dict[str, Any]:
        async with session_factory() as db:
            return await get_job_preferences(db)
    return provide
