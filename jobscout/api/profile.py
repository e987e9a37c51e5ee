"""
Profile management endpoints.

The profile holds the job preferences the relevance classifier compares
titles against.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from jobscout.database import get_db
from jobscout.schemas.profile import PreferencesRequest, ProfileResponse
from jobscout.services.profile import get_profile, update_job_preferences

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/profile", response_model=ProfileResponse)
async def read_profile(db: AsyncSession = Depends(get_db)):
    """Get the stored preference profile (empty if none has been saved yet)."""
    profile = await get_profile(db)
    if profile is None:
        return ProfileResponse()
    return ProfileResponse(job_preferences=profile.job_preferences, updated_at=profile.updated_at)


@router.put("/profile/preferences", response_model=ProfileResponse)
async def replace_preferences(
    preferences: PreferencesRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Replace the job preferences.

    Takes effect from the next discovery run.
    """
    if not preferences.job_preferences:
        raise HTTPException(status_code=422, detail="job_preferences must not be empty")
    try:
        profile = await update_job_preferences(db, preferences.job_preferences)
    except Exception as e:
        await db.rollback()
        logger.error(f"Error updating preferences: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update preferences")
    return ProfileResponse(job_preferences=profile.job_preferences, updated_at=profile.updated_at)
