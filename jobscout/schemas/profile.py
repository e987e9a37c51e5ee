"""Profile-related Pydantic schemas."""
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel


class PreferencesRequest(BaseModel):
    """Request body replacing the stored job preferences."""
    job_preferences: dict[str, Any]


class ProfileResponse(BaseModel):
    """Current preference profile."""
    job_preferences: Optional[dict[str, Any]] = None
    updated_at: Optional[datetime] = None
