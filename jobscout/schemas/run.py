"""Discovery run Pydantic schemas."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class CreateRunRequest(BaseModel):
    """Request to start a discovery run. Omitted URLs fall back to the configured defaults."""
    listing_urls: Optional[list[str]] = None


class RunResponse(BaseModel):
    """Response with run details."""
    id: str
    status: str
    progress: int
    message: Optional[str]
    listing_urls: Optional[list[str]]

    scraped_count: int = 0
    matched_count: int = 0
    irrelevant_count: int = 0
    unenriched_count: int = 0
    stored_count: int = 0
    skipped_count: int = 0
    error: Optional[str] = None

    created_at: datetime
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RunListResponse(BaseModel):
    """List of runs."""
    runs: list[RunResponse]
    total: int
