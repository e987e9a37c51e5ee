"""Job-related Pydantic schemas."""
from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator

from jobscout.models.job import JobStatus
from jobscout.schemas.posting import require_absolute_url


class JobResponse(BaseModel):
    """Schema for stored job response."""
    id: int
    title: str
    url: str
    source: Optional[str] = None
    company: Optional[str] = None
    description: Optional[str] = None
    region: Optional[str] = None
    job_type: Optional[str] = None
    experience: Optional[str] = None
    salary: Optional[str] = None
    posted_date: Optional[date] = None
    status: JobStatus
    is_relevant: bool
    relevance_reasoning: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ManualJobCreate(BaseModel):
    """Schema for entering a job posting by hand."""
    title: str
    company: str
    url: str
    notes: Optional[str] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        return require_absolute_url(value.strip())


class JobStatusUpdate(BaseModel):
    """Request to move a job through the review lifecycle."""
    status: JobStatus
    notes: Optional[str] = None


class FieldPopulationResponse(BaseModel):
    """Result of re-scraping a stored job's missing detail fields."""
    job: JobResponse
    populated_fields: list[str]


class FieldPopulationSweepResponse(BaseModel):
    """Acknowledgement of a queued field population sweep."""
    message: str
    limit: int
