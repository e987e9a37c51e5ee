from datetime import datetime
import enum

from sqlalchemy import Column, String, Integer, Text, Boolean, Date, DateTime

from jobscout.database import Base


class JobStatus(str, enum.Enum):
    """Review lifecycle of a stored job posting."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    APPLIED = "APPLIED"
    INTERVIEW = "INTERVIEW"
    REJECTED_BY_COMPANY = "REJECTED_BY_COMPANY"


# Source recorded for postings entered by hand rather than discovered
JOB_SOURCE_MANUAL = "manual"


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity: one record per posting URL (enforced by the database)
    url = Column(String, nullable=False, unique=True, index=True)
    source = Column(String, nullable=True)  # hostname of url, or "manual"

    # Listing fields
    title = Column(String, nullable=False)
    posted_date = Column(Date, nullable=True)

    # Detail fields (null until a detail scrape fills them)
    company = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    region = Column(String, nullable=True)
    job_type = Column(String, nullable=True)
    experience = Column(String, nullable=True)
    salary = Column(String, nullable=True)

    # Review state
    status = Column(String, nullable=False, default=JobStatus.PENDING.value, index=True)
    is_relevant = Column(Boolean, nullable=False, default=False)
    relevance_reasoning = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
