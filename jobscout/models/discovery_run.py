from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON
import uuid
import enum

from jobscout.database import Base


class RunStatus(str, enum.Enum):
    """Discovery run status."""
    QUEUED = "queued"        # Run created, waiting to be started
    RUNNING = "running"      # Pipeline in progress
    COMPLETED = "completed"  # Results stored
    FAILED = "failed"        # Aborted by a correctness-critical error


class DiscoveryRun(Base):
    __tablename__ = "discovery_runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    status = Column(String, nullable=False, default=RunStatus.QUEUED.value)

    # Progress protocol: last reported checkpoint
    progress = Column(Integer, nullable=False, default=0)
    message = Column(String, nullable=True)

    # Configuration snapshot
    listing_urls = Column(JSON, nullable=True)

    # Outcome counts
    scraped_count = Column(Integer, nullable=False, default=0)
    matched_count = Column(Integer, nullable=False, default=0)
    irrelevant_count = Column(Integer, nullable=False, default=0)
    unenriched_count = Column(Integer, nullable=False, default=0)
    stored_count = Column(Integer, nullable=False, default=0)
    skipped_count = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
