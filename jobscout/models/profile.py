from datetime import datetime
from sqlalchemy import Column, Integer, DateTime, JSON

from jobscout.database import Base


class Profile(Base):
    """Single-row document holding the user's job preferences."""
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Free-form preference profile handed to the relevance classifier,
    # e.g. {"roles": [...], "seniority": "...", "remote": true}
    job_preferences = Column(JSON, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
