"""Small helpers shared by the pipeline, the classifier and the store."""
import asyncio
from datetime import date
from typing import Optional
from urllib.parse import urlparse

from dateutil.parser import isoparse


def parse_posted_date(value: Optional[str]) -> Optional[date]:
    """Parse an ISO posting date (``YYYY-MM-DD`` or a full timestamp). None if malformed."""
    if not value:
        return None
    try:
        return isoparse(value.strip()).date()
    except (ValueError, OverflowError):
        return None


def source_from_url(url: str) -> str:
    """Hostname of a posting URL, used as the record's source."""
    return urlparse(url).hostname or ""


def describe_error(error: BaseException, timeout: Optional[float] = None) -> str:
    """Short reason for a failed gateway or classifier call."""
    if isinstance(error, asyncio.TimeoutError):
        return f"timed out after {timeout}s" if timeout is not None else "timed out"
    return str(error) or type(error).__name__
