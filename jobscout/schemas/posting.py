"""
Pipeline data shapes.

A posting moves through discovery as:
    ListingCandidate -> ClassifiedCandidate -> EnrichedPosting
and is handed to the store wrapped in a StoredPosting variant.
"""
from typing import Annotated, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


def require_absolute_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return value


class ListingCandidate(BaseModel):
    """A posting reference found on a listing page."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    title: str = Field(alias="job_title", min_length=1)
    link: str = Field(alias="job_link", description="The direct, absolute URL to the job details.")
    posted_date_iso: str = Field(
        description="The date the job was posted, in YYYY-MM-DD format."
    )
    constraints: Optional[str] = Field(
        default=None,
        description="Any additional constraints mentioned for the job, e.g., country restrictions like 'USA only'.",
    )

    @field_validator("link")
    @classmethod
    def validate_link(cls, value: str) -> str:
        return require_absolute_url(value)


class ListingPageScrape(BaseModel):
    """Everything extracted from one listing page."""
    job_postings: list[ListingCandidate]


class JobDetailScrape(BaseModel):
    """Details scraped from an individual job posting page."""
    region: Optional[str] = Field(default=None, description="The location/region where the job is based")
    role: Optional[str] = Field(default=None, description="The full job description or role details")
    experience: Optional[str] = Field(default=None, description="Any mentioned experience requirements")
    company: Optional[str] = Field(default=None, description="The company name")
    job_type: Optional[str] = Field(default=None, description="The type of employment (e.g., full-time, contract)")
    salary: Optional[str] = Field(default=None, description="Any salary or compensation information")


class ClassifiedCandidate(ListingCandidate):
    """A candidate with its relevance verdict attached."""
    is_relevant: bool
    reasoning: str = ""


class EnrichedPosting(ClassifiedCandidate):
    """A relevant candidate whose own page was scraped successfully."""
    region: Optional[str] = None
    role: Optional[str] = None
    experience: Optional[str] = None
    company: Optional[str] = None
    job_type: Optional[str] = None
    salary: Optional[str] = None

    @classmethod
    def from_details(cls, candidate: ClassifiedCandidate, details: JobDetailScrape) -> "EnrichedPosting":
        return cls(**candidate.model_dump(), **details.model_dump())


class DiscoveryResult(BaseModel):
    """Outcome of one discovery run.

    ``unenriched`` holds relevant candidates whose detail scrape failed; they
    appear in neither ``matched`` nor ``irrelevant``.
    """
    matched: list[EnrichedPosting] = Field(default_factory=list)
    irrelevant: list[ClassifiedCandidate] = Field(default_factory=list)
    unenriched: list[ClassifiedCandidate] = Field(default_factory=list)


class ListingOnly(BaseModel):
    """Store variant for a posting known only from its listing page."""
    kind: Literal["listing_only"] = "listing_only"
    posting: ClassifiedCandidate

    @classmethod
    def from_classified(cls, posting: ClassifiedCandidate) -> "ListingOnly":
        # Drop any subclass fields so the variant carries listing data only
        fields = set(ClassifiedCandidate.model_fields)
        return cls(posting=ClassifiedCandidate(**posting.model_dump(include=fields)))


class WithDetails(BaseModel):
    """Store variant for a posting enriched from its own page."""
    kind: Literal["with_details"] = "with_details"
    posting: EnrichedPosting

    @classmethod
    def from_enriched(cls, posting: EnrichedPosting) -> "WithDetails":
        return cls(posting=posting)


StoredPosting = Annotated[Union[ListingOnly, WithDetails], Field(discriminator="kind")]
