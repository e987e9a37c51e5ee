"""
Tests for the job store.

Validates:
- Record mapping for both stored-posting variants
- Unique URL conflicts surface as DuplicateJobError and are skipped; other
  database errors propagate out of the store loop
- Discovery results are stored matched first, one record per URL
- Manual jobs are stored APPROVED and reject existing URLs
"""
from datetime import date

import pytest
from pydantic import TypeAdapter
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from jobscout.models.job import Job, JobStatus
from jobscout.schemas.job import ManualJobCreate
from jobscout.schemas.posting import (
    ClassifiedCandidate,
    DiscoveryResult,
    EnrichedPosting,
    JobDetailScrape,
    ListingOnly,
    StoredPosting,
    WithDetails,
)
from jobscout.services.job_store import (
    DuplicateJobError,
    create_manual_job,
    postings_to_store,
    store_discovery_result,
    store_job,
    store_postings,
    to_job_record,
)


def classified(link="https://weworkremotely.com/remote-jobs/acme-react", title="React Developer",
               is_relevant=True, reasoning="Matches preferred frontend roles.", posted="2025-01-10",
               constraints=None):
    return ClassifiedCandidate(
        title=title,
        link=link,
        posted_date_iso=posted,
        constraints=constraints,
        is_relevant=is_relevant,
        reasoning=reasoning,
    )


def enriched(**kwargs):
    return EnrichedPosting.from_details(
        classified(**kwargs),
        JobDetailScrape(
            company="Acme",
            role="Build the dashboard in React and TypeScript.",
            region="Europe",
            job_type="full-time",
            experience="5+ years",
            salary="€70k",
        ),
    )


# =============================================================================
# Mapping
# =============================================================================

def test_listing_only_record_has_no_details():
    job = to_job_record(ListingOnly.from_classified(classified(constraints="EU only")))

    assert job.title == "React Developer"
    assert job.url == "https://weworkremotely.com/remote-jobs/acme-react"
    assert job.source == "weworkremotely.com"
    assert job.status == JobStatus.PENDING.value
    assert job.is_relevant is True
    assert job.relevance_reasoning == "Matches preferred frontend roles."
    assert job.posted_date == date(2025, 1, 10)
    assert job.notes == "EU only"
    assert job.company is None
    assert job.description is None


def test_with_details_record_maps_detail_fields():
    job = to_job_record(WithDetails.from_enriched(enriched()))

    assert job.company == "Acme"
    assert job.description == "Build the dashboard in React and TypeScript."
    assert job.region == "Europe"
    assert job.job_type == "full-time"
    assert job.experience == "5+ years"
    assert job.salary == "€70k"


def test_listing_only_drops_detail_fields_of_enriched_posting():
    """The variant decides the mapping, not the fields the posting happens to carry"""
    variant = ListingOnly.from_classified(enriched())

    assert type(variant.posting) is ClassifiedCandidate
    assert to_job_record(variant).company is None


def test_empty_reasoning_and_bad_date_map_to_none():
    job = to_job_record(ListingOnly.from_classified(classified(reasoning="", posted="not-a-date")))

    assert job.relevance_reasoning is None
    assert job.posted_date is None


def test_stored_posting_discriminates_on_kind():
    adapter = TypeAdapter(StoredPosting)
    variant = adapter.validate_python(WithDetails.from_enriched(enriched()).model_dump())

    assert isinstance(variant, WithDetails)
    assert variant.kind == "with_details"


def test_postings_to_store_orders_matched_first():
    result = DiscoveryResult(
        matched=[enriched(link="https://site-a/jobs/1")],
        irrelevant=[classified(link="https://site-a/jobs/2", is_relevant=False)],
        unenriched=[classified(link="https://site-a/jobs/3")],
    )

    postings = postings_to_store(result)

    assert [p.kind for p in postings] == ["with_details", "listing_only", "listing_only"]
    assert [p.posting.link for p in postings] == [
        "https://site-a/jobs/1",
        "https://site-a/jobs/2",
        "https://site-a/jobs/3",
    ]


# =============================================================================
# Persistence
# =============================================================================

@pytest.mark.asyncio
async def test_store_job_conflict_raises_duplicate_error(db):
    await store_job(db, ListingOnly.from_classified(classified()))

    with pytest.raises(DuplicateJobError) as exc_info:
        await store_job(db, WithDetails.from_enriched(enriched()))

    assert exc_info.value.url == "https://weworkremotely.com/remote-jobs/acme-react"
    # Session is still usable after the rollback
    result = await db.execute(select(Job))
    assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_store_discovery_result_skips_duplicates(db):
    db.add(Job(
        title="Already stored",
        url="https://site-a/jobs/2",
        source="site-a",
        status=JobStatus.APPROVED.value,
        is_relevant=True,
    ))
    await db.commit()

    result = DiscoveryResult(
        matched=[enriched(link="https://site-a/jobs/1")],
        irrelevant=[classified(link="https://site-a/jobs/2", is_relevant=False)],
        unenriched=[classified(link="https://site-a/jobs/3", title="Vue Developer")],
    )

    summary = await store_discovery_result(db, result)

    assert summary.stored == 2
    assert summary.skipped == 1

    jobs = {job.url: job for job in (await db.execute(select(Job))).scalars().all()}
    assert len(jobs) == 3
    assert jobs["https://site-a/jobs/1"].company == "Acme"
    assert jobs["https://site-a/jobs/1"].status == JobStatus.PENDING.value
    # The existing record is untouched
    assert jobs["https://site-a/jobs/2"].status == JobStatus.APPROVED.value
    assert jobs["https://site-a/jobs/3"].is_relevant is True
    assert jobs["https://site-a/jobs/3"].company is None


@pytest.mark.asyncio
async def test_storing_same_result_twice_is_idempotent(db):
    result = DiscoveryResult(matched=[enriched(link="https://site-a/jobs/1")])

    first = await store_discovery_result(db, result)
    second = await store_discovery_result(db, result)

    assert (first.stored, first.skipped) == (1, 0)
    assert (second.stored, second.skipped) == (0, 1)


# =============================================================================
# Manual jobs
# =============================================================================

@pytest.mark.asyncio
async def test_create_manual_job(db):
    job = await create_manual_job(db, ManualJobCreate(
        title="Platform Engineer",
        company="Initech",
        url="https://careers.initech.com/jobs/42",
        notes="Referred by a friend",
    ))

    assert job.id is not None
    assert job.status == JobStatus.APPROVED.value
    assert job.is_relevant is True
    assert job.source == "manual"
    assert job.notes == "Referred by a friend"


@pytest.mark.asyncio
async def test_create_manual_job_rejects_existing_url(db):
    await store_job(db, ListingOnly.from_classified(classified(link="https://careers.initech.com/jobs/42")))

    with pytest.raises(DuplicateJobError):
        await create_manual_job(db, ManualJobCreate(
            title="Platform Engineer",
            company="Initech",
            url="https://careers.initech.com/jobs/42",
        ))


def test_manual_job_requires_absolute_url():
    with pytest.raises(ValueError):
        ManualJobCreate(title="Platform Engineer", company="Initech", url="/jobs/42")


class FailingCommitSession:
    """Delegates to a real session; the n-th commit fails as if the database went away."""

    def __init__(self, db, fail_on: int):
        self._db = db
        self.fail_on = fail_on
        self.commits = 0

    def add(self, instance):
        self._db.add(instance)

    async def commit(self):
        self.commits += 1
        if self.commits == self.fail_on:
            raise OperationalError("INSERT INTO jobs", {}, Exception("disk I/O error"))
        await self._db.commit()

    async def rollback(self):
        await self._db.rollback()

    async def refresh(self, instance):
        await self._db.refresh(instance)

    async def execute(self, *args, **kwargs):
        return await self._db.execute(*args, **kwargs)


@pytest.mark.asyncio
async def test_store_loop_propagates_other_errors(db):
    postings = [ListingOnly.from_classified(classified(link=f"https://site-a/jobs/{i}")) for i in range(1, 4)]
    session = FailingCommitSession(db, fail_on=2)

    with pytest.raises(OperationalError):
        await store_postings(session, postings)

    # The loop stopped at the failure; the first posting stays committed
    assert session.commits == 2
    await db.rollback()
    jobs = (await db.execute(select(Job))).scalars().all()
    assert [job.url for job in jobs] == ["https://site-a/jobs/1"]


@pytest.mark.asyncio
async def test_non_url_integrity_error_is_not_a_duplicate(db, monkeypatch):
    def record_without_title(posting):
        job = to_job_record(posting)
        job.title = None
        return job

    monkeypatch.setattr("jobscout.services.job_store.to_job_record", record_without_title)

    with pytest.raises(IntegrityError):
        await store_postings(db, [ListingOnly.from_classified(classified())])

    assert (await db.execute(select(Job))).scalars().all() == []
