"""
Job discovery pipeline.

Runs six stages in strict order, each over the complete output of the
previous one:

1. scrape listing pages (one extraction call per URL, unbounded fan-out)
2. drop postings already stored (duplicate index, batched)
3. drop postings older than the recency threshold
4. classify titles against the preference profile (batched)
5. split relevant / irrelevant
6. scrape each relevant posting's own page for details (batched)

Per-item failures in stages 1, 4 and 6 are recovered locally. A duplicate
index failure aborts the run, since admitting a stored URL again would break
the one-record-per-URL invariant.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from dateutil.relativedelta import relativedelta
from pydantic import ValidationError

from jobscout.config import Settings, settings as default_settings
from jobscout.schemas.posting import (
    ClassifiedCandidate,
    DiscoveryResult,
    EnrichedPosting,
    JobDetailScrape,
    ListingCandidate,
    ListingPageScrape,
)
from jobscout.services.duplicate_index import DuplicateIndex
from jobscout.services.extraction import (
    JOB_DETAIL_INSTRUCTION,
    ExtractionGateway,
    ExtractionResult,
    listing_page_instruction,
)
from jobscout.services.job_utils import describe_error, parse_posted_date
from jobscout.services.profile import PreferencesProvider
from jobscout.services.progress import ProgressCallback, ProgressReporter
from jobscout.services.relevance import RelevanceClassifier, analyze_job_title, failed_verdict

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def gather_in_batches(
    items: Sequence[T],
    batch_size: int,
    worker: Callable[[T], Awaitable[R]],
) -> List[R]:
    """
    Run ``worker`` over ``items`` with at most ``batch_size`` calls in flight.

    Each batch settles completely before the next one starts. If any call in
    a batch raised, the first such exception is re-raised after the batch
    settles and no further batches run.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    results: List[R] = []
    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        outcomes = await asyncio.gather(*(worker(item) for item in batch), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        results.extend(outcomes)
    return results


class JobDiscoveryPipeline:
    """Scrape → deduplicate → filter → classify → enrich."""

    def __init__(
        self,
        extractor: ExtractionGateway,
        classifier: RelevanceClassifier,
        duplicate_index: DuplicateIndex,
        preferences_provider: PreferencesProvider,
        config: Settings = default_settings,
        detail_extractor: Optional[ExtractionGateway] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.extractor = extractor
        # Detail pages may use a stronger model than listing pages
        self.detail_extractor = detail_extractor or extractor
        self.classifier = classifier
        self.duplicate_index = duplicate_index
        self.preferences_provider = preferences_provider
        self._now = now

        # Read once; later config changes need a new pipeline
        self.recency_months = config.ignore_postings_older_than_months
        self.dedup_batch_size = config.dedup_batch_size
        self.classification_batch_size = config.classification_batch_size
        self.detail_batch_size = config.detail_batch_size
        self.extraction_timeout = config.extraction_timeout_seconds
        self.classification_timeout = config.classification_timeout_seconds

    async def discover_jobs(
        self,
        listing_urls: Iterable[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> DiscoveryResult:
        """
        Discover new, recent, relevant postings on the given listing pages.

        Args:
            listing_urls: Listing pages to scrape (may be empty)
            on_progress: Optional ``(percent, message)`` callback, sync or async

        Returns:
            DiscoveryResult with matched, irrelevant and unenriched postings

        Raises:
            Whatever the duplicate index raises; nothing else escapes.
        """
        listing_urls = list(listing_urls)
        if not listing_urls:
            logger.info("No listing URLs given; nothing to discover.")
            return DiscoveryResult()

        reporter = ProgressReporter(on_progress)
        logger.info(f"Starting job extraction from {len(listing_urls)} URL(s)...")

        try:
            reporter.report(10, "Scraping job listing pages...")
            scraped = await self.scrape_job_listings(listing_urls)
            if not scraped:
                logger.info("No jobs found in any initial scrape.")
                reporter.report(100, "Job discovery completed")
                return DiscoveryResult()

            reporter.report(30, "Deduplicating jobs...")
            deduplicated = await self.deduplicate_jobs(scraped)

            reporter.report(40, "Filtering by date...")
            recent = self.filter_jobs_by_date(deduplicated)
            if not recent:
                logger.info("No recent jobs found.")
                reporter.report(100, "Job discovery completed")
                return DiscoveryResult()

            reporter.report(60, "Analyzing job relevance...")
            classified = await self.analyze_job_relevance(recent)

            relevant, irrelevant = self.split_jobs_by_relevance(classified)

            reporter.report(80, "Scraping detailed job information...")
            matched, unenriched = await self.scrape_job_details(relevant)

            reporter.report(100, "Job discovery completed")
            logger.info(
                f"Job discovery completed. Found {len(matched)} relevant jobs, "
                f"{len(irrelevant)} irrelevant jobs and {len(unenriched)} relevant jobs without details."
            )
            return DiscoveryResult(matched=matched, irrelevant=irrelevant, unenriched=unenriched)

        except Exception as e:
            logger.error(f"Error in job discovery process: {e}", exc_info=True)
            raise
        finally:
            await reporter.drain()

    async def _extract(self, gateway: ExtractionGateway, url: str, schema, instruction: str) -> ExtractionResult:
        """Call the gateway with a timeout; every failure becomes ``success=False``."""
        try:
            return await asyncio.wait_for(
                gateway.extract(url, schema, instruction),
                timeout=self.extraction_timeout,
            )
        except asyncio.TimeoutError as e:
            return ExtractionResult(success=False, error=describe_error(e, self.extraction_timeout))
        except Exception as e:
            logger.debug(f"Extraction raised for {url}", exc_info=True)
            return ExtractionResult(success=False, error=describe_error(e))

    # Step 1: Scrape job listing pages in parallel
    async def scrape_job_listings(self, listing_urls: Sequence[str]) -> List[ListingCandidate]:
        instruction = listing_page_instruction(self._now().date())
        pages = await asyncio.gather(
            *(self._scrape_listing_page(url, instruction) for url in listing_urls)
        )
        all_jobs = [job for page in pages for job in page]
        logger.info(f"Total {len(all_jobs)} jobs found in initial scrapes.")
        return all_jobs

    async def _scrape_listing_page(self, url: str, instruction: str) -> List[ListingCandidate]:
        logger.info(f"Scraping initial job list from {url}...")
        result = await self._extract(self.extractor, url, ListingPageScrape, instruction)

        if not result.success or result.data is None:
            logger.warning(
                f"Failed to scrape job list from {url}: {result.error or 'No data returned'}. Skipping this URL."
            )
            return []

        try:
            page = ListingPageScrape.model_validate(result.data)
        except ValidationError as e:
            logger.warning(f"Failed to parse job list data from {url}: {e.error_count()} validation error(s)")
            logger.debug(f"Validation errors for {url}: {e.errors()}")
            return []

        logger.info(f"Found {len(page.job_postings)} jobs from {url}")
        return page.job_postings

    # Step 2: Deduplicate against stored jobs
    async def deduplicate_jobs(self, jobs: Sequence[ListingCandidate]) -> List[ListingCandidate]:
        # Same link twice in one run is the same posting; keep the first
        unique: dict[str, ListingCandidate] = {}
        for job in jobs:
            if job.link in unique:
                logger.debug(f"Dropping repeated link within this run: {job.link}")
                continue
            unique[job.link] = job
        candidates = list(unique.values())

        async def keep_if_new(job: ListingCandidate) -> Optional[ListingCandidate]:
            is_duplicate = await self.duplicate_index.exists(job.link)
            if is_duplicate:
                logger.debug(f"Already stored: {job.link}")
            return None if is_duplicate else job

        checked = await gather_in_batches(candidates, self.dedup_batch_size, keep_if_new)
        deduplicated = [job for job in checked if job is not None]

        logger.info(
            f"Deduplicated {len(jobs) - len(deduplicated)} jobs. "
            f"{len(deduplicated)} unique jobs remaining."
        )
        return deduplicated

    # Step 3: Filter jobs by date
    def filter_jobs_by_date(self, jobs: Sequence[ListingCandidate]) -> List[ListingCandidate]:
        cutoff = (self._now() - relativedelta(months=self.recency_months)).date()

        recent = []
        for job in jobs:
            posted = parse_posted_date(job.posted_date_iso)
            if posted is None:
                logger.warning(
                    f'Could not parse date {job.posted_date_iso!r} for job "{job.title}". Skipping.'
                )
                continue
            if posted >= cutoff:
                recent.append(job)
            else:
                logger.debug(f'Too old ({posted} < {cutoff}): "{job.title}"')

        logger.info(
            f"Filtered {len(jobs) - len(recent)} old jobs. {len(recent)} recent jobs remaining."
        )
        return recent

    # Step 4: Analyze job relevance in batches
    async def analyze_job_relevance(self, jobs: Sequence[ListingCandidate]) -> List[ClassifiedCandidate]:
        try:
            profile = await self.preferences_provider()
        except Exception as e:
            # Nothing can be verified relevant without a profile
            logger.error(f"Error getting job preferences: {e}")
            verdict = failed_verdict(describe_error(e))
            return [
                ClassifiedCandidate(**job.model_dump(), **verdict.model_dump())
                for job in jobs
            ]

        async def classify(job: ListingCandidate) -> ClassifiedCandidate:
            verdict = await analyze_job_title(self.classifier, job.title, profile, self.classification_timeout)
            return ClassifiedCandidate(**job.model_dump(), **verdict.model_dump())

        analyzed = await gather_in_batches(list(jobs), self.classification_batch_size, classify)
        logger.info(f"Analyzed {len(analyzed)} jobs for relevance.")
        return analyzed

    # Step 5: Split jobs by relevance
    def split_jobs_by_relevance(
        self, analyzed: Sequence[ClassifiedCandidate]
    ) -> Tuple[List[ClassifiedCandidate], List[ClassifiedCandidate]]:
        relevant = [job for job in analyzed if job.is_relevant]
        irrelevant = [job for job in analyzed if not job.is_relevant]
        logger.info(f"Split jobs: {len(relevant)} relevant, {len(irrelevant)} irrelevant")
        return relevant, irrelevant

    # Step 6: Scrape details for relevant jobs in batches
    async def scrape_job_details(
        self, relevant: Sequence[ClassifiedCandidate]
    ) -> Tuple[List[EnrichedPosting], List[ClassifiedCandidate]]:

        async def enrich(job: ClassifiedCandidate) -> Optional[EnrichedPosting]:
            result = await self._extract(
                self.detail_extractor, job.link, JobDetailScrape, JOB_DETAIL_INSTRUCTION
            )
            if not result.success or result.data is None:
                logger.warning(
                    f"Failed to scrape job details from {job.link}: {result.error or 'No data returned'}"
                )
                return None
            try:
                details = JobDetailScrape.model_validate(result.data)
            except ValidationError as e:
                logger.error(f"Failed to parse job details from {job.link}: {e.errors()}")
                return None

            logger.debug(f"Successfully scraped details for job: {job.title}")
            return EnrichedPosting.from_details(job, details)

        outcomes = await gather_in_batches(list(relevant), self.detail_batch_size, enrich)

        matched: List[EnrichedPosting] = []
        unenriched: List[ClassifiedCandidate] = []
        for job, posting in zip(relevant, outcomes):
            if posting is None:
                unenriched.append(job)
            else:
                matched.append(posting)

        logger.info(f"Successfully scraped details for {len(matched)} jobs.")
        if unenriched:
            logger.warning(f"{len(unenriched)} relevant jobs kept without details.")
        return matched, unenriched
