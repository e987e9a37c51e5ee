"""
In-process fakes for the pipeline's collaborators.

Each fake records its calls and the peak number of concurrent calls so tests
can assert on batching.
"""
import asyncio
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from jobscout.config import Settings
from jobscout.schemas.posting import JobDetailScrape, ListingPageScrape
from jobscout.schemas.relevance import RelevanceVerdict
from jobscout.services.extraction import ExtractionResult
from jobscout.services.job_discovery import JobDiscoveryPipeline

FIXED_NOW = datetime(2025, 2, 1, 12, 0, 0)

TEST_PREFERENCES = {
    "roles": ["Frontend Developer", "Full Stack Developer"],
    "technologies": ["React", "TypeScript", "Node.js"],
    "seniority": "senior",
    "remote": True,
}

Response = Union[Dict[str, Any], ExtractionResult, BaseException]


def listing(title: str, link: str, posted: str, constraints: Optional[str] = None) -> Dict[str, Any]:
    """A posting as the extraction model returns it (aliased keys)."""
    item = {"job_title": title, "job_link": link, "posted_date_iso": posted}
    if constraints is not None:
        item["constraints"] = constraints
    return item


def details(**fields: Any) -> Dict[str, Any]:
    data = {
        "region": None,
        "role": None,
        "experience": None,
        "company": None,
        "job_type": None,
        "salary": None,
    }
    data.update(fields)
    return data


class ConcurrencyGauge:
    def __init__(self):
        self.in_flight = 0
        self.max_in_flight = 0

    async def enter(self, delay: float = 0) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        # Yield so sibling calls in the same batch can start
        await asyncio.sleep(delay)

    def exit(self) -> None:
        self.in_flight -= 1


class FakeExtractor:
    """
    Listing pages are registered with ``add_page`` and detail pages with
    ``add_details``. A registered value may also be an ``ExtractionResult``
    or an exception to raise. Unknown URLs fail with ``success=False``.
    """

    def __init__(self):
        self.pages: Dict[str, Response] = {}
        self.detail_pages: Dict[str, Response] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[tuple] = []
        self.listing_gauge = ConcurrencyGauge()
        self.detail_gauge = ConcurrencyGauge()

    def add_page(self, url: str, postings: Union[Iterable[Dict[str, Any]], ExtractionResult, BaseException]):
        if isinstance(postings, (ExtractionResult, BaseException)):
            self.pages[url] = postings
        else:
            self.pages[url] = {"job_postings": list(postings)}

    def add_details(self, url: str, data: Response):
        self.detail_pages[url] = data

    @property
    def listing_calls(self) -> List[str]:
        return [url for url, schema in self.calls if schema is ListingPageScrape]

    @property
    def detail_calls(self) -> List[str]:
        return [url for url, schema in self.calls if schema is JobDetailScrape]

    async def extract(self, url, schema, instruction) -> ExtractionResult:
        self.calls.append((url, schema))
        is_listing = schema is ListingPageScrape
        gauge = self.listing_gauge if is_listing else self.detail_gauge
        responses = self.pages if is_listing else self.detail_pages

        await gauge.enter(self.delays.get(url, 0))
        try:
            response = responses.get(url)
            if response is None:
                return ExtractionResult(success=False, error=f"Failed to scrape URL: {url}")
            if isinstance(response, BaseException):
                raise response
            if isinstance(response, ExtractionResult):
                return response
            return ExtractionResult(success=True, data=response)
        finally:
            gauge.exit()


class FakeClassifier:
    """Relevant titles are listed up front; a title mapped to an exception raises it."""

    def __init__(self, relevant: Iterable[str] = (), errors: Optional[Dict[str, BaseException]] = None):
        self.relevant = set(relevant)
        self.errors = dict(errors or {})
        self.delays: Dict[str, float] = {}
        self.reasonings: Dict[str, str] = {}
        self.calls: List[str] = []
        self.profiles: List[Dict[str, Any]] = []
        self.gauge = ConcurrencyGauge()

    async def classify(self, title, profile) -> RelevanceVerdict:
        self.calls.append(title)
        self.profiles.append(dict(profile))
        await self.gauge.enter(self.delays.get(title, 0))
        try:
            if title in self.errors:
                raise self.errors[title]
            is_relevant = title in self.relevant
            default = "Matches preferred roles." if is_relevant else "Not a preferred role."
            reasoning = self.reasonings.get(title, default)
            return RelevanceVerdict(is_relevant=is_relevant, reasoning=reasoning)
        finally:
            self.gauge.exit()


class FakeDuplicateIndex:
    def __init__(self, known: Iterable[str] = (), error: Optional[BaseException] = None):
        self.known = set(known)
        self.error = error
        self.calls: List[str] = []
        self.gauge = ConcurrencyGauge()

    async def exists(self, url: str) -> bool:
        self.calls.append(url)
        await self.gauge.enter()
        try:
            if self.error is not None:
                raise self.error
            return url in self.known
        finally:
            self.gauge.exit()


def preferences_provider(preferences: Optional[Dict[str, Any]] = None, error: Optional[BaseException] = None):
    async def provide() -> Dict[str, Any]:
        if error is not None:
            raise error
        return dict(preferences or {"roles": ["Frontend Developer"]})
    return provide


def make_pipeline(
    extractor,
    classifier,
    index,
    provider=None,
    now: datetime = FIXED_NOW,
    **overrides: Any,
) -> JobDiscoveryPipeline:
    return JobDiscoveryPipeline(
        extractor=extractor,
        classifier=classifier,
        duplicate_index=index,
        preferences_provider=provider or preferences_provider(),
        config=Settings(**overrides),
        now=lambda: now,
    )
