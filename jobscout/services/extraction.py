"""
Extraction gateway.

The discovery pipeline only depends on the ``ExtractionGateway`` protocol:
"given a URL, a pydantic schema and an instruction, return structured data or
a failure". ``PlaywrightExtractor`` is the production implementation: it
renders the page in headless Chromium and asks an OpenAI model to pull out
JSON matching the schema.
"""
import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional, Protocol, Type

from bs4 import BeautifulSoup, Comment
from openai import AsyncOpenAI
from playwright.async_api import async_playwright, Browser, Playwright
from pydantic import BaseModel

from jobscout.services.llm_metrics import LLMMetricsBuffer

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36"

NOISE_TAGS = ("script", "style", "noscript", "svg", "iframe", "canvas", "template")


@dataclass
class ExtractionResult:
    """Outcome of one extraction call. ``data`` is unvalidated JSON."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ExtractionGateway(Protocol):
    async def extract(
        self, url: str, schema: Type[BaseModel], instruction: str
    ) -> ExtractionResult:
        ...


def listing_page_instruction(today: date) -> str:
    """Prompt for extracting every posting from a listing page."""
    today_iso = today.isoformat()
    return f"""
Extract all job postings from this page.

For each job, provide its title (job_title),
the direct URL to the job details (job_link),
the posting date (posted_date_iso),
and any constraints mentioned (constraints), such as country restrictions (e.g., "USA only").

Convert all posting dates to YYYY-MM-DD format.
For example, if a job was posted 'today' (assuming today is {today_iso}), 'yesterday', or '2 days ago', calculate and use the YYYY-MM-DD format.
If a date like '15.03.2024' is given, convert it to '2024-03-15'.

Ensure job_link is a full URL.""".strip()


JOB_DETAIL_INSTRUCTION = """
Extract the following job details:
- region: The location/region where the job is based
- role: The full job description or role details
- experience: Any mentioned experience requirements
- company: The company name
- job_type: The type of employment (e.g., full-time, contract)
- salary: Any salary or compensation information

Return null for any fields that are not found in the content.""".strip()


def clean_html(html: str, max_chars: int) -> str:
    """Strip non-content markup and truncate so the page fits in a prompt."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(NOISE_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()
    root = soup.body or soup
    if not root.get_text(strip=True):
        return ""
    content = re.sub(r"\s+", " ", str(root)).strip()
    if len(content) > max_chars:
        logger.debug(f"Truncating page content from {len(content)} to {max_chars} chars")
        content = content[:max_chars]
    return content


def build_messages(url: str, schema: Type[BaseModel], instruction: str, content: str) -> list[dict]:
    schema_json = json.dumps(schema.model_json_schema(by_alias=True), indent=2)
    system_prompt = (
        "You are a precise web data extraction engine. "
        "Read the HTML of a web page and return a single JSON object that conforms to this JSON schema:\n"
        f"{schema_json}\n"
        "Respond with JSON only."
    )
    user_prompt = f"{instruction}\n\nPage URL: {url}\n\nPage HTML:\n{content}"
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


class PlaywrightExtractor:
    """
    Render pages with a shared headless Chromium and extract JSON with an LLM.

    Use as an async context manager, or call ``close()`` when done. The
    browser is launched lazily on first use.
    """

    def __init__(
        self,
        model: str,
        client: Optional[AsyncOpenAI] = None,
        metrics: Optional[LLMMetricsBuffer] = None,
        max_page_chars: int = 120_000,
        navigation_timeout_ms: int = 30_000,
        name: str = "llm_scraper",
    ):
        self.model = model
        self.client = client or AsyncOpenAI()
        self.metrics = metrics if metrics is not None else LLMMetricsBuffer()
        self.max_page_chars = max_page_chars
        self.navigation_timeout_ms = navigation_timeout_ms
        self.name = name
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._start_lock = asyncio.Lock()

    async def __aenter__(self) -> "PlaywrightExtractor":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _ensure_browser(self) -> Browser:
        async with self._start_lock:
            if self._browser is None:
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                try:
                    self._browser = await self._playwright.chromium.launch(headless=True)
                except Exception:
                    # Don't leave a driver process behind for every failed launch
                    await self._playwright.stop()
                    self._playwright = None
                    raise
                logger.info("Launched headless Chromium for extraction")
        return self._browser

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def fetch_html(self, url: str) -> str:
        browser = await self._ensure_browser()
        page = await browser.new_page(user_agent=USER_AGENT)
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
            return await page.content()
        finally:
            await page.close()

    async def extract(
        self, url: str, schema: Type[BaseModel], instruction: str
    ) -> ExtractionResult:
        try:
            html = await self.fetch_html(url)
        except Exception as e:
            logger.warning(f"Failed to load {url}: {type(e).__name__}: {e}")
            return ExtractionResult(success=False, error=f"Failed to load page: {e}")

        content = clean_html(html, self.max_page_chars)
        if not content:
            return ExtractionResult(success=False, error="Page has no content")

        messages = build_messages(url, schema, instruction, content)
        try:
            async with self.metrics.track(self.name, self.model, url=url) as tracker:
                completion = await self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    response_format={"type": "json_object"},
                    temperature=0,
                )
                tracker.record_usage(completion.usage)
        except Exception as e:
            return ExtractionResult(success=False, error=f"Model call failed: {e}")

        raw = completion.choices[0].message.content if completion.choices else None
        if not raw:
            return ExtractionResult(success=False, error=f"Failed to scrape URL: {url}")

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug(f"Unparsable extraction output for {url}: {raw[:500]!r}")
            return ExtractionResult(success=False, error=f"Model returned invalid JSON: {e}")

        if not isinstance(data, dict):
            return ExtractionResult(success=False, error="Model returned a non-object JSON value")

        return ExtractionResult(success=True, data=data)
