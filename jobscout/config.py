from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_LISTING_URLS = [
    "https://slo-tech.com/delo",
    "https://www.bettercareer.si/jobs",
    "https://www.optius.com/iskalci/prosta-delovna-mesta/?Keywords=&Fields%5B%5D=37&doSearch=&Time=",
    "https://www.optius.com/iskalci/prosta-delovna-mesta/?Keywords=&Fields%5B%5D=42&doSearch=&Time=",
    "https://weworkremotely.com/remote-react-jobs",
    "https://weworkremotely.com/remote-javascript-jobs",
    "https://weworkremotely.com/remote-node-jobs",
    "https://weworkremotely.com/remote-angular-jobs",
    "https://weworkremotely.com/remote-full-time-jobs",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./jobscout.db"

    # LLM
    openai_api_key: str | None = None
    list_model_id: str = "gpt-4.1-mini"
    detail_model_id: str = "gpt-4.1"
    analysis_model_id: str = "gpt-4o"
    llm_metrics_capacity: int = 1000

    # Discovery
    default_listing_urls: list[str] = DEFAULT_LISTING_URLS
    ignore_postings_older_than_months: int = 4
    dedup_batch_size: int = 10
    classification_batch_size: int = 5  # paid model calls
    detail_batch_size: int = 3  # full page render per item
    extraction_timeout_seconds: float = 60.0
    classification_timeout_seconds: float = 20.0
    max_page_chars: int = 120_000
    discovery_interval_hours: int = 4

    # Field population
    field_population_interval_minutes: int = 10
    field_population_batch_size: int = 20

    # App
    debug: bool = False
    allowed_origins: str | None = None  # comma-separated extra CORS origins


settings = Settings()
