"""
Pytest fixtures for testing.
"""
import pytest
import pytest_asyncio
from types import SimpleNamespace
from typing import AsyncGenerator

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Import database module BEFORE app to allow override
import jobscout.database
from jobscout.database import Base
# Import ALL models so Base.metadata knows about all tables
from jobscout.models.job import Job, JobStatus
from jobscout.models.profile import Profile
from jobscout.models.discovery_run import DiscoveryRun
from jobscout.services.llm_metrics import LLMMetricsBuffer

# Now import app (after we can override database)
from jobscout.main import app as fastapi_app

from fakes import TEST_PREFERENCES, FakeClassifier, FakeDuplicateIndex, FakeExtractor, make_pipeline


# Test database URL (use in-memory SQLite for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database for each test.
    Ensures cleanup happens even if test fails.
    """
    # Use StaticPool to keep single connection alive and reuse it
    # This ensures all sessions see the same in-memory database
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables FIRST
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # THEN replace the app's engine and sessionmaker
    # This ensures get_db() uses sessions connected to DB with tables
    original_engine = jobscout.database.engine
    original_sessionmaker = jobscout.database.AsyncSessionLocal

    jobscout.database.engine = test_engine
    jobscout.database.AsyncSessionLocal = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    # Create session for direct test use
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    session = async_session()

    try:
        yield session
    finally:
        # Cleanup strategy: Try each step independently
        try:
            await session.close()
        except Exception as e:
            print(f"Warning: Failed to close session: {e}")

        try:
            async with test_engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
        except Exception as e:
            print(f"Warning: Failed to drop tables: {e}")

        try:
            await test_engine.dispose()
        except Exception as e:
            print(f"Warning: Failed to dispose engine: {e}")

        jobscout.database.engine = original_engine
        jobscout.database.AsyncSessionLocal = original_sessionmaker


@pytest.fixture
def session_factory(db: AsyncSession) -> async_sessionmaker:
    """Sessionmaker bound to the per-test database (what the runner and index use)."""
    return jobscout.database.AsyncSessionLocal


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def fake_classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def fake_index() -> FakeDuplicateIndex:
    return FakeDuplicateIndex()


@pytest.fixture
def pipeline(fake_extractor, fake_classifier, fake_index):
    """Pipeline on fakes with the clock fixed at 2025-02-01."""
    return make_pipeline(fake_extractor, fake_classifier, fake_index)


@pytest.fixture
def llm_metrics() -> LLMMetricsBuffer:
    return LLMMetricsBuffer(capacity=50)


@pytest_asyncio.fixture
async def async_client(db: AsyncSession, pipeline, fake_extractor, llm_metrics) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing endpoints.

    The db fixture already replaced jobscout.database.engine with the test
    engine, so all endpoints use the test database. The lifespan does not run
    under ASGITransport, so app state is populated with fakes here.
    """
    fastapi_app.state.discovery = SimpleNamespace(
        pipeline=pipeline,
        list_extractor=fake_extractor,
        detail_extractor=fake_extractor,
        metrics=llm_metrics,
    )
    fastapi_app.state.llm_metrics = llm_metrics

    transport = ASGITransport(app=fastapi_app)

    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        follow_redirects=True  # Follow 307 redirects for trailing slashes
    ) as client:
        yield client


@pytest_asyncio.fixture
async def profile(db: AsyncSession) -> Profile:
    """Stored preference profile."""
    profile = Profile(job_preferences=dict(TEST_PREFERENCES))
    db.add(profile)
    await db.commit()
    await db.refresh(profile)
    return profile


@pytest_asyncio.fixture
async def stored_job(db: AsyncSession) -> Job:
    """A PENDING, relevant job stored without details."""
    job = Job(
        title="Senior React Developer",
        url="https://weworkremotely.com/remote-jobs/acme-senior-react-developer",
        source="weworkremotely.com",
        status=JobStatus.PENDING.value,
        is_relevant=True,
        relevance_reasoning="Matches preferred frontend roles.",
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return job
