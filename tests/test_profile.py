"""
Tests for profile endpoints and preference access.
"""
import pytest
from httpx import AsyncClient

from jobscout.services.profile import (
    PreferencesNotFoundError,
    get_job_preferences,
    session_preferences_provider,
)

from fakes import TEST_PREFERENCES


@pytest.mark.asyncio
async def test_get_profile_empty(async_client: AsyncClient):
    response = await async_client.get("/api/profile")

    assert response.status_code == 200
    assert response.json()["job_preferences"] is None


@pytest.mark.asyncio
async def test_get_profile(async_client: AsyncClient, profile):
    response = await async_client.get("/api/profile")

    assert response.json()["job_preferences"] == TEST_PREFERENCES


@pytest.mark.asyncio
async def test_put_preferences_creates_then_replaces(async_client: AsyncClient, db):
    response = await async_client.put("/api/profile/preferences", json={"job_preferences": {"roles": ["QA Engineer"]}})
    assert response.status_code == 200
    assert response.json()["job_preferences"] == {"roles": ["QA Engineer"]}

    response = await async_client.put("/api/profile/preferences", json={"job_preferences": TEST_PREFERENCES})
    assert response.status_code == 200

    assert await get_job_preferences(db) == TEST_PREFERENCES


@pytest.mark.asyncio
async def test_put_empty_preferences_rejected(async_client: AsyncClient):
    response = await async_client.put("/api/profile/preferences", json={"job_preferences": {}})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_missing_preferences_raise(db):
    with pytest.raises(PreferencesNotFoundError):
        await get_job_preferences(db)


@pytest.mark.asyncio
async def test_session_provider_reads_stored_preferences(session_factory, profile):
    provide = session_preferences_provider(session_factory)

    assert await provide() == TEST_PREFERENCES
