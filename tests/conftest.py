"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from donor_home.services.api_client import DonorAPIClient


FROZEN_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """A fixed 'current time' for date-boundary tests."""
    return FROZEN_NOW


@pytest.fixture
def api_client():
    """A real client pointed at a fake host; patch httpx to control responses."""
    return DonorAPIClient(api_url="https://example.com/api", token="test-token")


@pytest.fixture
def mock_client():
    """A DonorAPIClient double whose ``get`` is an AsyncMock."""
    client = MagicMock(spec=DonorAPIClient)
    client.get = AsyncMock()
    return client


@pytest.fixture
def sample_stats_payload():
    """A typical /home/stats body."""
    return {
        "id": "stats-1",
        "userId": "user-1",
        "totalDonations": 4,
        "totalPoints": 400,
        "donationStreak": 2,
        "lastDonationDate": "2025-01-15T09:00:00.000Z",
        "lastUpdated": "2025-05-31T08:00:00.000Z",
    }


@pytest.fixture
def sample_campaign():
    """An approved, active campaign starting after FROZEN_NOW."""
    return {
        "id": "camp-1",
        "title": "City Hall Blood Drive",
        "startTime": "2025-06-10T08:00:00.000Z",
        "endTime": "2025-06-10T16:00:00.000Z",
        "isActive": True,
        "isApproved": True,
    }
