"""Shared fixtures for the Zoho Stats Hub tests."""

import os

# Keep test runs from writing daily log files
os.environ.setdefault("LOG_TO_FILE", "false")

import pytest

from integrations.zoho.settings import ZohoSettings


@pytest.fixture
def settings():
    return ZohoSettings(
        accounts_url="https://accounts.zoho.com",
        api_url="https://www.zohoapis.com/crm/v2",
        client_id="client-id",
        client_secret="client-secret",
        refresh_token="refresh-token",
    )


class FakeClock:
    """Settable replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()
