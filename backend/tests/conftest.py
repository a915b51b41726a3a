"""
Pytest fixtures for mailbox onboarding tests.
"""
from typing import Optional
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient

from mailbox_onboarding.config import Settings
from mailbox_onboarding.integrations.oauth_provider import OAuthProvider
from mailbox_onboarding.integrations.webhook_client import WebhookClient
from mailbox_onboarding.main import create_app
from mailbox_onboarding.models.provider import Provider
from mailbox_onboarding.models.session import CompanyProfile
from mailbox_onboarding.services.completion_service import CompletionDispatcher
from mailbox_onboarding.services.connection_service import ConnectionOrchestrator
from mailbox_onboarding.services.session_service import InMemorySessionStore
from mailbox_onboarding.services.state_codec import StateCodec

TEST_SECRET = "test-state-secret"
DAY = 24 * 3600


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(OAuthProvider):
    """
    In-memory OAuth strategy.

    The authorization code doubles as the authenticated address unless
    `identities` maps it to something else.
    """

    def __init__(self, provider: Provider):
        super().__init__()
        self.provider = provider
        self.identities = {}
        self.exchanged = []
        self.fail_with: Optional[Exception] = None

    def build_consent_url(self, state, login_hint=None):
        query = urlencode({"state": state, "login_hint": login_hint or ""})
        return f"https://{self.provider.value}.example/consent?{query}"

    async def exchange_code(self, code):
        if self.fail_with is not None:
            raise self.fail_with
        self.exchanged.append(code)
        return {"access_token": f"at-{code}", "refresh_token": f"rt-{code}"}

    async def resolve_identity(self, tokens):
        code = tokens["access_token"][len("at-"):]
        return self.identities.get(code, code)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemorySessionStore(ttl_seconds=DAY, sweep_interval_seconds=60, clock=clock)


@pytest.fixture
def codec():
    return StateCodec(TEST_SECRET)


@pytest.fixture
def providers():
    return {
        Provider.GOOGLE: FakeProvider(Provider.GOOGLE),
        Provider.MICROSOFT: FakeProvider(Provider.MICROSOFT),
    }


@pytest.fixture
def orchestrator(store, codec, providers):
    return ConnectionOrchestrator(store, codec, providers)


@pytest.fixture
def profile():
    return CompanyProfile(
        company_name="Acme Dental",
        contact_email="owner@acme.test",
        business_type="dental_clinic",
        timezone="Europe/London",
        compliance_accept=True,
    )


@pytest.fixture
def notifier():
    """Webhook client double recording every event."""
    client = MagicMock(spec=WebhookClient)
    client.post_event = AsyncMock()
    return client


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def dispatcher(store, notifier, sleep):
    return CompletionDispatcher(store, notifier, interval_seconds=3.0, sleep=sleep)


@pytest.fixture
def test_settings():
    return Settings(
        state_hmac_secret=TEST_SECRET,
        frontend_url="http://frontend.test",
        onboarding_webhook_url="http://hooks.test/onboarding",
    )


@pytest.fixture
def client(test_settings, store, providers, dispatcher):
    """TestClient over an app wired to the fake collaborators."""
    app = create_app(
        settings=test_settings,
        store=store,
        providers=providers,
        dispatcher=dispatcher,
    )
    return TestClient(app)
