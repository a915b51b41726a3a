"""
Unit tests for the completion dispatcher.
"""
from unittest.mock import call

import pytest

from mailbox_onboarding.models.provider import Provider
from mailbox_onboarding.models.session import Connection, OnboardingConfig
from mailbox_onboarding.services.completion_service import (
    CompletionDispatcher,
    build_shared_payload,
)
from mailbox_onboarding.utils.errors import NotificationError, SessionExpiredError


@pytest.fixture
def config():
    return OnboardingConfig(
        default_signals_selected=["refund_request", "legal_threat"],
        alert_channels=["whatsapp", "slack"],
        whatsapp_numbers=["+447700900001"],
        whatsapp_consent=True,
        slack_webhook_urls=["https://hooks.slack.test/1"],
        routing={"high": ["whatsapp", "slack"], "medium": "slack", "low": "digest"},
        digest={"enabled": True, "hour": 8},
    )


def _connect(session, provider, email):
    session.pending_addresses.remove(email)
    session.connections.append(
        Connection(provider=provider, authed_email=email, tokens={"access_token": f"at-{email}"})
    )
    session.linked_addresses.append(email)


def _events(notifier):
    return [c.args[0] for c in notifier.post_event.await_args_list]


class TestPacedDispatch:
    """One event per connection, paced, in connection order."""

    @pytest.mark.asyncio
    async def test_three_connections_two_delays(self, dispatcher, store, profile, notifier, sleep, config):
        addresses = ["a@gmail.com", "b@outlook.com", "c@gmail.com"]
        session = store.create(profile, addresses)
        _connect(session, Provider.GOOGLE, "a@gmail.com")
        _connect(session, Provider.MICROSOFT, "b@outlook.com")
        _connect(session, Provider.GOOGLE, "c@gmail.com")

        outcome = await dispatcher.finalize(session.mailbox_id, config)

        assert outcome.events_sent == 3
        assert outcome.fallback is False
        assert sleep.await_args_list == [call(3.0), call(3.0)]

        events = _events(notifier)
        assert [e["authed_email"] for e in events] == addresses
        assert [e["event"] for e in events] == [
            "onboarding_and_google_connected",
            "onboarding_and_microsoft_connected",
            "onboarding_and_google_connected",
        ]
        assert events[1]["tokens"] == {"access_token": "at-b@outlook.com"}
        assert events[1]["monitored_address"] == "b@outlook.com"

    @pytest.mark.asyncio
    async def test_delay_is_between_events(self, store, profile, notifier, config):
        """Sleeps interleave with posts and never come first."""
        order = []

        async def record_sleep(seconds):
            order.append(("sleep", seconds))

        async def record_post(event):
            order.append(("post", event["authed_email"]))

        notifier.post_event.side_effect = record_post
        dispatcher = CompletionDispatcher(store, notifier, interval_seconds=1.5, sleep=record_sleep)

        session = store.create(profile, ["a@gmail.com", "b@gmail.com"])
        _connect(session, Provider.GOOGLE, "a@gmail.com")
        _connect(session, Provider.GOOGLE, "b@gmail.com")

        await dispatcher.finalize(session.mailbox_id, config)

        assert order == [
            ("post", "a@gmail.com"),
            ("sleep", 1.5),
            ("post", "b@gmail.com"),
        ]

    @pytest.mark.asyncio
    async def test_single_connection_no_delay(self, dispatcher, store, profile, sleep, config):
        session = store.create(profile, ["a@gmail.com"])
        _connect(session, Provider.GOOGLE, "a@gmail.com")

        await dispatcher.finalize(session.mailbox_id, config)

        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_shared_fields(self, dispatcher, store, profile, notifier, config):
        session = store.create(profile, ["a@gmail.com"])
        _connect(session, Provider.GOOGLE, "a@gmail.com")

        await dispatcher.finalize(session.mailbox_id, config)

        event = _events(notifier)[0]
        assert event["provider"] == "google"
        assert event["org_id"] == session.org_id
        assert event["mailbox_id"] == session.mailbox_id
        assert event["company_name"] == "Acme Dental"
        assert event["timezone"] == "Europe/London"
        assert event["default_signals_selected"] == "refund_request, legal_threat"
        assert event["alert_channels"] == "whatsapp, slack"
        assert event["whatsapp_numbers"] == "+447700900001"
        assert event["whatsapp_consent"] is True
        assert event["routing"] == {"high": "whatsapp, slack", "medium": "slack", "low": "digest"}
        assert event["digest"] == {"enabled": True, "hour": 8}


class TestFallback:
    """Finalize without any connection sends one config update."""

    @pytest.mark.asyncio
    async def test_zero_connections(self, dispatcher, store, profile, notifier, sleep, config):
        session = store.create(profile, ["a@gmail.com"])

        outcome = await dispatcher.finalize(session.mailbox_id, config)

        assert outcome.events_sent == 1
        assert outcome.fallback is True
        sleep.assert_not_awaited()
        events = _events(notifier)
        assert len(events) == 1
        assert events[0]["event"] == "onboarding_config_update"
        assert events[0]["connected_emails"] == ""
        assert "tokens" not in events[0]
        assert "authed_email" not in events[0]
        assert store.get(session.mailbox_id) is None

    @pytest.mark.asyncio
    async def test_fallback_carries_linked_addresses(self, dispatcher, store, profile, notifier, config):
        session = store.create(profile, ["a@gmail.com"])
        session.linked_addresses.extend(["a@gmail.com", "x@gmail.com"])

        await dispatcher.finalize(session.mailbox_id, config)

        assert _events(notifier)[0]["connected_emails"] == "a@gmail.com, x@gmail.com"


class TestFinalizeLifecycle:

    @pytest.mark.asyncio
    async def test_session_deleted_on_success(self, dispatcher, store, profile, config):
        session = store.create(profile, ["a@gmail.com"])
        _connect(session, Provider.GOOGLE, "a@gmail.com")

        await dispatcher.finalize(session.mailbox_id, config)

        assert store.get(session.mailbox_id) is None

    @pytest.mark.asyncio
    async def test_config_merge_overwrites(self, dispatcher, store, profile, notifier, config):
        session = store.create(profile, ["a@gmail.com"])
        notifier.post_event.side_effect = NotificationError()

        with pytest.raises(NotificationError):
            await dispatcher.finalize(session.mailbox_id, config)
        assert session.config == config

        replacement = OnboardingConfig(alert_channels=["email"])
        with pytest.raises(NotificationError):
            await dispatcher.finalize(session.mailbox_id, replacement)
        assert session.config == replacement
        assert session.config.default_signals_selected == []

    @pytest.mark.asyncio
    async def test_failure_keeps_session_for_retry(self, dispatcher, store, profile, notifier, sleep, config):
        session = store.create(profile, ["a@gmail.com", "b@gmail.com"])
        _connect(session, Provider.GOOGLE, "a@gmail.com")
        _connect(session, Provider.GOOGLE, "b@gmail.com")
        notifier.post_event.side_effect = [None, NotificationError()]

        with pytest.raises(NotificationError):
            await dispatcher.finalize(session.mailbox_id, config)

        assert store.get(session.mailbox_id) is session
        assert notifier.post_event.await_count == 2

        notifier.post_event.side_effect = None
        outcome = await dispatcher.finalize(session.mailbox_id, config)
        assert outcome.events_sent == 2
        assert store.get(session.mailbox_id) is None

    @pytest.mark.asyncio
    async def test_missing_session(self, dispatcher, config):
        with pytest.raises(SessionExpiredError):
            await dispatcher.finalize("gone", config)


def test_routing_flattening(store, profile):
    session = store.create(profile, ["a@gmail.com"])
    shared = build_shared_payload(
        session, OnboardingConfig(routing={"high": ["a", "b"], "medium": ["c"]})
    )
    assert shared["routing"] == {"high": "a, b", "medium": "c", "low": ""}
