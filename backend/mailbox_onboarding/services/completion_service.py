"""
Completion dispatcher.

Finalize merges the wizard's configuration into the session and hands the
onboarding to the automation webhook: one event per connected mailbox, in
the order the mailboxes were connected, with a fixed pause between events.

Only one finalize per session should be in flight at a time. Nothing
enforces this; the pause between events is a suspension point.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List

from mailbox_onboarding.integrations.webhook_client import WebhookClient
from mailbox_onboarding.models.session import OnboardingConfig, OnboardingSession
from mailbox_onboarding.services.session_service import SessionStore
from mailbox_onboarding.utils.logger import get_logger
from mailbox_onboarding.utils.errors import SessionExpiredError

logger = get_logger(__name__)

CONFIG_UPDATE_EVENT = "onboarding_config_update"


@dataclass
class FinalizeOutcome:
    events_sent: int
    fallback: bool = False


def _join(values) -> str:
    return ", ".join(values or [])


def _flatten_routing(routing: dict) -> dict:
    """Routing tiers as comma-separated strings."""
    result = {}
    for tier in ("high", "medium", "low"):
        value = routing.get(tier)
        if isinstance(value, list):
            result[tier] = _join(value)
        else:
            result[tier] = value or ""
    return result


def build_shared_payload(session: OnboardingSession, config: OnboardingConfig) -> dict:
    """Fields common to every event of one finalize."""
    profile = session.profile
    return {
        "org_id": session.org_id,
        "mailbox_id": session.mailbox_id,
        "company_name": profile.company_name,
        "contact_email": profile.contact_email,
        "business_type": profile.business_type,
        "timezone": profile.timezone,
        "default_signals_selected": _join(config.default_signals_selected),
        "alert_channels": _join(config.alert_channels),
        "whatsapp_numbers": _join(config.whatsapp_numbers),
        "whatsapp_consent": config.whatsapp_consent,
        "slack_webhook_urls": _join(config.slack_webhook_urls),
        "routing": _flatten_routing(config.routing),
        "digest": config.digest,
    }


class CompletionDispatcher:
    """
    Flushes a finished onboarding to the automation webhook.

    Usage:
        dispatcher = CompletionDispatcher(store, webhook, interval_seconds=3.0)
        outcome = await dispatcher.finalize(mailbox_id, config)
    """

    def __init__(
        self,
        store: SessionStore,
        notifier: WebhookClient,
        interval_seconds: float = 3.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.notifier = notifier
        self.interval_seconds = interval_seconds
        self._sleep = sleep

    def _build_events(self, session: OnboardingSession, config: OnboardingConfig) -> List[dict]:
        shared = build_shared_payload(session, config)

        if not session.connections:
            return [{
                "event": CONFIG_UPDATE_EVENT,
                **shared,
                "connected_emails": _join(session.linked_addresses),
            }]

        return [
            {
                "event": f"onboarding_and_{conn.provider.value}_connected",
                "provider": conn.provider.value,
                **shared,
                "monitored_address": conn.authed_email,
                "authed_email": conn.authed_email,
                "tokens": conn.tokens,
            }
            for conn in session.connections
        ]

    async def finalize(self, mailbox_id: str, config: OnboardingConfig) -> FinalizeOutcome:
        """
        Merge config, emit events, and delete the session.

        Args:
            mailbox_id: Session key
            config: Final alerting/routing/digest configuration

        Returns:
            FinalizeOutcome with the number of events delivered

        Raises:
            SessionExpiredError: Session unknown or evicted
            NotificationError: An event could not be delivered; the
                session is kept so finalize can be retried
        """
        session = self.store.get(mailbox_id)
        if session is None:
            raise SessionExpiredError()

        session.config = config
        events = self._build_events(session, config)
        fallback = not session.connections

        if fallback:
            logger.warning(f"Finalizing session {mailbox_id} with no connected mailboxes")

        for index, event in enumerate(events):
            if index > 0:
                await self._sleep(self.interval_seconds)
            await self.notifier.post_event(event)

        self.store.delete(mailbox_id)
        logger.info(f"Finalized session {mailbox_id}: {len(events)} events sent")
        return FinalizeOutcome(events_sent=len(events), fallback=fallback)
