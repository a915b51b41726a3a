"""
Downstream automation webhook client.

Finished onboardings are handed to an automation workflow (one event per
connected mailbox) through a plain JSON webhook.
"""
import httpx

from mailbox_onboarding.utils.logger import get_logger
from mailbox_onboarding.utils.errors import NotificationError

logger = get_logger(__name__)


class WebhookClient:
    """
    Posts onboarding events to the automation webhook.

    Usage:
        client = WebhookClient(url, timeout=15.0)
        await client.post_event({"event": "onboarding_config_update", ...})
    """

    def __init__(self, url: str, timeout: float = 15.0):
        self.url = url
        self.timeout = timeout

    async def post_event(self, payload: dict) -> None:
        """
        Deliver one event. No retries; the caller decides what to do.

        Raises:
            NotificationError: If the webhook is unset, unreachable,
                times out or answers with a non-2xx status
        """
        event = payload.get("event", "unknown")

        if not self.url:
            logger.error(f"Cannot deliver {event}: onboarding webhook URL is not configured")
            raise NotificationError("Onboarding webhook is not configured.")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
            except httpx.TimeoutException:
                logger.error(f"Webhook timed out delivering {event}")
                raise NotificationError()
            except httpx.HTTPStatusError as e:
                logger.error(f"Webhook rejected {event}: {e.response.status_code}")
                raise NotificationError()
            except httpx.RequestError as e:
                logger.error(f"Webhook request failed for {event}: {e}")
                raise NotificationError()

        logger.info(f"Delivered {event} for mailbox {payload.get('mailbox_id')}")
