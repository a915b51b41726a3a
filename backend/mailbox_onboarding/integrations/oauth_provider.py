"""
Base class for per-provider OAuth2 authorization-code strategies.

The callback flow is the same for every provider; only these three steps
differ and are implemented by subclasses:
1. Building the consent URL
2. Exchanging the authorization code for tokens
3. Resolving the authenticated mailbox address
"""
import time
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from mailbox_onboarding.models.provider import Provider
from mailbox_onboarding.utils.logger import get_logger
from mailbox_onboarding.utils.errors import ProviderError

logger = get_logger(__name__)

# Token fields handed downstream; anything else the provider returns is dropped
TOKEN_FIELDS = ("access_token", "refresh_token", "scope", "token_type", "id_token")


class OAuthProvider(ABC):
    """OAuth strategy for one provider family."""

    provider: Provider

    def __init__(self, timeout: float = 15.0):
        self.timeout = timeout

    @abstractmethod
    def build_consent_url(self, state: str, login_hint: Optional[str] = None) -> str:
        """Return the provider consent URL carrying the signed state."""

    @abstractmethod
    async def exchange_code(self, code: str) -> dict:
        """Exchange an authorization code for a token bundle."""

    @abstractmethod
    async def resolve_identity(self, tokens: dict) -> str:
        """Return the mailbox address the user actually signed in with."""

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        """
        Make a request to a provider endpoint.

        Raises:
            ProviderError: On timeout, connection failure or non-2xx status
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.request(method, url, **kwargs)
            except httpx.TimeoutException:
                logger.error(f"{self.provider.value} request timed out: {url}")
                raise ProviderError(f"{self.display_name} took too long to respond. Please try again.")
            except httpx.RequestError as e:
                logger.error(f"{self.provider.value} request failed: {e}")
                raise ProviderError(f"Failed to connect to {self.display_name}.")

        if response.status_code != 200:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            logger.error(
                f"{self.provider.value} returned {response.status_code}: "
                f"{error_data.get('error', '')} {error_data.get('error_description', '')}".rstrip()
            )
            raise ProviderError(
                f"{self.display_name} rejected the request: "
                f"{error_data.get('error_description') or error_data.get('error') or response.status_code}"
            )

        try:
            return response.json()
        except ValueError:
            logger.error(f"{self.provider.value} returned a non-JSON body")
            raise ProviderError(f"Unexpected response from {self.display_name}.")

    @property
    def display_name(self) -> str:
        return self.provider.value.capitalize()

    @staticmethod
    def _token_bundle(data: dict) -> dict:
        """
        Keep the token fields and convert expires_in to an absolute
        expiry_date in epoch milliseconds.
        """
        if not data.get("access_token"):
            raise ProviderError("Provider did not return an access token.")

        tokens = {key: data[key] for key in TOKEN_FIELDS if data.get(key)}
        expires_in = int(data.get("expires_in", 3600))
        tokens["expiry_date"] = int(time.time() * 1000) + expires_in * 1000
        return tokens
