"""
Microsoft (Outlook / Microsoft 365) OAuth strategy.

Uses the Microsoft identity platform v2 endpoints and Microsoft Graph
to resolve the signed-in mailbox.
"""
from typing import Optional
from urllib.parse import urlencode

from mailbox_onboarding.config import Settings
from mailbox_onboarding.integrations.oauth_provider import OAuthProvider
from mailbox_onboarding.models.provider import Provider
from mailbox_onboarding.utils.logger import get_logger

logger = get_logger(__name__)

MICROSOFT_LOGIN_BASE = "https://login.microsoftonline.com"
GRAPH_ME_URL = "https://graph.microsoft.com/v1.0/me"


class MicrosoftOAuthProvider(OAuthProvider):
    """Microsoft authorization-code flow."""

    provider = Provider.MICROSOFT

    def __init__(self, settings: Settings):
        super().__init__(timeout=settings.http_timeout_seconds)
        self.client_id = settings.microsoft_client_id
        self.client_secret = settings.microsoft_client_secret
        self.redirect_uri = settings.microsoft_redirect_uri
        self.scopes = settings.microsoft_scopes
        self.tenant = settings.microsoft_tenant

    @property
    def authorize_url(self) -> str:
        return f"{MICROSOFT_LOGIN_BASE}/{self.tenant}/oauth2/v2.0/authorize"

    @property
    def token_url(self) -> str:
        return f"{MICROSOFT_LOGIN_BASE}/{self.tenant}/oauth2/v2.0/token"

    def build_consent_url(self, state: str, login_hint: Optional[str] = None) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "response_mode": "query",
            "scope": " ".join(self.scopes),
            "state": state,
        }
        if login_hint:
            params["login_hint"] = login_hint

        return f"{self.authorize_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict:
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        }
        tokens = await self._request("POST", self.token_url, data=data)
        logger.info("Exchanged Microsoft authorization code for tokens")
        return self._token_bundle(tokens)

    async def resolve_identity(self, tokens: dict) -> str:
        """
        Fetch the Graph profile of the signed-in user.

        Accounts without an Exchange mailbox have no `mail`; fall back
        to the user principal name.
        """
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}
        profile = await self._request("GET", GRAPH_ME_URL, headers=headers)

        email = profile.get("mail") or profile.get("userPrincipalName") or ""
        logger.info(f"Resolved Microsoft identity: {email}")
        return email
