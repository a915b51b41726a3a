"""
Google OAuth strategy.

This module handles:
1. Generating the Google consent URL for one mailbox
2. Exchanging authorization codes for tokens
3. Verifying the returned ID token to learn the signed-in address
"""
import asyncio
from typing import Optional
from urllib.parse import urlencode

import jwt

from mailbox_onboarding.config import Settings
from mailbox_onboarding.integrations.oauth_provider import OAuthProvider
from mailbox_onboarding.models.provider import Provider
from mailbox_onboarding.utils.logger import get_logger
from mailbox_onboarding.utils.errors import ProviderError

logger = get_logger(__name__)

# Google OAuth endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CERTS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")


class GoogleOAuthProvider(OAuthProvider):
    """
    Google (Gmail / Workspace) authorization-code flow.

    Usage:
        google = GoogleOAuthProvider(settings)
        url = google.build_consent_url(state, login_hint="a@gmail.com")
        tokens = await google.exchange_code(code)
        email = await google.resolve_identity(tokens)
    """

    provider = Provider.GOOGLE

    def __init__(self, settings: Settings):
        super().__init__(timeout=settings.http_timeout_seconds)
        self.client_id = settings.google_client_id
        self.client_secret = settings.google_client_secret
        self.redirect_uri = settings.google_redirect_uri
        self.scopes = settings.google_scopes
        self.leeway = settings.id_token_leeway_seconds
        self._jwks_client = jwt.PyJWKClient(GOOGLE_CERTS_URL, timeout=int(self.timeout))

    def build_consent_url(self, state: str, login_hint: Optional[str] = None) -> str:
        """
        Generate the Google consent URL.

        Args:
            state: Signed state token
            login_hint: Address the user is expected to sign in with

        Returns:
            OAuth authorization URL string
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",  # Request refresh token
            "prompt": "consent",  # Force consent to get refresh token
            "include_granted_scopes": "true",
            "state": state,
        }
        if login_hint:
            params["login_hint"] = login_hint

        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict:
        """
        Exchange authorization code for tokens.

        Returns:
            Token bundle with access_token, refresh_token, id_token, expiry_date

        Raises:
            ProviderError: If token exchange fails
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }
        tokens = await self._request("POST", GOOGLE_TOKEN_URL, data=data)
        logger.info("Exchanged Google authorization code for tokens")
        return self._token_bundle(tokens)

    def _decode_id_token(self, id_token: str) -> dict:
        signing_key = self._jwks_client.get_signing_key_from_jwt(id_token)
        claims = jwt.decode(
            id_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=self.client_id,
            leeway=self.leeway,
        )
        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise jwt.InvalidIssuerError(f"Unexpected issuer: {claims.get('iss')}")
        return claims

    async def resolve_identity(self, tokens: dict) -> str:
        """
        Read the signed-in address from the verified ID token.

        Raises:
            ProviderError: If the ID token is missing or fails verification
        """
        id_token = tokens.get("id_token")
        if not id_token:
            logger.error("Google token response had no id_token")
            raise ProviderError("Google did not return an identity token.")

        try:
            # PyJWKClient fetches the signing keys synchronously
            claims = await asyncio.to_thread(self._decode_id_token, id_token)
        except jwt.PyJWTError as e:
            logger.error(f"Google ID token verification failed: {e}")
            raise ProviderError("Couldn't verify your Google identity.")

        email = claims.get("email") or ""
        logger.info(f"Resolved Google identity: {email}")
        return email
