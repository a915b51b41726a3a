"""
Signed OAuth state.

The state parameter travels through the provider's consent screen and comes
back on the callback. It is not stored server-side, so integrity comes only
from the HMAC tag:

    <base64url(json payload)>.<base64url(hmac-sha256(payload segment))>

Both segments are unpadded base64url so the token is safe in a query string.
The token is readable by anyone; never put secrets in it.
"""
import base64
import binascii
import hashlib
import hmac
import json
from typing import Optional

from mailbox_onboarding.utils.logger import get_logger

logger = get_logger(__name__)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


class StateCodec:
    """
    Sign and verify OAuth state tokens.

    Usage:
        codec = StateCodec(secret)
        token = codec.sign({"org_id": ..., "mailbox_id": ...})
        payload = codec.verify(token)  # None if invalid
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("State signing secret must not be empty")
        self._key = secret.encode("utf-8")

    def _tag(self, body: str) -> str:
        digest = hmac.new(self._key, body.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

    def sign(self, payload: dict) -> str:
        """
        Serialize and sign a payload.

        Args:
            payload: JSON-serializable dict

        Returns:
            Token string "<body>.<tag>"
        """
        body = _b64encode(
            json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        )
        return f"{body}.{self._tag(body)}"

    def verify(self, token: Optional[str]) -> Optional[dict]:
        """
        Verify a token and return its payload.

        Never raises: tampered, truncated or malformed tokens all yield
        None so callers cannot tell the browser which check failed.

        Args:
            token: Token from the callback query string

        Returns:
            Payload dict, or None if the token is not valid
        """
        if not isinstance(token, str):
            return None

        parts = token.split(".")
        if len(parts) != 2:
            logger.warning("State token has wrong number of segments")
            return None

        body, tag = parts
        try:
            expected = self._tag(body)
        except UnicodeEncodeError:
            return None

        if not hmac.compare_digest(expected.encode("ascii"), tag.encode("utf-8")):
            logger.warning("State token signature mismatch")
            return None

        try:
            payload = json.loads(_b64decode(body).decode("utf-8"))
        except (binascii.Error, ValueError):
            logger.warning("State token body could not be decoded")
            return None

        if not isinstance(payload, dict):
            return None

        return payload
