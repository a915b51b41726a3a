"""
Application configuration loaded from environment variables.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Google OAuth
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:8000/api/oauth/google/callback"

    # Microsoft OAuth (Entra ID v2 endpoints)
    microsoft_client_id: str = ""
    microsoft_client_secret: str = ""
    microsoft_redirect_uri: str = "http://localhost:8000/api/oauth/microsoft/callback"
    microsoft_tenant: str = "common"

    # Frontend URL for CORS and redirects
    frontend_url: str = "http://localhost:3000"

    # Downstream automation hook that receives finished onboarding
    onboarding_webhook_url: str = ""

    # Signed OAuth state
    state_hmac_secret: str = "dev-state-secret-change-in-production"

    # Session
    session_expire_hours: int = 24
    session_sweep_interval_seconds: float = 60.0

    # Pause between webhook events during finalize
    webhook_dispatch_interval_seconds: float = 3.0

    # Upper bound for every outbound HTTP call
    http_timeout_seconds: float = 15.0

    log_level: str = "INFO"

    # Clock skew tolerated when checking Google ID tokens (iat, exp)
    id_token_leeway_seconds: int = 300

    # Read-only mailbox access plus identity
    @property
    def google_scopes(self) -> list[str]:
        return [
            "openid",
            "email",
            "https://www.googleapis.com/auth/gmail.readonly",
        ]

    @property
    def microsoft_scopes(self) -> list[str]:
        return [
            "offline_access",
            "openid",
            "profile",
            "User.Read",
            "Mail.Read",
        ]

    @property
    def session_ttl_seconds(self) -> float:
        return self.session_expire_hours * 3600

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
