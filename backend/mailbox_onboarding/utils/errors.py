"""
Custom error classes for the application.

Every failure a caller can see maps to one of these kinds. Route handlers
translate them into JSON (API routes) or an HTML page (browser OAuth routes).
"""
from typing import List, Optional


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        status_code: int = 500,
        details: Optional[dict] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert error to dictionary for response."""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(AppError):
    """Required fields missing or malformed."""

    def __init__(self, missing: List[str], message: str = "Missing required fields"):
        self.missing = list(missing)
        super().__init__(
            message,
            "VALIDATION_ERROR",
            status_code=400,
            details={"missing": self.missing},
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["missing"] = self.missing
        return data


class SessionExpiredError(AppError):
    """Onboarding session is unknown or was evicted."""

    def __init__(self):
        super().__init__(
            "Your onboarding session has expired. Please start again.",
            "SESSION_EXPIRED",
            status_code=400,
        )


class StateIntegrityError(AppError):
    """OAuth state is missing, malformed or has a bad signature."""

    def __init__(self, message: str = "Invalid OAuth state."):
        super().__init__(message, "INVALID_STATE", status_code=400)


class ProviderError(AppError):
    """Identity provider token exchange or identity lookup failed."""

    def __init__(self, message: str = "Couldn't complete sign-in with your email provider. Please try again."):
        super().__init__(message, "PROVIDER_ERROR", status_code=502)


class NotificationError(AppError):
    """Downstream automation webhook could not be notified."""

    def __init__(self, message: str = "Failed to deliver onboarding configuration. Please try again."):
        super().__init__(message, "NOTIFICATION_FAILED", status_code=500)
