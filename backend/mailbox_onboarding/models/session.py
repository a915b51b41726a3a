"""
Onboarding session Pydantic models.
"""
from pydantic import BaseModel
from typing import Any, Dict, List, Optional

from mailbox_onboarding.models.provider import Provider


class CompanyProfile(BaseModel):
    """Business details captured when onboarding starts."""
    company_name: str
    contact_email: str
    business_type: str
    timezone: str = "UTC"
    compliance_accept: bool

    class Config:
        frozen = True


class Connection(BaseModel):
    """Result of one completed OAuth authorization."""
    provider: Provider
    authed_email: str
    tokens: Dict[str, Any] = {}


class OnboardingConfig(BaseModel):
    """Alerting, routing and digest settings chosen in the last wizard step."""
    default_signals_selected: List[str] = []
    alert_channels: List[str] = []
    whatsapp_numbers: List[str] = []
    whatsapp_consent: bool = False
    slack_webhook_urls: List[str] = []
    routing: Dict[str, Any] = {}  # high, medium, low
    digest: Dict[str, Any] = {}


class OnboardingSession(BaseModel):
    """Server-held record of one organization's mailbox onboarding."""
    mailbox_id: str
    org_id: str
    profile: CompanyProfile
    monitored_addresses: List[str]
    pending_addresses: List[str]
    connections: List[Connection] = []
    linked_addresses: List[str] = []
    config: Optional[OnboardingConfig] = None
    created_at: float

    @property
    def all_linked(self) -> bool:
        return not self.pending_addresses

    @property
    def next_address(self) -> Optional[str]:
        return self.pending_addresses[0] if self.pending_addresses else None
