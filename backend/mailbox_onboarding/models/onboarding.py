"""
Request/response models for the onboarding API.
"""
from pydantic import BaseModel
from typing import Any, List, Optional

from mailbox_onboarding.models.provider import Provider
from mailbox_onboarding.models.session import OnboardingConfig


class StartRequest(BaseModel):
    """
    Wizard submission that opens an onboarding session.

    Fields are optional here so the route can report every missing
    field at once instead of failing on the first.
    """
    company_name: Optional[str] = None
    contact_email: Optional[str] = None
    business_type: Optional[str] = None
    timezone: Optional[str] = None
    compliance_accept: bool = False
    monitored_addresses: List[Any] = []


class StartResponse(BaseModel):
    org_id: str
    mailbox_id: str


class FinalizeRequest(BaseModel):
    mailbox_id: Optional[str] = None
    config: OnboardingConfig = OnboardingConfig()


class FinalizeResponse(BaseModel):
    ok: bool = True


class MailboxStatus(BaseModel):
    """Read-only view of a session for the wizard's status lookup."""
    mailbox_id: str
    org_id: str
    mailbox_address: Optional[str] = None
    provider: Optional[Provider] = None
    status: str  # pending, awaiting_finalize, finalizing
    pending_addresses: List[str]
    linked_addresses: List[str]
    connections: int


class MailboxStatusResponse(BaseModel):
    mailbox: MailboxStatus
