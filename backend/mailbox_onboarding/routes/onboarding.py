"""
Onboarding session routes.

Flow:
1. Wizard POSTs /api/onboarding/start with profile + mailboxes → ids
2. Wizard sends the browser to /api/oauth/dispatch (see routes/oauth.py)
3. After all mailboxes are linked, wizard POSTs /api/onboarding/finalize
"""
from fastapi import APIRouter, Depends

from mailbox_onboarding.deps import get_dispatcher, get_orchestrator, get_session_store
from mailbox_onboarding.models.onboarding import (
    FinalizeRequest,
    FinalizeResponse,
    MailboxStatusResponse,
    StartRequest,
    StartResponse,
)
from mailbox_onboarding.models.session import CompanyProfile
from mailbox_onboarding.services.completion_service import CompletionDispatcher
from mailbox_onboarding.services.connection_service import ConnectionOrchestrator
from mailbox_onboarding.services.session_service import SessionStore, normalize_addresses
from mailbox_onboarding.utils.logger import get_logger
from mailbox_onboarding.utils.errors import ValidationError

router = APIRouter()
logger = get_logger(__name__)


def _clean(value) -> str:
    return (value or "").strip()


@router.post("/onboarding/start", response_model=StartResponse)
async def start_onboarding(
    body: StartRequest,
    store: SessionStore = Depends(get_session_store),
):
    """
    Open an onboarding session.

    Returns:
        { org_id, mailbox_id }

    Errors:
        400 with `missing` listing every absent required field
    """
    company_name = _clean(body.company_name)
    contact_email = _clean(body.contact_email)
    business_type = _clean(body.business_type)
    timezone = _clean(body.timezone) or "UTC"
    addresses = normalize_addresses(body.monitored_addresses)

    missing = []
    if not company_name:
        missing.append("company_name")
    if not contact_email:
        missing.append("contact_email")
    if not business_type:
        missing.append("business_type")
    if not body.compliance_accept:
        missing.append("compliance_accept")
    if not addresses:
        missing.append("monitored_addresses")

    if missing:
        logger.warning(f"Onboarding start rejected, missing: {missing}")
        raise ValidationError(missing)

    profile = CompanyProfile(
        company_name=company_name,
        contact_email=contact_email,
        business_type=business_type,
        timezone=timezone,
        compliance_accept=True,
    )
    session = store.create(profile, addresses)

    return StartResponse(org_id=session.org_id, mailbox_id=session.mailbox_id)


@router.post("/onboarding/finalize", response_model=FinalizeResponse)
async def finalize_onboarding(
    body: FinalizeRequest,
    dispatcher: CompletionDispatcher = Depends(get_dispatcher),
):
    """
    Save the final configuration and hand the onboarding downstream.

    Errors:
        400 if mailbox_id is missing or the session expired
        500 if the webhook failed (session kept, safe to retry)
    """
    mailbox_id = _clean(body.mailbox_id)
    if not mailbox_id:
        raise ValidationError(["mailbox_id"])

    await dispatcher.finalize(mailbox_id, body.config)
    return FinalizeResponse(ok=True)


@router.get("/mailbox", response_model=MailboxStatusResponse)
async def get_mailbox_status(
    mailbox_id: str = "",
    orchestrator: ConnectionOrchestrator = Depends(get_orchestrator),
):
    """Current address and link status of an onboarding session."""
    if not mailbox_id:
        raise ValidationError(["mailbox_id"])

    return MailboxStatusResponse(mailbox=orchestrator.mailbox_status(mailbox_id))
