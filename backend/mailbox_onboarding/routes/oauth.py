"""
OAuth routes for connecting mailboxes.

OAuth Flow (repeated for every pending mailbox):
1. Browser hits GET /api/oauth/dispatch → redirect to provider start,
   or a provider-choice page if the domain is not recognised
2. GET /api/oauth/{provider}/start → redirect to provider consent with signed state
3. Provider redirects to GET /api/oauth/{provider}/callback with code + state
4. Backend exchanges code, records the connection, then redirects to the
   next provider start or back to the wizard once everything is linked

These routes are browser navigations, so errors render a small HTML page
instead of JSON.
"""
from html import escape
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from mailbox_onboarding.config import Settings
from mailbox_onboarding.deps import get_app_settings, get_orchestrator
from mailbox_onboarding.models.provider import Provider
from mailbox_onboarding.services.connection_service import (
    ConnectionOrchestrator,
    DispatchAction,
    DispatchDecision,
)
from mailbox_onboarding.utils.logger import get_logger
from mailbox_onboarding.utils.errors import AppError, StateIntegrityError

router = APIRouter()
logger = get_logger(__name__)

PAGE_TEMPLATE = """<!DOCTYPE html>
<html style="font-family:system-ui;text-align:center;padding:40px;">
  <head><title>{title}</title></head>
  <body>
    <div style="max-width:500px;margin:0 auto;border:1px solid #ddd;padding:30px;border-radius:12px;">
      {content}
    </div>
  </body>
</html>
"""

CHOICE_LINK = (
    '<a href="{href}" style="display:block;padding:12px;text-decoration:none;color:#333;'
    'border:1px solid #ccc;border-radius:8px;font-weight:600;">{label}</a>'
)

PROVIDER_LABELS = {
    Provider.GOOGLE: "Google Workspace (Gmail)",
    Provider.MICROSOFT: "Microsoft 365 (Outlook)",
}


def _page(title: str, content: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        PAGE_TEMPLATE.format(title=escape(title), content=content),
        status_code=status_code,
    )


def _error_page(error: AppError) -> HTMLResponse:
    content = (
        "<h2>We couldn't connect your inbox</h2>"
        f'<p style="font-size:16px;color:#555;">{escape(error.message)}</p>'
    )
    return _page("Connect Inbox", content, status_code=error.status_code)


def _start_url(request: Request, provider: Provider, org_id: str, mailbox_id: str) -> str:
    url = request.url_for("start_authorization", provider=provider.value)
    return str(url.include_query_params(org_id=org_id, mailbox_id=mailbox_id))


def _frontend_url(settings: Settings, **params) -> str:
    return f"{settings.frontend_url}/onboarding?{urlencode(params)}"


def _respond(
    request: Request,
    decision: DispatchDecision,
    settings: Settings,
    choice_via_dispatch: bool = False,
):
    """Translate an orchestrator decision into an HTTP response."""
    if decision.action == DispatchAction.SESSION_EXPIRED:
        return RedirectResponse(_frontend_url(settings, error="session_expired"), status_code=302)

    if decision.action == DispatchAction.ALL_LINKED:
        return RedirectResponse(
            _frontend_url(settings, step=4, mailbox_id=decision.mailbox_id),
            status_code=302,
        )

    if decision.action == DispatchAction.PROVIDER_CONSENT:
        return RedirectResponse(decision.url, status_code=302)

    if decision.action == DispatchAction.PROVIDER_START:
        return RedirectResponse(
            _start_url(request, decision.provider, decision.org_id, decision.mailbox_id),
            status_code=302,
        )

    # CHOOSE_PROVIDER
    if choice_via_dispatch:
        url = request.url_for("dispatch").include_query_params(
            org_id=decision.org_id, mailbox_id=decision.mailbox_id
        )
        return RedirectResponse(str(url), status_code=302)

    links = "".join(
        CHOICE_LINK.format(
            href=escape(_start_url(request, provider, decision.org_id, decision.mailbox_id)),
            label=label,
        )
        for provider, label in PROVIDER_LABELS.items()
    )
    content = (
        "<h2>Connect Inbox</h2>"
        '<p style="font-size:16px;color:#555;">'
        f"We need to connect <b>{escape(decision.address or '')}</b>.<br/>"
        "Which provider hosts this email?"
        "</p>"
        f'<div style="display:grid;gap:12px;margin-top:24px;">{links}</div>'
    )
    return _page("Connect Inbox", content)


@router.get("/oauth/dispatch", name="dispatch")
async def dispatch(
    request: Request,
    org_id: Optional[str] = None,
    mailbox_id: Optional[str] = None,
    orchestrator: ConnectionOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
):
    """
    Send the browser to the right provider for the next pending mailbox.

    Query params:
        org_id, mailbox_id: ids returned by /api/onboarding/start
    """
    if not org_id or not mailbox_id:
        return _error_page(StateIntegrityError("Missing org_id or mailbox_id."))

    decision = orchestrator.dispatch(org_id, mailbox_id)
    return _respond(request, decision, settings)


@router.get("/oauth/{provider}/start", name="start_authorization")
async def start_authorization(
    request: Request,
    provider: Provider,
    org_id: Optional[str] = None,
    mailbox_id: Optional[str] = None,
    orchestrator: ConnectionOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
):
    """Redirect to the provider consent screen with a signed state."""
    if not org_id or not mailbox_id:
        return _error_page(StateIntegrityError("Missing org_id or mailbox_id."))

    try:
        decision = orchestrator.start_authorization(provider, org_id, mailbox_id)
    except AppError as e:
        logger.warning(f"Authorization start failed: {e.code}")
        return _error_page(e)

    return _respond(request, decision, settings)


@router.get("/oauth/{provider}/callback", name="oauth_callback")
async def oauth_callback(
    request: Request,
    provider: Provider,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    orchestrator: ConnectionOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
):
    """
    Shared provider callback.

    Query params:
        code: Authorization code (on success)
        state: Signed state issued by /start
        error: Provider error (on denial)
    """
    try:
        decision = await orchestrator.handle_callback(provider, code, state, error=error)
    except AppError as e:
        logger.warning(f"OAuth callback failed for {provider.value}: {e.code}")
        return _error_page(e)

    return _respond(request, decision, settings, choice_via_dispatch=True)
