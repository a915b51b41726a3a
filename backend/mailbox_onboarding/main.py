"""
FastAPI application entry point.
"""
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mailbox_onboarding.config import Settings, get_settings
from mailbox_onboarding.integrations.google_auth import GoogleOAuthProvider
from mailbox_onboarding.integrations.microsoft_auth import MicrosoftOAuthProvider
from mailbox_onboarding.integrations.oauth_provider import OAuthProvider
from mailbox_onboarding.integrations.webhook_client import WebhookClient
from mailbox_onboarding.models.provider import Provider
from mailbox_onboarding.routes import health, oauth, onboarding
from mailbox_onboarding.services.completion_service import CompletionDispatcher
from mailbox_onboarding.services.connection_service import ConnectionOrchestrator
from mailbox_onboarding.services.session_service import InMemorySessionStore, SessionStore
from mailbox_onboarding.services.state_codec import StateCodec
from mailbox_onboarding.utils.logger import get_logger, setup_logging
from mailbox_onboarding.utils.errors import AppError

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: begin session sweep. Shutdown: stop it."""
    store: SessionStore = app.state.session_store
    await store.start()
    yield
    await store.stop()


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    missing = []
    for err in exc.errors():
        field = str(err["loc"][-1]) if err.get("loc") else "body"
        if field not in missing:
            missing.append(field)
    return JSONResponse(
        status_code=400,
        content={
            "error": True,
            "code": "INVALID_REQUEST",
            "message": "Invalid request format.",
            "missing": missing,
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": True, "code": "INTERNAL_ERROR", "message": "Server error"},
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
    providers: Optional[Dict[Provider, OAuthProvider]] = None,
    notifier: Optional[WebhookClient] = None,
    dispatcher: Optional[CompletionDispatcher] = None,
) -> FastAPI:
    """
    Build the application with its collaborators.

    Anything not passed in is built from settings.
    """
    if settings is None:
        settings = get_settings()

    if store is None:
        store = InMemorySessionStore(
            ttl_seconds=settings.session_ttl_seconds,
            sweep_interval_seconds=settings.session_sweep_interval_seconds,
        )
    if providers is None:
        providers = {
            Provider.GOOGLE: GoogleOAuthProvider(settings),
            Provider.MICROSOFT: MicrosoftOAuthProvider(settings),
        }
    if notifier is None:
        notifier = WebhookClient(
            settings.onboarding_webhook_url, timeout=settings.http_timeout_seconds
        )
    if dispatcher is None:
        dispatcher = CompletionDispatcher(
            store, notifier, interval_seconds=settings.webhook_dispatch_interval_seconds
        )

    app = FastAPI(
        title="Mailbox Onboarding",
        description="Links business mailboxes via OAuth and hands the setup to automation",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_store = store
    app.state.orchestrator = ConnectionOrchestrator(
        store, StateCodec(settings.state_hmac_secret), providers
    )
    app.state.dispatcher = dispatcher

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Include routers
    app.include_router(health.router, prefix="/api", tags=["Health"])
    app.include_router(onboarding.router, prefix="/api", tags=["Onboarding"])
    app.include_router(oauth.router, prefix="/api", tags=["OAuth"])

    @app.get("/")
    async def root():
        """Root endpoint - points to docs."""
        return {
            "message": "Mailbox Onboarding API",
            "docs": "/docs",
            "health": "/api/health",
        }

    return app


# Setup logging
setup_logging(get_settings().log_level)

app = create_app()
