"""
FastAPI dependency helpers.

Long-lived collaborators are built once in create_app() and kept on
app.state so tests can swap any of them.
"""
from fastapi import Request

from mailbox_onboarding.config import Settings
from mailbox_onboarding.services.completion_service import CompletionDispatcher
from mailbox_onboarding.services.connection_service import ConnectionOrchestrator
from mailbox_onboarding.services.session_service import SessionStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_orchestrator(request: Request) -> ConnectionOrchestrator:
    return request.app.state.orchestrator


def get_dispatcher(request: Request) -> CompletionDispatcher:
    return request.app.state.dispatcher
