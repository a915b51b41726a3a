"""
Mailbox connection service.

This module drives the OAuth flow for every pending mailbox of a session:
1. Dispatch → pick the provider for the next pending address
2. Start → sign state, redirect to the provider consent screen
3. Callback → verify state, exchange code, resolve identity
4. Advance → pop the queue, record the connection, pick the next step

The pending queue is popped once per successful callback. The address the
provider reports is recorded even if it differs from the one the user
typed; the provider is authoritative.
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from mailbox_onboarding.integrations.oauth_provider import OAuthProvider
from mailbox_onboarding.models.onboarding import MailboxStatus
from mailbox_onboarding.models.provider import Provider
from mailbox_onboarding.models.session import Connection, OnboardingSession
from mailbox_onboarding.services.provider_resolver import classify
from mailbox_onboarding.services.session_service import SessionStore
from mailbox_onboarding.services.state_codec import StateCodec
from mailbox_onboarding.utils.logger import get_logger
from mailbox_onboarding.utils.errors import (
    AppError,
    ProviderError,
    SessionExpiredError,
    StateIntegrityError,
)

logger = get_logger(__name__)


class DispatchAction(str, Enum):
    """What the client should be sent to next."""
    PROVIDER_START = "provider_start"      # known provider, go straight to its start
    CHOOSE_PROVIDER = "choose_provider"    # ask the user which provider hosts the address
    PROVIDER_CONSENT = "provider_consent"  # redirect to the provider consent screen
    ALL_LINKED = "all_linked"              # queue empty, continue to final configuration
    SESSION_EXPIRED = "session_expired"    # restart onboarding


@dataclass
class DispatchDecision:
    action: DispatchAction
    org_id: str
    mailbox_id: str
    provider: Optional[Provider] = None
    address: Optional[str] = None
    url: Optional[str] = None


class ConnectionOrchestrator:
    """
    Per-session OAuth state machine.

    Usage:
        orchestrator = ConnectionOrchestrator(store, codec, providers)
        decision = orchestrator.dispatch(org_id, mailbox_id)
        decision = orchestrator.start_authorization(Provider.GOOGLE, org_id, mailbox_id)
        decision = await orchestrator.handle_callback(Provider.GOOGLE, code, state)
    """

    def __init__(
        self,
        store: SessionStore,
        codec: StateCodec,
        providers: Dict[Provider, OAuthProvider],
    ):
        self.store = store
        self.codec = codec
        self.providers = providers

    def _strategy(self, provider: Provider) -> OAuthProvider:
        strategy = self.providers.get(provider)
        if strategy is None:
            raise StateIntegrityError(f"Unsupported provider: {provider.value}")
        return strategy

    def _next_step(self, session: OnboardingSession) -> DispatchDecision:
        """Decide where to go for the front of the pending queue."""
        address = session.next_address
        if address is None:
            logger.info(f"All mailboxes linked for session {session.mailbox_id}")
            return DispatchDecision(
                DispatchAction.ALL_LINKED, session.org_id, session.mailbox_id
            )

        provider = classify(address)
        if provider.is_known:
            action = DispatchAction.PROVIDER_START
        else:
            action = DispatchAction.CHOOSE_PROVIDER

        logger.info(f"Dispatching {address} ({provider.value}) for session {session.mailbox_id}")
        return DispatchDecision(
            action, session.org_id, session.mailbox_id, provider=provider, address=address
        )

    def dispatch(self, org_id: str, mailbox_id: str) -> DispatchDecision:
        """
        Decide the next step for a session.

        A missing session is not an error here; the UI restarts onboarding.
        """
        session = self.store.get(mailbox_id)
        if session is None:
            logger.warning(f"Dispatch for unknown session {mailbox_id}")
            return DispatchDecision(DispatchAction.SESSION_EXPIRED, org_id, mailbox_id)

        return self._next_step(session)

    def start_authorization(
        self, provider: Provider, org_id: str, mailbox_id: str
    ) -> DispatchDecision:
        """
        Build the consent redirect for the front pending address.

        Args:
            provider: Provider the user (or classification) chose
            org_id: Session org id, bound into the state
            mailbox_id: Session key, bound into the state

        Returns:
            PROVIDER_CONSENT decision with the consent URL, or
            SESSION_EXPIRED / ALL_LINKED when there is nothing to authorize
        """
        strategy = self._strategy(provider)

        session = self.store.get(mailbox_id)
        if session is None:
            logger.warning(f"Authorization start for unknown session {mailbox_id}")
            return DispatchDecision(DispatchAction.SESSION_EXPIRED, org_id, mailbox_id)

        address = session.next_address
        if address is None:
            return self._next_step(session)

        state = self.codec.sign({
            "org_id": session.org_id,
            "mailbox_id": session.mailbox_id,
            "provider": provider.value,
            "issued_at": int(time.time()),
        })
        url = strategy.build_consent_url(state, login_hint=address)

        logger.info(f"Starting {provider.value} authorization for {address}")
        return DispatchDecision(
            DispatchAction.PROVIDER_CONSENT,
            session.org_id,
            session.mailbox_id,
            provider=provider,
            address=address,
            url=url,
        )

    async def handle_callback(
        self,
        provider: Provider,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> DispatchDecision:
        """
        Complete one authorization and advance the queue.

        Session state is only touched after every network call succeeded,
        so a failed attempt can simply be retried for the same address.

        Raises:
            ProviderError: Provider denied consent or exchange/identity failed
            StateIntegrityError: Missing code/state or invalid state
            SessionExpiredError: Session unknown or evicted meanwhile
        """
        if error:
            logger.warning(f"{provider.value} returned OAuth error: {error}")
            raise ProviderError("Access was not granted. Please try connecting again.")

        if not code or not state:
            logger.warning("OAuth callback missing code or state")
            raise StateIntegrityError("Missing code or state.")

        payload = self.codec.verify(state)
        if not payload or not payload.get("org_id") or not payload.get("mailbox_id"):
            raise StateIntegrityError()

        if payload.get("provider") != provider.value:
            logger.warning(
                f"State issued for {payload.get('provider')} used on {provider.value} callback"
            )
            raise StateIntegrityError()

        strategy = self._strategy(provider)
        mailbox_id = payload["mailbox_id"]

        if self.store.get(mailbox_id) is None:
            logger.warning(f"OAuth callback for unknown session {mailbox_id}")
            raise SessionExpiredError()

        try:
            tokens = await strategy.exchange_code(code)
            authed_email = await strategy.resolve_identity(tokens)
        except AppError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected {provider.value} callback failure: {e}")
            raise ProviderError()

        if not authed_email:
            logger.error(f"{provider.value} did not report a mailbox address")
            raise ProviderError("Your email provider did not share your email address.")

        # The sweep may have evicted the session while we were waiting
        session = self.store.get(mailbox_id)
        if session is None:
            logger.warning(f"Session {mailbox_id} expired during {provider.value} callback")
            raise SessionExpiredError()

        if not session.pending_addresses:
            logger.warning(f"Callback for session {mailbox_id} with nothing pending; ignoring")
            return self._next_step(session)

        requested = session.pending_addresses.pop(0)
        session.connections.append(
            Connection(provider=provider, authed_email=authed_email, tokens=tokens)
        )
        if authed_email.lower() not in (a.lower() for a in session.linked_addresses):
            session.linked_addresses.append(authed_email)

        if authed_email.lower() != requested.lower():
            logger.info(f"Requested {requested} but {provider.value} authenticated {authed_email}")
        logger.info(
            f"Linked {authed_email} via {provider.value} "
            f"({len(session.pending_addresses)} pending) for session {mailbox_id}"
        )

        return self._next_step(session)

    def mailbox_status(self, mailbox_id: str) -> MailboxStatus:
        """
        Read-only status of a session for the wizard.

        Raises:
            SessionExpiredError: Session unknown or evicted
        """
        session = self.store.get(mailbox_id)
        if session is None:
            raise SessionExpiredError()

        if session.all_linked:
            status = "finalizing" if session.config is not None else "awaiting_finalize"
            address = session.linked_addresses[-1] if session.linked_addresses else None
            provider = session.connections[-1].provider if session.connections else None
        else:
            status = "pending"
            address = session.next_address
            provider = classify(address)

        return MailboxStatus(
            mailbox_id=session.mailbox_id,
            org_id=session.org_id,
            mailbox_address=address,
            provider=provider,
            status=status,
            pending_addresses=list(session.pending_addresses),
            linked_addresses=list(session.linked_addresses),
            connections=len(session.connections),
        )
