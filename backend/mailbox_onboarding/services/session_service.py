"""
Onboarding session store.

This module handles:
1. Creating sessions with fresh org/mailbox identifiers
2. Looking up and deleting sessions by mailbox_id
3. Evicting sessions older than the TTL on a periodic sweep

Sessions live in process memory only. They do not survive a restart and
are not shared between instances.

Concurrency: handlers and the sweep task share the same event loop and
there is no lock. A handler that awaits network I/O must fetch the
session again afterwards and treat a miss as an expired session.
"""
import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional

from mailbox_onboarding.models.session import CompanyProfile, OnboardingSession
from mailbox_onboarding.utils.logger import get_logger

logger = get_logger(__name__)


def normalize_addresses(addresses: Iterable) -> List[str]:
    """
    Trim, drop empties and de-duplicate (case-insensitive) mailbox addresses.

    The first spelling of a duplicate wins and input order is kept.
    """
    seen = set()
    result = []
    for raw in addresses or []:
        if not isinstance(raw, str):
            continue
        address = raw.strip()
        if not address:
            continue
        key = address.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(address)
    return result


class SessionStore(ABC):
    """Keyed registry of onboarding sessions."""

    @abstractmethod
    def create(self, profile: CompanyProfile, addresses: Iterable[str]) -> OnboardingSession:
        ...

    @abstractmethod
    def get(self, mailbox_id: str) -> Optional[OnboardingSession]:
        ...

    @abstractmethod
    def delete(self, mailbox_id: str) -> bool:
        ...

    @abstractmethod
    def sweep(self, now: Optional[float] = None) -> int:
        ...

    async def start(self) -> None:
        """Start background maintenance, if the store needs any."""

    async def stop(self) -> None:
        """Stop background maintenance."""


class InMemorySessionStore(SessionStore):
    """
    Process-local session store with absolute TTL expiry.

    Usage:
        store = InMemorySessionStore(ttl_seconds=86400)
        await store.start()   # begins periodic sweep
        session = store.create(profile, ["a@gmail.com"])
        ...
        await store.stop()
    """

    def __init__(
        self,
        ttl_seconds: float = 24 * 3600,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._sessions: Dict[str, OnboardingSession] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def _is_expired(self, session: OnboardingSession, now: float) -> bool:
        return now - session.created_at > self.ttl_seconds

    def create(self, profile: CompanyProfile, addresses: Iterable[str]) -> OnboardingSession:
        """
        Create a session for a new onboarding.

        Args:
            profile: Company profile from the wizard
            addresses: Mailbox addresses to connect, in order

        Returns:
            The stored session
        """
        monitored = normalize_addresses(addresses)
        session = OnboardingSession(
            mailbox_id=str(uuid.uuid4()),
            org_id=str(uuid.uuid4()),
            profile=profile,
            monitored_addresses=monitored,
            pending_addresses=list(monitored),
            created_at=self._clock(),
        )
        self._sessions[session.mailbox_id] = session
        logger.info(
            f"Created onboarding session {session.mailbox_id} "
            f"for {profile.company_name} ({len(monitored)} mailboxes)"
        )
        return session

    def get(self, mailbox_id: str) -> Optional[OnboardingSession]:
        """Return the session, or None if unknown or past its TTL."""
        if not mailbox_id:
            return None

        session = self._sessions.get(mailbox_id)
        if session is None:
            return None

        if self._is_expired(session, self._clock()):
            logger.info(f"Session {mailbox_id} expired on lookup")
            self._sessions.pop(mailbox_id, None)
            return None

        return session

    def delete(self, mailbox_id: str) -> bool:
        """Delete a session. Returns False if it didn't exist."""
        if self._sessions.pop(mailbox_id, None) is None:
            return False
        logger.info(f"Deleted onboarding session {mailbox_id}")
        return True

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Evict every session older than the TTL.

        Args:
            now: Clock reading to compare against (defaults to the store clock)

        Returns:
            Number of evicted sessions
        """
        if now is None:
            now = self._clock()

        expired = [
            mailbox_id
            for mailbox_id, session in list(self._sessions.items())
            if self._is_expired(session, now)
        ]
        for mailbox_id in expired:
            self._sessions.pop(mailbox_id, None)

        if expired:
            logger.info(f"Swept {len(expired)} expired onboarding sessions")
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}")

    async def start(self) -> None:
        """Start the periodic sweep task on the running loop."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Session sweep started (every {self.sweep_interval_seconds}s)")

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        task = self._sweep_task
        self._sweep_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Session sweep stopped")
