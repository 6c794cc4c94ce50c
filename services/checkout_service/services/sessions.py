"""In-process registry of checkout orchestrators keyed by cart session id.

Sessions are kept in least-recently-used order. Entries idle longer than
``CHECKOUT_SESSION_IDLE_SECONDS`` are pruned on access, and the oldest entry is
evicted once ``CHECKOUT_MAX_SESSIONS`` is exceeded.
"""

import time
from collections import OrderedDict
from functools import lru_cache
from itertools import takewhile
from typing import Callable, Optional

from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.checkout_service.clients import CartClient
from services.checkout_service.services.orchestrator import CheckoutOrchestrator

logger = get_logger(__name__)

OrchestratorFactory = Callable[[str, Optional[AuthUser]], CheckoutOrchestrator]


def default_factory(session_id: str, user: Optional[AuthUser]) -> CheckoutOrchestrator:
    user_id = user.backend_user_id if user is not None else None
    return CheckoutOrchestrator(CartClient(session_id, user_id), user=user)


def _owner(user: Optional[AuthUser]) -> Optional[str]:
    return user.user_id if user is not None else None


class CheckoutSessions:
    def __init__(
        self,
        factory: OrchestratorFactory = default_factory,
        *,
        idle_ttl: Optional[float] = None,
        max_sessions: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self.factory = factory
        self.idle_ttl = idle_ttl if idle_ttl is not None else settings.CHECKOUT_SESSION_IDLE_SECONDS
        self.max_sessions = (
            max_sessions if max_sessions is not None else settings.CHECKOUT_MAX_SESSIONS
        )
        self.clock = clock
        self._sessions: OrderedDict[str, CheckoutOrchestrator] = OrderedDict()
        self._last_seen: dict[str, float] = {}

    def _touch(self, session_id: str) -> None:
        self._sessions.move_to_end(session_id)
        self._last_seen[session_id] = self.clock()

    def _evict(self, session_id: str, reason: str) -> None:
        orchestrator = self._sessions.pop(session_id)
        del self._last_seen[session_id]
        orchestrator.leave()
        logger.info("Evicted checkout for session %s (%s)", session_id, reason)

    def prune(self) -> int:
        """Drop sessions idle for longer than ``idle_ttl``; returns how many went."""
        cutoff = self.clock() - self.idle_ttl
        expired = list(takewhile(lambda sid: self._last_seen[sid] <= cutoff, self._sessions))
        for session_id in expired:
            self._evict(session_id, "idle")
        return len(expired)

    def get(self, session_id: str) -> Optional[CheckoutOrchestrator]:
        self.prune()
        orchestrator = self._sessions.get(session_id)
        if orchestrator is not None:
            self._touch(session_id)
        return orchestrator

    def open(self, session_id: str, user: Optional[AuthUser] = None) -> CheckoutOrchestrator:
        """Return the session's orchestrator, creating it on first use.

        An orchestrator is only handed back to the identity it was opened for.
        Any other caller gets a fresh one in its place, a guest on a signed-in
        session included.
        """
        self.prune()
        orchestrator = self._sessions.get(session_id)
        if orchestrator is not None:
            if _owner(orchestrator.user) == _owner(user):
                self._touch(session_id)
                return orchestrator
            logger.info("Replacing checkout for session %s opened by another identity", session_id)
            self._sessions.pop(session_id)
            del self._last_seen[session_id]
            orchestrator.leave()

        orchestrator = self.factory(session_id, user)
        self._sessions[session_id] = orchestrator
        self._touch(session_id)
        while len(self._sessions) > self.max_sessions:
            self._evict(next(iter(self._sessions)), "capacity")
        logger.info("Opened checkout for session %s", session_id)
        return orchestrator

    def close(self, session_id: str) -> bool:
        orchestrator = self._sessions.pop(session_id, None)
        if orchestrator is None:
            return False
        del self._last_seen[session_id]
        orchestrator.leave()
        return True

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


@lru_cache
def get_sessions() -> CheckoutSessions:
    return CheckoutSessions()
