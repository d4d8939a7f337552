"""
Cache of "who is signed in" for portal clients.

A portal asks for the current user on almost every screen. IdentityCache
answers from memory for ttl_seconds, shares one in-flight lookup between
concurrent callers, and drops its answer when the signed-in identity changes.

It is an ordinary object: build one per client (or per test) and hand it the
profile loader and, in tests, a fake clock.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    id: int
    email: str
    role: str  # "customer" | "admin" | "operator"
    full_name: Optional[str] = None


@dataclass(frozen=True)
class AuthSession:
    """Tokens of the active sign-in plus the identity they were issued for."""
    user_id: int
    email: str
    role: str
    access_token: str
    refresh_token: Optional[str] = None

    def fallback_identity(self) -> Identity:
        return Identity(id=self.user_id, email=self.email, role=self.role)


ProfileLoader = Callable[[AuthSession], Awaitable[Optional[Identity]]]
Listener = Callable[[Optional[Identity]], None]


class IdentityCache:

    def __init__(self, load_profile: ProfileLoader, ttl_seconds: float = 30.0,
                 clock: Callable[[], float] = time.monotonic):
        self._load_profile = load_profile
        self._ttl = ttl_seconds
        self._clock = clock

        self._session: Optional[AuthSession] = None
        self._cached: Optional[tuple[Optional[Identity], float]] = None
        self._inflight: Optional[asyncio.Future] = None
        # bumped on every invalidation; a fetch started under an older
        # generation must not write its result into the cache
        self._generation = 0
        self._listeners: list[Listener] = []

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    def _is_fresh(self) -> bool:
        return self._cached is not None and self._clock() - self._cached[1] < self._ttl

    async def get_current_user(self) -> Optional[Identity]:
        """
        Profile of the signed-in user, or None when nobody is signed in.

        Served from cache while fresh. Otherwise one lookup runs and every
        caller arriving meanwhile awaits that same lookup.
        """
        if self._inflight is not None:
            return await asyncio.shield(self._inflight)

        if self._is_fresh():
            return self._cached[0]

        task = asyncio.get_running_loop().create_task(self._resolve(self._generation))
        self._inflight = task
        task.add_done_callback(self._clear_inflight)
        return await asyncio.shield(task)

    def _clear_inflight(self, task: asyncio.Future):
        if self._inflight is task:
            self._inflight = None

    async def _resolve(self, generation: int) -> Optional[Identity]:
        session = self._session

        if session is None:
            user = None
        else:
            try:
                user = await self._load_profile(session)
                if user is None:
                    logger.warning(
                        "No profile for signed-in user, using session identity",
                        extra={"user_id": session.user_id}
                    )
                    user = session.fallback_identity()
            except Exception as e:
                logger.warning(
                    "Profile lookup failed, using session identity",
                    extra={"user_id": session.user_id, "error": str(e),
                           "error_type": type(e).__name__}
                )
                user = session.fallback_identity()

        if generation == self._generation:
            self._cached = (user, self._clock())
        return user

    def invalidate(self):
        self._generation += 1
        self._cached = None
        self._inflight = None

    async def handle_session_change(self, session: Optional[AuthSession]) -> Optional[Identity]:
        """
        Record a new session (sign-in, refresh) or None (sign-out).

        A refreshed session for the same user keeps the cache and notifies
        nobody. Any other change invalidates, re-resolves and notifies every
        listener with the new identity.
        """
        previous = self._session
        self._session = session

        if session is not None and previous is not None and session.user_id == previous.user_id:
            logger.debug("Session refreshed for same identity", extra={"user_id": session.user_id})
            return self._cached[0] if self._cached else None

        self.invalidate()
        user = await self.get_current_user() if session is not None else None

        logger.info(
            "Signed-in identity changed",
            extra={"previous_user_id": previous.user_id if previous else None,
                   "user_id": session.user_id if session else None}
        )
        for listener in list(self._listeners):
            listener(user)
        return user

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
