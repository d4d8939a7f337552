import time
from typing import Any, Callable, Optional

import httpx
from jose import jwt, JWTError

from services.identity_cache import AuthSession, Identity, IdentityCache
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_IDENTITY_TTL_SECONDS = 30.0


class PortalError(Exception):
    """Non-2xx answer from the portal API."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


def _raise_for_status(response: httpx.Response):
    if response.is_success:
        return
    try:
        detail = response.json().get("detail", response.text)
    except ValueError:
        detail = response.text
    raise PortalError(response.status_code, detail)


def session_from_tokens(tokens: dict) -> AuthSession:
    """
    Build a session from a token response.

    The claims are read without verifying the signature: the client does not
    hold the signing key, and the server verifies every request anyway.
    """
    try:
        claims = jwt.get_unverified_claims(tokens["access_token"])
    except JWTError as e:
        raise PortalError(401, f"Malformed access token: {e}") from e

    return AuthSession(
        user_id=claims["id"],
        email=claims["sub"],
        role=claims["role"],
        access_token=tokens["access_token"],
        refresh_token=tokens.get("refresh_token")
    )


class PortalClient:
    """
    Async client used by the storefront, back-office and operator front-ends.

    Keeps the active session and answers get_current_user() through an
    IdentityCache, so screens can ask for the current user freely.

    Usage:
        async with PortalClient("http://localhost:8000") as portal:
            await portal.sign_in("admin@example.com", "secret123")
            me = await portal.get_current_user()
            orders = await portal.request("GET", "/admin/orders", params={"status": "confirmation_pending"})
    """

    def __init__(self, base_url: str = "http://localhost:8000",
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 identity_ttl_seconds: float = DEFAULT_IDENTITY_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport)
        self.identity = IdentityCache(self._fetch_profile, ttl_seconds=identity_ttl_seconds, clock=clock)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    @property
    def session(self) -> Optional[AuthSession]:
        return self.identity.session

    def _auth_headers(self) -> dict:
        session = self.identity.session
        return {"Authorization": f"Bearer {session.access_token}"} if session else {}

    async def _fetch_profile(self, session: AuthSession) -> Optional[Identity]:
        response = await self._http.get(
            "/users/me", headers={"Authorization": f"Bearer {session.access_token}"}
        )
        if response.status_code == 404:
            return None
        _raise_for_status(response)

        data = response.json()
        return Identity(
            id=data["id"],
            email=data["email"],
            role=data["role"],
            full_name=data.get("full_name")
        )

    # ---- identity provider ----

    async def sign_up(self, email: str, password: str, full_name: str,
                      phone_number: Optional[str] = None) -> dict:
        """Create a customer account. Does not sign in."""
        response = await self._http.post("/auth/", json={
            "email": email,
            "password": password,
            "full_name": full_name,
            "phone_number": phone_number
        })
        _raise_for_status(response)
        return response.json()

    async def sign_in(self, email: str, password: str) -> Optional[Identity]:
        response = await self._http.post("/auth/token", data={"username": email, "password": password})
        _raise_for_status(response)

        session = session_from_tokens(response.json())
        logger.debug("Signed in", extra={"user_id": session.user_id})
        return await self.identity.handle_session_change(session)

    async def refresh_session(self) -> AuthSession:
        current = self.identity.session
        if current is None or not current.refresh_token:
            raise PortalError(401, "Not signed in")

        response = await self._http.post("/auth/refresh", json={"refresh_token": current.refresh_token})
        _raise_for_status(response)

        session = session_from_tokens(response.json())
        await self.identity.handle_session_change(session)
        return session

    async def sign_out(self):
        """Revoke the refresh token server-side. The local session is cleared even if that fails."""
        current = self.identity.session
        try:
            if current is not None and current.refresh_token:
                response = await self._http.post("/auth/logout", json={"refresh_token": current.refresh_token})
                _raise_for_status(response)
        finally:
            await self.identity.handle_session_change(None)

    async def get_current_user(self) -> Optional[Identity]:
        return await self.identity.get_current_user()

    def on_auth_state_change(self, listener: Callable[[Optional[Identity]], None]) -> Callable[[], None]:
        """Call listener with the new identity (or None) whenever the signed-in user changes."""
        return self.identity.subscribe(listener)

    # ---- API calls ----

    async def request(self, method: str, path: str, **kwargs) -> Any:
        headers = {**self._auth_headers(), **kwargs.pop("headers", {})}
        response = await self._http.request(method, path, headers=headers, **kwargs)
        _raise_for_status(response)
        return response.json() if response.content else None
