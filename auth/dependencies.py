"""
auth/dependencies.py -- Authorization guard and FastAPI Depends() helpers.

Two token carriers are tried in order:
  1. "session_token" cookie -- set by signup/login.
  2. Authorization: Bearer <token> header -- API clients and scripts.

Each presented token goes through SessionManager.resolve() until one yields
a Principal, so a stale cookie never hides a valid Bearer token. The token
that authenticated is kept on request.state for logout and cookie refresh.

require() is the pure guard: Principal in, Principal out, Unauthenticated
otherwise. try_get_principal() is the soft lookup (returns None on failure).
get_current_principal() composes the two and is what protected routers
declare as a router-level dependency, so the guard runs before any handler
body (and therefore before any side effect).

Layer rule: no imports from storage/. auth/dependencies.py may import from
fastapi because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request, Response

from auth.models import Principal
from auth.sessions import SessionManager
from core.config import get_settings
from core.errors import Unauthenticated

SESSION_COOKIE = "session_token"


def require(principal: Principal | None) -> Principal:
    """Return principal unchanged, or raise Unauthenticated if there is none."""
    if principal is None:
        raise Unauthenticated()
    return principal


def get_session_tokens(request: Request) -> list[str]:
    """Raw session tokens presented by the request: cookie first, then Bearer."""
    tokens: list[str] = []
    cookie = request.cookies.get(SESSION_COOKIE)
    if cookie:
        tokens.append(cookie)
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        bearer = auth_header[7:]
        if bearer and bearer not in tokens:
            tokens.append(bearer)
    return tokens


def resolve_request(request: Request) -> tuple[Principal | None, str | None]:
    """Return (principal, token) for the first presented token that resolves.

    (None, None) when no token resolves. The result is memoized on
    request.state so logout and the guard resolve at most once per request.
    """
    if hasattr(request.state, "session_token"):
        return request.state.principal, request.state.session_token
    sessions: SessionManager = request.app.state.sessions
    principal, token = None, None
    for candidate in get_session_tokens(request):
        principal = sessions.resolve(candidate)
        if principal is not None:
            token = candidate
            break
    request.state.principal = principal
    request.state.session_token = token
    return principal, token


def try_get_principal(request: Request) -> Principal | None:
    """Resolve the request's session. Never raises -- returns None when unauthenticated."""
    return resolve_request(request)[0]


def get_current_principal(request: Request, response: Response) -> Principal:
    """Require an Active session. Raises Unauthenticated (401) otherwise.

    Use as a FastAPI dependency:
        router = APIRouter(dependencies=[Depends(get_current_principal)])
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = require(try_get_principal(request))
    refresh_session_cookie(request, response)
    return principal


def refresh_session_cookie(request: Request, response: Response) -> None:
    """Re-issue the cookie with a fresh max-age if the cookie is what authenticated.

    Keeps the browser's copy sliding together with the server-side expiry.
    Routes that build their own Response must call this on it; the injected
    response's headers are only merged into handler return values that are
    not Response objects.
    """
    token = getattr(request.state, "session_token", None)
    if token and token == request.cookies.get(SESSION_COOKIE):
        set_session_cookie(response, token)


def set_session_cookie(response: Response, token: str) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the session TTL.
    """
    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_ttl_seconds,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE)
