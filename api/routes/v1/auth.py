"""
api/routes/v1/auth.py -- Signup, login, logout and identity endpoints.

Routes:
  POST /api/v1/auth/signup   -- create account, log it in (201 + session cookie)
  POST /api/v1/auth/login    -- password login (200 + session cookie)
  POST /api/v1/auth/logout   -- invalidate the presented session, clear cookie
  GET  /api/v1/auth/me       -- current principal (requires auth)

Security:
  signup and login are rate-limited per IP (LOGIN_RATE_LIMIT).
  Wrong password and unknown email return the same 401 "bad_credentials"
  body; SessionManager.login() equalizes timing as well.
  Cache-Control: no-store on every response that carries a session token.
  The guard is never applied to signup/login/logout.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import AuthResponse, Credentials, MessageResponse, UserResponse
from auth.dependencies import clear_session_cookie, get_current_principal, resolve_request, set_session_cookie
from auth.models import Principal, Session
from auth.sessions import SessionManager

router = APIRouter()


def _session_response(status_code: int, message: str, principal: Principal, session: Session) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            message=message,
            user=UserResponse.from_principal(principal),
            session_token=session.token,
            expires_at=session.expires_at,
        ).model_dump(),
    )
    set_session_cookie(resp, session.token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_limit)
@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
def signup(request: Request, body: Credentials) -> JSONResponse:
    """Create an account and start a session for it.

    409 if the email is already registered.
    """
    sessions: SessionManager = request.app.state.sessions
    principal, session = sessions.signup(body.email, body.password)
    return _session_response(201, "User created successfully", principal, session)


@limiter.limit(login_limit)
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: Credentials) -> JSONResponse:
    """Authenticate with email and password; start a new session.

    Existing sessions of the same user stay valid.
    """
    sessions: SessionManager = request.app.state.sessions
    session = sessions.login(body.email, body.password)
    principal = Principal(id=session.user_id, email=body.email)
    return _session_response(200, "Logged in successfully", principal, session)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """End the session that authenticates this request. Succeeds even if there was none.

    Only that one session ends; other sessions of the same user stay valid.
    """
    sessions: SessionManager = request.app.state.sessions
    _, token = resolve_request(request)
    sessions.invalidate(token)
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump())
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
def me(principal: Principal = Depends(get_current_principal)) -> UserResponse:
    """Return id and email of the authenticated user."""
    return UserResponse.from_principal(principal)
