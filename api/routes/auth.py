"""
api/routes/auth.py -- Authentication REST endpoints.

Routes (all public -- the gate forwards /api/auth/* without a session):
  POST /api/auth/status               -- does the email have an account / password
  POST /api/auth/email-code           -- mail a one-time sign-in code
  POST /api/auth/email-code/verify    -- sign in with email + code; sets session cookie
  GET  /api/auth/callback/email       -- magic-link sign-in; redirects
  POST /api/auth/password/login       -- sign in with email + password; sets cookie
  POST /api/auth/password/create      -- first password for an account, then sign in
  POST /api/auth/forgot-password      -- mail a reset link
  POST /api/auth/reset-password       -- set a new password with a reset token
  GET  /api/auth/session              -- current claims, or {} when signed out
  POST /api/auth/signout              -- clear the session cookie

Errors raised by the services are AuthError subclasses; api/main.py turns them
into the JSON error envelope. Handlers are plain `def` so bcrypt and store
round trips run in the threadpool.

Security:
  [H2] Credential-submitting endpoints are rate-limited per IP.
  [M5] Cache-Control: no-store on every response that carries a session.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.limiter import credential_limit, limiter
from api.models import (
    AccountStatusResponse,
    CreatePasswordRequest,
    EmailCodeVerifyRequest,
    EmailRequest,
    MessageResponse,
    PasswordLoginRequest,
    ResetPasswordRequest,
    SessionResponse,
    SuccessResponse,
)
from auth.credentials import CredentialService
from auth.dependencies import try_get_session_claims
from auth.errors import AuthError
from auth.models import SessionClaims
from auth.orchestrator import AuthOrchestrator, EmailCode, Password
from auth.tokens import clear_session_cookie, create_session_token, set_session_cookie

router = APIRouter()

_EMAIL_CODE_SENT = "If an account exists for this email, a sign-in code has been sent."
_VERIFICATION_ERROR_URL = "/auth/error?error=Verification"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _orchestrator(request: Request) -> AuthOrchestrator:
    return request.app.state.orchestrator


def _credentials(request: Request) -> CredentialService:
    return request.app.state.credentials


def _attach_session(request: Request, response, claims: SessionClaims):
    """Sign the claims into the session cookie on `response`."""
    settings = request.app.state.settings
    token = create_session_token(claims, settings.secret_key, settings.session_max_age_seconds)
    set_session_cookie(response, token, settings.session_max_age_seconds, settings.secure_cookies)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return response


def _signed_in(request: Request, claims: SessionClaims) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=SessionResponse.from_claims(claims).model_dump(by_alias=True))
    return _attach_session(request, resp, claims)


# ---------------------------------------------------------------------------
# Status check and email code
# ---------------------------------------------------------------------------


@router.post("/auth/status", response_model=AccountStatusResponse)
def account_status(request: Request, body: EmailRequest) -> AccountStatusResponse:
    """Tell the sign-in page whether to ask for a password or offer to create one.

    Discloses account existence on purpose; see auth/orchestrator.py.
    """
    status = _orchestrator(request).check_account_status(body.email)
    return AccountStatusResponse.from_status(status)


@limiter.limit(credential_limit)  # [H2]
@router.post("/auth/email-code", response_model=MessageResponse)
def request_email_code(request: Request, body: EmailRequest) -> MessageResponse:
    """Send a one-time sign-in code. The response is the same whether or not the account exists."""
    _orchestrator(request).request_email_code(body.email)
    return MessageResponse(message=_EMAIL_CODE_SENT)


@limiter.limit(credential_limit)  # [H2]
@router.post("/auth/email-code/verify", response_model=SessionResponse)
def verify_email_code(request: Request, body: EmailCodeVerifyRequest) -> JSONResponse:
    claims = _orchestrator(request).authenticate(EmailCode(body.email, body.code))
    return _signed_in(request, claims)


@router.get("/auth/callback/email")
def email_callback(request: Request, email: str = "", token: str = "") -> RedirectResponse:
    """Magic-link target. Signs in and lands on "/", where the gate routes by role."""
    if not email or not token:
        return RedirectResponse(_VERIFICATION_ERROR_URL, status_code=302)
    try:
        claims = _orchestrator(request).authenticate(EmailCode(email, token))
    except AuthError:
        return RedirectResponse(_VERIFICATION_ERROR_URL, status_code=302)
    return _attach_session(request, RedirectResponse("/", status_code=302), claims)


# ---------------------------------------------------------------------------
# Password
# ---------------------------------------------------------------------------


@limiter.limit(credential_limit)  # [H2]
@router.post("/auth/password/login", response_model=SessionResponse)
def password_login(request: Request, body: PasswordLoginRequest) -> JSONResponse:
    """Sign in with email and password.

    Unknown email and wrong password produce the same 401 body.
    """
    claims = _orchestrator(request).authenticate(Password(body.email, body.password))
    return _signed_in(request, claims)


@limiter.limit(credential_limit)  # [H2]
@router.post("/auth/password/create", response_model=SessionResponse)
def create_password(request: Request, body: CreatePasswordRequest) -> JSONResponse:
    claims = _orchestrator(request).create_password(body.email, body.password, body.confirm_password)
    return _signed_in(request, claims)


@limiter.limit(credential_limit)  # [H2]
@router.post("/auth/forgot-password", response_model=SuccessResponse)
def forgot_password(request: Request, body: EmailRequest) -> SuccessResponse:
    """Mail a reset link. Succeeds for unknown emails too."""
    _credentials(request).initiate_password_reset(body.email)
    return SuccessResponse(success=True)


@limiter.limit(credential_limit)  # [H2]
@router.post("/auth/reset-password", response_model=SuccessResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> SuccessResponse:
    _credentials(request).consume_reset_token(body.token, body.password)
    return SuccessResponse(success=True)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@router.get("/auth/session")
def current_session(request: Request) -> JSONResponse:
    """Return the signed-in claims, or an empty object when there is no session."""
    claims = try_get_session_claims(request)
    content = SessionResponse.from_claims(claims).model_dump(by_alias=True) if claims else {}
    resp = JSONResponse(content=content)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/signout", response_model=MessageResponse)
def signout() -> JSONResponse:
    resp = JSONResponse(content={"message": "Signed out."})
    clear_session_cookie(resp)
    return resp
