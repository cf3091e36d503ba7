"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register               -- create pending identity (201)
  POST /api/v1/auth/login                  -- password login; token pair
  POST /api/v1/auth/google                 -- Google login/create (trusted caller)
  GET  /api/v1/auth/google/authorize       -- redirect to Google (authlib)
  GET  /api/v1/auth/google/callback        -- Google code exchange; token pair
  POST /api/v1/auth/refresh-token          -- rotate token pair (refresh token in body)
  GET  /api/v1/auth/profile                -- current identity (requires auth)
  POST /api/v1/auth/logout                 -- audit only (requires auth)
  POST /api/v1/auth/forgot-password        -- issue reset token out of band
  PUT  /api/v1/auth/reset-password/{token} -- consume reset token; token pair
  PUT  /api/v1/auth/password               -- change own password (requires auth)

Security:
  [H2] Every route here carries the stricter AUTH_LIMIT (per IP), one counter
       shared by all of them.
  [C1] AuthService.login() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries tokens.

Handlers are sync (def) on purpose: bcrypt and the store are blocking, and
FastAPI runs sync handlers on its threadpool. The slowapi decorator sits BELOW
the router decorator so the registered endpoint is the rate-limited wrapper.
"""

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Request, Response

from api.limiter import AUTH_LIMIT
from api.models import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    GoogleLoginRequest,
    LoginRequest,
    MessageResponse,
    ProfileResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    ResetPasswordResponse,
    TokenPairResponse,
    UserResponse,
)
from auth.dependencies import get_auth_service, get_current_user
from auth.errors import NotFound, Unauthorized
from auth.models import AuthResult, TokenPair, User
from auth.oauth import get_google_user_info
from auth.service import AuthService
from auth.tokens import TokenKind

# Auth policy:
# - register, login, google, google/*, refresh-token, forgot-password,
#   reset-password: public -- these are how a caller obtains credentials
# - profile, logout, password: require a valid access token (get_current_user)
router = APIRouter()


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"  # [M5]


def _auth_response(service: AuthService, result: AuthResult) -> AuthResponse:
    return AuthResponse(
        user=UserResponse.from_user(result.user),
        token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=service.issuer.expires_in(TokenKind.ACCESS),
    )


def _pair_response(service: AuthService, tokens: TokenPair) -> TokenPairResponse:
    return TokenPairResponse(
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=service.issuer.expires_in(TokenKind.ACCESS),
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
@AUTH_LIMIT
def register(
    request: Request,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    """Create a pending account. No tokens are issued until login."""
    user_id = service.register(
        email=body.email,
        password=body.password,
        full_name=body.full_name,
        spiritual_name=body.spiritual_name,
        phone=body.phone,
        introduction=body.introduction,
    )
    return RegisterResponse(
        message="Registration submitted for approval. You will be notified once approved.",
        user_id=user_id,
    )


@router.post("/auth/login", response_model=AuthResponse)
@AUTH_LIMIT  # [H2] brute-force mitigation
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Authenticate with email and password; return the user and a token pair.

    Unknown email and wrong password both yield 401 INVALID_CREDENTIALS.
    """
    result = service.login(body.email, body.password)
    _no_store(response)
    return _auth_response(service, result)


@router.post("/auth/google", response_model=AuthResponse)
@AUTH_LIMIT
def google_login(
    request: Request,
    response: Response,
    body: GoogleLoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Log in (or create) the identity behind an already-verified Google account."""
    data = body.user_data
    result = service.oauth_login(data.google_id, data.email, data.full_name, data.avatar)
    _no_store(response)
    return _auth_response(service, result)


@router.get("/auth/google/authorize")
@AUTH_LIMIT
async def google_authorize(request: Request):
    """Redirect the browser to Google's consent screen."""
    client = request.app.state.oauth.create_client("google")
    if client is None:
        raise NotFound("Google sign-in is not configured", code="OAUTH_NOT_CONFIGURED")
    redirect_uri = str(request.url_for("google_callback"))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/google/callback", response_model=AuthResponse, name="google_callback")
@AUTH_LIMIT
async def google_callback(
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Exchange Google's authorization code and log the user in.

    [H1] get_google_user_info() refuses unverified emails; that and any
    authlib failure (bad state, denied consent) are a 401.
    """
    client = request.app.state.oauth.create_client("google")
    if client is None:
        raise NotFound("Google sign-in is not configured", code="OAUTH_NOT_CONFIGURED")
    try:
        token = await client.authorize_access_token(request)
        profile = get_google_user_info(token)
    except (OAuthError, ValueError) as exc:
        raise Unauthorized("Google authentication failed", code="OAUTH_FAILED") from exc

    result = service.oauth_login(profile.subject, profile.email, profile.full_name, profile.avatar)
    _no_store(response)
    return _auth_response(service, result)


@router.post("/auth/refresh-token", response_model=TokenPairResponse)
@AUTH_LIMIT
def refresh_token(
    request: Request,
    response: Response,
    body: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
) -> TokenPairResponse:
    """Exchange a refresh token (request body, never a header) for a new pair."""
    tokens = service.refresh(body.refresh_token)
    _no_store(response)
    return _pair_response(service, tokens)


@router.post("/auth/forgot-password", response_model=MessageResponse)
@AUTH_LIMIT
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Issue a 10-minute reset token and dispatch it out of band. 404 if unknown."""
    service.forgot_password(body.email)
    return MessageResponse(message="Password reset email sent")


@router.put("/auth/reset-password/{token}", response_model=ResetPasswordResponse)
@AUTH_LIMIT
def reset_password(
    request: Request,
    response: Response,
    token: str,
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> ResetPasswordResponse:
    """Consume a reset token, set the new password, and return a fresh pair."""
    result = service.reset_password(token, body.password)
    _no_store(response)
    return ResetPasswordResponse(
        message="Password reset successful",
        token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=service.issuer.expires_in(TokenKind.ACCESS),
    )


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/profile", response_model=ProfileResponse)
@AUTH_LIMIT
def profile(request: Request, current_user: User = Depends(get_current_user)) -> ProfileResponse:
    """Return the identity behind the access token."""
    return ProfileResponse(user=UserResponse.from_user(current_user))


@router.post("/auth/logout", response_model=MessageResponse)
@AUTH_LIMIT
def logout(
    request: Request,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Record the logout. Tokens stay valid until expiry; the client discards them."""
    service.logout(current_user)
    return MessageResponse(message="Logged out successfully")


@router.put("/auth/password", response_model=MessageResponse)
@AUTH_LIMIT
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Change the caller's password after re-checking the current one."""
    service.update_password(current_user, body.current_password, body.new_password)
    return MessageResponse(message="Password updated")
