import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.dependencies.auth import get_access_token, get_current_user
from app.models.user import User
from app.schemas.auth import AuthSessionResponse, LoginRequest, OAuthUrlResponse, SignupRequest, UserResponse
from app.services.identity import AuthSession, IdentityError, SupabaseAuthClient, get_identity_client
from app.services.token_ledger import ensure_account

logger = logging.getLogger(__name__)

router = APIRouter()

# Sign-up errors shown verbatim; anything else becomes a generic message
SIGNUP_ERROR_CODES = ("email_exists", "weak_password", "unavailable")


def _ensure_account_for(db: Session, session: AuthSession) -> User:
    try:
        return ensure_account(db, session.user.id, session.user.email)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[AUTH] Could not create account for %s", session.user.id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database temporarily unavailable. Please try again in a moment."
        )


def _session_response(user: User, session: AuthSession) -> AuthSessionResponse:
    return AuthSessionResponse(
        user_id=user.id,
        supabase_id=user.supabase_id,
        email=user.email,
        tokens=user.tokens,
        access_token=session.access_token,
        refresh_token=session.refresh_token,
    )


@router.post("/signup", response_model=AuthSessionResponse, status_code=status.HTTP_201_CREATED)
def signup(
    request: SignupRequest,
    db: Session = Depends(get_db),
    identity: SupabaseAuthClient = Depends(get_identity_client)
):
    """
    Create a Supabase user with email and password, then the token account.
    """
    if request.password != request.confirm_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Passwords do not match"
        )

    try:
        session = identity.sign_up(request.email, request.password, username=request.username)
    except IdentityError as e:
        logger.info("[AUTH] Sign-up failed for %s: %s (%s)", request.email, e.message, e.code)
        if e.code in SIGNUP_ERROR_CODES:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Signup failed")

    user = _ensure_account_for(db, session)
    return _session_response(user, session)


@router.post("/login", response_model=AuthSessionResponse)
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    identity: SupabaseAuthClient = Depends(get_identity_client)
):
    """Email/password sign-in. Grants the starting tokens on the first login."""
    try:
        session = identity.sign_in(request.email, request.password)
    except IdentityError as e:
        logger.info("[AUTH] Login failed for %s: %s", request.email, e.code)
        if e.code == "unavailable":
            raise HTTPException(status_code=e.status_code, detail=e.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username/email or password"
        )

    user = _ensure_account_for(db, session)
    return _session_response(user, session)


@router.post("/logout")
def logout(
    access_token: str = Depends(get_access_token),
    identity: SupabaseAuthClient = Depends(get_identity_client)
):
    try:
        identity.sign_out(access_token)
    except IdentityError as e:
        if e.code == "unavailable":
            raise HTTPException(status_code=e.status_code, detail=e.message)
        # Session already gone on Supabase's side; nothing left to end
        logger.info("[AUTH] Logout ignored provider error: %s", e.message)
    return {"message": "Logged out"}


@router.get("/oauth/{provider}", response_model=OAuthUrlResponse)
def oauth_url(
    provider: str,
    redirect_to: Optional[str] = None,
    identity: SupabaseAuthClient = Depends(get_identity_client)
):
    """
    URL to send the browser to for OAuth sign-in (Google). After the redirect
    back, the frontend calls /auth/sync-user with the new access token.
    """
    try:
        url = identity.oauth_authorize_url(provider, redirect_to=redirect_to)
    except IdentityError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return OAuthUrlResponse(provider=provider, url=url)


@router.post("/sync-user", response_model=UserResponse)
def sync_user(user: User = Depends(get_current_user)):
    """Make sure the signed-in Supabase user has a token account. Idempotent."""
    return UserResponse(
        id=user.id,
        email=user.email,
        tokens=user.tokens,
        created_at=user.created_at.isoformat() if user.created_at else None,
    )
