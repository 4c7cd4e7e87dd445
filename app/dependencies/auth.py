from fastapi import Header, HTTPException, status, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import jwt  # PyJWT
import logging
from functools import lru_cache
from typing import Optional
from app.core.config import settings
from app.db.session import get_db
from app.models.user import User
from app.services.token_ledger import ensure_account

logger = logging.getLogger(__name__)

ASYMMETRIC_ALGORITHMS = ("ES256", "RS256")


@lru_cache(maxsize=4)
def get_jwks_client(supabase_url: str) -> jwt.PyJWKClient:
    """One JWKS client per project URL; PyJWKClient caches the fetched keys itself."""
    return jwt.PyJWKClient(f"{supabase_url}/auth/v1/.well-known/jwks.json", cache_keys=True)


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid header format. Expected 'Bearer <token>'"
        )

    token = authorization[len("Bearer "):].strip()

    # Frontends sometimes send the string form of a missing value
    if not token or token.lower() in ["null", "undefined", "none"]:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing token"
        )

    if len(token.split(".")) != 3:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token format. Token must have header.payload.signature structure."
        )
    return token


def verify_supabase_token(authorization: Optional[str] = Header(None)) -> dict:
    """
    Verifies a Supabase access token and returns its claims.
    HS256 tokens are checked against SUPABASE_JWT_SECRET; ES256/RS256 tokens
    against the project's JWKS.
    """
    token = extract_bearer_token(authorization)

    try:
        algo = jwt.get_unverified_header(token).get("alg")
    except jwt.DecodeError as e:
        logger.info("[AUTH] Failed to decode token header: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token header"
        )

    if algo == "HS256":
        if not settings.supabase_jwt_secret:
            logger.error("[AUTH] SUPABASE_JWT_SECRET is missing")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server misconfiguration: SUPABASE_JWT_SECRET not set"
            )
        key = settings.supabase_jwt_secret

    elif algo in ASYMMETRIC_ALGORITHMS:
        if not settings.supabase_url:
            logger.error("[AUTH] SUPABASE_URL is missing for %s verification", algo)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server misconfiguration: SUPABASE_URL not set"
            )
        try:
            key = get_jwks_client(settings.supabase_url.rstrip("/")).get_signing_key_from_jwt(token).key
        except jwt.PyJWKClientConnectionError as e:
            logger.warning("[AUTH] Could not fetch JWKS: %s", e)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Authentication service temporarily unavailable. Please try again in a moment."
            )
        except jwt.PyJWKClientError as e:
            logger.info("[AUTH] No signing key for token: %s", e)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token signature"
            )

    else:
        logger.info("[AUTH] Unsupported algorithm: %s", algo)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unsupported token algorithm: {algo}"
        )

    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=[algo],
            audience="authenticated",
            options={"verify_aud": True}
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired"
        )
    except jwt.InvalidTokenError as e:
        logger.info("[AUTH] %s verification failed: %s", algo, e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token signature"
        )

    if not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing user ID claim"
        )
    return payload


def get_access_token(authorization: Optional[str] = Header(None)) -> str:
    """Raw bearer token, for calls that forward it to Supabase (sign-out)."""
    return extract_bearer_token(authorization)


def get_current_user(
    payload: dict = Depends(verify_supabase_token),
    db: Session = Depends(get_db)
) -> User:
    """
    FastAPI dependency: the signed-in user's account.
    Creates the account (with the starting token grant) the first time a
    Supabase user is seen, so a fresh OAuth login never hits a missing row.
    """
    try:
        return ensure_account(db, payload["sub"], payload.get("email"))
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[AUTH] Database error while loading account for %s", payload.get("sub"))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database temporarily unavailable. Please try again in a moment."
        )
