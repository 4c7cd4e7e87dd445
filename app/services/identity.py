"""
Supabase Auth client: email/password sign-in and sign-up, sign-out, OAuth
redirect URLs, and a small auth-state subscription so the rest of the app can
react to sessions starting and ending.
"""
import logging
import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)

SUPPORTED_OAUTH_PROVIDERS = ("google",)


class IdentityError(Exception):
    def __init__(self, message: str, code: str = "unknown", status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None


@dataclass
class AuthSession:
    user: AuthUser
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


AuthStateListener = Callable[[Optional[AuthUser]], None]


def _user_from(data: Dict[str, Any]) -> AuthUser:
    return AuthUser(id=data["id"], email=data.get("email"))


def _error_from(response: requests.Response) -> IdentityError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    code = body.get("error_code") or body.get("error") or ""
    message = body.get("msg") or body.get("error_description") or body.get("message") or "Authentication failed"

    if code in ("invalid_credentials", "invalid_grant"):
        return IdentityError("Invalid username/email or password", code="invalid_credentials", status_code=401)
    if code in ("user_already_exists", "email_exists"):
        return IdentityError("Email already in use", code="email_exists", status_code=409)
    if code == "weak_password":
        return IdentityError("Password should be at least 6 characters", code="weak_password", status_code=400)
    return IdentityError(message, code=code or "unknown", status_code=400)


class SupabaseAuthClient:
    def __init__(
        self,
        url: Optional[str] = None,
        anon_key: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ):
        self.url = (url if url is not None else settings.supabase_url).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.supabase_anon_key
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._http = http or requests.Session()
        self._listeners: List[AuthStateListener] = []
        self._listeners_lock = threading.Lock()

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {"apikey": self.anon_key, "Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _request(self, method: str, path: str, access_token: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        if not self.url:
            raise IdentityError("Server misconfiguration: SUPABASE_URL not set", code="unavailable", status_code=503)
        try:
            response = self._http.request(
                method,
                f"{self.url}/auth/v1/{path}",
                headers=self._headers(access_token),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            logger.warning("[AUTH] Supabase %s %s failed: %s", method, path, e)
            raise IdentityError(
                "Authentication service temporarily unavailable. Please try again in a moment.",
                code="unavailable",
                status_code=503,
            ) from e

        if response.status_code >= 500:
            logger.warning("[AUTH] Supabase %s %s returned %s", method, path, response.status_code)
            raise IdentityError(
                "Authentication service temporarily unavailable. Please try again in a moment.",
                code="unavailable",
                status_code=503,
            )
        if not response.ok:
            raise _error_from(response)
        if not response.content:
            return {}
        return response.json()

    # --- auth state -----------------------------------------------------

    def on_auth_state_change(self, listener: AuthStateListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, user: Optional[AuthUser]) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(user)
            except Exception:
                logger.exception("[AUTH] Auth state listener %r failed", listener)

    # --- operations -----------------------------------------------------

    def sign_in(self, email: str, password: str) -> AuthSession:
        data = self._request(
            "POST", "token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = AuthSession(
            user=_user_from(data["user"]),
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
        )
        self._emit(session.user)
        return session

    def sign_up(self, email: str, password: str, username: Optional[str] = None) -> AuthSession:
        payload: Dict[str, Any] = {"email": email, "password": password}
        if username:
            payload["data"] = {"username": username}
        data = self._request("POST", "signup", json=payload)

        # With email confirmation on, Supabase returns the bare user and no session
        if "access_token" in data:
            session = AuthSession(
                user=_user_from(data["user"]),
                access_token=data.get("access_token"),
                refresh_token=data.get("refresh_token"),
            )
        else:
            session = AuthSession(user=_user_from(data.get("user") or data))
        self._emit(session.user)
        return session

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "logout", access_token=access_token)
        self._emit(None)

    def get_user(self, access_token: str) -> AuthUser:
        return _user_from(self._request("GET", "user", access_token=access_token))

    def oauth_authorize_url(self, provider: str, redirect_to: Optional[str] = None) -> str:
        if provider not in SUPPORTED_OAUTH_PROVIDERS:
            raise IdentityError(f"Unsupported OAuth provider: {provider}", code="unsupported_provider", status_code=400)
        if not self.url:
            raise IdentityError("Server misconfiguration: SUPABASE_URL not set", code="unavailable", status_code=503)
        params = {"provider": provider}
        if redirect_to:
            params["redirect_to"] = redirect_to
        return f"{self.url}/auth/v1/authorize?{urlencode(params)}"


@lru_cache(maxsize=1)
def get_identity_client() -> SupabaseAuthClient:
    return SupabaseAuthClient()
