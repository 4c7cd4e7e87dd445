from pydantic import BaseModel, EmailStr
from typing import Optional


class SignupRequest(BaseModel):
    username: Optional[str] = None
    email: EmailStr
    password: str
    confirm_password: str


class LoginRequest(BaseModel):
    email: str  # Any value; Supabase decides whether it is a valid login
    password: str


class AuthSessionResponse(BaseModel):
    user_id: int  # Backend account ID
    supabase_id: str
    email: Optional[str] = None
    tokens: int
    access_token: Optional[str] = None  # None when sign-up awaits email confirmation
    refresh_token: Optional[str] = None


class OAuthUrlResponse(BaseModel):
    provider: str
    url: str


class UserResponse(BaseModel):
    id: int
    email: Optional[str] = None
    tokens: int
    created_at: Optional[str] = None

    class Config:
        from_attributes = True
