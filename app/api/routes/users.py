from dataclasses import asdict
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.models.user import User
from app.schemas.auth import UserResponse
from app.schemas.directory import DashboardResponse, RevealRecordResponse
from app.dependencies.auth import get_current_user
from app.services.dashboard import load_dashboard_state

router = APIRouter()


@router.get("/me", response_model=UserResponse)
def get_me(user: User = Depends(get_current_user)):
    """Get current user profile and token balance"""
    return {
        "id": user.id,
        "email": user.email,
        "tokens": user.tokens,
        "created_at": user.created_at.isoformat() if user.created_at else None
    }


@router.get("/me/dashboard", response_model=DashboardResponse)
def get_dashboard(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """Balance plus every reveal, keyed by directory row key."""
    state = load_dashboard_state(db, user)
    return DashboardResponse(
        user_id=state.user_id,
        email=state.email,
        tokens=state.tokens,
        reveals={key: RevealRecordResponse(**asdict(record)) for key, record in state.reveals.items()},
    )
