"""
Token ledger: owns every user's token balance.

Balances start at STARTING_TOKENS when an account is first seen and only ever
go down, through spend(). A spend is a single conditional UPDATE so two
concurrent spends for the same user can never both apply against the same
starting balance.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.token_costs import STARTING_TOKENS
from app.models.token_log import TokenLog
from app.models.user import User

logger = logging.getLogger(__name__)


class NotAuthenticated(Exception):
    """A ledger operation was attempted without an authenticated user."""


class SpendStatus(str, Enum):
    OK = "ok"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    UNAVAILABLE = "unavailable"


@dataclass
class SpendResult:
    status: SpendStatus
    remaining: Optional[int] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status == SpendStatus.OK


def ensure_account(db: Session, supabase_id: str, email: Optional[str] = None) -> User:
    """
    Return the user's account, creating it with the starting grant if missing.
    Safe to call on every login; an existing account is returned unchanged.
    """
    if not supabase_id:
        raise NotAuthenticated("Cannot create an account without a provider user ID")

    user = db.query(User).filter(User.supabase_id == supabase_id).first()
    if user:
        return user

    new_user = User(
        supabase_id=supabase_id,
        email=email.lower() if email else None,
        tokens=STARTING_TOKENS,
    )
    try:
        db.add(new_user)
        db.commit()
        db.refresh(new_user)
        logger.info("[LEDGER] Created account %s with %s tokens", new_user.id, STARTING_TOKENS)
        return new_user
    except IntegrityError:
        # Another request created the same account first; use theirs
        db.rollback()
        user = db.query(User).filter(User.supabase_id == supabase_id).first()
        if user is None:
            raise
        logger.info("[LEDGER] Account for %s created concurrently, reusing %s", supabase_id, user.id)
        return user


def get_balance(db: Session, user_id: int) -> Optional[int]:
    return db.query(User.tokens).filter(User.id == user_id).scalar()


def spend(
    db: Session,
    user_id: Optional[int],
    cost: int,
    metadata: Optional[Dict[str, Any]] = None,
    defer: Optional[Callable[..., Any]] = None,
    commit: bool = True,
) -> SpendResult:
    """
    Atomically deduct `cost` tokens from the user's balance.

    The deduction only happens if the balance covers it; otherwise the result is
    INSUFFICIENT_BALANCE and nothing changes. Database failures come back as
    UNAVAILABLE with the transaction rolled back.

    With commit=False the decrement is left in the caller's open transaction and
    the caller is responsible for committing and then calling record_spend().
    """
    if user_id is None:
        raise NotAuthenticated("spend() requires an authenticated user")
    if isinstance(cost, bool) or not isinstance(cost, int) or cost <= 0:
        raise ValueError(f"cost must be a positive integer, got {cost!r}")

    try:
        updated = (
            db.query(User)
            .filter(User.id == user_id, User.tokens >= cost)
            .update({User.tokens: User.tokens - cost}, synchronize_session=False)
        )
        if not updated:
            exists = db.query(User.id).filter(User.id == user_id).first()
            db.rollback()
            if exists is None:
                raise NotAuthenticated(f"No account for user {user_id}")
            return SpendResult(SpendStatus.INSUFFICIENT_BALANCE, reason="Not enough tokens")

        remaining = get_balance(db, user_id)
        if commit:
            db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("[LEDGER] Spend of %s for user %s failed", cost, user_id)
        return SpendResult(SpendStatus.UNAVAILABLE, reason=f"Token service unavailable: {e.__class__.__name__}")

    if commit:
        record_spend(db, user_id, cost, remaining, metadata, defer=defer)
    return SpendResult(SpendStatus.OK, remaining=remaining)


def append_token_log(bind, user_id: int, cost: int, remaining: int, metadata: Optional[Dict[str, Any]]) -> None:
    """Write one audit row in its own session. Failures are logged, never raised."""
    session = Session(bind=bind)
    try:
        session.add(TokenLog(user_id=user_id, cost=cost, remaining=remaining, event_metadata=metadata))
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.warning("[LEDGER] Could not append token log for user %s (cost %s)", user_id, cost, exc_info=True)
    finally:
        session.close()


def record_spend(
    db: Session,
    user_id: int,
    cost: int,
    remaining: int,
    metadata: Optional[Dict[str, Any]] = None,
    defer: Optional[Callable[..., Any]] = None,
) -> None:
    """Fire-and-forget audit entry for a committed spend."""
    bind = db.get_bind()
    if defer is not None:
        defer(append_token_log, bind, user_id, cost, remaining, metadata)
    else:
        append_token_log(bind, user_id, cost, remaining, metadata)
