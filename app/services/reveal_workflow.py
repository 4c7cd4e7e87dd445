"""
Reveal workflow for one gated field (email or scheduling links) on one row.

Per (user, row, field) the field moves Hidden -> Pending -> Revealed, or back
to Hidden when the spend fails. The token decrement and the reveal record are
committed together, so a failed save never leaves the user charged for a
reveal they cannot see.
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.token_costs import get_reveal_cost
from app.services import reveal_store, token_ledger
from app.services.directory import Directory
from app.services.reveal_store import RevealRecord
from app.services.token_ledger import SpendStatus
from app.utils.calendly import split_calendly_links

logger = logging.getLogger(__name__)


class FieldKind(str, Enum):
    EMAIL = "email"
    CALENDLY = "calendly"


class FieldState(str, Enum):
    HIDDEN = "hidden"
    PENDING = "pending"
    REVEALED = "revealed"


class RevealStatus(str, Enum):
    REVEALED = "revealed"          # paid and saved just now
    CACHED = "cached"              # already revealed earlier, no charge
    PENDING = "pending"            # same reveal already in flight, ignored
    SKIPPED = "skipped"            # nothing to reveal on this row
    INSUFFICIENT = "insufficient"  # balance too low, nothing changed
    UNAVAILABLE = "unavailable"    # backend failure, nothing committed


@dataclass
class RevealOutcome:
    status: RevealStatus
    kind: FieldKind
    row_key: str
    remaining: Optional[int] = None
    reveal: Optional[RevealRecord] = None
    message: str = ""


def field_value(kind: FieldKind, row: Dict[str, str], directory: Directory):
    """The value a reveal would expose: the email string or the list of links."""
    if kind == FieldKind.EMAIL:
        return (row.get("Email") or "").strip()
    return split_calendly_links(directory.links_cell(row))


class RevealWorkflow:
    def __init__(self):
        self._pending: Set[Tuple[int, str, str]] = set()
        self._lock = threading.Lock()

    def _claim(self, key: Tuple[int, str, str]) -> bool:
        with self._lock:
            if key in self._pending:
                return False
            self._pending.add(key)
            return True

    def _release(self, key: Tuple[int, str, str]) -> None:
        with self._lock:
            self._pending.discard(key)

    def is_pending(self, user_id: int, row_key: str, kind: FieldKind) -> bool:
        with self._lock:
            return (user_id, row_key, FieldKind(kind).value) in self._pending

    def field_state(
        self,
        user_id: int,
        row_key: str,
        kind: FieldKind,
        reveal: Optional[RevealRecord],
    ) -> FieldState:
        if reveal is not None and reveal.has(FieldKind(kind).value):
            return FieldState.REVEALED
        if self.is_pending(user_id, row_key, kind):
            return FieldState.PENDING
        return FieldState.HIDDEN

    def reveal(
        self,
        db: Session,
        user_id: int,
        row: Dict[str, str],
        kind: FieldKind,
        directory: Directory,
        defer: Optional[Callable[..., Any]] = None,
    ) -> RevealOutcome:
        kind = FieldKind(kind)
        row_key = directory.key_for(row)

        existing = reveal_store.get_reveal_record(db, user_id, row_key)
        if existing is not None and existing.has(kind.value):
            return RevealOutcome(RevealStatus.CACHED, kind, row_key, reveal=existing, message="Already revealed")

        value = field_value(kind, row, directory)
        if not value:
            return RevealOutcome(RevealStatus.SKIPPED, kind, row_key, message="Nothing to reveal")

        pending_key = (user_id, row_key, kind.value)
        if not self._claim(pending_key):
            return RevealOutcome(RevealStatus.PENDING, kind, row_key, message="Reveal already in progress")
        try:
            return self._spend_and_save(db, user_id, row, row_key, kind, value, defer)
        finally:
            self._release(pending_key)

    def _spend_and_save(self, db, user_id, row, row_key, kind, value, defer) -> RevealOutcome:
        cost = get_reveal_cost(kind.value)
        metadata = {"type": kind.value, "rowKey": row_key}

        result = token_ledger.spend(db, user_id, cost, metadata, commit=False)
        if result.status == SpendStatus.INSUFFICIENT_BALANCE:
            return RevealOutcome(RevealStatus.INSUFFICIENT, kind, row_key, message=result.reason or "Not enough tokens")
        if result.status == SpendStatus.UNAVAILABLE:
            return RevealOutcome(RevealStatus.UNAVAILABLE, kind, row_key, message=result.reason)

        try:
            # The user row is locked by the decrement; re-check so a reveal that
            # landed from another worker in the meantime is not billed twice
            current = reveal_store.get_reveal(db, user_id, row_key)
            if current is not None and reveal_store.to_record(current).has(kind.value):
                db.rollback()
                return RevealOutcome(
                    RevealStatus.CACHED, kind, row_key,
                    reveal=reveal_store.get_reveal_record(db, user_id, row_key),
                    message="Already revealed",
                )

            saved = reveal_store.save_reveal(
                db,
                user_id,
                row_key,
                title=row.get("Title") or "",
                company=row.get("Company") or "",
                email=value if kind == FieldKind.EMAIL else None,
                calendly_links=value if kind == FieldKind.CALENDLY else None,
                commit=False,
            )
            db.commit()
            record = reveal_store.to_record(saved)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("[REVEAL] Saving %s reveal for user %s failed; charge rolled back", kind.value, user_id)
            return RevealOutcome(RevealStatus.UNAVAILABLE, kind, row_key, message="Could not save reveal")

        token_ledger.record_spend(db, user_id, cost, result.remaining, metadata, defer=defer)
        logger.info("[REVEAL] User %s revealed %s on %s (-%s, %s left)", user_id, kind.value, row_key, cost, result.remaining)
        return RevealOutcome(
            RevealStatus.REVEALED, kind, row_key,
            remaining=result.remaining,
            reveal=record,
            message=f"-{cost} tokens. Remaining: {result.remaining}",
        )


reveal_workflow = RevealWorkflow()
