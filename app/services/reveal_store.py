"""
Per-user store of revealed directory fields, keyed by directory row key.
Writes merge: revealing the scheduling links never clears a revealed email and
vice versa.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.models.reveal import Reveal
from app.utils.calendly import normalize_calendly_link


@dataclass
class RevealRecord:
    row_key: str
    title: str = ""
    company: str = ""
    email: Optional[str] = None
    calendly_links: List[str] = field(default_factory=list)

    @property
    def has_email(self) -> bool:
        return bool(self.email)

    @property
    def has_calendly(self) -> bool:
        return bool(self.calendly_links)

    def has(self, kind: str) -> bool:
        if kind == "email":
            return self.has_email
        if kind == "calendly":
            return self.has_calendly
        raise ValueError(f"Unknown field kind: {kind}")


def to_record(reveal: Reveal) -> RevealRecord:
    # Links saved before normalization existed are cleaned on the way out
    links = [normalize_calendly_link(href) for href in (reveal.calendly_links or [])]
    return RevealRecord(
        row_key=reveal.row_key,
        title=reveal.title or "",
        company=reveal.company or "",
        email=reveal.email or None,
        calendly_links=[href for href in links if href],
    )


def get_reveal(db: Session, user_id: int, row_key: str) -> Optional[Reveal]:
    return db.query(Reveal).filter(
        Reveal.user_id == user_id,
        Reveal.row_key == row_key
    ).first()


def get_reveal_record(db: Session, user_id: int, row_key: str) -> Optional[RevealRecord]:
    reveal = get_reveal(db, user_id, row_key)
    return to_record(reveal) if reveal else None


def load_reveals(db: Session, user_id: int) -> Dict[str, RevealRecord]:
    """All of a user's reveals, oldest first, as {row_key: RevealRecord}."""
    reveals = db.query(Reveal).filter(Reveal.user_id == user_id).order_by(Reveal.id).all()
    return {reveal.row_key: to_record(reveal) for reveal in reveals}


def save_reveal(
    db: Session,
    user_id: int,
    row_key: str,
    title: str,
    company: str,
    email: Optional[str] = None,
    calendly_links: Optional[List[str]] = None,
    commit: bool = True,
) -> Reveal:
    """
    Create or merge the reveal for (user, row_key). Only the fields passed in
    are written; title and company are refreshed every time.
    """
    reveal = get_reveal(db, user_id, row_key)
    if reveal is None:
        reveal = Reveal(user_id=user_id, row_key=row_key)
        db.add(reveal)

    reveal.title = title or ""
    reveal.company = company or ""
    if email is not None:
        reveal.email = email
    if calendly_links is not None:
        reveal.calendly_links = list(calendly_links)

    db.flush()
    if commit:
        db.commit()
        db.refresh(reveal)
    return reveal
