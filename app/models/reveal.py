"""
Model for directory fields a user has paid to reveal.
One row per (user, directory row key); email and scheduling links are filled in
independently as each is revealed.
"""
from sqlalchemy import Column, Integer, String, JSON, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from app.db.base import Base


class Reveal(Base):
    __tablename__ = "reveals"
    __table_args__ = (
        UniqueConstraint("user_id", "row_key", name="uq_reveals_user_row_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    row_key = Column(String, nullable=False, index=True)  # Percent-encoded Title|Company|Email|links

    # Snapshot so the revealed list renders without the directory loaded
    title = Column(String, nullable=False, default="")
    company = Column(String, nullable=False, default="")

    email = Column(String, nullable=True)
    calendly_links = Column(JSON, nullable=True)  # List of normalized https://calendly.com/... URLs

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Reveal(id={self.id}, user_id={self.user_id}, row_key={self.row_key})>"
