"""
Append-only audit trail of token spends. Written after each successful spend,
never read back by the application.
"""
from sqlalchemy import Column, Integer, JSON, ForeignKey, DateTime
from datetime import datetime
from app.db.base import Base


class TokenLog(Base):
    __tablename__ = "token_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    cost = Column(Integer, nullable=False)
    remaining = Column(Integer, nullable=False)  # Balance right after this spend
    event_metadata = Column("metadata", JSON, nullable=True)  # e.g. {"type": "email", "rowKey": "..."}
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<TokenLog(id={self.id}, user_id={self.user_id}, cost={self.cost}, remaining={self.remaining})>"
