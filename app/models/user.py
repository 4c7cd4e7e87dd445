from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.sql import func
from app.db.base import Base
from app.core.token_costs import STARTING_TOKENS

class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("tokens >= 0", name="ck_users_tokens_non_negative"),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    supabase_id = Column(String, unique=True, index=True, nullable=False)  # Opaque Supabase Auth user ID
    email = Column(String, index=True, nullable=True)
    tokens = Column(Integer, default=STARTING_TOKENS, nullable=False)  # Only the token ledger writes this
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, supabase_id={self.supabase_id}, tokens={self.tokens})>"
