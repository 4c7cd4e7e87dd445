"""Initial schema: users, reveals, token_logs.

Tables may already exist because app startup runs Base.metadata.create_all
first; each table is only created when missing.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(name: str) -> bool:
    return sa.inspect(op.get_bind()).has_table(name)


def upgrade() -> None:
    if not _has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("supabase_id", sa.String(), nullable=False),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("tokens", sa.Integer(), nullable=False, server_default="100"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.CheckConstraint("tokens >= 0", name="ck_users_tokens_non_negative"),
        )
        op.create_index("ix_users_id", "users", ["id"])
        op.create_index("ix_users_supabase_id", "users", ["supabase_id"], unique=True)
        op.create_index("ix_users_email", "users", ["email"])

    if not _has_table("reveals"):
        op.create_table(
            "reveals",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("row_key", sa.String(), nullable=False),
            sa.Column("title", sa.String(), nullable=False, server_default=""),
            sa.Column("company", sa.String(), nullable=False, server_default=""),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("calendly_links", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint("user_id", "row_key", name="uq_reveals_user_row_key"),
        )
        op.create_index("ix_reveals_id", "reveals", ["id"])
        op.create_index("ix_reveals_user_id", "reveals", ["user_id"])
        op.create_index("ix_reveals_row_key", "reveals", ["row_key"])

    if not _has_table("token_logs"):
        op.create_table(
            "token_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("cost", sa.Integer(), nullable=False),
            sa.Column("remaining", sa.Integer(), nullable=False),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_token_logs_id", "token_logs", ["id"])
        op.create_index("ix_token_logs_user_id", "token_logs", ["user_id"])
        op.create_index("ix_token_logs_created_at", "token_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("token_logs")
    op.drop_table("reveals")
    op.drop_table("users")
