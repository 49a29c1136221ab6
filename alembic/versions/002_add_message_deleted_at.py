"""Add soft delete timestamp to messages

Revision ID: 002
Revises: 001
Create Date: 2026-06-19

"""
from alembic import op
import sqlalchemy as sa


revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("messages", sa.Column("deleted_at", sa.DateTime(), nullable=True))
    op.create_index("ix_messages_deleted_at", "messages", ["deleted_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_messages_deleted_at", table_name="messages")
    op.drop_column("messages", "deleted_at")
