"""Add support category to messages and purged message tombstones

Revision ID: 003
Revises: 002
Create Date: 2026-07-08

"""
from alembic import op
import sqlalchemy as sa


revision = "003"
down_revision = "002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("messages", sa.Column("support_category", sa.String(length=50), nullable=True))
    op.create_check_constraint(
        "ck_messages_listing_xor_support",
        "messages",
        "(listing_id IS NULL) <> (support_category IS NULL)",
    )

    op.create_table(
        "purged_messages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("sender_id", sa.Uuid(), nullable=False),
        sa.Column("receiver_id", sa.Uuid(), nullable=False),
        sa.Column("purged_at", sa.DateTime(), nullable=False),
        sa.Column("purged_by", sa.Uuid(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("purged_messages")
    op.drop_constraint("ck_messages_listing_xor_support", "messages", type_="check")
    op.drop_column("messages", "support_category")
