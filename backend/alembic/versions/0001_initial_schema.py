"""Initial schema.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("department", sa.String(length=100), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("monthly_points_allocation", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("points_balance >= 0", name="chk_users_points_balance_nonnegative"),
        sa.CheckConstraint("monthly_points_allocation >= 0", name="chk_users_allocation_nonnegative"),
        sa.CheckConstraint("role IN ('EMPLOYEE','MANAGER','ADMIN')", name="chk_users_role"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_is_active", "users", ["is_active"])

    op.create_table(
        "sessions",
        sa.Column("token_hash", sa.String(length=128), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.Integer(), nullable=False),
        sa.Column("expires_at", sa.Integer(), nullable=False),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("ix_sessions_expires_at", "sessions", ["expires_at"])

    op.create_table(
        "points_transactions",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("related_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("amount != 0", name="chk_points_transactions_amount_nonzero"),
        sa.CheckConstraint(
            "type IN ('EARNED','SPENT','ALLOCATED')", name="chk_points_transactions_type"
        ),
    )
    op.create_index("ix_points_transactions_user_id", "points_transactions", ["user_id"])
    op.create_index("ix_points_transactions_related_id", "points_transactions", ["related_id"])
    op.create_index(
        "idx_points_transactions_user_created_at", "points_transactions", ["user_id", "created_at"]
    )

    op.create_table(
        "recognitions",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("sender_id", sa.String(length=64), nullable=False),
        sa.Column("recipient_id", sa.String(length=64), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("points_amount", sa.Integer(), nullable=False),
        sa.Column("is_private", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("sender_id != recipient_id", name="chk_recognitions_not_self"),
        sa.CheckConstraint("points_amount BETWEEN 1 AND 100", name="chk_recognitions_points_range"),
    )
    op.create_index("ix_recognitions_sender_id", "recognitions", ["sender_id"])
    op.create_index("ix_recognitions_recipient_id", "recognitions", ["recipient_id"])
    op.create_index("idx_recognitions_created_at", "recognitions", ["created_at"])

    op.create_table(
        "rewards",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("points_cost", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("stock_quantity", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("points_cost >= 1", name="chk_rewards_points_cost_positive"),
        sa.CheckConstraint(
            "stock_quantity IS NULL OR stock_quantity >= 0", name="chk_rewards_stock_nonnegative"
        ),
    )
    op.create_index("ix_rewards_category", "rewards", ["category"])

    op.create_table(
        "reward_redemptions",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("reward_id", sa.String(length=32), nullable=False),
        sa.Column("points_spent", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("redemption_code", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reward_id"], ["rewards.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("redemption_code", name="uq_reward_redemptions_code"),
        sa.CheckConstraint(
            "status IN ('PENDING','APPROVED','FULFILLED','CANCELLED')",
            name="chk_reward_redemptions_status",
        ),
    )
    op.create_index("ix_reward_redemptions_user_id", "reward_redemptions", ["user_id"])
    op.create_index("ix_reward_redemptions_reward_id", "reward_redemptions", ["reward_id"])
    op.create_index(
        "idx_reward_redemptions_reward_status", "reward_redemptions", ["reward_id", "status"]
    )
    op.create_index(
        "idx_reward_redemptions_user_created_at", "reward_redemptions", ["user_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_table("reward_redemptions")
    op.drop_table("rewards")
    op.drop_table("recognitions")
    op.drop_table("points_transactions")
    op.drop_table("sessions")
    op.drop_table("users")
