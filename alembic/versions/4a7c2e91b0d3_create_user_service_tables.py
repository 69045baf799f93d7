"""Create users, groups, ranks, permission and membership tables

Revision ID: 4a7c2e91b0d3
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4a7c2e91b0d3"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("channel_id", sa.String(64), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("watch_time_seconds", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("watch_time_nanos", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("balance", sa.Float(), nullable=False, server_default="0"),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("watch_time_seconds >= 0", name="ck_users_watch_time_non_negative"),
        sa.CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),
        sa.CheckConstraint("last_seen_at >= first_seen_at", name="ck_users_seen_order"),
    )
    op.create_index("ix_users_watch_time", "users", ["watch_time_seconds", "watch_time_nanos"])
    op.create_index("ix_users_balance", "users", ["balance"])

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("bonus_payout", sa.Float(), nullable=False, server_default="0"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_groups_priority", "groups", ["priority"])

    op.create_table(
        "ranks",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("threshold_seconds", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("threshold_nanos", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_ranks_priority", "ranks", ["priority"])

    op.create_table(
        "group_permissions",
        sa.Column(
            "group_id", sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("permission", sa.String(100), primary_key=True),
        sa.Column("granted", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "user_permissions",
        sa.Column(
            "channel_id", sa.String(64),
            sa.ForeignKey("users.channel_id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("permission", sa.String(100), primary_key=True),
        sa.Column("granted", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "group_members",
        sa.Column(
            "group_id", sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "channel_id", sa.String(64),
            sa.ForeignKey("users.channel_id", ondelete="CASCADE"), primary_key=True,
        ),
    )
    op.create_index("ix_group_members_channel", "group_members", ["channel_id"])


def downgrade() -> None:
    op.drop_index("ix_group_members_channel", table_name="group_members")
    op.drop_table("group_members")
    op.drop_table("user_permissions")
    op.drop_table("group_permissions")
    op.drop_index("ix_ranks_priority", table_name="ranks")
    op.drop_table("ranks")
    op.drop_index("ix_groups_priority", table_name="groups")
    op.drop_table("groups")
    op.drop_index("ix_users_balance", table_name="users")
    op.drop_index("ix_users_watch_time", table_name="users")
    op.drop_table("users")
