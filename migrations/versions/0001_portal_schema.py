"""Initial portal schema: accounts, user records, catalogs, play log, audit log."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_portal_schema"
down_revision = None
branch_labels = None
depends_on = None


def _catalog_columns() -> list:
    return [
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("icon", sa.String(length=500), nullable=False),
        sa.Column("category", sa.String(length=40), nullable=False),
        sa.Column("link", sa.String(length=1000), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
    ]


def upgrade() -> None:
    # Identities -----------------------------------------------------------
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="user"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("last_login", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_created_at", "users", ["created_at"])

    # Catalogs -------------------------------------------------------------
    op.create_table(
        "games",
        *_catalog_columns(),
        sa.Column("plays", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_games_category", "games", ["category"])
    op.create_index("ix_games_created_at", "games", ["created_at"])

    op.create_table(
        "tools",
        *_catalog_columns(),
        sa.Column("uses", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_tools_category", "tools", ["category"])
    op.create_index("ix_tools_created_at", "tools", ["created_at"])

    # Logs -----------------------------------------------------------------
    op.create_table(
        "game_activity",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("game_id", sa.String(length=64), nullable=False),
        sa.Column("played_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_game_activity_user_id", "game_activity", ["user_id"])
    op.create_index("ix_game_activity_game_id", "game_activity", ["game_id"])
    op.create_index("ix_game_activity_played_at", "game_activity", ["played_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("action", sa.String(length=120), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    for table in ("audit_logs", "game_activity", "tools", "games", "users", "accounts"):
        op.drop_table(table)
