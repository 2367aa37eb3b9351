"""initial_checklist_workflow_schema

Create users, auth_sessions, clients, checklists, comments and the
report_sequences counter table.

Revision ID: a7c1e2d3f401
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a7c1e2d3f401"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=False, server_default=""),
            sa.Column("last_name", sa.String(length=100), nullable=False, server_default=""),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="RM"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("last_login_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )
        op.create_index("ix_users_email", "users", ["email"])

    if "auth_sessions" not in existing_tables:
        op.create_table(
            "auth_sessions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("token_hash", sa.String(length=64), nullable=False),
            sa.Column("ip_address", sa.String(length=45), nullable=True),
            sa.Column("user_agent", sa.String(length=500), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("last_used_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("token_hash"),
        )
        op.create_index("ix_auth_sessions_user_id", "auth_sessions", ["user_id"])

    if "clients" not in existing_tables:
        op.create_table(
            "clients",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("customer_id", sa.String(length=50), nullable=False),
            sa.Column("customer_number", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=100), nullable=False),
            sa.Column("phone", sa.String(length=20), nullable=True),
            sa.Column("address", sa.String(length=200), nullable=True),
            sa.Column("project_name", sa.String(length=200), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("customer_id", name="uq_clients_customer_id"),
            sa.UniqueConstraint("customer_number", name="uq_clients_customer_number"),
        )
        op.create_index("ix_clients_name", "clients", ["name"])

    if "checklists" not in existing_tables:
        op.create_table(
            "checklists",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("dcl_no", sa.String(length=50), nullable=False),
            sa.Column("customer_id", sa.String(length=50), nullable=True),
            sa.Column("customer_number", sa.String(length=50), nullable=False),
            sa.Column("customer_name", sa.String(length=200), nullable=False),
            sa.Column("customer_email", sa.String(length=100), nullable=True),
            sa.Column("project_name", sa.String(length=200), nullable=False),
            sa.Column("ibps_no", sa.String(length=100), nullable=True),
            sa.Column("assigned_to_rm", sa.String(length=36), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            sa.Column("documents", sa.JSON(), nullable=False),
            sa.Column("site_visit_form", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
            sa.Column("priority", sa.String(length=20), nullable=True),
            sa.Column("assigned_to_qs", sa.String(length=36), nullable=True),
            sa.Column("assigned_to_qs_name", sa.String(length=200), nullable=True),
            sa.Column("submitted_at", sa.DateTime(), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(), nullable=True),
            sa.Column("reviewed_by", sa.String(length=36), nullable=True),
            sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("locked_by_user_id", sa.String(length=36), nullable=True),
            sa.Column("locked_by_user_name", sa.String(length=200), nullable=True),
            sa.Column("locked_at", sa.DateTime(), nullable=True),
            sa.Column("lock_expires_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("dcl_no", name="uq_checklists_dcl_no"),
        )
        op.create_index("ix_checklists_status", "checklists", ["status"])
        op.create_index("ix_checklists_assigned_to_rm", "checklists", ["assigned_to_rm"])
        op.create_index("ix_checklists_assigned_to_qs", "checklists", ["assigned_to_qs"])

    if "comments" not in existing_tables:
        op.create_table(
            "comments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("report_id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("user_name", sa.String(length=200), nullable=False),
            sa.Column("user_role", sa.String(length=20), nullable=False),
            sa.Column("text", sa.Text(), nullable=False),
            sa.Column("is_internal", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["report_id"], ["checklists.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_comments_report_id", "comments", ["report_id"])
        op.create_index("ix_comments_created_at", "comments", ["created_at"])

    if "report_sequences" not in existing_tables:
        op.create_table(
            "report_sequences",
            sa.Column("name", sa.String(length=50), nullable=False),
            sa.Column("value", sa.Integer(), nullable=False, server_default="0"),
            sa.PrimaryKeyConstraint("name"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "report_sequences" in existing_tables:
        op.drop_table("report_sequences")

    if "comments" in existing_tables:
        op.drop_index("ix_comments_created_at", table_name="comments")
        op.drop_index("ix_comments_report_id", table_name="comments")
        op.drop_table("comments")

    if "checklists" in existing_tables:
        op.drop_index("ix_checklists_assigned_to_qs", table_name="checklists")
        op.drop_index("ix_checklists_assigned_to_rm", table_name="checklists")
        op.drop_index("ix_checklists_status", table_name="checklists")
        op.drop_table("checklists")

    if "clients" in existing_tables:
        op.drop_index("ix_clients_name", table_name="clients")
        op.drop_table("clients")

    if "auth_sessions" in existing_tables:
        op.drop_index("ix_auth_sessions_user_id", table_name="auth_sessions")
        op.drop_table("auth_sessions")

    if "users" in existing_tables:
        op.drop_index("ix_users_email", table_name="users")
        op.drop_table("users")
