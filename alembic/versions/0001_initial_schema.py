"""initial escrow schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

MILESTONE_STATUS = sa.Enum(
    "locked", "pending", "submitted", "approved", "refunded", name="milestone_status"
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _milestone_columns(num: int, *, required: bool) -> list[sa.Column]:
    return [
        sa.Column(f"milestone_{num}_title", sa.String(length=200), nullable=not required),
        sa.Column(f"milestone_{num}_description", sa.Text, nullable=True),
        sa.Column(f"milestone_{num}_amount", sa.BigInteger, nullable=False),
        sa.Column(f"milestone_{num}_status", MILESTONE_STATUS, nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        *_timestamps(),
        sa.Column("stx_address", sa.String(length=255), nullable=False, unique=True),
        sa.Column("username", sa.String(length=100), nullable=True),
        sa.Column("role", sa.Enum("client", "freelancer", name="user_role"), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
        sa.Column("total_earned_stx", sa.BigInteger, nullable=False),
        sa.Column("total_earned_sbtc", sa.BigInteger, nullable=False),
    )

    op.create_table(
        "api_keys",
        *_timestamps(),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        sa.Column("prefix", sa.String(length=32), nullable=False),
        sa.Column("key_hash", sa.String(length=128), nullable=False, unique=True),
        sa.Column("scope", sa.Enum("user", "admin", name="apiscope"), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])

    op.create_table(
        "audit_logs",
        *_timestamps(),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer, nullable=False),
        sa.Column("data_json", sa.JSON, nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "scheduler_locks",
        *_timestamps(),
        sa.Column("name", sa.String(length=64), nullable=False, unique=True),
        sa.Column("owner", sa.String(length=64), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "projects",
        *_timestamps(),
        sa.Column("client_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("freelancer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("subcategory", sa.String(length=100), nullable=True),
        sa.Column("token_type", sa.Enum("STX", "sBTC", name="token_type"), nullable=False),
        sa.Column("num_milestones", sa.Integer, nullable=False),
        *_milestone_columns(1, required=True),
        *_milestone_columns(2, required=False),
        *_milestone_columns(3, required=False),
        *_milestone_columns(4, required=False),
        sa.Column("total_budget", sa.BigInteger, nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "open",
                "active",
                "completed",
                "cancelled",
                "disputed",
                "refunded",
                name="project_status",
            ),
            nullable=False,
        ),
        sa.Column("on_chain_id", sa.Integer, nullable=True),
        sa.Column("escrow_tx_id", sa.String(length=100), nullable=True),
        sa.Column("refund_tx_id", sa.String(length=100), nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        sa.CheckConstraint(
            "num_milestones >= 1 AND num_milestones <= 4", name="ck_project_num_milestones"
        ),
        sa.CheckConstraint("total_budget >= 0", name="ck_project_budget_non_negative"),
    )
    op.create_index("ix_project_status", "projects", ["status"])
    op.create_index("ix_project_client", "projects", ["client_id"])
    op.create_index("ix_project_freelancer", "projects", ["freelancer_id"])

    op.create_table(
        "proposals",
        *_timestamps(),
        sa.Column("project_id", sa.Integer, sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("freelancer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("cover_letter", sa.Text, nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "accepted", "rejected", "withdrawn", name="proposal_status"),
            nullable=False,
        ),
    )
    op.create_index("ix_proposal_project_status", "proposals", ["project_id", "status"])
    op.create_index("ix_proposal_freelancer", "proposals", ["freelancer_id"])

    op.create_table(
        "milestone_submissions",
        *_timestamps(),
        sa.Column("project_id", sa.Integer, sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("milestone_num", sa.Integer, nullable=False),
        sa.Column("freelancer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("deliverable_url", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "status",
            sa.Enum("submitted", "approved", "rejected", "disputed", name="submission_status"),
            nullable=False,
        ),
        sa.Column("completion_tx_id", sa.String(length=100), nullable=True),
        sa.Column("release_tx_id", sa.String(length=100), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_submission_latest",
        "milestone_submissions",
        ["project_id", "milestone_num", "submitted_at", "id"],
    )

    op.create_table(
        "disputes",
        *_timestamps(),
        sa.Column("project_id", sa.Integer, sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("milestone_num", sa.Integer, nullable=False),
        sa.Column("filed_by", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("evidence_url", sa.String(length=500), nullable=True),
        sa.Column(
            "status",
            sa.Enum("open", "resolved", "reset", name="dispute_status"),
            nullable=False,
        ),
        sa.Column("resolution", sa.Text, nullable=True),
        sa.Column("resolved_by", sa.String(length=100), nullable=True),
        sa.Column("favor_freelancer", sa.Boolean, nullable=True),
        sa.Column("dispute_tx_id", sa.String(length=100), nullable=True),
        sa.Column("resolution_tx_id", sa.String(length=100), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_dispute_project_milestone",
        "disputes",
        ["project_id", "milestone_num", "created_at", "id"],
    )
    op.create_index(
        "uq_dispute_open_per_milestone",
        "disputes",
        ["project_id", "milestone_num"],
        unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )

    op.create_table(
        "reconciliation_markers",
        *_timestamps(),
        sa.Column("intent", sa.String(length=64), nullable=False),
        sa.Column("entity", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Integer, nullable=False),
        sa.Column("project_id", sa.Integer, nullable=True),
        sa.Column("tx_id", sa.String(length=100), nullable=False),
        sa.Column("params_json", sa.JSON, nullable=False),
        sa.Column("error", sa.Text, nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "replayed", "dismissed", name="marker_status"),
            nullable=False,
        ),
        sa.Column("resolved_by", sa.String(length=100), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_marker_status", "reconciliation_markers", ["status"])
    op.create_index("ix_marker_tx", "reconciliation_markers", ["tx_id"])

    op.create_table(
        "notifications",
        *_timestamps(),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "milestone_submitted",
                "milestone_approved",
                "milestone_rejected",
                "dispute_filed",
                "dispute_resolved",
                "proposal_received",
                "proposal_accepted",
                "project_completed",
                name="notification_type",
            ),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("project_id", sa.Integer, sa.ForeignKey("projects.id"), nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=False),
    )
    op.create_index("ix_notification_user_read", "notifications", ["user_id", "is_read"])


def downgrade() -> None:
    op.drop_index("ix_notification_user_read", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_marker_tx", table_name="reconciliation_markers")
    op.drop_index("ix_marker_status", table_name="reconciliation_markers")
    op.drop_table("reconciliation_markers")
    op.drop_index("uq_dispute_open_per_milestone", table_name="disputes")
    op.drop_index("ix_dispute_project_milestone", table_name="disputes")
    op.drop_table("disputes")
    op.drop_index("ix_submission_latest", table_name="milestone_submissions")
    op.drop_table("milestone_submissions")
    op.drop_index("ix_proposal_freelancer", table_name="proposals")
    op.drop_index("ix_proposal_project_status", table_name="proposals")
    op.drop_table("proposals")
    op.drop_index("ix_project_freelancer", table_name="projects")
    op.drop_index("ix_project_client", table_name="projects")
    op.drop_index("ix_project_status", table_name="projects")
    op.drop_table("projects")
    op.drop_table("scheduler_locks")
    op.drop_table("audit_logs")
    op.drop_index("ix_api_keys_user_id", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_table("users")
    for enum_name in (
        "notification_type",
        "marker_status",
        "dispute_status",
        "submission_status",
        "proposal_status",
        "project_status",
        "milestone_status",
        "token_type",
        "apiscope",
        "user_role",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
