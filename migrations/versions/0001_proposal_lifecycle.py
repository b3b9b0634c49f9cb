"""Create proposals, proposal_file_links, proposal_audit_logs and notification_outbox"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_proposal_lifecycle"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "proposals",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("uuid", sa.String(length=36), nullable=False),
        sa.Column("organization_name", sa.String(length=255), nullable=False),
        sa.Column("organization_description", sa.Text(), nullable=True),
        sa.Column("organization_type", sa.String(length=50), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("contact_person", sa.String(length=255), nullable=False),
        sa.Column("contact_email", sa.String(length=255), nullable=False),
        sa.Column("contact_phone", sa.String(length=50), nullable=True),
        sa.Column("event_name", sa.String(length=255), nullable=True),
        sa.Column("event_venue", sa.Text(), nullable=True),
        sa.Column("event_start_date", sa.Date(), nullable=True),
        sa.Column("event_end_date", sa.Date(), nullable=True),
        sa.Column("event_start_time", sa.Time(), nullable=True),
        sa.Column("event_end_time", sa.Time(), nullable=True),
        sa.Column("event_mode", sa.String(length=20), nullable=True),
        sa.Column("event_type", sa.String(length=50), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
        sa.Column("current_section", sa.String(length=50), nullable=True),
        sa.Column("form_completion_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("admin_comments", sa.Text(), nullable=True),
        sa.Column(
            "review_comments",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("compliance_status", sa.String(length=30), nullable=False, server_default="not_applicable"),
        sa.Column("compliance_due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "compliance_documents",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("submitted_by", sa.String(length=255), nullable=True),
        sa.Column("reviewed_by", sa.String(length=255), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("uuid", name="uq_proposals_uuid"),
        sa.CheckConstraint(
            "status IN ('draft', 'pending', 'approved', 'denied', 'revision_requested')",
            name="ck_proposal_status",
        ),
        sa.CheckConstraint(
            "compliance_status IN ('not_applicable', 'pending', 'compliant', 'overdue')",
            name="ck_proposal_compliance_status",
        ),
        sa.CheckConstraint(
            "event_mode IS NULL OR event_mode IN ('online', 'offline', 'hybrid')",
            name="ck_proposal_event_mode",
        ),
        sa.CheckConstraint(
            "form_completion_percentage >= 0 AND form_completion_percentage <= 100",
            name="ck_proposal_form_completion_range",
        ),
        sa.CheckConstraint("version >= 1", name="ck_proposal_version_positive"),
        sa.CheckConstraint(
            "status <> 'approved' OR compliance_due_date IS NOT NULL",
            name="ck_proposal_approved_has_due_date",
        ),
    )
    op.create_index("ix_proposals_uuid", "proposals", ["uuid"])
    op.create_index("ix_proposals_status", "proposals", ["status"])
    op.create_index("ix_proposals_category", "proposals", ["category"])
    op.create_index("ix_proposals_organization_type", "proposals", ["organization_type"])
    op.create_index("ix_proposals_submitted_by", "proposals", ["submitted_by"])
    op.create_index(
        "ix_proposals_compliance_sweep",
        "proposals",
        ["status", "compliance_status", "compliance_due_date"],
    )

    op.create_table(
        "proposal_file_links",
        sa.Column("proposal_id", sa.String(length=36), nullable=False),
        sa.Column("organization_name", sa.String(length=255), nullable=False),
        sa.Column(
            "files",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("proposal_id"),
    )

    op.create_table(
        "proposal_audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("proposal_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_proposal_audit_logs_proposal_created",
        "proposal_audit_logs",
        ["proposal_id", "created_at", "id"],
    )

    op.create_table(
        "notification_outbox",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("proposal_id", sa.String(length=36), nullable=False),
        sa.Column("kind", sa.String(length=50), nullable=False),
        sa.Column("recipient", sa.String(length=255), nullable=False),
        sa.Column(
            "payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('pending', 'sent', 'failed')", name="ck_notification_outbox_status"),
        sa.CheckConstraint("attempts >= 0", name="ck_notification_outbox_attempts_nonneg"),
    )
    op.create_index("ix_notification_outbox_proposal_id", "notification_outbox", ["proposal_id"])
    op.create_index("ix_notification_outbox_due", "notification_outbox", ["status", "next_attempt_at"])


def downgrade() -> None:
    op.drop_index("ix_notification_outbox_due", table_name="notification_outbox")
    op.drop_index("ix_notification_outbox_proposal_id", table_name="notification_outbox")
    op.drop_table("notification_outbox")
    op.drop_index("ix_proposal_audit_logs_proposal_created", table_name="proposal_audit_logs")
    op.drop_table("proposal_audit_logs")
    op.drop_table("proposal_file_links")
    op.drop_index("ix_proposals_compliance_sweep", table_name="proposals")
    op.drop_index("ix_proposals_submitted_by", table_name="proposals")
    op.drop_index("ix_proposals_organization_type", table_name="proposals")
    op.drop_index("ix_proposals_category", table_name="proposals")
    op.drop_index("ix_proposals_status", table_name="proposals")
    op.drop_index("ix_proposals_uuid", table_name="proposals")
    op.drop_table("proposals")
