"""issue workflow core tables

Revision ID: 0001_issue_workflow_core
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_issue_workflow_core"
down_revision = None
branch_labels = None
depends_on = None


def _uuid(name: str, **kw) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kw)


def _jsonb(name: str, default: str = "'{}'::jsonb", nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.JSONB, nullable=nullable, server_default=sa.text(default) if default else None)


def _ts(name: str = "created_at", nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.text("now()") if not nullable else None,
    )


def upgrade():
    # ------------------------------------------------------------------
    # IDENTITY / GEOGRAPHY / DEPARTMENTS
    # ------------------------------------------------------------------
    op.create_table(
        "profiles",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=256), nullable=False),
        sa.Column("full_name", sa.String(length=256), nullable=False),
        sa.Column("email", sa.String(length=256), nullable=True),
        sa.Column("user_type", sa.String(length=32), nullable=False, server_default=sa.text("'citizen'")),
        _uuid("assigned_area_id", nullable=True),
        _uuid("assigned_department_id", nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts(),
    )
    op.create_index("ix_profiles_user_type", "profiles", ["user_type"])
    op.create_index("ix_profiles_assigned_area", "profiles", ["assigned_area_id"])
    op.create_index("ix_profiles_assigned_department", "profiles", ["assigned_department_id"])

    op.create_table(
        "states",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False, unique=True),
        sa.Column("code", sa.String(length=16), nullable=False, unique=True),
        sa.Column("country", sa.String(length=64), nullable=False, server_default=sa.text("'India'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts(),
    )

    op.create_table(
        "districts",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("state_id", sa.ForeignKey("states.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("code", sa.String(length=16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts(),
        sa.UniqueConstraint("state_id", "name", name="uq_districts_state_name"),
    )
    op.create_index("ix_districts_state_id", "districts", ["state_id"])

    op.create_table(
        "departments",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("head_office_address", sa.Text(), nullable=True),
        sa.Column("contact_email", sa.String(length=256), nullable=True),
        sa.Column("contact_phone", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _jsonb("metadata_json"),
        _ts(),
    )
    op.create_index("ix_departments_category", "departments", ["category"])

    op.create_table(
        "areas",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("district_id", sa.ForeignKey("districts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("code", sa.String(length=16), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("population", sa.Integer(), nullable=True),
        _uuid("area_super_admin_id", sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _jsonb("metadata_json"),
        _ts(),
        _ts("updated_at"),
        sa.UniqueConstraint("district_id", "name", name="uq_areas_district_name"),
    )
    op.create_index("ix_areas_district_id", "areas", ["district_id"])
    op.create_index("ix_areas_super_admin", "areas", ["area_super_admin_id"])

    # profiles <-> areas/departments cycle closed after both exist
    op.create_foreign_key(
        "fk_profiles_assigned_area", "profiles", "areas",
        ["assigned_area_id"], ["id"], ondelete="SET NULL",
    )
    op.create_foreign_key(
        "fk_profiles_assigned_department", "profiles", "departments",
        ["assigned_department_id"], ["id"], ondelete="SET NULL",
    )

    # ------------------------------------------------------------------
    # ISSUES / ASSIGNMENT LEDGER / WORK PROGRESS
    # ------------------------------------------------------------------
    op.create_table(
        "issues",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("reporter_id", sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default=sa.text("'medium'")),
        sa.Column("area", sa.String(length=128), nullable=True),
        sa.Column("ward", sa.String(length=128), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("location_name", sa.String(length=256), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        _jsonb("images", "'[]'::jsonb"),
        sa.Column("workflow_stage", sa.String(length=32), nullable=False, server_default=sa.text("'reported'")),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'pending'")),
        _uuid("assigned_area_id", sa.ForeignKey("areas.id", ondelete="SET NULL"), nullable=True),
        _uuid("assigned_department_id", sa.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True),
        _uuid("current_assignee_id", sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        _ts("resolved_at", nullable=True),
        sa.Column("final_resolution_notes", sa.Text(), nullable=True),
        _jsonb("final_resolution_images", default=None, nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _ts(),
        _ts("updated_at"),
        sa.CheckConstraint(
            "workflow_stage IN ('reported','area_review','department_assigned','contractor_assigned',"
            "'in_progress','department_review','area_approval','resolved')",
            name="ck_issues_workflow_stage_valid",
        ),
        sa.CheckConstraint("status IN ('pending','in_progress','resolved')", name="ck_issues_status_valid"),
    )
    op.create_index("ix_issues_workflow_stage", "issues", ["workflow_stage"])
    op.create_index("ix_issues_assigned_area", "issues", ["assigned_area_id"])
    op.create_index("ix_issues_assigned_department", "issues", ["assigned_department_id"])
    op.create_index("ix_issues_current_assignee", "issues", ["current_assignee_id"])
    op.create_index("ix_issues_reporter", "issues", ["reporter_id"])

    op.create_table(
        "issue_assignments",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("issue_id", sa.ForeignKey("issues.id", ondelete="CASCADE"), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        _uuid("assigned_by", sa.ForeignKey("profiles.id"), nullable=False),
        _uuid("assigned_to", sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("assignment_type", sa.String(length=32), nullable=False),
        sa.Column("assignment_notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'active'")),
        sa.Column("prev_hash", sa.String(length=64), nullable=False),
        sa.Column("entry_hash", sa.String(length=64), nullable=False),
        _ts("due_date", nullable=True),
        _ts("completed_at", nullable=True),
        _ts(),
        sa.UniqueConstraint("issue_id", "seq", name="uq_issue_assignments_issue_seq"),
        sa.CheckConstraint(
            "assignment_type IN ('area_admin','department_admin','contractor')",
            name="ck_issue_assignments_type_valid",
        ),
        sa.CheckConstraint(
            "status IN ('active','completed','reassigned','cancelled')",
            name="ck_issue_assignments_status_valid",
        ),
    )
    op.create_index(
        "uq_issue_assignments_single_active",
        "issue_assignments",
        ["issue_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index("ix_issue_assignments_issue_id", "issue_assignments", ["issue_id"])
    op.create_index("ix_issue_assignments_assigned_to", "issue_assignments", ["assigned_to"])

    # Append-only: only status/completed_at may change, rows are never deleted
    op.execute(
        """
        CREATE OR REPLACE FUNCTION prevent_issue_assignment_rewrite()
        RETURNS trigger AS $$
        BEGIN
          IF TG_OP = 'DELETE' THEN
            RAISE EXCEPTION 'issue_assignments is append-only';
          END IF;
          IF NEW.issue_id IS DISTINCT FROM OLD.issue_id
             OR NEW.seq IS DISTINCT FROM OLD.seq
             OR NEW.assigned_by IS DISTINCT FROM OLD.assigned_by
             OR NEW.assigned_to IS DISTINCT FROM OLD.assigned_to
             OR NEW.assignment_type IS DISTINCT FROM OLD.assignment_type
             OR NEW.assignment_notes IS DISTINCT FROM OLD.assignment_notes
             OR NEW.prev_hash IS DISTINCT FROM OLD.prev_hash
             OR NEW.entry_hash IS DISTINCT FROM OLD.entry_hash THEN
            RAISE EXCEPTION 'issue_assignments entries are immutable';
          END IF;
          RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_issue_assignments_append_only
        BEFORE UPDATE OR DELETE ON issue_assignments
        FOR EACH ROW EXECUTE FUNCTION prevent_issue_assignment_rewrite();
        """
    )

    op.create_table(
        "work_progress",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("issue_id", sa.ForeignKey("issues.id", ondelete="CASCADE"), nullable=False),
        _uuid("assignment_id", sa.ForeignKey("issue_assignments.id", ondelete="CASCADE"), nullable=True),
        _uuid("submitted_by", sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        _jsonb("before_images", "'[]'::jsonb"),
        _jsonb("after_images", default=None),
        _jsonb("work_details"),
        _jsonb("materials_used", "'[]'::jsonb"),
        _jsonb("cost_breakdown", default=None, nullable=True),
        sa.Column("completion_date", sa.Date(), nullable=False),
        sa.Column("quality_rating", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'submitted'")),
        _uuid("reviewed_by", sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        _ts("reviewed_at", nullable=True),
        _ts(),
        _ts("updated_at"),
        sa.CheckConstraint(
            "quality_rating IS NULL OR (quality_rating >= 1 AND quality_rating <= 5)",
            name="ck_work_progress_quality_rating",
        ),
        sa.CheckConstraint(
            "status IN ('submitted','under_review','approved','rejected')",
            name="ck_work_progress_status_valid",
        ),
    )
    op.create_index("ix_work_progress_issue_id", "work_progress", ["issue_id"])
    op.create_index("ix_work_progress_status", "work_progress", ["status"])

    # ------------------------------------------------------------------
    # TENDERS
    # ------------------------------------------------------------------
    op.create_table(
        "tenders",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("source_issue_id", sa.ForeignKey("issues.id", ondelete="CASCADE"), nullable=False),
        _uuid("department_id", sa.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True),
        _uuid("created_by", sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("estimated_budget_min", sa.Numeric(14, 2), nullable=False),
        sa.Column("estimated_budget_max", sa.Numeric(14, 2), nullable=False),
        sa.Column("submission_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'available'")),
        _uuid("awarded_to", sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("awarded_amount", sa.Numeric(14, 2), nullable=True),
        _ts("awarded_at", nullable=True),
        _ts(),
        _ts("updated_at"),
        sa.CheckConstraint(
            "estimated_budget_min >= 0 AND estimated_budget_max >= estimated_budget_min",
            name="ck_tenders_budget_range",
        ),
        sa.CheckConstraint("status IN ('available','awarded','cancelled')", name="ck_tenders_status_valid"),
    )
    op.create_index("ix_tenders_source_issue", "tenders", ["source_issue_id"])
    op.create_index("ix_tenders_status", "tenders", ["status"])

    op.create_table(
        "tender_bids",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("tender_id", sa.ForeignKey("tenders.id", ondelete="CASCADE"), nullable=False),
        _uuid("contractor_id", sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("proposal", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'pending'")),
        _ts(),
        _ts("updated_at"),
        sa.UniqueConstraint("tender_id", "contractor_id", name="uq_tender_bids_one_per_contractor"),
        sa.CheckConstraint("amount > 0", name="ck_tender_bids_amount_positive"),
    )
    op.create_index("ix_tender_bids_tender", "tender_bids", ["tender_id"])

    # ------------------------------------------------------------------
    # OUTBOX / AUDIT / IDEMPOTENCY
    # ------------------------------------------------------------------
    op.create_table(
        "workflow_events",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        _uuid("issue_id", nullable=False),
        _uuid("recipient_id", nullable=True),
        _jsonb("payload_json"),
        sa.Column("delivered", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _ts("delivered_at", nullable=True),
        _ts(),
    )
    op.create_index("ix_workflow_events_type", "workflow_events", ["event_type"])
    op.create_index("ix_workflow_events_pending", "workflow_events", ["delivered", "created_at"])
    op.create_index("ix_workflow_events_issue", "workflow_events", ["issue_id"])

    op.create_table(
        "audit_logs",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("issue_id", nullable=False),
        _uuid("actor_profile_id", nullable=True),
        sa.Column("actor_role", sa.String(length=32), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("from_stage", sa.String(length=32), nullable=True),
        sa.Column("to_stage", sa.String(length=32), nullable=True),
        sa.Column("request_id", sa.String(length=128), nullable=True),
        sa.Column("payload_hash", sa.String(length=64), nullable=False),
        _jsonb("details_json"),
        _ts(),
    )
    op.create_index("ix_audit_logs_issue", "audit_logs", ["issue_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])

    op.create_table(
        "idempotency_key_records",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("profile_id", sa.String(length=64), nullable=False),
        sa.Column("endpoint_key", sa.String(length=128), nullable=False),
        sa.Column("idem_key", sa.String(length=128), nullable=False),
        sa.Column("request_hash", sa.String(length=128), nullable=False),
        sa.Column("response_status", sa.String(length=16), nullable=False, server_default=sa.text("'200'")),
        _jsonb("response_json"),
        _ts(),
        sa.UniqueConstraint("profile_id", "endpoint_key", "idem_key", name="uq_idem_scope"),
    )
    op.create_index("ix_idem_lookup", "idempotency_key_records", ["profile_id", "endpoint_key"])


def downgrade():
    op.drop_index("ix_idem_lookup", table_name="idempotency_key_records")
    op.drop_table("idempotency_key_records")
    op.drop_table("audit_logs")
    op.drop_table("workflow_events")
    op.drop_table("tender_bids")
    op.drop_table("tenders")
    op.drop_table("work_progress")
    op.execute("DROP TRIGGER IF EXISTS trg_issue_assignments_append_only ON issue_assignments;")
    op.execute("DROP FUNCTION IF EXISTS prevent_issue_assignment_rewrite();")
    op.drop_table("issue_assignments")
    op.drop_table("issues")
    op.drop_constraint("fk_profiles_assigned_department", "profiles", type_="foreignkey")
    op.drop_constraint("fk_profiles_assigned_area", "profiles", type_="foreignkey")
    op.drop_table("areas")
    op.drop_table("departments")
    op.drop_table("districts")
    op.drop_table("states")
    op.drop_table("profiles")
