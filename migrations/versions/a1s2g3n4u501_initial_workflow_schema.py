"""Initial workflow schema: people, documents, steps, signatures, notes, funds, sinks

Revision ID: a1s2g3n4u501
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "a1s2g3n4u501"
down_revision = None
branch_labels = None
depends_on = None


def _person_columns():
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("position", sa.String(100), nullable=True, index=True),
        sa.Column("department", sa.String(150), nullable=True, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade():
    op.create_table("employees", *_person_columns())
    op.create_table("students", *_person_columns())

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("doc_type", sa.String(30), nullable=False, index=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("department", sa.String(150), nullable=True, index=True),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="submitted", index=True),
        sa.Column("current_step", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("file_path", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_documents_status_created", "documents", ["status", "created_at"])

    op.create_table(
        "document_steps",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("role", sa.String(100), nullable=False),
        sa.Column("employee_id", sa.Integer(), sa.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("acted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signature_map", sa.JSON(), nullable=True),
        sa.UniqueConstraint("document_id", "step_order", name="uq_document_step_order"),
        sa.CheckConstraint(
            "(employee_id IS NOT NULL AND student_id IS NULL) OR "
            "(employee_id IS NULL AND student_id IS NOT NULL)",
            name="ck_document_step_one_assignee",
        ),
    )
    op.create_index("idx_document_steps_employee_status", "document_steps", ["employee_id", "status"])
    op.create_index("idx_document_steps_student_status", "document_steps", ["student_id", "status"])

    op.create_table(
        "document_signatures",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("step_id", sa.Integer(), sa.ForeignKey("document_steps.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("actor_key", sa.String(40), nullable=False),
        sa.Column("employee_id", sa.Integer(), sa.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("document_id", "step_id", "actor_key", name="uq_document_signature_actor"),
        sa.CheckConstraint(
            "(employee_id IS NOT NULL AND student_id IS NULL) OR "
            "(employee_id IS NULL AND student_id IS NOT NULL)",
            name="ck_document_signature_one_actor",
        ),
    )

    op.create_table(
        "document_notes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("author_kind", sa.String(20), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "fund_balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("department_id", sa.String(50), nullable=False, unique=True),
        sa.Column("initial_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("used_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "fund_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("department_id", sa.String(50), nullable=False, index=True),
        sa.Column("transaction_type", sa.String(20), nullable=False, server_default="deduct"),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="RESTRICT"), nullable=True, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(60), nullable=False),
        sa.Column("category", sa.String(40), nullable=False, server_default="document_management"),
        sa.Column("severity", sa.String(10), nullable=False, server_default="INFO"),
        sa.Column("actor", sa.String(60), nullable=False, server_default="system"),
        sa.Column("detail_json", sa.Text(), server_default="{}"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_actor", "audit_logs", ["actor"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])
    op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recipient", sa.String(60), nullable=False, index=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("message", sa.Text(), server_default=""),
        sa.Column("category", sa.String(30), server_default="document"),
        sa.Column("severity", sa.String(20), server_default="info"),
        sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=True, index=True),
        sa.Column("is_read", sa.Boolean(), server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "calendar_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("event_date", sa.Date(), nullable=False, index=True),
        sa.Column("event_time", sa.String(20), nullable=True),
        sa.Column("venue", sa.String(255), nullable=True),
        sa.Column("department", sa.String(150), nullable=True),
        sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("title", "event_date", name="uq_calendar_event_title_date"),
    )


def downgrade():
    op.drop_table("calendar_events")
    op.drop_table("notifications")
    op.drop_index("idx_audit_ts", table_name="audit_logs")
    op.drop_index("idx_audit_action", table_name="audit_logs")
    op.drop_index("idx_audit_actor", table_name="audit_logs")
    op.drop_index("idx_audit_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("fund_transactions")
    op.drop_table("fund_balances")
    op.drop_table("document_notes")
    op.drop_table("document_signatures")
    op.drop_index("idx_document_steps_student_status", table_name="document_steps")
    op.drop_index("idx_document_steps_employee_status", table_name="document_steps")
    op.drop_table("document_steps")
    op.drop_index("idx_documents_status_created", table_name="documents")
    op.drop_table("documents")
    op.drop_table("students")
    op.drop_table("employees")
