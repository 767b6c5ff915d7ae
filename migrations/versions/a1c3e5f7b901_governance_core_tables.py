"""Governance core tables — use cases, metadata config, audit log.

Revision ID: a1c3e5f7b901
Revises:
Create Date: 2026-01-20 09:00:00.000000
"""

import sqlalchemy as sa
from alembic import op

revision = "a1c3e5f7b901"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "use_cases",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True, server_default=""),
        sa.Column("primary_business_owner", sa.String(150), nullable=True),
        sa.Column("business_function", sa.String(100), nullable=True),
        sa.Column("use_case_status", sa.String(30), nullable=False, server_default="Discovery"),
        sa.Column("deployment_status", sa.String(30), nullable=True),
        sa.Column("revenue_impact", sa.Integer, nullable=True),
        sa.Column("cost_savings", sa.Integer, nullable=True),
        sa.Column("risk_reduction", sa.Integer, nullable=True),
        sa.Column("broker_partner_experience", sa.Integer, nullable=True),
        sa.Column("strategic_fit", sa.Integer, nullable=True),
        sa.Column("data_readiness", sa.Integer, nullable=True),
        sa.Column("technical_complexity", sa.Integer, nullable=True),
        sa.Column("change_impact", sa.Integer, nullable=True),
        sa.Column("model_risk", sa.Integer, nullable=True),
        sa.Column("adoption_readiness", sa.Integer, nullable=True),
        sa.Column("impact_score", sa.Float, nullable=True),
        sa.Column("effort_score", sa.Float, nullable=True),
        sa.Column("quadrant", sa.String(30), nullable=True),
        sa.Column("t_shirt_size", sa.String(5), nullable=True),
        sa.Column("investment", sa.Float, nullable=True),
        sa.Column("explainability_required", sa.String(5), nullable=True),
        sa.Column("customer_harm_risk", sa.String(20), nullable=True),
        sa.Column("human_accountability", sa.String(5), nullable=True),
        sa.Column("data_outside_uk_eu", sa.String(5), nullable=True),
        sa.Column("third_party_model", sa.String(5), nullable=True),
        sa.Column("rai_risk_tier", sa.String(20), nullable=True),
        sa.Column("tom_phase_override", sa.String(50), nullable=True),
        sa.Column("operating_model", sa.String(50), nullable=True),
        sa.Column("last_phase_transition_reason", sa.Text, nullable=True),
        sa.Column("selected_kpis", sa.JSON, nullable=True),
        sa.Column("capability_transition", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True),
                  server_default=sa.func.now()),
    )
    op.create_index("idx_use_case_status", "use_cases", ["use_case_status"])

    op.create_table(
        "metadata_config",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("tom_config", sa.JSON, nullable=True),
        sa.Column("capability_transition_config", sa.JSON, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True),
                  server_default=sa.func.now()),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(60), nullable=False),
        sa.Column("actor", sa.String(150), nullable=False, server_default="system"),
        sa.Column("diff_json", sa.Text, nullable=True, server_default="{}"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_actor", "audit_logs", ["actor"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])
    op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    op.drop_index("idx_audit_ts", table_name="audit_logs")
    op.drop_index("idx_audit_action", table_name="audit_logs")
    op.drop_index("idx_audit_actor", table_name="audit_logs")
    op.drop_index("idx_audit_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("metadata_config")
    op.drop_index("idx_use_case_status", table_name="use_cases")
    op.drop_table("use_cases")
