"""Initial schema: tenants, subscriptions, agents, knowledge base, analytics, executions.

Revision ID: 20261001_0001
Revises:
Create Date: 2026-10-01
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision = "20261001_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    bind = op.get_bind()
    existing_tables = set(sa.inspect(bind).get_table_names())
    is_postgres = bind.dialect.name == "postgresql"

    if is_postgres:
        op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # ── 1. tenants / subscriptions ──────────────────────────────────────────
    if "tenants" not in existing_tables:
        op.create_table(
            "tenants",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("name", sa.String(128), nullable=False),
            sa.Column("slug", sa.String(64), unique=True, nullable=False),
            sa.Column("subscription_plan", sa.String(32), server_default="free", nullable=False),
            sa.Column("usage_messages_month", sa.Integer(), server_default="0", nullable=False),
            sa.Column("usage_storage_bytes", sa.BigInteger(), server_default="0", nullable=False),
            sa.Column("usage_reset_at", sa.DateTime(timezone=True), nullable=True),
            _timestamp(),
            _timestamp("updated_at"),
        )

    if "subscriptions" not in existing_tables:
        op.create_table(
            "subscriptions",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "tenant_id", UUID(as_uuid=True),
                sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("plan_id", sa.String(32), nullable=False),
            sa.Column(
                "status",
                sa.Enum(
                    "active", "trialing", "past_due", "canceled", "incomplete",
                    name="subscriptionstatus",
                ),
                nullable=False,
            ),
            sa.Column("stripe_subscription_id", sa.String(128), nullable=True),
            sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
            sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
            sa.Column("cancel_at_period_end", sa.Boolean(), server_default=sa.false(), nullable=False),
            _timestamp(),
        )
        op.create_index(
            "ix_subscriptions_tenant_created", "subscriptions", ["tenant_id", "created_at"]
        )

    # ── 2. agents / conversations / integrations ────────────────────────────
    if "agents" not in existing_tables:
        op.create_table(
            "agents",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "tenant_id", UUID(as_uuid=True),
                sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("name", sa.String(128), nullable=False),
            sa.Column(
                "type",
                sa.Enum(
                    "customer_assistant", "business_assistant",
                    "support", "sales", "automation", "analytics",
                    name="agenttype",
                ),
                nullable=False,
            ),
            sa.Column("config", sa.JSON(), nullable=True),
            sa.Column(
                "status",
                sa.Enum("active", "paused", "archived", name="agentstatus"),
                nullable=False,
            ),
            _timestamp(),
        )

    if "conversations" not in existing_tables:
        op.create_table(
            "conversations",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "agent_id", UUID(as_uuid=True),
                sa.ForeignKey("agents.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column(
                "tenant_id", UUID(as_uuid=True),
                sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("session_id", sa.String(128), nullable=True),
            sa.Column("messages", sa.JSON(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            _timestamp(),
            _timestamp("updated_at"),
        )
        op.create_index(
            "ix_conversations_agent_created", "conversations", ["agent_id", "created_at"]
        )
        op.create_index("ix_conversations_session", "conversations", ["agent_id", "session_id"])

    if "integrations" not in existing_tables:
        op.create_table(
            "integrations",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "tenant_id", UUID(as_uuid=True),
                sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("provider", sa.String(64), nullable=False),
            sa.Column("type", sa.String(32), nullable=False),
            sa.Column("credentials", sa.JSON(), nullable=True),
            sa.Column("config", sa.JSON(), nullable=True),
            sa.Column(
                "status",
                sa.Enum("connected", "error", "disconnected", name="integrationstatus"),
                nullable=False,
            ),
            _timestamp(),
        )
        op.create_index("ix_integrations_tenant_status", "integrations", ["tenant_id", "status"])

    # ── 3. knowledge base ────────────────────────────────────────────────────
    if "documents" not in existing_tables:
        op.create_table(
            "documents",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "tenant_id", UUID(as_uuid=True),
                sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column(
                "agent_id", UUID(as_uuid=True),
                sa.ForeignKey("agents.id", ondelete="SET NULL"), nullable=True,
            ),
            sa.Column("name", sa.String(512), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("embedding", sa.JSON(), nullable=True),
            sa.Column("embedding_model", sa.String(64), nullable=False),
            sa.Column("embedding_dimensions", sa.Integer(), nullable=False),
            sa.Column("metadata", sa.JSON(), nullable=True),
            _timestamp(),
        )
        if is_postgres:
            # dimension-less vector: providers differ in size, rows are filtered by model
            op.execute(
                "ALTER TABLE documents ALTER COLUMN embedding TYPE vector USING embedding::text::vector"
            )
        op.create_index("ix_documents_tenant_model", "documents", ["tenant_id", "embedding_model"])
        op.create_index("ix_documents_tenant_agent", "documents", ["tenant_id", "agent_id"])

    if "document_analytics" not in existing_tables:
        op.create_table(
            "document_analytics",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("tenant_id", UUID(as_uuid=True), nullable=False),
            sa.Column("agent_id", UUID(as_uuid=True), nullable=True),
            sa.Column("document_id", UUID(as_uuid=True), nullable=False),
            sa.Column(
                "event_type",
                sa.Enum("search_hit", "context_used", name="documenteventtype"),
                nullable=False,
            ),
            sa.Column("query", sa.Text(), nullable=True),
            sa.Column("similarity_score", sa.Float(), nullable=True),
            sa.Column("user_session", sa.String(128), nullable=True),
            _timestamp(),
        )
        op.create_index(
            "ix_document_analytics_tenant_doc", "document_analytics", ["tenant_id", "document_id"]
        )

    if "search_analytics" not in existing_tables:
        op.create_table(
            "search_analytics",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("tenant_id", UUID(as_uuid=True), nullable=False),
            sa.Column("agent_id", UUID(as_uuid=True), nullable=True),
            sa.Column("query", sa.Text(), nullable=False),
            sa.Column("results_count", sa.Integer(), server_default="0", nullable=False),
            sa.Column("top_similarity", sa.Float(), nullable=True),
            sa.Column("execution_time_ms", sa.Integer(), nullable=True),
            sa.Column("user_session", sa.String(128), nullable=True),
            _timestamp(),
        )
        op.create_index(
            "ix_search_analytics_tenant_created", "search_analytics", ["tenant_id", "created_at"]
        )

    if "usage_metrics" not in existing_tables:
        op.create_table(
            "usage_metrics",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("tenant_id", UUID(as_uuid=True), nullable=False),
            sa.Column("metric", sa.String(64), nullable=False),
            sa.Column("day", sa.Date(), nullable=False),
            sa.Column("count", sa.Integer(), server_default="0", nullable=False),
            sa.UniqueConstraint("tenant_id", "metric", "day", name="uq_usage_metric_day"),
        )

    # ── 4. execution audit log ───────────────────────────────────────────────
    if "agent_executions" not in existing_tables:
        op.create_table(
            "agent_executions",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("agent_id", UUID(as_uuid=True), nullable=True),
            sa.Column("tenant_id", UUID(as_uuid=True), nullable=True),
            sa.Column(
                "status", sa.Enum("success", "error", name="executionstatus"), nullable=False
            ),
            sa.Column("input", sa.JSON(), nullable=True),
            sa.Column("output", sa.JSON(), nullable=True),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("duration_ms", sa.Integer(), nullable=True),
            _timestamp(),
        )
        op.create_index(
            "ix_agent_executions_agent_created", "agent_executions", ["agent_id", "created_at"]
        )


def downgrade() -> None:
    existing_tables = set(sa.inspect(op.get_bind()).get_table_names())
    for table in (
        "agent_executions",
        "usage_metrics",
        "search_analytics",
        "document_analytics",
        "documents",
        "integrations",
        "conversations",
        "agents",
        "subscriptions",
        "tenants",
    ):
        if table in existing_tables:
            op.drop_table(table)
    if op.get_bind().dialect.name != "postgresql":
        return
    for enum_name in (
        "executionstatus",
        "documenteventtype",
        "integrationstatus",
        "agentstatus",
        "agenttype",
        "subscriptionstatus",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
