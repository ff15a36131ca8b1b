"""job financials schema

Revision ID: 0001_job_financials
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

revision = "0001_job_financials"
down_revision = None
branch_labels = None
depends_on = None


def _insp():
    return inspect(op.get_bind())


def _has_table(name: str) -> bool:
    return name in _insp().get_table_names()


def _has_index(table: str, index_name: str) -> bool:
    idx = [i["name"] for i in _insp().get_indexes(table)]
    return index_name in idx


def _tenant_fk() -> sa.Column:
    return sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False, index=True)


def upgrade() -> None:
    # -------------------------
    # Tenancy
    # -------------------------
    if not _has_table("tenants"):
        op.create_table(
            "tenants",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("slug", sa.String(length=80), nullable=False, unique=True, index=True),
            sa.Column("name", sa.String(length=160), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not _has_table("app_users"):
        op.create_table(
            "app_users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(length=200), nullable=False, unique=True, index=True),
            sa.Column("display_name", sa.String(length=160), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not _has_table("tenant_memberships"):
        op.create_table(
            "tenant_memberships",
            sa.Column("id", sa.Integer(), primary_key=True),
            _tenant_fk(),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=False, index=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="owner"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("tenant_id", "user_id", name="uq_tenant_memberships_tenant_user"),
        )

    # -------------------------
    # Reps / jobs / estimates
    # -------------------------
    if not _has_table("sales_reps"):
        op.create_table(
            "sales_reps",
            sa.Column("id", sa.Integer(), primary_key=True),
            _tenant_fk(),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
            sa.Column("full_name", sa.String(length=160), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=True),
            sa.Column("overhead_rate", sa.Float(), nullable=False, server_default="0"),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not _has_table("jobs"):
        op.create_table(
            "jobs",
            sa.Column("id", sa.Integer(), primary_key=True),
            _tenant_fk(),
            sa.Column("sales_rep_id", sa.Integer(), sa.ForeignKey("sales_reps.id"), nullable=True, index=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("job_number", sa.String(length=40), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="project"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not _has_table("estimates"):
        op.create_table(
            "estimates",
            sa.Column("id", sa.Integer(), primary_key=True),
            _tenant_fk(),
            sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False, index=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("selling_price", sa.Float(), nullable=False, server_default="0"),
            sa.Column("line_items_json", sa.Text(), nullable=True),
            sa.Column("overhead_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("commission_allowance", sa.Float(), nullable=False, server_default="0"),
            sa.Column("misc_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    # -------------------------
    # Budgets / ledger / invoice mirror
    # -------------------------
    if not _has_table("budget_versions"):
        op.create_table(
            "budget_versions",
            sa.Column("id", sa.Integer(), primary_key=True),
            _tenant_fk(),
            sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False, index=True),
            sa.Column("kind", sa.String(length=10), nullable=False),
            sa.Column("estimate_id", sa.Integer(), sa.ForeignKey("estimates.id"), nullable=True),
            sa.Column("lines_json", sa.Text(), nullable=False, server_default="[]"),
            sa.Column("summary_json", sa.Text(), nullable=False, server_default="{}"),
            sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
    if not _has_index("budget_versions", "ix_budget_versions_tenant_job_kind"):
        op.create_index(
            "ix_budget_versions_tenant_job_kind",
            "budget_versions",
            ["tenant_id", "job_id", "kind", "created_at"],
        )

    if not _has_table("cost_events"):
        op.create_table(
            "cost_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            _tenant_fk(),
            sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False, index=True),
            sa.Column("kind", sa.String(length=20), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("vendor", sa.String(length=200), nullable=True),
            sa.Column("external_ref", sa.String(length=120), nullable=True),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("occurred_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
    if not _has_index("cost_events", "ix_cost_events_tenant_job"):
        op.create_index("ix_cost_events_tenant_job", "cost_events", ["tenant_id", "job_id"])

    if not _has_table("invoice_mirrors"):
        op.create_table(
            "invoice_mirrors",
            sa.Column("id", sa.Integer(), primary_key=True),
            _tenant_fk(),
            sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False, index=True),
            sa.Column("external_invoice_id", sa.String(length=120), nullable=False),
            sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("balance", sa.Float(), nullable=False, server_default="0"),
            sa.Column("external_status", sa.String(length=40), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("last_pulled_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
    if not _has_index("invoice_mirrors", "ix_invoice_mirrors_tenant_job_active"):
        op.create_index("ix_invoice_mirrors_tenant_job_active", "invoice_mirrors", ["tenant_id", "job_id", "active"])

    # -------------------------
    # Commission
    # -------------------------
    if not _has_table("commission_plans"):
        op.create_table(
            "commission_plans",
            sa.Column("id", sa.Integer(), primary_key=True),
            _tenant_fk(),
            sa.Column("name", sa.String(length=160), nullable=False),
            sa.Column("plan_type", sa.String(length=40), nullable=False),
            sa.Column("config_json", sa.Text(), nullable=False, server_default="{}"),
            sa.Column("payment_method", sa.String(length=40), nullable=False, server_default="first_check"),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not _has_table("commission_assignments"):
        op.create_table(
            "commission_assignments",
            sa.Column("id", sa.Integer(), primary_key=True),
            _tenant_fk(),
            sa.Column("rep_id", sa.Integer(), sa.ForeignKey("sales_reps.id"), nullable=False, index=True),
            sa.Column("plan_id", sa.Integer(), sa.ForeignKey("commission_plans.id"), nullable=False, index=True),
            sa.Column("effective_from", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("effective_to", sa.DateTime(), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
    if not _has_index("commission_assignments", "ix_commission_assignments_tenant_rep"):
        op.create_index(
            "ix_commission_assignments_tenant_rep",
            "commission_assignments",
            ["tenant_id", "rep_id", "created_at"],
        )

    if not _has_table("commission_calculations"):
        op.create_table(
            "commission_calculations",
            sa.Column("id", sa.Integer(), primary_key=True),
            _tenant_fk(),
            sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False, index=True),
            sa.Column("rep_id", sa.Integer(), sa.ForeignKey("sales_reps.id"), nullable=False, index=True),
            sa.Column("plan_id", sa.Integer(), sa.ForeignKey("commission_plans.id"), nullable=True),
            sa.Column("commission_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
            sa.Column("calculated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )


def downgrade() -> None:
    for name in (
        "commission_calculations",
        "commission_assignments",
        "commission_plans",
        "invoice_mirrors",
        "cost_events",
        "budget_versions",
        "estimates",
        "jobs",
        "sales_reps",
        "tenant_memberships",
        "app_users",
        "tenants",
    ):
        if _has_table(name):
            op.drop_table(name)
