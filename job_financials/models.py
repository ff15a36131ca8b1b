# job_financials/models.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


# -----------------------------
# Tenancy tables
# -----------------------------
class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(80), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class TenantMembership(Base):
    __tablename__ = "tenant_memberships"
    __table_args__ = (UniqueConstraint("tenant_id", "user_id", name="uq_tenant_memberships_tenant_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), index=True, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="owner")  # owner|manager|rep
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Collaborator records (jobs, estimates, reps)
# -----------------------------
class SalesRep(Base):
    __tablename__ = "sales_reps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    full_name: Mapped[str] = mapped_column(String(160), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    # personal overhead charged against contract value, in percent (5.0 == 5%)
    overhead_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    sales_rep_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("sales_reps.id"), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    job_number: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="project")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    estimates: Mapped[list["Estimate"]] = relationship(back_populates="job", cascade="all, delete-orphan")


class Estimate(Base):
    __tablename__ = "estimates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    job_id: Mapped[int] = mapped_column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")  # draft|sent|approved|rejected
    selling_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    line_items_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    overhead_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    commission_allowance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    misc_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    job: Mapped["Job"] = relationship(back_populates="estimates")


# -----------------------------
# Budget versions (PRECAP baseline + CAPOUT live)
# -----------------------------
class BudgetVersion(Base):
    __tablename__ = "budget_versions"
    __table_args__ = (Index("ix_budget_versions_tenant_job_kind", "tenant_id", "job_id", "kind", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    job_id: Mapped[int] = mapped_column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)

    kind: Mapped[str] = mapped_column(String(10), nullable=False)  # PRECAP|CAPOUT
    estimate_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("estimates.id"), nullable=True)

    lines_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    summary_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Cost ledger + external invoice mirror
# -----------------------------
class CostEvent(Base):
    __tablename__ = "cost_events"
    __table_args__ = (Index("ix_cost_events_tenant_job", "tenant_id", "job_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    job_id: Mapped[int] = mapped_column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)

    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # material|labor|other
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    vendor: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    external_ref: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class InvoiceMirror(Base):
    __tablename__ = "invoice_mirrors"
    __table_args__ = (Index("ix_invoice_mirrors_tenant_job_active", "tenant_id", "job_id", "active"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    job_id: Mapped[int] = mapped_column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)

    external_invoice_id: Mapped[str] = mapped_column(String(120), nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    balance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    external_status: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_pulled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Commission plans
# -----------------------------
class CommissionPlan(Base):
    __tablename__ = "commission_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(160), nullable=False)
    plan_type: Mapped[str] = mapped_column(String(40), nullable=False)
    config_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    # when the payout is released: first_check|first_and_last_check|final_check
    payment_method: Mapped[str] = mapped_column(String(40), nullable=False, default="first_check")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class CommissionAssignment(Base):
    __tablename__ = "commission_assignments"
    __table_args__ = (Index("ix_commission_assignments_tenant_rep", "tenant_id", "rep_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    rep_id: Mapped[int] = mapped_column(Integer, ForeignKey("sales_reps.id"), nullable=False, index=True)
    plan_id: Mapped[int] = mapped_column(Integer, ForeignKey("commission_plans.id"), nullable=False, index=True)

    effective_from: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    effective_to: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    plan: Mapped["CommissionPlan"] = relationship()


class CommissionCalculation(Base):
    __tablename__ = "commission_calculations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    job_id: Mapped[int] = mapped_column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    rep_id: Mapped[int] = mapped_column(Integer, ForeignKey("sales_reps.id"), nullable=False, index=True)
    plan_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("commission_plans.id"), nullable=True)

    commission_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending|approved|paid
    details_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    calculated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
