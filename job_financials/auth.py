# job_financials/auth.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .domain.errors import Unauthorized
from .models import AppUser, Tenant, TenantMembership


@dataclass(frozen=True)
class TenantContext:
    """
    The caller's validated tenant. Every service call takes one explicitly;
    nothing in the engine reads tenancy from ambient state.
    """

    tenant_id: int
    tenant_slug: str = ""
    user_id: Optional[int] = None
    email: Optional[str] = None
    role: str = "owner"  # owner | manager | rep


ROLE_ORDER = {"rep": 1, "manager": 2, "owner": 3}


def require_tenant(ctx: Optional[TenantContext]) -> TenantContext:
    """Fail closed when no tenant is resolvable."""
    if ctx is None or not getattr(ctx, "tenant_id", None):
        raise Unauthorized("tenant context required")
    return ctx


def _require_role(ctx: TenantContext, min_role: str) -> None:
    if ROLE_ORDER.get(ctx.role, 0) < ROLE_ORDER.get(min_role, 999):
        raise HTTPException(status_code=403, detail=f"Requires role >= {min_role}")


# -------------------------
# Tenant + membership helpers
# -------------------------
def _get_tenant(db: Session, slug: str) -> Tenant | None:
    return db.scalar(select(Tenant).where(Tenant.slug == slug))


def _get_user_by_email(db: Session, email: str) -> AppUser | None:
    return db.scalar(select(AppUser).where(AppUser.email == email))


def _get_membership(db: Session, tenant_id: int, user_id: int) -> TenantMembership | None:
    return db.scalar(
        select(TenantMembership).where(TenantMembership.tenant_id == tenant_id, TenantMembership.user_id == user_id)
    )


def _provision(db: Session, *, slug: str, email: str, role_hint: str) -> tuple[Tenant, AppUser, TenantMembership]:
    tenant = _get_tenant(db, slug)
    if tenant is None:
        tenant = Tenant(slug=slug, name=slug, created_at=datetime.utcnow())
        db.add(tenant)
        db.commit()
        db.refresh(tenant)

    user = _get_user_by_email(db, email)
    if user is None:
        user = AppUser(email=email, display_name=email.split("@")[0], created_at=datetime.utcnow())
        db.add(user)
        db.commit()
        db.refresh(user)

    mem = _get_membership(db, int(tenant.id), int(user.id))
    if mem is None:
        mem = TenantMembership(
            tenant_id=int(tenant.id),
            user_id=int(user.id),
            role=role_hint if role_hint in ROLE_ORDER else "owner",
            created_at=datetime.utcnow(),
        )
        db.add(mem)
        db.commit()
        db.refresh(mem)

    return tenant, user, mem


def get_tenant_context(request: Request, db: Session = Depends(get_db)) -> TenantContext:
    """
    Resolves the active tenant from request headers.

      - dev:    trusts X-User-Role and auto-provisions tenant/user/membership
      - header: tenant, user and membership must already exist
    """
    slug = (request.headers.get(settings.header_tenant_slug) or "").strip()
    if not slug:
        raise Unauthorized(f"Missing {settings.header_tenant_slug} (active tenant context).")

    email = (request.headers.get(settings.header_user_email) or "").strip().lower()
    if not email:
        raise Unauthorized(f"Missing {settings.header_user_email}")

    mode = (settings.auth_mode or "").strip().lower()
    if mode == "dev" and settings.dev_auto_provision:
        role_hint = (request.headers.get(settings.header_user_role) or "owner").strip().lower()
        tenant, user, mem = _provision(db, slug=slug, email=email, role_hint=role_hint)
    else:
        tenant = _get_tenant(db, slug)
        if tenant is None:
            raise Unauthorized("Unknown tenant")
        user = _get_user_by_email(db, email)
        if user is None:
            raise Unauthorized("Unknown user")
        mem = _get_membership(db, int(tenant.id), int(user.id))
        if mem is None:
            raise HTTPException(status_code=403, detail="Not a member of this tenant")

    return TenantContext(
        tenant_id=int(tenant.id),
        tenant_slug=str(tenant.slug),
        user_id=int(user.id),
        email=str(user.email),
        role=str(mem.role),
    )


def require_manager(ctx: TenantContext = Depends(get_tenant_context)) -> TenantContext:
    _require_role(ctx, "manager")
    return ctx
