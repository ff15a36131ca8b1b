# tests/conftest.py
from __future__ import annotations

import os
import shutil
import tempfile
from datetime import datetime

import pytest

# Point the engine at a throwaway SQLite file before the package reads settings.
_TMP_DIR = tempfile.mkdtemp(prefix="job-financials-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["AUTH_MODE"] = "dev"
os.environ["APP_ENV"] = "local"

from job_financials.auth import TenantContext  # noqa: E402
from job_financials.db import Base, SessionLocal, create_tables, engine  # noqa: E402
from job_financials.models import Estimate, Job, SalesRep, Tenant  # noqa: E402

LINES = [
    {"kind": "material", "quantity": 10, "unit_price": 100, "unit_cost": 60},
    {"kind": "labor", "quantity": 5, "unit_price": 150, "unit_cost": 90},
]


@pytest.fixture(scope="session", autouse=True)
def _schema():
    create_tables()
    yield
    engine.dispose()
    shutil.rmtree(_TMP_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_tenant(db, slug: str = "acme") -> TenantContext:
    t = Tenant(slug=slug, name=slug.title())
    db.add(t)
    db.commit()
    db.refresh(t)
    return TenantContext(tenant_id=int(t.id), tenant_slug=t.slug, email="owner@acme.test")


def make_rep(db, ctx: TenantContext, *, overhead_rate: float = 5.0, name: str = "Riley Rep") -> int:
    r = SalesRep(tenant_id=ctx.tenant_id, full_name=name, overhead_rate=overhead_rate)
    db.add(r)
    db.commit()
    db.refresh(r)
    return int(r.id)


def make_job(db, ctx: TenantContext, *, name: str = "12 Gable St reroof", rep_id: int | None = None) -> int:
    j = Job(tenant_id=ctx.tenant_id, name=name, sales_rep_id=rep_id)
    db.add(j)
    db.commit()
    db.refresh(j)
    return int(j.id)


def make_estimate(db, ctx: TenantContext, job_id: int, *, lines=None, selling_price: float = 1750.0, **kw) -> int:
    import json

    e = Estimate(
        tenant_id=ctx.tenant_id,
        job_id=job_id,
        status=kw.pop("status", "sent"),
        selling_price=selling_price,
        line_items_json=json.dumps(LINES if lines is None else lines),
        created_at=kw.pop("created_at", datetime.utcnow()),
        **kw,
    )
    db.add(e)
    db.commit()
    db.refresh(e)
    return int(e.id)


@pytest.fixture
def ctx(db) -> TenantContext:
    return make_tenant(db, "acme")


@pytest.fixture
def other_ctx(db) -> TenantContext:
    return make_tenant(db, "globex")
