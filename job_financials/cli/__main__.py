# job_financials/cli/__main__.py
from __future__ import annotations

import argparse

from job_financials.cli.seed_demo import seed_demo


def main() -> None:
    p = argparse.ArgumentParser(prog="python -m job_financials.cli")
    p.add_argument("--tenant-slug", default="demo")
    p.add_argument("--tenant-name", default="Demo Roofing")
    p.add_argument("--user-email", default="rep@demo.local")
    p.add_argument("--user-name", default="Demo Rep")
    p.add_argument("--overhead-rate", type=float, default=5.0)
    p.add_argument("--commission-rate", type=float, default=50.0)
    p.add_argument("--no-plan", action="store_true")
    args = p.parse_args()

    out = seed_demo(
        tenant_slug=args.tenant_slug,
        tenant_name=args.tenant_name,
        user_email=args.user_email,
        user_name=args.user_name,
        overhead_rate=args.overhead_rate,
        commission_rate=args.commission_rate,
        create_plan_assignment=(not args.no_plan),
    )
    print(
        {
            "ok": True,
            "tenant_slug": out.tenant_slug,
            "user_email": out.user_email,
            "rep_id": out.rep_id,
            "job_id": out.job_id,
            "estimate_id": out.estimate_id,
            "plan_id": out.plan_id,
        }
    )


if __name__ == "__main__":
    main()
