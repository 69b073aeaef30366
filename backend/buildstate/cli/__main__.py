# backend/buildstate/cli/__main__.py
from __future__ import annotations

import argparse

from buildstate.cli.seed_demo import seed_demo


def main() -> None:
    p = argparse.ArgumentParser(prog="python -m buildstate.cli", description="Seed demo users and a sample property")
    p.add_argument("--domain", default="demo.local", help="email domain for the demo accounts")
    p.add_argument("--password", default="demo-password")
    p.add_argument("--no-sample-property", action="store_true")
    p.add_argument("--create-schema", action="store_true", help="create tables without running alembic")
    args = p.parse_args()

    out = seed_demo(
        domain=args.domain,
        password=args.password,
        create_sample_property=(not args.no_sample_property),
        create_schema=args.create_schema,
    )
    print(
        {
            "ok": True,
            "manager_email": out.manager_email,
            "owner_email": out.owner_email,
            "technician_email": out.technician_email,
            "tenant_email": out.tenant_email,
            "password": out.password,
            "sample_property_id": out.property_id,
        }
    )


if __name__ == "__main__":
    main()
