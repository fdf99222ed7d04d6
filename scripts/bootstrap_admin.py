"""
Create the first ADMIN account, or grant ADMIN to an existing user.

Signup never hands out ADMIN, so a fresh deployment needs this once.

Usage:
  python scripts/bootstrap_admin.py --email admin@example.com
  (password is read from --password or prompted for)
"""

from __future__ import annotations

import argparse
import getpass
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = REPO_ROOT / "backend"
sys.path.insert(0, str(BACKEND_DIR))

from gatepass.core.database import SessionLocal  # noqa: E402
from gatepass.core.errors import AppError  # noqa: E402
from gatepass.core.roles import Role  # noqa: E402
from gatepass.services import credentials  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create or promote an admin user.")
    p.add_argument("--email", required=True)
    p.add_argument("--password", default=None, help="Only used when the user does not exist yet.")
    p.add_argument("--first-name", default=None)
    p.add_argument("--last-name", default=None)
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    db = SessionLocal()
    try:
        user = credentials.get_user_by_email(db, args.email)
        if user is None:
            password = args.password or getpass.getpass("Password for new admin: ")
            user = credentials.create_user(
                db,
                email=args.email,
                password=password,
                first_name=args.first_name,
                last_name=args.last_name,
                roles=[Role.ADMIN.value],
                trusted_roles=True,
            )
            action = "Created"
        else:
            credentials.add_role(db, user, Role.ADMIN)
            action = "Promoted"
        db.commit()
    except AppError as e:
        db.rollback()
        print(f"Failed: {e.message}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"{action} admin user {args.email}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
