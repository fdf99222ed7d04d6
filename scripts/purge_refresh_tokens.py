"""
Delete refresh tokens that expired long ago.

Rows that are still active, or expired less than --days ago, are kept as the
session audit trail.

Usage:
  python scripts/purge_refresh_tokens.py --days 30
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import timedelta
from pathlib import Path

# Allow `import gatepass.*` from backend/ without installing the package.
REPO_ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = REPO_ROOT / "backend"
sys.path.insert(0, str(BACKEND_DIR))

from gatepass.core.database import SessionLocal  # noqa: E402
from gatepass.services.sessions import purge_expired  # noqa: E402

logger = logging.getLogger("purge_refresh_tokens")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Purge long-expired refresh tokens.")
    p.add_argument("--days", type=int, default=30, help="Keep tokens that expired within this many days.")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.days < 0:
        print("--days must be >= 0", file=sys.stderr)
        return 2

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    db = SessionLocal()
    try:
        deleted = purge_expired(db, older_than=timedelta(days=args.days))
    finally:
        db.close()

    print(f"Deleted {deleted} refresh tokens.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
