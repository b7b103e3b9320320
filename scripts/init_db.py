"""
Create the `customers` table for local development.

Idempotent: existing tables are left untouched. There are no migrations;
production schemas are managed outside this repository.

Usage:
  python scripts/init_db.py
"""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import create_engine

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.crm.config import load_settings  # noqa: E402
from app.crm.models import Base  # noqa: E402


def create_tables(*, database_url: str | None = None) -> None:
    db_url = database_url or load_settings().database_url
    engine = create_engine(db_url, future=True)
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        engine.dispose()


def main() -> None:
    load_dotenv()
    create_tables()
    print("Tables ready.", flush=True)


if __name__ == "__main__":
    main()
