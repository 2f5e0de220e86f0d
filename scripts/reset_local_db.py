"""Utility script to reset the enhancements table.

Usage:
    python scripts/reset_local_db.py

Environment:
    Ensure DATABASE_URL (and other required settings) are available in
    the current shell or in env.local before running this script.
"""

from __future__ import annotations

from enhancement_tracker.config import get_settings, load_local_env
from enhancement_tracker.db import Base, build_engine
from enhancement_tracker.models import Enhancement  # noqa: F401


def reset_database() -> None:
    load_local_env()
    engine = build_engine(get_settings().database_url)
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    print("Enhancements table reset.")


if __name__ == "__main__":
    reset_database()
