"""Assign REQ-NNNNNN identifiers to rows that lack one.

Usage:
    python scripts/backfill_request_ids.py

Rows whose identifier is empty or still temporary are renamed from their key.
"""

from __future__ import annotations

from enhancement_tracker.config import get_settings, load_local_env
from enhancement_tracker.maintenance import backfill_request_ids
from enhancement_tracker.store import EnhancementStore


def main() -> None:
    load_local_env()
    settings = get_settings()
    store = EnhancementStore.from_url(settings.database_url, id_prefix=settings.request_id_prefix)
    assigned = backfill_request_ids(store)
    for request_id in assigned:
        print(f"Assigned {request_id}")
    print(f"Backfilled {len(assigned)} request id(s).")


if __name__ == "__main__":
    main()
