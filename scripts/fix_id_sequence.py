"""Resynchronise the enhancements key sequence with the highest stored key.

Usage:
    python scripts/fix_id_sequence.py

Run after rows were inserted with explicit keys, e.g. by a data migration.
"""

from __future__ import annotations

from enhancement_tracker.config import get_settings, load_local_env
from enhancement_tracker.maintenance import resync_id_sequence
from enhancement_tracker.store import EnhancementStore


def main() -> None:
    load_local_env()
    store = EnhancementStore.from_url(get_settings().database_url)
    max_id = resync_id_sequence(store)
    print(f"Sequence resynchronised; highest key is {max_id}.")


if __name__ == "__main__":
    main()
