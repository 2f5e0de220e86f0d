"""Export every enhancement request to a timestamped JSON file.

Usage:
    python scripts/export_data.py [backup-directory]

The directory defaults to ./backups and is created when missing.
"""

from __future__ import annotations

import sys
from pathlib import Path

from enhancement_tracker.config import get_settings, load_local_env
from enhancement_tracker.maintenance import export_to_json
from enhancement_tracker.store import EnhancementStore


def main(argv: list[str]) -> None:
    load_local_env()
    directory = Path(argv[0]) if argv else Path("backups")
    store = EnhancementStore.from_url(get_settings().database_url)
    destination = export_to_json(store, directory)
    print(f"Data exported to {destination}")


if __name__ == "__main__":
    main(sys.argv[1:])
