"""Operator tasks run from ``scripts/``: identifier backfill, sequence resync and JSON export."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, List

import structlog
from sqlalchemy import func, or_, select, text
from sqlalchemy.exc import SQLAlchemyError

from enhancement_tracker.db import session_scope
from enhancement_tracker.models import Enhancement
from enhancement_tracker.schema import to_wire
from enhancement_tracker.store import TEMP_PREFIX, EnhancementStore, format_request_id, wrap_store_error

EXPORT_PREFIX = "enhancements-export"


def backfill_request_ids(store: EnhancementStore) -> List[str]:
    """Give every row with a missing or temporary identifier its derived one.

    Returns the identifiers assigned, in key order.
    """

    log = structlog.get_logger(__name__)
    statement = (
        select(Enhancement)
        .where(or_(Enhancement.request_id.is_(None), Enhancement.request_id.startswith(f"{TEMP_PREFIX}-")))
        .order_by(Enhancement.id)
    )
    assigned: List[str] = []
    try:
        with session_scope(store.session_factory) as session:
            for enhancement in session.scalars(statement).all():
                enhancement.request_id = format_request_id(enhancement.id, store.id_prefix)
                assigned.append(enhancement.request_id)
    except SQLAlchemyError as exc:
        raise wrap_store_error(exc) from exc
    log.info("request_ids_backfilled", count=len(assigned))
    return assigned


def resync_id_sequence(store: EnhancementStore) -> int | None:
    """Move the Postgres key sequence past the highest stored key.

    Returns the highest key, or ``None`` when the table is empty. Other
    databases track their own autoincrement and are left untouched.
    """

    log = structlog.get_logger(__name__)
    try:
        with session_scope(store.session_factory) as session:
            max_id = session.scalar(select(func.max(Enhancement.id)))
            if session.get_bind().dialect.name != "postgresql":
                log.info("id_sequence_skipped", dialect=session.get_bind().dialect.name)
                return max_id
            session.execute(
                text(
                    "SELECT setval(pg_get_serial_sequence(:table, 'id'), :value, :is_called)"
                ),
                {
                    "table": Enhancement.__tablename__,
                    "value": max_id or 1,
                    "is_called": max_id is not None,
                },
            )
    except SQLAlchemyError as exc:
        raise wrap_store_error(exc) from exc
    log.info("id_sequence_resynced", max_id=max_id)
    return max_id


def export_records(store: EnhancementStore) -> List[Dict[str, Any]]:
    """Every record in API form, oldest first."""

    return [to_wire(enhancement) for enhancement in reversed(store.list_enhancements())]


def export_to_json(store: EnhancementStore, directory: Path, *, now: datetime | None = None) -> Path:
    """Write all records to a timestamped JSON file under *directory*."""

    stamp = (now or datetime.now(UTC)).strftime("%Y-%m-%dT%H-%M-%S")
    directory.mkdir(parents=True, exist_ok=True)
    destination = directory / f"{EXPORT_PREFIX}-{stamp}.json"
    records = export_records(store)
    destination.write_text(json.dumps(records, indent=2), encoding="utf-8")
    structlog.get_logger(__name__).info("records_exported", count=len(records), path=str(destination))
    return destination
