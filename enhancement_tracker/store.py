"""Persistence services for enhancement requests."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Mapping

import structlog
from sqlalchemy import func, or_, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from enhancement_tracker.db import build_engine, build_session_factory, session_scope
from enhancement_tracker.models import Enhancement, EnhancementNotFoundError, StoreError

DEFAULT_PREFIX = "REQ"
TEMP_PREFIX = "TEMP"


def format_request_id(key: int, prefix: str = DEFAULT_PREFIX) -> str:
    """Return the human-readable identifier for a store-assigned key."""

    return f"{prefix}-{key:06d}"


def temporary_request_id(clock: Callable[[], float] = time.time) -> str:
    return f"{TEMP_PREFIX}-{int(clock() * 1000)}"


def wrap_store_error(exc: SQLAlchemyError) -> StoreError:
    original = getattr(exc, "orig", None)
    code = getattr(original, "pgcode", None) or getattr(original, "sqlstate", None)
    message = str(original) if original is not None else str(exc)
    return StoreError(message.strip(), code=code)


class EnhancementStore:
    """Round-trip every operation to the database; nothing is cached in process."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        id_prefix: str = DEFAULT_PREFIX,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._id_prefix = id_prefix
        self._clock = clock
        self._log = structlog.get_logger(__name__)

    @classmethod
    def from_url(cls, database_url: str, *, id_prefix: str = DEFAULT_PREFIX) -> "EnhancementStore":
        return cls(build_session_factory(build_engine(database_url)), id_prefix=id_prefix)

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    @property
    def id_prefix(self) -> str:
        return self._id_prefix

    def list_enhancements(self, *, status: str | None = None, search: str | None = None) -> List[Enhancement]:
        statement = select(Enhancement)
        if status:
            statement = statement.where(Enhancement.status == status)
        if search:
            statement = statement.where(
                or_(
                    Enhancement.request_name.icontains(search, autoescape=True),
                    Enhancement.request_description.icontains(search, autoescape=True),
                    Enhancement.requestor_name.icontains(search, autoescape=True),
                )
            )
        statement = statement.order_by(Enhancement.created_at.desc(), Enhancement.id.desc())
        try:
            with session_scope(self._session_factory) as session:
                return list(session.scalars(statement).all())
        except SQLAlchemyError as exc:
            raise wrap_store_error(exc) from exc

    def get_enhancement(self, enhancement_id: int) -> Enhancement:
        try:
            with session_scope(self._session_factory) as session:
                enhancement = session.get(Enhancement, enhancement_id)
        except SQLAlchemyError as exc:
            raise wrap_store_error(exc) from exc
        if enhancement is None:
            raise EnhancementNotFoundError(f"Enhancement {enhancement_id} not found")
        return enhancement

    def create_enhancement(self, values: Mapping[str, Any]) -> Enhancement:
        """Insert a row and finalise its identifier in the same transaction.

        The row is written with a temporary identifier, flushed to obtain its
        key, then given its derived identifier before commit. Any failure rolls
        the whole row back.
        """

        try:
            with session_scope(self._session_factory) as session:
                enhancement = Enhancement(**dict(values))
                enhancement.request_id = temporary_request_id(self._clock)
                session.add(enhancement)
                session.flush()
                enhancement.request_id = format_request_id(enhancement.id, self._id_prefix)
                session.flush()
        except SQLAlchemyError as exc:
            raise wrap_store_error(exc) from exc
        self._log.info("enhancement_stored", enhancement_id=enhancement.id, request_id=enhancement.request_id)
        return enhancement

    def update_enhancement(self, enhancement_id: int, values: Mapping[str, Any]) -> Enhancement:
        try:
            with session_scope(self._session_factory) as session:
                enhancement = session.get(Enhancement, enhancement_id)
                if enhancement is None:
                    raise EnhancementNotFoundError(f"Enhancement {enhancement_id} not found")
                for column, value in values.items():
                    setattr(enhancement, column, value)
                session.flush()
        except SQLAlchemyError as exc:
            raise wrap_store_error(exc) from exc
        return enhancement

    def delete_enhancement(self, enhancement_id: int) -> None:
        try:
            with session_scope(self._session_factory) as session:
                enhancement = session.get(Enhancement, enhancement_id)
                if enhancement is None:
                    raise EnhancementNotFoundError(f"Enhancement {enhancement_id} not found")
                session.delete(enhancement)
        except SQLAlchemyError as exc:
            raise wrap_store_error(exc) from exc

    def status_counts(self) -> List[Dict[str, Any]]:
        statement = (
            select(Enhancement.status, func.count(Enhancement.id))
            .where(Enhancement.status.isnot(None))
            .group_by(Enhancement.status)
            .order_by(Enhancement.status)
        )
        try:
            with session_scope(self._session_factory) as session:
                rows = session.execute(statement).all()
        except SQLAlchemyError as exc:
            raise wrap_store_error(exc) from exc
        return [{"status": status, "count": count} for status, count in rows]

    def ping(self) -> None:
        with session_scope(self._session_factory) as session:
            session.execute(text("SELECT 1"))
