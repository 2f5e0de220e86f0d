"""SQLAlchemy models for enhancement requests."""

from __future__ import annotations

from datetime import UTC, date, datetime

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from enhancement_tracker.db import Base
from enhancement_tracker.enums import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    DesireLevel,
    DifficultyLevel,
    FieldEnum,
    PriorityLevel,
    ProductArea,
    RequestType,
    WorkflowStatus,
)


def _in_clause(column: str, enum_cls: type[FieldEnum], *, nullable: bool = False) -> str:
    quoted = ", ".join("'" + value.replace("'", "''") + "'" for value in enum_cls.values())
    clause = f"{column} IN ({quoted})"
    if nullable:
        clause = f"{column} IS NULL OR {clause}"
    return clause


class Enhancement(Base):
    """A single feature or bug request tracked through the workflow."""

    __tablename__ = "enhancements"
    __table_args__ = (
        CheckConstraint(_in_clause("type_of_request", RequestType), name="check_type_of_request"),
        CheckConstraint(_in_clause("area_of_product", ProductArea), name="check_area_of_product"),
        CheckConstraint(_in_clause("desire_level", DesireLevel), name="check_desire_level"),
        CheckConstraint(
            _in_clause("difficulty_level", DifficultyLevel, nullable=True),
            name="check_difficulty_level",
        ),
        CheckConstraint(_in_clause("status", WorkflowStatus), name="check_status"),
        CheckConstraint(_in_clause("priority_level", PriorityLevel), name="check_priority_level"),
        CheckConstraint("effort_level IS NULL OR effort_level >= 0", name="check_effort_level"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)
    request_name: Mapped[str] = mapped_column(Text, nullable=False)
    request_description: Mapped[str] = mapped_column(Text, nullable=False)
    rationale: Mapped[str | None] = mapped_column(Text, nullable=True)
    requestor_name: Mapped[str] = mapped_column(Text, nullable=False)
    date_of_request: Mapped[date] = mapped_column(Date, nullable=False)
    stakeholder: Mapped[str | None] = mapped_column(Text, nullable=True)
    type_of_request: Mapped[str] = mapped_column(Text, nullable=False)
    area_of_product: Mapped[str] = mapped_column(Text, nullable=False)
    link_to_document: Mapped[str | None] = mapped_column(Text, nullable=True)
    desire_level: Mapped[str] = mapped_column(Text, nullable=False)
    effort_level: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    difficulty_level: Mapped[str | None] = mapped_column(Text, nullable=True)
    who_benefits: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=DEFAULT_STATUS.value)
    priority_level: Mapped[str] = mapped_column(Text, nullable=False, default=DEFAULT_PRIORITY.value)
    accepted_denied_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timeline: Mapped[date | None] = mapped_column(Date, nullable=True)
    documentation_updated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    storylanes_updated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    release_notes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )


class EnhancementNotFoundError(Exception):
    """Raised when no enhancement exists for the requested key."""


class StoreError(Exception):
    """Raised when the backing store rejects or fails an operation."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
