"""Closed value sets for enhancement request fields."""

from __future__ import annotations

from enum import Enum
from typing import List


class FieldEnum(str, Enum):
    """String-valued enumeration whose members compare equal to their values."""

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]

    @classmethod
    def from_value(cls, value: str) -> "FieldEnum":
        """Return the member for *value*, raising ValueError when unknown."""
        return cls(value.strip())

    @classmethod
    def is_valid(cls, value: str | None) -> bool:
        if value is None:
            return False
        return value.strip() in cls._value2member_map_

    def __str__(self) -> str:
        return self.value


class RequestType(FieldEnum):
    BUG_FIX = "Bug Fix"
    NEW_FEATURE = "New Feature"
    ENHANCEMENT_UI = "Enhancement (UI)"
    ENHANCEMENT_FEATURE = "Enhancement (Feature)"


class ProductArea(FieldEnum):
    BUYER_PORTAL = "Buyer Portal"
    SUPPLIER_HUB = "Supplier Hub"
    PROCUREMENT = "Procurement"
    GUIDES = "Guides"
    DOCUMENTATION = "Documentation"


class DesireLevel(FieldEnum):
    MUST_HAVE = "Must-have"
    NICE_TO_HAVE = "Nice-to-have"


class DifficultyLevel(FieldEnum):
    SIMPLE = "Simple"
    COMPLEX = "Complex"
    INVOLVED = "Involved"


class Beneficiary(FieldEnum):
    """Allowed pieces of the multi-select "who benefits" field."""

    CLIENTS_PROCUREMENT = "Clients - procurement"
    CLIENTS_END_USERS = "Clients - end users"
    SUPPLIERS = "Suppliers"
    INTERNAL = "Internal"


class WorkflowStatus(FieldEnum):
    SUBMITTED = "submitted"
    REVIEW = "review"
    REJECTED = "rejected"
    APPROVED = "approved"
    DEVELOPMENT = "development"
    TESTING = "testing"
    COMPLETE = "complete"


class PriorityLevel(FieldEnum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


DEFAULT_STATUS = WorkflowStatus.SUBMITTED
DEFAULT_PRIORITY = PriorityLevel.MEDIUM
