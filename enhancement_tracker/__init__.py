"""Enhancement Request Tracker package initialisation."""

from .config import AppSettings, get_settings  # noqa: F401
from .db import Base, build_engine, build_session_factory, session_scope  # noqa: F401
from .logging_config import configure_logging  # noqa: F401
from .models import Enhancement, EnhancementNotFoundError, StoreError  # noqa: F401
from .store import EnhancementStore  # noqa: F401

__all__ = [
    "AppSettings",
    "get_settings",
    "Base",
    "build_engine",
    "build_session_factory",
    "session_scope",
    "Enhancement",
    "EnhancementNotFoundError",
    "StoreError",
    "EnhancementStore",
    "configure_logging",
]
