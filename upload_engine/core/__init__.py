"""Core module exports"""
from .config import Settings, settings
from .database import build_engine, build_session_maker, get_db
from .security import require_credential

__all__ = [
    "Settings",
    "settings",
    "build_engine",
    "build_session_maker",
    "get_db",
    "require_credential",
]
