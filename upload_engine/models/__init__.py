"""Models module exports"""
from .database import (
    AssetRecord,
    Base,
    SessionStatus,
    UploadChunkRecord,
    UploadSessionRecord,
    utcnow,
)

__all__ = [
    "AssetRecord",
    "Base",
    "SessionStatus",
    "UploadChunkRecord",
    "UploadSessionRecord",
    "utcnow",
]
