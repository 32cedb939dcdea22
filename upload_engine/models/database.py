"""
Database models for resumable upload sessions and finalized assets

Session rows are the server-authoritative record of an upload. Received
chunk indices live in their own table so concurrent chunk writes for one
session never rewrite the same row.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo, so store everything naive)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models"""
    pass


class SessionStatus(str, Enum):
    INITIALIZING = "initializing"
    RECEIVING = "receiving"
    COMPLETING = "completing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class UploadSessionRecord(Base):
    """
    One resumable upload.

    file_name, total_size, content_type, chunk_size and total_chunks are
    fixed at init. After completion the row stays behind as a tombstone
    (status=completed, asset_id set) so a retried completion can return the
    original asset instead of assembling it twice.
    """
    __tablename__ = "upload_sessions"

    session_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False)
    total_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    chunk_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_chunks: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=SessionStatus.INITIALIZING.value,
        nullable=False,
        index=True
    )
    asset_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self):
        return (
            f"<UploadSessionRecord session_id={self.session_id} file_name={self.file_name} "
            f"status={self.status} chunks={self.total_chunks}>"
        )


class UploadChunkRecord(Base):
    """A chunk index whose bytes are durably written to staging storage"""
    __tablename__ = "upload_chunks"

    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("upload_sessions.session_id", ondelete="CASCADE"),
        primary_key=True
    )
    chunk_index: Mapped[int] = mapped_column(Integer, primary_key=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<UploadChunkRecord session_id={self.session_id} index={self.chunk_index}>"


class AssetRecord(Base):
    """
    Finalized asset produced by a completed session.

    ``details`` holds the caller metadata (title, course reference, ...)
    untouched; the engine never interprets it.
    """
    __tablename__ = "assets"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    session_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True, index=True)
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    storage_key: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_asset_hash_size", "content_hash", "size_bytes"),
    )

    def __repr__(self):
        return f"<AssetRecord id={self.id} file_name={self.file_name} hash={self.content_hash[:8]}>"
