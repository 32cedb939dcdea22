"""
Pydantic schemas for the upload API (camelCase on the wire)
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base: snake_case in Python, camelCase in JSON"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class InitUploadRequest(WireModel):
    """Request to open an upload session"""
    filename: str = Field(..., min_length=1, max_length=512)
    file_size: int = Field(..., description="Total file size in bytes")
    content_type: str = Field("application/octet-stream", max_length=255)
    chunk_size: Optional[int] = Field(None, description="Requested chunk size (server may adjust)")


class InitUploadResponse(WireModel):
    session_id: str
    chunk_size: int
    total_chunks: int


class ChunkUploadResponse(WireModel):
    success: bool
    message: Optional[str] = None
    chunk_index: int
    uploaded_chunks: int


class UploadStatusResponse(WireModel):
    """Which chunks the server holds; clients resume from missing_chunks"""
    session_id: str
    file_name: str
    status: str
    progress: float
    uploaded_chunks: int
    total_chunks: int
    missing_chunks: list[int]
    total_size: int
    chunk_size: int


class AssetDescriptor(WireModel):
    """Finalized asset produced by a completed session"""
    asset_id: str
    session_id: str
    file_name: str
    content_type: str
    size_bytes: int
    content_hash: str
    storage_key: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class CompleteUploadResponse(WireModel):
    status: str = "completed"
    already_completed: bool = False
    asset: AssetDescriptor


class IncompleteUploadResponse(WireModel):
    """Completion requested before every chunk arrived"""
    error: str = "INCOMPLETE"
    message: str
    missing_chunks: list[int]


class CancelUploadResponse(WireModel):
    session_id: str
    status: str = "cancelled"
    existed: bool


class SessionSummary(WireModel):
    session_id: str
    file_name: str
    status: str
    uploaded_chunks: int
    total_chunks: int
    created_at: datetime
    updated_at: datetime


class SessionListResponse(WireModel):
    total: int
    sessions: list[SessionSummary]
