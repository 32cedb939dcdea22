"""Schemas module exports"""
from .upload import (
    AssetDescriptor,
    CancelUploadResponse,
    ChunkUploadResponse,
    CompleteUploadResponse,
    IncompleteUploadResponse,
    InitUploadRequest,
    InitUploadResponse,
    SessionListResponse,
    SessionSummary,
    UploadStatusResponse,
)

__all__ = [
    "AssetDescriptor",
    "CancelUploadResponse",
    "ChunkUploadResponse",
    "CompleteUploadResponse",
    "IncompleteUploadResponse",
    "InitUploadRequest",
    "InitUploadResponse",
    "SessionListResponse",
    "SessionSummary",
    "UploadStatusResponse",
]
