"""Async uploader client for the resumable upload API"""
from .api import UploadApiClient
from .cancellation import CancellationToken
from .errors import (
    AlreadyComplete,
    Cancelled,
    ChunkUploadFailed,
    CompleteFailed,
    ExhaustedRetries,
    Incomplete,
    InitFailed,
    InvalidChunk,
    NetworkFailure,
    NotFound,
    SessionConflict,
    SessionExpired,
    Unauthorized,
    UploadError,
    ValidationFailed,
)
from .estimator import SpeedEstimator, SpeedSample
from .retry import RetryPolicy
from .session_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    SavedUploadSession,
    TransferSessionStore,
)
from .sources import ByteSource, BytesByteSource, FileByteSource
from .uploader import ResumableUploader, UploaderState, UploadOptions

__all__ = [
    "AlreadyComplete",
    "ByteSource",
    "BytesByteSource",
    "CancellationToken",
    "Cancelled",
    "ChunkUploadFailed",
    "CompleteFailed",
    "ExhaustedRetries",
    "FileByteSource",
    "InMemoryKeyValueStore",
    "Incomplete",
    "InitFailed",
    "InvalidChunk",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "NetworkFailure",
    "NotFound",
    "ResumableUploader",
    "RetryPolicy",
    "SavedUploadSession",
    "SessionConflict",
    "SessionExpired",
    "SpeedEstimator",
    "SpeedSample",
    "TransferSessionStore",
    "Unauthorized",
    "UploadApiClient",
    "UploadError",
    "UploadOptions",
    "UploaderState",
    "ValidationFailed",
]
