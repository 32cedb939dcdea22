"""Services module exports"""
from .errors import (
    InvalidChunk,
    SessionNotFound,
    SessionStateError,
    UploadEngineError,
    UploadIncomplete,
    UploadValidationError,
)
from .expiry import ExpirySweeper
from .locks import SessionLockRegistry
from .session_manager import SessionManager, describe_asset
from .storage import (
    AssetStore,
    LocalAssetStore,
    MinioAssetStore,
    StagingStorage,
    build_asset_store,
    generate_storage_key,
)

__all__ = [
    "AssetStore",
    "ExpirySweeper",
    "InvalidChunk",
    "LocalAssetStore",
    "MinioAssetStore",
    "SessionLockRegistry",
    "SessionManager",
    "SessionNotFound",
    "SessionStateError",
    "StagingStorage",
    "UploadEngineError",
    "UploadIncomplete",
    "UploadValidationError",
    "build_asset_store",
    "describe_asset",
    "generate_storage_key",
]
