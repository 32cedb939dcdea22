"""
Staging storage for in-flight sessions and asset storage for finished uploads
"""
import asyncio
import hashlib
import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from minio import Minio
from minio.error import S3Error

from ..core.config import Settings

logger = logging.getLogger(__name__)

HASH_BLOCK_SIZE = 1024 * 1024


def generate_storage_key(content_hash: str) -> str:
    """
    Bucketed, content-addressed key for a finished asset.

    Format: v1/assets/{hash[0:2]}/{hash[2:4]}/{hash}
    The two prefix levels spread objects over 65,536 prefixes.
    """
    return f"v1/assets/{content_hash[:2]}/{content_hash[2:4]}/{content_hash}"


class StagingStorage:
    """
    One preallocated file per session; chunk ``i`` lives at ``i * chunk_size``.

    Every write opens its own handle, so writes to disjoint ranges of the
    same session can run concurrently.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def ensure_ready(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path(self, session_id: str) -> Path:
        return self.root / f"{session_id}.part"

    def exists(self, session_id: str) -> bool:
        return self.path(session_id).exists()

    def _allocate(self, session_id: str, total_size: int) -> None:
        self.ensure_ready()
        with open(self.path(session_id), "wb") as handle:
            handle.truncate(total_size)

    def _write_at(self, session_id: str, offset: int, data: bytes) -> None:
        with open(self.path(session_id), "r+b") as handle:
            handle.seek(offset)
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())

    def _sha256(self, session_id: str) -> str:
        hasher = hashlib.sha256()
        with open(self.path(session_id), "rb") as handle:
            while block := handle.read(HASH_BLOCK_SIZE):
                hasher.update(block)
        return hasher.hexdigest()

    async def allocate(self, session_id: str, total_size: int) -> None:
        """Create the staging file sized for the whole upload"""
        await asyncio.to_thread(self._allocate, session_id, total_size)

    async def write_at(self, session_id: str, offset: int, data: bytes) -> None:
        if not self.exists(session_id):
            raise FileNotFoundError(f"Staging file missing for session {session_id}")
        await asyncio.to_thread(self._write_at, session_id, offset, data)

    async def sha256(self, session_id: str) -> str:
        return await asyncio.to_thread(self._sha256, session_id)

    def delete(self, session_id: str) -> bool:
        path = self.path(session_id)
        if path.exists():
            path.unlink(missing_ok=True)
            logger.info(f"🗑️  Removed staging file for session {session_id}")
            return True
        return False


class AssetStore:
    """Durable home for assembled assets"""

    def ensure_ready(self) -> None:
        raise NotImplementedError

    def exists(self, storage_key: str) -> bool:
        raise NotImplementedError

    def put_file(self, file_path: Path, storage_key: str, content_type: str) -> None:
        raise NotImplementedError

    def delete(self, storage_key: str) -> None:
        raise NotImplementedError

    async def store(self, file_path: Path, storage_key: str, content_type: str) -> bool:
        """
        Copy ``file_path`` into the store under ``storage_key``.

        Returns False when identical content is already stored (deduplicated).
        """
        if await asyncio.to_thread(self.exists, storage_key):
            logger.info(f"⚡ Deduplication: {storage_key} already exists, skipped upload")
            return False
        await asyncio.to_thread(self.put_file, file_path, storage_key, content_type)
        return True


class LocalAssetStore(AssetStore):
    """Assets on the local filesystem, laid out by storage key"""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def ensure_ready(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, storage_key: str) -> Path:
        return self.root / storage_key

    def exists(self, storage_key: str) -> bool:
        return self.path_for(storage_key).exists()

    def put_file(self, file_path: Path, storage_key: str, content_type: str) -> None:
        target = self.path_for(storage_key)
        target.parent.mkdir(parents=True, exist_ok=True)
        # Copy to a sibling temp name first so a crash never leaves a torn asset
        temp_target = target.with_name(f".{target.name}.tmp")
        shutil.copyfile(file_path, temp_target)
        os.replace(temp_target, target)
        logger.info(f"✅ Stored {target.stat().st_size} bytes at {storage_key}")

    def delete(self, storage_key: str) -> None:
        self.path_for(storage_key).unlink(missing_ok=True)
        logger.info(f"🗑️  Deleted {storage_key}")


class MinioAssetStore(AssetStore):
    """
    Object storage backend using MinIO (S3-compatible).

    Keys are content-addressed, so identical uploads share one object.
    """

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        secure: bool = False,
        client: Optional[Minio] = None
    ):
        self.client = client or Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure
        )
        self.bucket = bucket
        logger.info(f"🗄️  MinIO client initialized: {endpoint}/{self.bucket}")

    def ensure_ready(self) -> None:
        """Create bucket if it doesn't exist"""
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
                logger.info(f"✅ Created MinIO bucket: {self.bucket}")
            else:
                logger.info(f"✅ MinIO bucket exists: {self.bucket}")
        except S3Error as e:
            logger.error(f"❌ Failed to create bucket: {e}")
            raise

    def exists(self, storage_key: str) -> bool:
        try:
            self.client.stat_object(self.bucket, storage_key)
            return True
        except S3Error:
            return False

    def put_file(self, file_path: Path, storage_key: str, content_type: str) -> None:
        self.client.fput_object(self.bucket, storage_key, str(file_path), content_type=content_type)
        logger.info(f"✅ Uploaded {file_path.stat().st_size} bytes to {storage_key}")

    def delete(self, storage_key: str) -> None:
        try:
            self.client.remove_object(self.bucket, storage_key)
            logger.info(f"🗑️  Deleted {storage_key}")
        except S3Error as e:
            logger.error(f"❌ Failed to delete {storage_key}: {e}")
            raise


def build_asset_store(settings: Settings) -> AssetStore:
    """Pick the asset backend named by ``ASSET_BACKEND``"""
    backend = settings.ASSET_BACKEND.lower()
    if backend == "local":
        return LocalAssetStore(settings.ASSET_DIR)
    if backend == "minio":
        return MinioAssetStore(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            bucket=settings.MINIO_BUCKET,
            secure=settings.MINIO_SECURE
        )
    raise ValueError(f"Unknown ASSET_BACKEND: {settings.ASSET_BACKEND}")
