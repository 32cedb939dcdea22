"""
Resumable upload session coordinator.

Flow:
  1. init_session  -> allocate staging file, record session (status=receiving)
  2. put_chunk     -> write bytes at index * chunk_size, record the index
  3. get_status    -> which indices arrived, which are missing
  4. complete      -> hash staged file, store asset, record asset + metadata
                      and mark session completed in one commit
  5. cancel / expire_stale -> drop staging bytes and session rows
"""
import asyncio
import logging
from datetime import timedelta
from typing import Any, AsyncIterator, Optional
from uuid import uuid4

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from ..chunking import ChunkPlan
from ..core.config import Settings
from ..models import AssetRecord, Base, SessionStatus, UploadChunkRecord, UploadSessionRecord, utcnow
from ..schemas import AssetDescriptor, SessionSummary, UploadStatusResponse
from .errors import InvalidChunk, SessionNotFound, SessionStateError, UploadIncomplete, UploadValidationError
from .locks import SessionLockRegistry
from .storage import AssetStore, StagingStorage, generate_storage_key

logger = logging.getLogger(__name__)


def describe_asset(asset: AssetRecord) -> AssetDescriptor:
    """Wire descriptor for a stored asset"""
    return AssetDescriptor(
        asset_id=asset.id,
        session_id=asset.session_id,
        file_name=asset.file_name,
        content_type=asset.content_type,
        size_bytes=asset.size_bytes,
        content_hash=asset.content_hash,
        storage_key=asset.storage_key,
        metadata=dict(asset.details or {}),
        created_at=asset.created_at,
    )


class SessionManager:
    """Creates sessions, accepts chunks, and assembles each upload exactly once"""

    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        staging: StagingStorage,
        asset_store: AssetStore,
        locks: Optional[SessionLockRegistry] = None
    ):
        self.settings = settings
        self.engine = engine
        self.staging = staging
        self.asset_store = asset_store
        self.locks = locks or SessionLockRegistry()

    async def initialize(self) -> None:
        """Create tables and storage locations"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("✅ Database tables created/verified")

        self.staging.ensure_ready()
        await asyncio.to_thread(self.asset_store.ensure_ready)

    # ------------------------------------------------------------------ helpers

    def choose_chunk_size(self, file_size: int, requested: Optional[int] = None) -> int:
        """
        Requested (or configured) chunk size clamped to the allowed range,
        raised if needed so the session stays within MAX_TOTAL_CHUNKS.
        """
        size = requested or self.settings.CHUNK_SIZE
        size = max(self.settings.MIN_CHUNK_SIZE, min(size, self.settings.MAX_CHUNK_SIZE))
        smallest_allowed = -(-file_size // self.settings.MAX_TOTAL_CHUNKS)
        return max(size, smallest_allowed)

    def _validate_declared_file(self, file_name: str, file_size: int) -> str:
        file_name = (file_name or "").strip()
        if not file_name:
            raise UploadValidationError("filename is required")
        if file_size <= 0:
            raise UploadValidationError("fileSize must be greater than zero")
        if file_size > self.settings.MAX_UPLOAD_SIZE:
            raise UploadValidationError(
                f"File size {file_size} exceeds the maximum of {self.settings.MAX_UPLOAD_SIZE} bytes",
                status_code=413
            )
        return file_name

    async def _get_session(
        self,
        db: AsyncSession,
        session_id: str,
        refresh: bool = False
    ) -> UploadSessionRecord:
        record = await db.get(UploadSessionRecord, session_id, populate_existing=refresh)
        if record is None:
            raise SessionNotFound(session_id)
        return record

    async def _received_indices(self, db: AsyncSession, session_id: str) -> set[int]:
        result = await db.execute(
            select(UploadChunkRecord.chunk_index).where(UploadChunkRecord.session_id == session_id)
        )
        return set(result.scalars().all())

    async def _count_chunks(self, db: AsyncSession, session_id: str) -> int:
        result = await db.execute(
            select(func.count()).select_from(UploadChunkRecord).where(UploadChunkRecord.session_id == session_id)
        )
        return result.scalar_one()

    async def _destroy(self, db: AsyncSession, session_id: str) -> bool:
        """Remove staging bytes, chunk rows and the session row"""
        record = await db.get(UploadSessionRecord, session_id, populate_existing=True)
        self.staging.delete(session_id)
        await db.execute(delete(UploadChunkRecord).where(UploadChunkRecord.session_id == session_id))
        if record is not None:
            await db.delete(record)
        await db.commit()
        return record is not None

    async def _discard_unreferenced(self, db: AsyncSession, storage_key: str) -> None:
        """Delete a stored object that no asset record points at"""
        result = await db.execute(
            select(func.count()).select_from(AssetRecord).where(AssetRecord.storage_key == storage_key)
        )
        if result.scalar_one() > 0:
            return
        try:
            await asyncio.to_thread(self.asset_store.delete, storage_key)
        except Exception as e:
            logger.warning(f"⚠️ Could not remove orphaned object {storage_key}: {e}")

    # --------------------------------------------------------------- operations

    async def init_session(
        self,
        db: AsyncSession,
        file_name: str,
        file_size: int,
        content_type: Optional[str] = None,
        chunk_size: Optional[int] = None
    ) -> UploadSessionRecord:
        """Open a session and allocate staging storage for the whole file"""
        file_name = self._validate_declared_file(file_name, file_size)
        if chunk_size is not None and chunk_size <= 0:
            raise UploadValidationError("chunkSize must be greater than zero")

        plan = ChunkPlan(file_size, self.choose_chunk_size(file_size, chunk_size))
        session_id = str(uuid4())

        await self.staging.allocate(session_id, file_size)
        record = UploadSessionRecord(
            session_id=session_id,
            file_name=file_name,
            content_type=content_type or "application/octet-stream",
            total_size=file_size,
            chunk_size=plan.chunk_size,
            total_chunks=plan.total_chunks,
            status=SessionStatus.RECEIVING.value
        )
        db.add(record)
        try:
            await db.commit()
        except Exception:
            self.staging.delete(session_id)
            raise

        logger.info(
            f"📤 Initialized upload session {session_id} for {file_name} "
            f"({file_size} bytes, {plan.total_chunks} chunks of {plan.chunk_size})"
        )
        return record

    async def put_chunk(
        self,
        db: AsyncSession,
        session_id: str,
        index: int,
        data: bytes,
        total_chunks: Optional[int] = None
    ) -> int:
        """
        Write one chunk. Idempotent: re-sending an index overwrites the same
        byte range. Returns the number of chunks received so far.
        """
        async with self.locks.shared(session_id):
            record = await self._get_session(db, session_id, refresh=True)
            if record.status != SessionStatus.RECEIVING.value:
                raise SessionStateError(session_id, record.status)

            if total_chunks is not None and total_chunks != record.total_chunks:
                raise InvalidChunk(
                    f"totalChunks {total_chunks} does not match session ({record.total_chunks})",
                    index
                )

            plan = ChunkPlan(record.total_size, record.chunk_size)
            if not 0 <= index < plan.total_chunks:
                raise InvalidChunk(
                    f"Invalid chunk index {index}. Must be between 0 and {plan.total_chunks - 1}",
                    index
                )

            expected = plan.chunk_length(index)
            if len(data) != expected:
                raise InvalidChunk(
                    f"Chunk {index} has {len(data)} bytes, expected {expected}",
                    index
                )

            start, _ = plan.byte_range(index)
            await self.staging.write_at(session_id, start, data)

            now = utcnow()
            existing = await db.get(UploadChunkRecord, (session_id, index))
            if existing is None:
                db.add(UploadChunkRecord(session_id=session_id, chunk_index=index, size_bytes=len(data)))
            else:
                existing.received_at = now
            record.updated_at = now

            try:
                await db.commit()
            except IntegrityError:
                # A concurrent retry of the same index recorded it first
                await db.rollback()
                logger.info(f"♻️ Chunk {index} of session {session_id} was recorded concurrently")

            uploaded = await self._count_chunks(db, session_id)

        logger.info(f"✅ Stored chunk {index + 1}/{plan.total_chunks} for session {session_id}")
        return uploaded

    async def get_status(self, db: AsyncSession, session_id: str) -> UploadStatusResponse:
        record = await self._get_session(db, session_id, refresh=True)

        if record.status == SessionStatus.COMPLETED.value:
            received = set(range(record.total_chunks))
        else:
            received = await self._received_indices(db, session_id)

        missing = [index for index in range(record.total_chunks) if index not in received]
        uploaded = record.total_chunks - len(missing)
        progress = (uploaded / record.total_chunks * 100) if record.total_chunks > 0 else 0

        return UploadStatusResponse(
            session_id=record.session_id,
            file_name=record.file_name,
            status=record.status,
            progress=round(progress, 2),
            uploaded_chunks=uploaded,
            total_chunks=record.total_chunks,
            missing_chunks=missing,
            total_size=record.total_size,
            chunk_size=record.chunk_size
        )

    async def complete(
        self,
        db: AsyncSession,
        session_id: str,
        metadata: Optional[dict[str, Any]] = None
    ) -> tuple[AssetRecord, bool]:
        """
        Assemble and persist the asset.

        Returns ``(asset, already_completed)``. A retry after success returns
        the asset created the first time.
        """
        async with self.locks.exclusive(session_id):
            record = await self._get_session(db, session_id, refresh=True)

            if record.status == SessionStatus.COMPLETED.value:
                asset = await db.get(AssetRecord, record.asset_id) if record.asset_id else None
                if asset is None:
                    raise SessionStateError(session_id, "completed without an asset")
                logger.info(f"Session {session_id} already completed (asset {asset.id})")
                return asset, True

            # completing here means an earlier attempt died mid-way; it is safe to redo
            if record.status not in (SessionStatus.RECEIVING.value, SessionStatus.COMPLETING.value):
                raise SessionStateError(session_id, record.status)

            received = await self._received_indices(db, session_id)
            missing = [index for index in range(record.total_chunks) if index not in received]
            if missing:
                logger.info(f"Missing chunks for session {session_id}: {missing[:20]}")
                raise UploadIncomplete(session_id, missing)

            record.status = SessionStatus.COMPLETING.value
            record.updated_at = utcnow()
            await db.commit()

            staged_path = self.staging.path(session_id)
            stored_new = False
            try:
                content_hash = await self.staging.sha256(session_id)
                storage_key = generate_storage_key(content_hash)
                stored_new = await self.asset_store.store(staged_path, storage_key, record.content_type)

                now = utcnow()
                asset = AssetRecord(
                    id=str(uuid4()),
                    session_id=session_id,
                    file_name=record.file_name,
                    content_type=record.content_type,
                    size_bytes=record.total_size,
                    content_hash=content_hash,
                    storage_key=storage_key,
                    details=dict(metadata or {}),
                    created_at=now
                )
                db.add(asset)
                record.status = SessionStatus.COMPLETED.value
                record.asset_id = asset.id
                record.completed_at = now
                record.updated_at = now
                await db.execute(delete(UploadChunkRecord).where(UploadChunkRecord.session_id == session_id))
                await db.commit()
            except Exception as e:
                logger.error(f"❌ Failed to complete upload session {session_id}: {e}")
                await db.rollback()
                await db.execute(
                    update(UploadSessionRecord)
                    .where(UploadSessionRecord.session_id == session_id)
                    .values(status=SessionStatus.RECEIVING.value, updated_at=utcnow())
                )
                await db.commit()
                if stored_new:
                    await self._discard_unreferenced(db, storage_key)
                raise

            self.staging.delete(session_id)

        logger.info(
            f"🎉 Completed upload session {session_id}: asset {asset.id} "
            f"({asset.size_bytes} bytes, hash {asset.content_hash[:8]})"
        )
        return asset, False

    async def cancel(self, db: AsyncSession, session_id: str) -> bool:
        """Drop the session whatever its status. Returns False if it did not exist."""
        async with self.locks.exclusive(session_id):
            existed = await self._destroy(db, session_id)

        if existed:
            logger.info(f"🛑 Cancelled upload session {session_id}")
        else:
            logger.info(f"Cancel for unknown session {session_id} ignored")
        return existed

    async def expire_stale(self, db: AsyncSession, now=None) -> int:
        """
        Delete sessions idle longer than SESSION_TTL_SECONDS and completed
        tombstones older than COMPLETED_RETENTION_SECONDS. Sessions with an
        operation in progress are skipped until the next sweep.
        """
        now = now or utcnow()
        idle_cutoff = now - timedelta(seconds=self.settings.SESSION_TTL_SECONDS)
        retention_cutoff = now - timedelta(seconds=self.settings.COMPLETED_RETENTION_SECONDS)

        def is_stale(status: str, updated_at, completed_at) -> bool:
            if status == SessionStatus.COMPLETED.value:
                return completed_at is not None and completed_at < retention_cutoff
            return updated_at < idle_cutoff

        result = await db.execute(
            select(UploadSessionRecord.session_id).where(
                or_(
                    and_(
                        UploadSessionRecord.status != SessionStatus.COMPLETED.value,
                        UploadSessionRecord.updated_at < idle_cutoff
                    ),
                    and_(
                        UploadSessionRecord.status == SessionStatus.COMPLETED.value,
                        UploadSessionRecord.completed_at < retention_cutoff
                    )
                )
            )
        )
        candidates = list(result.scalars().all())

        removed = 0
        for session_id in candidates:
            async with self.locks.exclusive(session_id, wait=False) as acquired:
                if not acquired:
                    logger.info(f"⏳ Session {session_id} busy, skipping expiry this round")
                    continue

                record = await db.get(UploadSessionRecord, session_id, populate_existing=True)
                if record is None or not is_stale(record.status, record.updated_at, record.completed_at):
                    continue

                previous_status = record.status
                await self._destroy(db, session_id)
                removed += 1
                logger.info(f"⌛ Expired upload session {session_id} (was {previous_status})")

        return removed

    async def ingest_single(
        self,
        db: AsyncSession,
        file_name: str,
        content_type: Optional[str],
        content_stream: AsyncIterator[bytes],
        metadata: Optional[dict[str, Any]] = None
    ) -> AssetRecord:
        """
        Simple (non-chunked) upload: stream the body to staging, then finalize
        it as a one-chunk session through the regular completion path.
        """
        file_name = (file_name or "").strip()
        if not file_name:
            raise UploadValidationError("filename is required")

        session_id = str(uuid4())
        self.staging.ensure_ready()
        total_size = 0
        try:
            with open(self.staging.path(session_id), "wb") as handle:
                async for block in content_stream:
                    total_size += len(block)
                    if total_size > self.settings.MAX_UPLOAD_SIZE:
                        raise UploadValidationError(
                            f"File exceeds the maximum of {self.settings.MAX_UPLOAD_SIZE} bytes",
                            status_code=413
                        )
                    await asyncio.to_thread(handle.write, block)
            if total_size == 0:
                raise UploadValidationError("Empty file provided")
        except BaseException:
            self.staging.delete(session_id)
            raise

        record = UploadSessionRecord(
            session_id=session_id,
            file_name=file_name,
            content_type=content_type or "application/octet-stream",
            total_size=total_size,
            chunk_size=total_size,
            total_chunks=1,
            status=SessionStatus.RECEIVING.value
        )
        db.add(record)
        db.add(UploadChunkRecord(session_id=session_id, chunk_index=0, size_bytes=total_size))
        await db.commit()
        logger.info(f"📤 Received simple upload {file_name} ({total_size} bytes) as session {session_id}")

        asset, _ = await self.complete(db, session_id, metadata)
        return asset

    async def get_asset(self, db: AsyncSession, asset_id: str) -> Optional[AssetRecord]:
        return await db.get(AssetRecord, asset_id)

    async def list_sessions(self, db: AsyncSession, status: Optional[str] = None) -> list[SessionSummary]:
        """Sessions newest first, for monitoring and debugging"""
        uploaded = func.count(UploadChunkRecord.chunk_index)
        query = (
            select(UploadSessionRecord, uploaded)
            .outerjoin(UploadChunkRecord, UploadChunkRecord.session_id == UploadSessionRecord.session_id)
            .group_by(UploadSessionRecord.session_id)
            .order_by(UploadSessionRecord.created_at.desc())
        )
        if status:
            query = query.where(UploadSessionRecord.status == status)

        result = await db.execute(query)
        summaries = []
        for record, count in result.all():
            if record.status == SessionStatus.COMPLETED.value:
                count = record.total_chunks
            summaries.append(
                SessionSummary(
                    session_id=record.session_id,
                    file_name=record.file_name,
                    status=record.status,
                    uploaded_chunks=count,
                    total_chunks=record.total_chunks,
                    created_at=record.created_at,
                    updated_at=record.updated_at
                )
            )
        return summaries
