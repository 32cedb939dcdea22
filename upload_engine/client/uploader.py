"""
Resumable uploader: init a session, push chunks through a bounded worker
pool with retries, then finalize. Interrupted uploads can be resumed from
the locally saved session record.
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional

import httpx

from ..chunking import ChunkPlan
from ..core.config import MB, Settings, settings as default_settings
from ..schemas import AssetDescriptor, CompleteUploadResponse
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
    NetworkFailure,
    SessionExpired,
    Unauthorized,
    UploadError,
    ValidationFailed,
)
from .estimator import SpeedEstimator
from .retry import RetryPolicy
from .session_store import JsonFileKeyValueStore, SavedUploadSession, TransferSessionStore
from .sources import ByteSource

logger = logging.getLogger(__name__)

UPLOAD_MODES = ("auto", "chunked", "simple")


class UploaderState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    UPLOADING = "uploading"
    PAUSED = "paused"
    COMPLETING = "completing"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class UploadOptions:
    mode: str = "auto"
    chunk_size: Optional[int] = None
    concurrency: int = 2
    max_retries: int = 3
    retry_delay: float = 1.0
    retry_jitter: float = 0.0
    simple_upload_threshold: int = 50 * MB
    max_file_size: Optional[int] = None
    speed_interval: float = 1.0
    control_timeout: float = 30.0
    on_progress: Optional[Callable[[float, int, int], None]] = None
    on_speed: Optional[Callable[[float, Optional[float]], None]] = None
    on_chunk_upload: Optional[Callable[[int, int], None]] = None
    on_state_change: Optional[Callable[[UploaderState], None]] = None
    cancellation: Optional[CancellationToken] = None

    def __post_init__(self):
        if self.mode not in UPLOAD_MODES:
            raise ValueError(f"mode must be one of {UPLOAD_MODES}, got {self.mode!r}")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "UploadOptions":
        values = dict(
            concurrency=settings.UPLOAD_CONCURRENCY,
            max_retries=settings.UPLOAD_MAX_RETRIES,
            retry_delay=settings.UPLOAD_RETRY_DELAY,
            retry_jitter=settings.UPLOAD_RETRY_JITTER,
            simple_upload_threshold=settings.SIMPLE_UPLOAD_THRESHOLD,
            max_file_size=settings.MAX_UPLOAD_SIZE,
            control_timeout=settings.CONTROL_TIMEOUT,
        )
        values.update(overrides)
        return cls(**values)


def _emit(callback: Optional[Callable], *args) -> None:
    if callback is not None:
        callback(*args)


class ResumableUploader:
    """
    Uploads one file at a time.

    Example:
        uploader = ResumableUploader("http://localhost:8000")
        asset = await uploader.upload(FileByteSource("talk.mp4"), {"title": "Talk"}, token)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        store: Optional[TransferSessionStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        options: Optional[UploadOptions] = None
    ):
        self.base_url = base_url or default_settings.UPLOAD_API_URL
        self.store = store or TransferSessionStore(JsonFileKeyValueStore(default_settings.CLIENT_SESSION_FILE))
        self.http_client = http_client
        self.options = options or UploadOptions.from_settings(default_settings)

        self.state = UploaderState.IDLE
        self.active_session_id: Optional[str] = None
        self._options = self.options
        self._token: Optional[CancellationToken] = None
        self._unpaused = asyncio.Event()
        self._unpaused.set()

    # ---------------------------------------------------------------- helpers

    def _set_state(self, state: UploaderState) -> None:
        if state == self.state:
            return
        logger.info(f"Uploader state: {self.state.value} -> {state.value}")
        self.state = state
        _emit(self._options.on_state_change, state)

    def _api(self, credential: str, options: UploadOptions) -> UploadApiClient:
        return UploadApiClient(
            self.base_url,
            credential,
            http_client=self.http_client,
            control_timeout=options.control_timeout
        )

    def _policy(self, options: UploadOptions) -> RetryPolicy:
        return RetryPolicy(
            max_retries=options.max_retries,
            base_delay=options.retry_delay,
            jitter=options.retry_jitter
        )

    def _begin(self, options: UploadOptions) -> CancellationToken:
        if self._token is not None:
            raise RuntimeError("Uploader is already running an upload")
        self._options = options
        self._token = options.cancellation or CancellationToken()
        self._unpaused.set()
        self.active_session_id = None
        self.state = UploaderState.IDLE
        return self._token

    def _finish(self) -> None:
        self._token = None
        self._unpaused.set()

    def _validate(self, source: ByteSource, options: UploadOptions) -> None:
        if source.size <= 0:
            raise ValidationFailed(f"{source.name} is empty")
        if options.max_file_size is not None and source.size > options.max_file_size:
            raise ValidationFailed(
                f"{source.name} is {source.size} bytes, above the maximum of {options.max_file_size}"
            )

    def _use_simple(self, source: ByteSource, options: UploadOptions) -> bool:
        if options.mode == "simple":
            return True
        if options.mode == "chunked":
            return False
        return source.size < options.simple_upload_threshold

    # ------------------------------------------------------------- transfers

    async def _send_chunks(
        self,
        api: UploadApiClient,
        source: ByteSource,
        session_id: str,
        plan: ChunkPlan,
        pending: Iterable[int],
        token: CancellationToken
    ) -> None:
        """Upload ``pending`` chunk indices with at most ``concurrency`` in flight"""
        options = self._options
        policy = self._policy(options)
        total = plan.total_chunks
        queue = deque(sorted(pending))
        done_chunks = total - len(queue)
        done_bytes = source.size - plan.bytes_for(queue)

        estimator = SpeedEstimator(source.size, min_interval=options.speed_interval)
        estimator.sample(done_bytes)

        async def send(index: int) -> int:
            start, end = plan.byte_range(index)
            data = await source.read_range(start, end)
            try:
                await policy.run(
                    lambda: api.put_chunk(session_id, index, data, total),
                    label=f"Chunk {index}",
                    token=token
                )
            except ExhaustedRetries as e:
                raise ChunkUploadFailed(index, e.attempts, e.last_error) from e
            return len(data)

        async def worker() -> None:
            nonlocal done_chunks, done_bytes
            while queue:
                await self._unpaused.wait()
                token.raise_if_cancelled()
                if not queue:
                    break
                index = queue.popleft()
                sent = await send(index)
                token.raise_if_cancelled()

                done_chunks += 1
                done_bytes += sent
                logger.info(f"✅ Chunk {index + 1}/{total} uploaded ({done_chunks}/{total})")
                _emit(options.on_chunk_upload, index, total)
                _emit(options.on_progress, done_chunks / total * 100, done_chunks, total)
                sample = estimator.sample(done_bytes)
                if sample is not None:
                    _emit(options.on_speed, sample.bytes_per_second, sample.time_remaining)

        workers = [
            asyncio.create_task(worker(), name=f"chunk-worker-{number}")
            for number in range(min(options.concurrency, max(len(queue), 1)))
        ]

        def abort_workers():
            for task in workers:
                task.cancel()

        remove_callback = token.add_callback(abort_workers)
        try:
            await asyncio.wait(workers, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            remove_callback()
            for task in workers:
                if not task.done():
                    task.cancel()
            results = await asyncio.gather(*workers, return_exceptions=True)

        token.raise_if_cancelled()
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                raise result

    async def _complete(
        self,
        api: UploadApiClient,
        session_id: str,
        metadata: dict[str, Any],
        token: CancellationToken
    ) -> AssetDescriptor:
        self._set_state(UploaderState.COMPLETING)
        try:
            result: CompleteUploadResponse = await self._policy(self._options).run(
                lambda: api.complete(session_id, metadata),
                label=f"Complete {session_id}",
                token=token
            )
        except (Incomplete, Cancelled, SessionExpired, Unauthorized):
            raise
        except ExhaustedRetries as e:
            raise CompleteFailed(str(e), session_id=session_id) from e
        except UploadError as e:
            raise CompleteFailed(f"Could not finalize upload {session_id}: {e}", session_id, e.status_code) from e

        self.store.remove(session_id)
        self._set_state(UploaderState.DONE)
        logger.info(f"🎉 Upload {session_id} finalized as asset {result.asset.asset_id}")
        return result.asset

    async def _upload_simple(
        self,
        api: UploadApiClient,
        source: ByteSource,
        metadata: dict[str, Any],
        token: CancellationToken
    ) -> AssetDescriptor:
        options = self._options
        self._set_state(UploaderState.UPLOADING)
        data = await source.read_range(0, source.size)
        try:
            result: CompleteUploadResponse = await self._policy(options).run(
                lambda: api.simple_upload(source.name, data, source.content_type, metadata),
                label=f"Simple upload {source.name}",
                token=token
            )
        except ExhaustedRetries as e:
            raise CompleteFailed(
                f"Could not upload {source.name}: {e}",
                status_code=getattr(e.last_error, "status_code", None)
            ) from e
        _emit(options.on_chunk_upload, 0, 1)
        _emit(options.on_progress, 100.0, 1, 1)
        self._set_state(UploaderState.DONE)
        logger.info(f"🎉 Simple upload of {source.name} stored as asset {result.asset.asset_id}")
        return result.asset

    async def _run(self, operation) -> AssetDescriptor:
        try:
            return await operation()
        except Cancelled:
            self._set_state(UploaderState.CANCELLED)
            raise
        except Exception:
            self._set_state(UploaderState.FAILED)
            raise
        finally:
            self._finish()

    # ------------------------------------------------------------ operations

    async def upload(
        self,
        source: ByteSource,
        metadata: Optional[dict[str, Any]],
        credential: str,
        options: Optional[UploadOptions] = None
    ) -> AssetDescriptor:
        """Upload ``source`` and return the finalized asset"""
        options = options or self.options
        metadata = dict(metadata or {})
        self._validate(source, options)
        token = self._begin(options)

        async def operation() -> AssetDescriptor:
            async with self._api(credential, options) as api:
                if self._use_simple(source, options):
                    return await self._upload_simple(api, source, metadata, token)

                self._set_state(UploaderState.INITIALIZING)
                try:
                    init = await self._policy(options).run(
                        lambda: api.init_session(source.name, source.size, source.content_type, options.chunk_size),
                        label=f"Init {source.name}",
                        token=token
                    )
                except (Unauthorized, ValidationFailed, Cancelled):
                    raise
                except UploadError as e:
                    raise InitFailed(f"Could not start upload of {source.name}: {e}", e) from e

                session_id = init.session_id
                self.active_session_id = session_id
                self.store.save(SavedUploadSession(
                    session_id=session_id,
                    file_name=source.name,
                    file_size=source.size,
                    metadata=metadata
                ))
                logger.info(
                    f"📤 Session {session_id}: {init.total_chunks} chunk(s) of {init.chunk_size} bytes "
                    f"for {source.name}"
                )

                plan = ChunkPlan(source.size, init.chunk_size)
                if plan.total_chunks != init.total_chunks:
                    raise InitFailed(
                        f"Server planned {init.total_chunks} chunks, expected {plan.total_chunks}"
                    )

                self._set_state(UploaderState.UPLOADING)
                await self._send_chunks(api, source, session_id, plan, range(plan.total_chunks), token)
                return await self._complete(api, session_id, metadata, token)

        return await self._run(operation)

    async def resume(
        self,
        session_id: str,
        source: ByteSource,
        credential: str,
        options: Optional[UploadOptions] = None,
        metadata: Optional[dict[str, Any]] = None
    ) -> AssetDescriptor:
        """
        Continue an interrupted upload: only the chunks the server is missing
        are sent, then the session is finalized with the saved metadata.
        """
        options = options or self.options
        token = self._begin(options)
        self.active_session_id = session_id

        async def operation() -> AssetDescriptor:
            async with self._api(credential, options) as api:
                self._set_state(UploaderState.INITIALIZING)
                try:
                    status = await self._policy(options).run(
                        lambda: api.get_status(session_id),
                        label=f"Status {session_id}",
                        token=token
                    )
                except ExhaustedRetries as e:
                    raise NetworkFailure(
                        f"Could not read status of session {session_id}: {e}",
                        getattr(e.last_error, "status_code", None)
                    ) from e

                if status.status == "completed" or not status.missing_chunks:
                    if status.status == "completed":
                        self.store.remove(session_id)
                    raise AlreadyComplete(session_id)

                if source.size != status.total_size:
                    raise ValidationFailed(
                        f"{source.name} is {source.size} bytes but session {session_id} "
                        f"expects {status.total_size}"
                    )

                saved = self.store.load(session_id)
                resume_metadata = metadata
                if resume_metadata is None:
                    if saved is None:
                        raise ValidationFailed(f"No saved metadata for session {session_id}")
                    resume_metadata = saved.metadata
                if saved is None:
                    self.store.save(SavedUploadSession(
                        session_id=session_id,
                        file_name=source.name,
                        file_size=source.size,
                        metadata=resume_metadata
                    ))

                logger.info(
                    f"🔁 Resuming {session_id}: {status.uploaded_chunks}/{status.total_chunks} "
                    f"chunks already on the server"
                )
                plan = ChunkPlan(status.total_size, status.chunk_size)
                self._set_state(UploaderState.UPLOADING)
                await self._send_chunks(api, source, session_id, plan, status.missing_chunks, token)
                return await self._complete(api, session_id, dict(resume_metadata), token)

        return await self._run(operation)

    async def cancel(self, session_id: str, credential: str) -> None:
        """Abort the session locally and on the server. Safe to call repeatedly."""
        if self._token is not None and self.active_session_id == session_id:
            self._token.cancel("Upload cancelled")

        async with self._api(credential, self._options) as api:
            existed = await api.cancel(session_id)
        self.store.remove(session_id)
        logger.info(f"🛑 Cancelled upload session {session_id} (server record existed: {existed})")

    def pause(self) -> None:
        """In-flight chunks finish; no new chunk starts until unpause()"""
        if self.state != UploaderState.UPLOADING:
            return
        self._unpaused.clear()
        self._set_state(UploaderState.PAUSED)

    def unpause(self) -> None:
        if self.state != UploaderState.PAUSED:
            return
        self._unpaused.set()
        self._set_state(UploaderState.UPLOADING)

    def saved_sessions(self) -> list[SavedUploadSession]:
        return self.store.list_all()
