"""
FastAPI endpoints for resumable chunked uploads
"""
import json
import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.security import require_credential
from ..schemas import (
    AssetDescriptor,
    CancelUploadResponse,
    ChunkUploadResponse,
    CompleteUploadResponse,
    IncompleteUploadResponse,
    InitUploadRequest,
    InitUploadResponse,
    SessionListResponse,
    UploadStatusResponse,
)
from ..services import SessionManager, UploadEngineError, UploadIncomplete, describe_asset

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/upload",
    tags=["upload"],
    dependencies=[Depends(require_credential)]
)

UPLOAD_READ_BLOCK = 1024 * 1024


def get_manager(request: Request) -> SessionManager:
    return request.app.state.manager


Db = Annotated[AsyncSession, Depends(get_db)]
Manager = Annotated[SessionManager, Depends(get_manager)]


def _to_http(error: UploadEngineError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=str(error))


def _incomplete_response(error: UploadIncomplete) -> JSONResponse:
    body = IncompleteUploadResponse(message=str(error), missing_chunks=error.missing_chunks)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=body.model_dump(by_alias=True)
    )


@router.post("/init", response_model=InitUploadResponse)
async def init_upload(request: InitUploadRequest, db: Db, manager: Manager):
    """
    Open a resumable upload session.

    The server picks the chunk size; the client must split the file with
    the returned chunkSize and send totalChunks chunks.
    """
    logger.info(f"📤 POST /upload/init {request.filename} ({request.file_size} bytes)")
    try:
        session = await manager.init_session(
            db,
            file_name=request.filename,
            file_size=request.file_size,
            content_type=request.content_type,
            chunk_size=request.chunk_size
        )
    except UploadEngineError as e:
        raise _to_http(e)

    return InitUploadResponse(
        session_id=session.session_id,
        chunk_size=session.chunk_size,
        total_chunks=session.total_chunks
    )


@router.post("/chunk/{session_id}", response_model=ChunkUploadResponse)
async def upload_chunk(
    session_id: str,
    chunk: Annotated[UploadFile, File(description="Chunk bytes")],
    chunk_index: Annotated[int, Form(alias="chunkIndex")],
    db: Db,
    manager: Manager,
    total_chunks: Annotated[Optional[int], Form(alias="totalChunks")] = None
):
    """
    Upload one chunk.

    Idempotent: sending the same index twice overwrites the same byte range,
    so clients can retry after ambiguous network failures.
    """
    data = await chunk.read()
    try:
        uploaded = await manager.put_chunk(
            db,
            session_id,
            chunk_index,
            data,
            total_chunks=total_chunks
        )
    except UploadEngineError as e:
        logger.warning(f"⚠️ Chunk {chunk_index} rejected for session {session_id}: {e}")
        raise _to_http(e)

    return ChunkUploadResponse(
        success=True,
        message=f"Chunk {chunk_index} stored",
        chunk_index=chunk_index,
        uploaded_chunks=uploaded
    )


@router.get("/status/{session_id}", response_model=UploadStatusResponse)
async def get_upload_status(session_id: str, db: Db, manager: Manager):
    """Which chunks have arrived; clients resume from missingChunks"""
    try:
        return await manager.get_status(db, session_id)
    except UploadEngineError as e:
        raise _to_http(e)


@router.post(
    "/complete/{session_id}",
    response_model=CompleteUploadResponse,
    responses={status.HTTP_409_CONFLICT: {"model": IncompleteUploadResponse}}
)
async def complete_upload(
    session_id: str,
    db: Db,
    manager: Manager,
    metadata: Annotated[Optional[dict[str, Any]], Body()] = None
):
    """
    Assemble the staged chunks into the final asset.

    The request body is the caller's metadata, stored with the asset as-is.
    Repeating the call after success returns the same asset.
    """
    logger.info(f"🧩 POST /upload/complete/{session_id}")
    try:
        asset, already_completed = await manager.complete(db, session_id, metadata or {})
    except UploadIncomplete as e:
        return _incomplete_response(e)
    except UploadEngineError as e:
        raise _to_http(e)

    return CompleteUploadResponse(
        already_completed=already_completed,
        asset=describe_asset(asset)
    )


@router.delete("/cancel/{session_id}", response_model=CancelUploadResponse)
async def cancel_upload(session_id: str, db: Db, manager: Manager):
    """Drop the session and its staged bytes. Unknown sessions are not an error."""
    logger.info(f"🛑 DELETE /upload/cancel/{session_id}")
    existed = await manager.cancel(db, session_id)
    return CancelUploadResponse(session_id=session_id, existed=existed)


@router.post("/simple", response_model=CompleteUploadResponse, status_code=status.HTTP_201_CREATED)
async def simple_upload(
    file: Annotated[UploadFile, File(description="Whole file")],
    db: Db,
    manager: Manager,
    metadata: Annotated[str, Form(description="JSON object stored with the asset")] = "{}"
):
    """Single-request upload for small files"""
    logger.info(f"📤 POST /upload/simple {file.filename}")
    try:
        parsed_metadata = json.loads(metadata or "{}")
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="metadata must be a JSON object")
    if not isinstance(parsed_metadata, dict):
        raise HTTPException(status_code=400, detail="metadata must be a JSON object")

    async def file_stream():
        while block := await file.read(UPLOAD_READ_BLOCK):
            yield block

    try:
        asset = await manager.ingest_single(
            db,
            file_name=file.filename or "",
            content_type=file.content_type,
            content_stream=file_stream(),
            metadata=parsed_metadata
        )
    except UploadEngineError as e:
        raise _to_http(e)

    return CompleteUploadResponse(asset=describe_asset(asset))


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(db: Db, manager: Manager, status: Optional[str] = None):
    """List upload sessions, optionally filtered by status"""
    sessions = await manager.list_sessions(db, status=status)
    return SessionListResponse(total=len(sessions), sessions=sessions)


@router.get("/assets/{asset_id}", response_model=AssetDescriptor)
async def get_asset(asset_id: str, db: Db, manager: Manager):
    asset = await manager.get_asset(db, asset_id)
    if asset is None:
        raise HTTPException(status_code=404, detail="Asset not found")
    return describe_asset(asset)
