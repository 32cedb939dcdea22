"""
Async HTTP client for the upload API
"""
import json
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..schemas import (
    AssetDescriptor,
    CancelUploadResponse,
    ChunkUploadResponse,
    CompleteUploadResponse,
    InitUploadResponse,
    UploadStatusResponse,
)
from .errors import (
    Incomplete,
    InvalidChunk,
    NetworkFailure,
    SessionConflict,
    SessionExpired,
    Unauthorized,
    UploadError,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 429}


def _error_detail(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase, {}
    if not isinstance(body, dict):
        return str(body), {}

    detail = body.get("detail") or body.get("message") or response.reason_phrase
    if not isinstance(detail, str):
        detail = json.dumps(detail)
    return detail, body


def raise_for_upload_status(response: httpx.Response, operation: str) -> None:
    """Translate a non-2xx response into the uploader error taxonomy"""
    if response.is_success:
        return

    code = response.status_code
    detail, body = _error_detail(response)
    message = f"{operation} failed ({code}): {detail}"

    if code in (401, 403):
        raise Unauthorized(message, code)
    if code == 404:
        raise SessionExpired(message, code)
    if code in (400, 413, 422):
        if operation == "chunk":
            raise InvalidChunk(message, code)
        raise ValidationFailed(message, code)
    if code == 409:
        if operation == "complete" and body.get("error") == "INCOMPLETE":
            raise Incomplete(message, list(body.get("missingChunks", [])))
        raise SessionConflict(message, code)
    if code in TRANSIENT_STATUS_CODES or code >= 500:
        raise NetworkFailure(message, code)
    raise UploadError(message, code)


class UploadApiClient:
    """
    Thin wrapper over the upload endpoints.

    Control calls (init, status, complete, cancel) use ``control_timeout``;
    chunk and simple uploads carry file data and have no timeout.
    """

    def __init__(
        self,
        base_url: str,
        credential: str,
        http_client: Optional[httpx.AsyncClient] = None,
        control_timeout: float = 30.0
    ):
        self.base_url = base_url.rstrip("/")
        self.credential = credential
        self.control_timeout = control_timeout
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient()

    async def __aenter__(self) -> "UploadApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/upload{path}"

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.credential}"}

    async def _request(self, method: str, path: str, operation: str, timeout: Optional[float], **kwargs) -> httpx.Response:
        try:
            response = await self.http.request(
                method,
                self._url(path),
                headers=self._headers,
                timeout=timeout,
                **kwargs
            )
        except httpx.TransportError as e:
            raise NetworkFailure(f"{operation} request failed: {e!r}") from e

        raise_for_upload_status(response, operation)
        return response

    def _parse(self, model, response: httpx.Response, operation: str):
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise UploadError(f"Unexpected {operation} response: {e}", response.status_code) from e

    async def init_session(
        self,
        file_name: str,
        file_size: int,
        content_type: str,
        chunk_size: Optional[int] = None
    ) -> InitUploadResponse:
        payload = {"filename": file_name, "fileSize": file_size, "contentType": content_type}
        if chunk_size:
            payload["chunkSize"] = chunk_size
        response = await self._request("POST", "/init", "init", self.control_timeout, json=payload)
        return self._parse(InitUploadResponse, response, "init")

    async def put_chunk(self, session_id: str, index: int, data: bytes, total_chunks: int) -> ChunkUploadResponse:
        response = await self._request(
            "POST",
            f"/chunk/{session_id}",
            "chunk",
            None,
            files={"chunk": (f"chunk_{index}", data, "application/octet-stream")},
            data={"chunkIndex": str(index), "totalChunks": str(total_chunks)}
        )
        return self._parse(ChunkUploadResponse, response, "chunk")

    async def get_status(self, session_id: str) -> UploadStatusResponse:
        response = await self._request("GET", f"/status/{session_id}", "status", self.control_timeout)
        return self._parse(UploadStatusResponse, response, "status")

    async def complete(self, session_id: str, metadata: dict[str, Any]) -> CompleteUploadResponse:
        response = await self._request(
            "POST",
            f"/complete/{session_id}",
            "complete",
            self.control_timeout,
            json=metadata
        )
        return self._parse(CompleteUploadResponse, response, "complete")

    async def cancel(self, session_id: str) -> bool:
        """Delete the server session. Returns False if it was already gone."""
        try:
            response = await self._request("DELETE", f"/cancel/{session_id}", "cancel", self.control_timeout)
        except SessionExpired:
            return False
        return self._parse(CancelUploadResponse, response, "cancel").existed

    async def simple_upload(
        self,
        file_name: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, Any]
    ) -> CompleteUploadResponse:
        response = await self._request(
            "POST",
            "/simple",
            "simple",
            None,
            files={"file": (file_name, data, content_type)},
            data={"metadata": json.dumps(metadata)}
        )
        return self._parse(CompleteUploadResponse, response, "simple")

    async def get_asset(self, asset_id: str) -> AssetDescriptor:
        response = await self._request("GET", f"/assets/{asset_id}", "asset", self.control_timeout)
        return self._parse(AssetDescriptor, response, "asset")
