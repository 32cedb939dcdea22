"""
Errors raised by the session manager; the API layer maps them to HTTP
"""
from typing import Optional


class UploadEngineError(Exception):
    """Base class for session manager failures"""
    status_code = 500
    code = "UPLOAD_ERROR"


class SessionNotFound(UploadEngineError):
    """Session never existed, was cancelled, or expired"""
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, session_id: str):
        super().__init__(f"Upload session {session_id} not found")
        self.session_id = session_id


class UploadValidationError(UploadEngineError):
    status_code = 400
    code = "VALIDATION_FAILED"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class InvalidChunk(UploadEngineError):
    """Chunk index out of range or byte length wrong for that index"""
    status_code = 400
    code = "INVALID_CHUNK"

    def __init__(self, message: str, chunk_index: int):
        super().__init__(message)
        self.chunk_index = chunk_index


class UploadIncomplete(UploadEngineError):
    status_code = 409
    code = "INCOMPLETE"

    def __init__(self, session_id: str, missing_chunks: list[int]):
        preview = missing_chunks[:10]
        suffix = "..." if len(missing_chunks) > len(preview) else ""
        super().__init__(
            f"Upload session {session_id} is missing {len(missing_chunks)} chunk(s): {preview}{suffix}"
        )
        self.session_id = session_id
        self.missing_chunks = missing_chunks


class SessionStateError(UploadEngineError):
    """Operation not allowed in the session's current status"""
    status_code = 409
    code = "INVALID_STATE"

    def __init__(self, session_id: str, status: str):
        super().__init__(f"Upload session {session_id} is {status}")
        self.session_id = session_id
        self.status = status
