"""
Uploader error taxonomy.

Chunk-level transient failures (``retryable=True``) are retried locally by
the retry policy; everything else is surfaced to the caller.
"""
from typing import Optional


class UploadError(Exception):
    """Base class for uploader failures"""
    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationFailed(UploadError):
    """Input rejected before or by the server (empty file, too large, bad request)"""


class NetworkFailure(UploadError):
    """Transport error, timeout, or a transient server response"""
    retryable = True


class SessionExpired(UploadError):
    """Server no longer knows the session (expired, cancelled, or never existed)"""


NotFound = SessionExpired


class InvalidChunk(UploadError):
    """Server rejected a chunk as malformed; retrying the same bytes will not help"""


class Unauthorized(UploadError):
    """Credential missing or rejected"""


class Cancelled(UploadError):
    """The upload was cancelled by the caller"""

    def __init__(self, reason: str = "Upload cancelled"):
        super().__init__(reason)


class ExhaustedRetries(UploadError):
    """An operation kept failing after every allowed retry"""

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        super().__init__(f"{label} failed after {attempts} attempt(s): {last_error}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error


class ChunkUploadFailed(ExhaustedRetries):
    def __init__(self, index: int, attempts: int, last_error: BaseException):
        super().__init__(f"Chunk {index}", attempts, last_error)
        self.index = index


class InitFailed(UploadError):
    """Session could not be created"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, getattr(cause, "status_code", None))
        self.cause = cause


class CompleteFailed(UploadError):
    """Finalization failed; the local session record is kept for resume"""

    def __init__(self, message: str, session_id: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, status_code)
        self.session_id = session_id


class Incomplete(CompleteFailed):
    """Completion requested while chunks are still missing on the server"""

    def __init__(self, message: str, missing_chunks: list[int], session_id: Optional[str] = None):
        super().__init__(message, session_id=session_id, status_code=409)
        self.missing_chunks = missing_chunks


class AlreadyComplete(UploadError):
    """Resume requested for a session whose chunks are all on the server"""

    def __init__(self, session_id: str):
        super().__init__(f"Upload session {session_id} already has every chunk")
        self.session_id = session_id


class SessionConflict(UploadError):
    """Session is not in a state that accepts the request (e.g. already completed)"""
