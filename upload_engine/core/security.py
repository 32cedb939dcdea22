"""
Bearer credential check for the upload API.

Token issuance lives with the external auth service; this module only
verifies that a request carries a credential the server accepts.
"""
import logging
import secrets
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def is_token_accepted(token: str, accepted: list[str]) -> bool:
    """Return True if ``token`` is allowed by the configured token list."""
    if not token:
        return False
    if not accepted:
        return True
    return any(secrets.compare_digest(token, candidate) for candidate in accepted)


async def require_credential(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)]
) -> str:
    """Dependency: reject requests without an accepted bearer token"""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer credential",
            headers={"WWW-Authenticate": "Bearer"},
        )

    settings = request.app.state.settings
    if not is_token_accepted(credentials.credentials, settings.API_TOKENS):
        logger.warning(f"🔒 Rejected credential for {request.method} {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid bearer credential",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return credentials.credentials
