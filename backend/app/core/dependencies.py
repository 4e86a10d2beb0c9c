"""
FastAPI dependencies for the ledger API.

Resolves the authenticated actor from the bearer token and builds the
ConsistencyGuard used by every write endpoint.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import async_sessionmaker
from backend.app.core.jwt import decode_access_token
from backend.app.db.session import get_session_factory
from backend.app.domain.ledger.consistency_guard import ConsistencyGuard

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> str:
    """
    FastAPI dependency for JWT authentication.

    Returns:
        Actor identifier (user_id claim, falling back to sub)

    Raises:
        HTTPException: 401 if the token is invalid or carries no identity
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    actor = payload.get("user_id") or payload.get("sub")
    if not actor:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return str(actor)


def get_ledger_guard(
    session_factory: async_sessionmaker = Depends(get_session_factory)
) -> ConsistencyGuard:
    """FastAPI dependency returning a ConsistencyGuard bound to the app's sessions."""
    return ConsistencyGuard(session_factory)
