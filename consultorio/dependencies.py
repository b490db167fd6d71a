"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from consultorio.core.redis_client import CacheManager, get_redis_client
from consultorio.core.security import decode_access_token
from consultorio.database import get_db
from consultorio.schemas.context import ActorContext, ActorRole

# Security
security = HTTPBearer()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_actor_context(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> ActorContext:
    """
    Build the acting identity from the bearer token and request metadata.

    The token's ``sub`` claim is the numeric user id issued by the identity
    provider and ``role`` one of patient, doctor, staff or admin.

    Raises:
        HTTPException: If the token is invalid, expired or malformed
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _credentials_error()

    subject = payload.get("sub")
    if subject is None:
        raise _credentials_error()

    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise _credentials_error("Invalid user ID format")

    try:
        role = ActorRole(payload.get("role", ActorRole.PATIENT.value))
    except ValueError:
        raise _credentials_error("Unknown role")

    user_agent = request.headers.get("user-agent")

    return ActorContext(
        user_id=user_id,
        role=role,
        request_id=getattr(request.state, "request_id", None),
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent[:500] if user_agent else None,
    )


def get_cache_manager() -> CacheManager:
    """Cache manager bound to the shared Redis client."""
    return CacheManager(get_redis_client())


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[ActorContext, Depends(get_actor_context)]
CacheManagerDep = Annotated[CacheManager, Depends(get_cache_manager)]
