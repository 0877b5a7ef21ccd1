"""
FastAPI dependencies. Injected into route handlers.
"""

from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .auth import AuthenticatedUser, get_current_user
from .database import get_db as _get_db, get_session_factory as _get_session_factory
from ..orchestrator.context import ChatContext, resolve_resource_identifier


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yields an async DB session per request."""
    async for session in _get_db():
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Factory for sessions that outlive or run beside the request session."""
    return _get_session_factory()


async def get_user(
    authorization: str = Header(default=""),
) -> AuthenticatedUser:
    """
    Resolve authenticated user from Authorization header.
    Returns dev user if FF_USE_AUTH=false.
    """
    try:
        return await get_current_user(authorization)
    except PermissionError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_tenant(
    user: AuthenticatedUser = Depends(get_user),
) -> AuthenticatedUser:
    """Same as get_user, but enforces tenant_id is present."""
    if not user.tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tenant_id associated with this user",
        )
    return user


async def get_chat_context(
    user: AuthenticatedUser = Depends(require_tenant),
    rgt: Optional[str] = Query(default=None),
    rgi: Optional[str] = Query(default=None),
    rt: Optional[str] = Query(default=None),
    ri: Optional[str] = Query(default=None),
    conversation_id: Optional[str] = Query(default=None),
) -> ChatContext:
    """Chat context from identity plus the rgt/rgi/rt/ri resource query parameters."""
    try:
        identifier = resolve_resource_identifier(rgt, rgi, rt, ri)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unknown or missing resource identifier",
        )
    return ChatContext.from_identifier(user.user_id, user.tenant_id, identifier, conversation_id)
