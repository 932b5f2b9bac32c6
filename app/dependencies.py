"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.core.exceptions import NotAuthenticated
from app.core.redis_client import CacheManager, TableStatusCache, get_redis_client
from app.core.security import decode_access_token
from app.database import get_document_store
from app.schemas.auth import AuthUser
from app.services.table_service import TableService
from app.store import DocumentStore

# Security
security = HTTPBearer(auto_error=False)


def user_from_token(token: str | None) -> AuthUser | None:
    """
    Resolve an access token to the caller's identity.

    Args:
        token: Encoded access token

    Returns:
        The identity, or None if the token is missing or invalid
    """
    if not token:
        return None

    payload = decode_access_token(token)
    if payload is None:
        return None

    uid = payload.get("sub")
    if not uid or not isinstance(uid, str):
        return None

    return AuthUser(uid=uid, display_name=payload.get("name"), email=payload.get("email"))


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> AuthUser:
    """
    Extract and validate the caller from the bearer token.

    Raises:
        NotAuthenticated: If the token is missing, invalid or expired
    """
    user = user_from_token(credentials.credentials if credentials else None)
    if user is None:
        raise NotAuthenticated("Could not validate credentials")
    return user


def get_cache_manager() -> CacheManager:
    """Get a cache manager bound to the shared Redis client."""
    return CacheManager(get_redis_client())


def get_table_status_cache(
    cache_manager: Annotated[CacheManager, Depends(get_cache_manager)],
) -> TableStatusCache:
    """Get the per-user table status cache."""
    return TableStatusCache(cache_manager, ttl_seconds=settings.table_status_cache_ttl)


def get_table_service(
    store: Annotated[DocumentStore, Depends(get_document_store)],
    status_cache: Annotated[TableStatusCache, Depends(get_table_status_cache)],
) -> TableService:
    """Get the table lifecycle service."""
    return TableService(store, status_cache)


# Type aliases for dependency injection
Store = Annotated[DocumentStore, Depends(get_document_store)]
CacheManagerDep = Annotated[CacheManager, Depends(get_cache_manager)]
CurrentUser = Annotated[AuthUser, Depends(get_current_user)]
TableServiceDep = Annotated[TableService, Depends(get_table_service)]
