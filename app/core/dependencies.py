"""Shared dependencies for Learning Progress Service."""

from typing import Optional
import httpx
from aiocache import Cache
import structlog
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import settings
from app.core.catalog import CatalogClient, HttpCatalogClient

logger = structlog.get_logger()

# Global instances
_cache: Optional[Cache] = None
_http_client: Optional[httpx.AsyncClient] = None

# Security
security = HTTPBearer(auto_error=False)

PRIVILEGED_ROLES = ("admin", "system")


async def get_cache() -> Cache:
    """Get Redis cache instance, falling back to memory."""
    global _cache

    if _cache is None:
        try:
            _cache = Cache.from_url(settings.REDIS_URL)
            await _cache.exists("health_check")  # Test connection
            logger.info("Redis cache connection established")
        except Exception as e:
            logger.warning("Redis cache not available, using memory cache", error=str(e))
            _cache = Cache(Cache.MEMORY)

    return _cache


async def get_http_client() -> httpx.AsyncClient:
    """Get HTTP client for service communication."""
    global _http_client

    if _http_client is None:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS),
            headers={
                "Content-Type": "application/json",
                "User-Agent": f"{settings.SERVICE_NAME}/{settings.APP_VERSION}"
            }
        )

    return _http_client


async def close_http_client() -> None:
    global _http_client

    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


async def get_catalog() -> CatalogClient:
    """Catalog collaborator used to resolve courses and tracks."""
    return HttpCatalogClient(
        client=await get_http_client(),
        cache=await get_cache(),
        base_url=settings.CONTENT_SERVICE_URL,
    )


def _credentials_error(detail: str = "Invalid authentication credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """Get current principal from JWT token."""
    if credentials is None:
        raise _credentials_error("Access token required")

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise _credentials_error()

    user_id = payload.get("sub")
    if user_id is None:
        raise _credentials_error()

    return {"user_id": str(user_id), "role": payload.get("role", "student")}


async def require_privileged_user(current_user: dict = Depends(get_current_user)) -> dict:
    """Allow only admin or system principals."""
    if current_user.get("role") not in PRIVILEGED_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")
    return current_user
