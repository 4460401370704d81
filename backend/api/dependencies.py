"""
API Dependencies
Common dependencies for API routes
"""

from typing import Callable, Optional

from fastapi import Depends, Header, Request, Response
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.core.exceptions import AuthenticationException, RateLimitException
from backend.core.logging import get_logger
from backend.core.rate_limit import get_rate_limiter
from backend.core.security import verify_access_token
from backend.db.session import get_db_session
from backend.monitoring.metrics import rate_limit_rejections_total
from backend.services.sharing import SharingService

logger = get_logger(__name__)


async def get_current_user_id(
    authorization: Optional[str] = Header(None),
) -> str:
    """
    Dependency to get the caller's user ID from a bearer token

    Tokens are issued by the identity provider; only the signature,
    expiry and type are checked here.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        Subject (user ID) of the token

    Raises:
        AuthenticationException: If the header is missing or the token is invalid
    """
    # Extract token
    if not authorization:
        raise AuthenticationException(message="Missing authorization header")

    if not authorization.startswith("Bearer "):
        raise AuthenticationException(message="Invalid authorization header format")

    token = authorization.split(" ", 1)[1]

    # Verify token
    payload = verify_access_token(token)
    return str(payload["sub"])


async def get_current_user_id_optional(
    authorization: Optional[str] = Header(None),
) -> Optional[str]:
    """
    Optional variant of get_current_user_id
    Returns None when no Authorization header is sent; a malformed or
    invalid token is still rejected
    """
    if not authorization:
        return None
    return await get_current_user_id(authorization)


async def get_sharing_service(
    db: AsyncSession = Depends(get_db_session),
) -> SharingService:
    """Sharing service bound to the request's database session"""
    return SharingService(db)


def rate_limit(scope: str, limit: Callable[[], int]):
    """
    Build a dependency that counts the request against a Redis window

    Args:
        scope: Counter namespace, one per endpoint family
        limit: Callable returning the per-minute limit (read at request time)
    """

    async def dependency(request: Request, response: Response) -> None:
        limiter = get_rate_limiter()
        if limiter is None:
            return

        client_ip = request.client.host if request.client else "unknown"
        max_requests = limit()

        try:
            result = await limiter.hit(scope, client_ip, max_requests)
        except RedisError as e:
            # Counter store down: let the request through
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return

        if not result.allowed:
            rate_limit_rejections_total.labels(scope=scope).inc()
            raise RateLimitException(
                message=f"Rate limit exceeded: {max_requests} requests per minute",
                retry_after=result.retry_after,
            )

        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)

    return dependency
