"""
Fixed-window rate limiting on Redis.

Callers are identified by the JWT subject when authenticated, otherwise by
client IP. Configured through:
    - RATE_LIMIT_ENABLED: bool (default: True)
    - RATE_LIMIT_REQUESTS: int (default: 60)
    - RATE_LIMIT_WINDOW_SECONDS: int (default: 60)

Usage:
    @router.post("/login", dependencies=[Depends(rate_limit_auth)])
    async def login(...):
        ...
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lms.core.config import get_settings
from lms.core.security import decode_token
from lms.db.redis import get_redis_client

logger = logging.getLogger(__name__)
settings = get_settings()
security = HTTPBearer(auto_error=False)


class RateLimiter:
    """
    Rate limit dependency.

    Args:
        requests: Allowed requests per window (default: config)
        window: Window length in seconds (default: config)
        key_prefix: Redis key prefix
    """

    def __init__(
        self,
        requests: Optional[int] = None,
        window: Optional[int] = None,
        key_prefix: str = "rate_limit",
    ):
        self.requests = requests or settings.RATE_LIMIT_REQUESTS
        self.window = window or settings.RATE_LIMIT_WINDOW_SECONDS
        self.key_prefix = key_prefix

    async def __call__(
        self,
        request: Request,
        credentials: Annotated[
            Optional[HTTPAuthorizationCredentials], Depends(security)
        ] = None,
    ) -> None:
        """
        Count the request and reject it once the window is exhausted.

        Raises:
            HTTPException 429: Limit exceeded
        """
        if not settings.RATE_LIMIT_ENABLED:
            return

        client = get_redis_client()
        # Fail-open without Redis
        if client is None:
            return

        identifier = self._get_identifier(request, credentials)
        key = f"{self.key_prefix}:{identifier}"

        try:
            current = await client.incr(key)
            if current == 1:
                await client.expire(key, self.window)

            if current > self.requests:
                ttl = await client.ttl(key)
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=f"Rate limit exceeded. Try again in {ttl} seconds.",
                    headers={"Retry-After": str(ttl)},
                )
        except HTTPException:
            raise
        except Exception as e:
            logger.warning(f"Rate limit check skipped: {e}")

    def _get_identifier(
        self,
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials],
    ) -> str:
        """
        Identify the caller.

        Priority:
            1. JWT subject
            2. First X-Forwarded-For address
            3. Client IP
        """
        if credentials:
            payload = decode_token(credentials.credentials)
            if payload and "sub" in payload:
                return f"user:{payload['sub']}"

        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"

        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"


rate_limit_default = RateLimiter()
rate_limit_strict = RateLimiter(requests=30, window=60)
rate_limit_auth = RateLimiter(requests=10, window=60)
