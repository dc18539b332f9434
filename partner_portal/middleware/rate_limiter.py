from fastapi import Request, status
from fastapi.responses import JSONResponse
from datetime import datetime
from typing import Dict, List, Optional
import logging
import time

from ..config.settings import settings

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


class RateLimiter:
    """Sliding one-minute window of request timestamps per client"""

    def __init__(self, limit_per_minute: Optional[int] = None):
        self.limit_per_minute = limit_per_minute or settings.RATE_LIMIT_PER_MINUTE
        self._requests: Dict[str, List[float]] = {}

    def _clean_old_requests(self, client_key: str, now: float):
        if client_key in self._requests:
            self._requests[client_key] = [
                req_time for req_time in self._requests[client_key]
                if req_time > now - WINDOW_SECONDS
            ]

    def allow(self, client_key: str, now: Optional[float] = None) -> bool:
        """Record a request and report whether it is within the limit"""
        now = now if now is not None else time.time()
        self._clean_old_requests(client_key, now)

        history = self._requests.setdefault(client_key, [])
        if len(history) >= self.limit_per_minute:
            return False
        history.append(now)
        return True

    async def check_rate_limit(self, request: Request, key: str = None) -> Optional[JSONResponse]:
        """
        Check if request should be rate limited

        Args:
            request: FastAPI request object
            key: Optional custom key for rate limiting (defaults to IP address)

        Returns:
            A 429 response when the limit is exceeded, otherwise None
        """
        client_key = key or (request.client.host if request.client else "unknown")
        if self.allow(client_key):
            return None

        logger.warning(f"Rate limit exceeded for {client_key} on {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "timestamp": datetime.utcnow().isoformat(),
                "path": str(request.url.path),
                "error": "Too many requests",
                "status_code": status.HTTP_429_TOO_MANY_REQUESTS,
                "error_code": "RATE_LIMITED",
                "retry_after": f"{WINDOW_SECONDS} seconds"
            },
            headers={"Retry-After": str(WINDOW_SECONDS)}
        )


# Global rate limiter instance
rate_limiter = RateLimiter()
