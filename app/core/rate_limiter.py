"""
Redis-based rate limiting for verification endpoints.

Sits in front of the database-backed resend throttle in app.core.verification
and caps raw request volume per user. Fails open when Redis is unavailable.
"""

import logging
import redis
from fastapi import HTTPException, status
from app.core.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window request counter stored in Redis.

    Each key is created with a TTL on first use and incremented after that.
    """

    def __init__(self):
        """Initialize Redis connection"""
        self.redis_client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2
        )

    def check_rate_limit(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
        error_message: str = "Rate limit exceeded"
    ) -> None:
        """
        Check if a request is within rate limits.

        Args:
            key: Unique identifier for this rate limit (e.g., "verify_code:user123")
            max_requests: Maximum number of requests allowed
            window_seconds: Time window in seconds
            error_message: Custom error message if rate limit exceeded

        Raises:
            HTTPException: 429 Too Many Requests if rate limit exceeded
        """
        try:
            current_count = self.redis_client.get(key)

            if current_count is None:
                self.redis_client.setex(key, window_seconds, 1)
                return

            if int(current_count) >= max_requests:
                ttl = self.redis_client.ttl(key)
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=f"{error_message}. Try again in {ttl} seconds."
                )
            self.redis_client.incr(key)

        except redis.RedisError as e:
            # Fail open: Redis outages must not lock users out
            logger.warning(f"Redis rate limiter error for {key}: {str(e)}")


# Singleton instance
rate_limiter = RateLimiter()


def check_send_code_limit(user_id: str) -> None:
    """
    Rate limit for code send requests.

    Limit: 10 requests per 10 minutes per user. The progressive resend
    delays are enforced separately against the database.
    """
    rate_limiter.check_rate_limit(
        key=f"send_code:{user_id}",
        max_requests=10,
        window_seconds=600,
        error_message="Too many code requests. Please wait before requesting another code"
    )


def check_verify_code_limit(user_id: str) -> None:
    """
    Rate limit for code verification attempts.

    Limit: 10 attempts per 10 minutes per user.
    """
    rate_limiter.check_rate_limit(
        key=f"verify_code:{user_id}",
        max_requests=10,
        window_seconds=600,
        error_message="Too many verification attempts. Please wait before trying again"
    )
