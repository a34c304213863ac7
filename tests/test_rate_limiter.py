"""
Tests for the Redis request counter in front of the verification endpoints.
"""

from unittest.mock import MagicMock

import pytest
import redis
from fastapi import HTTPException

from app.core.rate_limiter import RateLimiter


@pytest.fixture
def limiter():
    limiter = RateLimiter()
    limiter.redis_client = MagicMock()
    return limiter


class TestRateLimiter:
    """RateLimiter.check_rate_limit"""

    def test_first_request_opens_window(self, limiter):
        limiter.redis_client.get.return_value = None

        limiter.check_rate_limit("send_code:u1", max_requests=10, window_seconds=600)

        limiter.redis_client.setex.assert_called_once_with("send_code:u1", 600, 1)

    def test_requests_under_limit_are_counted(self, limiter):
        limiter.redis_client.get.return_value = "3"

        limiter.check_rate_limit("send_code:u1", max_requests=10, window_seconds=600)

        limiter.redis_client.incr.assert_called_once_with("send_code:u1")

    def test_limit_reached_is_429(self, limiter):
        limiter.redis_client.get.return_value = "10"
        limiter.redis_client.ttl.return_value = 42

        with pytest.raises(HTTPException) as exc_info:
            limiter.check_rate_limit("verify_code:u1", max_requests=10, window_seconds=600, error_message="Slow down")

        assert exc_info.value.status_code == 429
        assert exc_info.value.detail == "Slow down. Try again in 42 seconds."
        limiter.redis_client.incr.assert_not_called()

    def test_redis_outage_fails_open(self, limiter):
        limiter.redis_client.get.side_effect = redis.ConnectionError("down")

        limiter.check_rate_limit("send_code:u1", max_requests=10, window_seconds=600)
