from fastapi import HTTPException, Request

from media_fetcher.config.settings import config
from media_fetcher.core.logging import log_warning
from media_fetcher.infra.redis import get_redis

# Fixed window: the first hit in a window starts its expiry
RATE_LIMIT_SCRIPT = """
local hits = redis.call('INCR', KEYS[1])
if hits == 1 then
    redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
end
if hits > tonumber(ARGV[1]) then
    return {0, redis.call('TTL', KEYS[1])}
end
return {1, 0}
"""


class RedisRateLimiter:
    """Per client and path request limiter, a no-op without Redis"""

    async def __call__(self, request: Request):
        if not config.rate_limit.enabled:
            return True

        redis = get_redis()
        if not redis:
            return True

        client_ip = request.client.host if request.client else "unknown"
        key = f"rate:{client_ip}:{request.url.path}"

        try:
            allowed, ttl = await redis.eval(
                RATE_LIMIT_SCRIPT,
                1,
                key,
                config.rate_limit.max_requests,
                config.rate_limit.window_seconds
            )
        except Exception as e:
            log_warning(request, f"Rate limiter unavailable: {e}")
            return True

        if not allowed:
            raise HTTPException(
                status_code=429,
                detail=f"Too many requests, retry in {ttl} seconds",
                headers={"Retry-After": str(ttl)}
            )
        return True


rate_limiter = RedisRateLimiter()
