import uuid
from typing import AsyncIterator, Optional

from fastapi import HTTPException, Request
from redis.asyncio import Redis

from media_fetcher.config.settings import config
from media_fetcher.core.logging import log_warning
from media_fetcher.infra.redis import ACTIVE_COUNTER_KEY, get_redis

ACQUIRE_SLOT_SCRIPT = """
local active = tonumber(redis.call('GET', KEYS[1]) or "0")
if active >= tonumber(ARGV[1]) then
    return 0
end
redis.call('INCR', KEYS[1])
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[3]))
redis.call('SETEX', KEYS[2], tonumber(ARGV[2]), "1")
return 1
"""


class ConcurrencyLimiter:
    """
    Bounds concurrent acquisitions (each holds yt-dlp/ffmpeg processes).
    Yield dependency: the slot is released once the request is done,
    including when body validation fails after the slot was taken.
    """

    async def _acquire(self, redis: Redis, request: Request) -> Optional[str]:
        slot_key = f"active_acquisition:{uuid.uuid4()}"
        slot_ttl = config.acquisition.slot_ttl

        try:
            allowed = await redis.eval(
                ACQUIRE_SLOT_SCRIPT,
                2,
                ACTIVE_COUNTER_KEY,
                slot_key,
                config.acquisition.max_concurrent,
                slot_ttl,
                slot_ttl * 2
            )
        except Exception as e:
            log_warning(request, f"Concurrency limiter unavailable: {e}")
            return None

        if not allowed:
            raise HTTPException(
                status_code=503,
                detail=f"Server busy, {config.acquisition.max_concurrent} acquisitions already running"
            )
        return slot_key

    async def __call__(self, request: Request) -> AsyncIterator[None]:
        redis = get_redis()
        slot_key = await self._acquire(redis, request) if redis else None
        try:
            yield
        finally:
            if slot_key:
                await release_acquisition_slot(request, slot_key)


async def release_acquisition_slot(request: Request, slot_key: str) -> None:
    redis = get_redis()
    if not redis:
        return
    try:
        if await redis.delete(slot_key):
            await redis.decr(ACTIVE_COUNTER_KEY)
    except Exception as e:
        log_warning(request, f"Could not release acquisition slot: {e}")


concurrency_limiter = ConcurrencyLimiter()
