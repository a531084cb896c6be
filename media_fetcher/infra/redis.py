from typing import Optional

import redis.asyncio as aioredis
from rich.console import Console

from media_fetcher.config.settings import config
from media_fetcher.core.state import state

console = Console()

ACTIVE_COUNTER_KEY = "active_acquisitions_count"
ACTIVE_SLOT_PATTERN = "active_acquisition:*"


async def init_redis() -> Optional[aioredis.Redis]:
    """Connect to Redis when configured, rebuilding the active slot counter"""
    if not config.redis.url:
        console.print("[dim]Redis not configured, request limits disabled[/dim]")
        return None

    try:
        redis_client = aioredis.from_url(
            config.redis.url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=config.redis.socket_timeout
        )
        await redis_client.ping()

        # Counter is rebuilt from the slots still alive
        live_slots = 0
        async for _ in redis_client.scan_iter(match=ACTIVE_SLOT_PATTERN, count=100):
            live_slots += 1
        await redis_client.set(ACTIVE_COUNTER_KEY, live_slots)

        if live_slots:
            console.print(f"[yellow]✓ Redis connected (recovered {live_slots} active acquisitions)[/yellow]")
        else:
            console.print("[green]✓ Redis connected[/green]")
        return redis_client

    except Exception as e:
        console.print(f"[yellow]⚠ Redis connection failed: {str(e)}[/yellow]")
        return None


def get_redis() -> Optional[aioredis.Redis]:
    """Get Redis client from state"""
    return state.redis


async def close_redis() -> None:
    """Close Redis connection"""
    if state.redis:
        await state.redis.aclose()
        state.redis = None
        console.print("[dim]✓ Redis connection closed[/dim]")
