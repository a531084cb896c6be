from fastapi import APIRouter, Request

from media_fetcher.config.settings import config
from media_fetcher.core.state import state
from media_fetcher.services.capabilities import CapabilityProber

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint"""
    return {
        "status": "running",
        "service": config.api.title,
        "version": config.api.version,
        "ytdlp_version": state.ytdlp_version,
        "ffmpeg_version": state.ffmpeg_version,
        "redis_enabled": state.redis is not None
    }


@router.get("/health")
async def health_check():
    """Lightweight health check"""
    redis_status = "disabled"
    if state.redis:
        try:
            await state.redis.ping()
            redis_status = "connected"
        except Exception:
            redis_status = "disconnected"

    return {
        "status": "ok",
        "redis": redis_status
    }


@router.get("/health/tools")
async def health_tools(request: Request):
    """Probe yt-dlp and ffmpeg now"""
    snapshot = await CapabilityProber(context=request).probe()
    return {
        "status": "ok" if snapshot.extraction_tool else "degraded",
        "yt_dlp": snapshot.extraction_tool,
        "ffmpeg": snapshot.merge_tool,
        "ytdlp_version": snapshot.extraction_tool_version,
        "ffmpeg_version": snapshot.merge_tool_version
    }
