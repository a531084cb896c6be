import asyncio
from contextlib import suppress
from typing import Awaitable, TypeVar

from fastapi import APIRouter, Depends, Request

from media_fetcher.core.errors import BlockedUrl, RequestCancelled, ValidationError
from media_fetcher.core.logging import log_info, log_warning
from media_fetcher.core.security import SecurityValidator, UrlValidationResult
from media_fetcher.infra.concurrency import concurrency_limiter
from media_fetcher.infra.rate_limit import rate_limiter
from media_fetcher.models.internal import AcquisitionRequest
from media_fetcher.models.request import MediaDownloadRequest
from media_fetcher.models.response import MediaDownloadResponse
from media_fetcher.services.acquisition import AcquisitionOrchestrator

DISCONNECT_POLL_SECONDS = 1.0

T = TypeVar("T")

router = APIRouter()


def get_orchestrator(request: Request) -> AcquisitionOrchestrator:
    return AcquisitionOrchestrator(context=request)


async def run_until_disconnected(request: Request, work: Awaitable[T]) -> T:
    """Await work, cancelling it (and its subprocess) if the client goes away"""
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                return task.result()
            if await request.is_disconnected():
                log_warning(request, "Client disconnected, cancelling acquisition")
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
                raise RequestCancelled("Request cancelled by client")
    finally:
        if not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task


async def acquisition_intent(media_request: MediaDownloadRequest) -> AcquisitionRequest:
    return media_request.to_intent()


# Dependencies resolve in parameter order: the URL is checked before the limiters touch redis
@router.post(
    "/download",
    response_model=MediaDownloadResponse,
    response_model_exclude_none=True
)
async def download_media(
    request: Request,
    intent: AcquisitionRequest = Depends(acquisition_intent),
    _rate_limit: bool = Depends(rate_limiter),
    _slot: None = Depends(concurrency_limiter),
    orchestrator: AcquisitionOrchestrator = Depends(get_orchestrator)
):
    """Acquire a media item and publish it under /media"""
    validation_result = await SecurityValidator.validate_url(intent.url)
    if validation_result == UrlValidationResult.BLOCKED:
        raise BlockedUrl("URL resolves to a forbidden address")
    if validation_result == UrlValidationResult.INVALID:
        raise ValidationError("Invalid URL format")

    log_info(request, f"New media download request (yt-dlp={intent.use_extraction_tool}, images={intent.download_images_only})")
    artifact = await run_until_disconnected(request, orchestrator.acquire(intent))
    return MediaDownloadResponse.from_artifact(artifact)
