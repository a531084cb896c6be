from typing import Dict, Optional, Tuple

import httpx

from media_fetcher.config.settings import config
from media_fetcher.core.errors import DirectFetchFailure
from media_fetcher.core.logging import LogContext, log_debug, log_info

CONTENT_TYPE_EXTENSIONS: Dict[str, str] = {
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/webm": ".webm",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def infer_extension(content_type: Optional[str]) -> str:
    """File extension for a Content-Type header value"""
    if not content_type:
        return ".bin"

    mime = content_type.split(";", 1)[0].strip().lower()
    if mime in CONTENT_TYPE_EXTENSIONS:
        return CONTENT_TYPE_EXTENSIONS[mime]
    if mime.startswith("video/"):
        return ".mp4"
    if mime.startswith("image/"):
        return ".jpg"
    return ".bin"


def is_video_content(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.strip().lower().startswith("video")


# Reuse client for keep-alive
client = httpx.AsyncClient(follow_redirects=True, timeout=config.direct.timeout)


async def close_client() -> None:
    await client.aclose()


class DirectFetcher:
    """Plain HTTP GET used when yt-dlp is unavailable or gave up"""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, context: LogContext = None):
        self.client = http_client or client
        self.context = context

    @staticmethod
    def headers_for(url: str) -> Dict[str, str]:
        # Some hosts refuse requests without a Referer
        return {
            "User-Agent": config.direct.user_agent,
            "Accept": "*/*",
            "Referer": url,
        }

    async def fetch(self, url: str) -> Tuple[bytes, Optional[str]]:
        """Returns (body, content type)"""
        log_info(self.context, "Attempting direct download")
        limit = config.direct.max_bytes

        try:
            async with self.client.stream("GET", url, headers=self.headers_for(url)) as resp:
                content_type = resp.headers.get("content-type")
                log_debug(self.context, f"Response status: {resp.status_code}, Content-Type: {content_type}")

                if not resp.is_success:
                    raise DirectFetchFailure(
                        f"Failed to download: {resp.status_code} {resp.reason_phrase}",
                        upstream_status=resp.status_code
                    )

                body = bytearray()
                async for chunk in resp.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > limit:
                        raise DirectFetchFailure(f"Response exceeds {limit} bytes")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DirectFetchFailure(f"Request failed: {e.__class__.__name__}: {e}")

        log_info(self.context, f"Direct download successful. Size: {len(body)} bytes")
        return bytes(body), content_type
