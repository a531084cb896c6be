import asyncio
import os
from typing import List, Optional

from media_fetcher.config.settings import config
from media_fetcher.core.errors import ImageExtractionFailure
from media_fetcher.core.logging import LogContext, log_info, log_warning
from media_fetcher.models.internal import StagedArtifact
from media_fetcher.services.extraction import summarize_tool_output
from media_fetcher.services.storage import ScratchArea
from media_fetcher.services.ytdlp import OutputLimitExceeded, SubprocessExecutor, YTDLPCommandBuilder


class ImagePostExtractor:
    """Capture the images of a post that carries no video"""

    def __init__(self, executor=SubprocessExecutor, context: LogContext = None):
        self.executor = executor
        self.context = context

    async def _attempt(self, cmd: List[str], scratch: ScratchArea) -> Optional[str]:
        """Run one invocation; returns None on success, else the failure text"""
        try:
            result = await self.executor.run(
                cmd,
                timeout=config.tools.image_timeout,
                max_output=config.tools.image_max_output,
                cwd=scratch.path
            )
        except asyncio.TimeoutError:
            return f"yt-dlp timed out after {config.tools.image_timeout:g}s"
        except OutputLimitExceeded as e:
            return str(e)
        except OSError as e:
            return f"yt-dlp could not be started: {e.strerror or e}"

        if result.returncode != 0:
            stderr = scratch.scrub(result.stderr.decode(errors="replace"))
            return summarize_tool_output(stderr) or f"yt-dlp exited with {result.returncode}"
        return None

    async def extract_images(self, url: str, scratch: ScratchArea) -> List[StagedArtifact]:
        prefix = scratch.new_prefix()
        template = scratch.template(prefix, numbered=True)

        failure = await self._attempt(YTDLPCommandBuilder.build_thumbnail_command(url, template), scratch)
        if failure:
            log_warning(self.context, f"Thumbnail method failed, trying direct image extraction: {failure}")
            failure = await self._attempt(YTDLPCommandBuilder.build_image_fallback_command(url, template), scratch)
            if failure:
                log_warning(self.context, f"Alternate image extraction failed: {failure}")

        staged = []
        for path in scratch.find(prefix):
            if os.path.getsize(path) == 0:
                scratch.discard(path)
                continue
            staged.append(StagedArtifact(path=path))

        if not staged:
            scratch.discard_prefix(prefix)
            reason = f": {failure}" if failure else ""
            raise ImageExtractionFailure(f"No images found in post{reason}")

        log_info(self.context, f"Found {len(staged)} image file(s)")
        return staged
