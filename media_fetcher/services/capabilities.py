import asyncio
from typing import List, Optional

from media_fetcher.config.settings import config
from media_fetcher.core.logging import LogContext, log_info, log_warning
from media_fetcher.models.internal import CapabilitySnapshot
from media_fetcher.services.ytdlp import (
    FFmpegCommandBuilder,
    OutputLimitExceeded,
    SubprocessExecutor,
    YTDLPCommandBuilder,
)

VERSION_OUTPUT_LIMIT = 64 * 1024


class CapabilityProber:
    """Detect whether yt-dlp and ffmpeg can be run on this host"""

    def __init__(self, executor=SubprocessExecutor, timeout: Optional[float] = None, context: LogContext = None):
        self.executor = executor
        self.timeout = timeout if timeout is not None else config.tools.probe_timeout
        self.context = context

    async def probe(self) -> CapabilitySnapshot:
        """Never raises: any failure means the tool is absent"""
        ytdlp_version, ffmpeg_version = await asyncio.gather(
            self._version(YTDLPCommandBuilder.build_version_command(), "yt-dlp"),
            self._version(FFmpegCommandBuilder.build_version_command(), "ffmpeg"),
        )
        snapshot = CapabilitySnapshot(
            extraction_tool=ytdlp_version is not None,
            merge_tool=ffmpeg_version is not None,
            extraction_tool_version=ytdlp_version,
            merge_tool_version=ffmpeg_version,
        )
        if not snapshot.merge_tool:
            log_warning(self.context, "ffmpeg not available, audio/video merging disabled")
        return snapshot

    async def _version(self, cmd: List[str], name: str) -> Optional[str]:
        try:
            result = await self.executor.run(cmd, timeout=self.timeout, max_output=VERSION_OUTPUT_LIMIT)
        except (OSError, asyncio.TimeoutError, OutputLimitExceeded) as e:
            log_warning(self.context, f"{name} not usable: {e}")
            return None

        if result.returncode != 0:
            log_warning(self.context, f"{name} version check exited with {result.returncode}")
            return None

        lines = result.stdout.decode(errors="replace").strip().splitlines()
        version = lines[0] if lines else "unknown"
        log_info(self.context, f"{name} available: {version}")
        return version
