import asyncio
import shutil
from contextlib import suppress
from typing import List, NamedTuple, Optional

from media_fetcher.config.settings import config
from media_fetcher.models.internal import FormatSpec

READ_CHUNK = 64 * 1024


class CompletedProcess(NamedTuple):
    """Subprocess result"""
    returncode: int
    stdout: bytes
    stderr: bytes


class ProcessTimeout(asyncio.TimeoutError):
    """Timeout that keeps whatever the tool printed before it was killed"""

    def __init__(self, timeout: float, stdout: bytes = b"", stderr: bytes = b""):
        super().__init__(f"Process timed out after {timeout:g}s")
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr


class OutputLimitExceeded(RuntimeError):
    def __init__(self, limit: int):
        super().__init__(f"Process output exceeded {limit} bytes")
        self.limit = limit


async def _read_bounded(stream: asyncio.StreamReader, sink: bytearray, limit: Optional[int]) -> None:
    while True:
        chunk = await stream.read(READ_CHUNK)
        if not chunk:
            return
        sink.extend(chunk)
        if limit is not None and len(sink) > limit:
            raise OutputLimitExceeded(limit)


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        with suppress(ProcessLookupError):
            process.kill()
        await process.wait()


class SubprocessExecutor:
    """Execute subprocess with consistent error handling"""

    @staticmethod
    async def run(
        cmd: List[str],
        timeout: float,
        max_output: Optional[int] = None,
        cwd: Optional[str] = None
    ) -> CompletedProcess:
        """
        Run subprocess with timeout, bounded output capture and cleanup.
        The child is killed and reaped on timeout, overflow or cancellation.
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
            cwd=cwd
        )

        stdout = bytearray()
        stderr = bytearray()

        readers = [
            asyncio.ensure_future(_read_bounded(process.stdout, stdout, max_output)),
            asyncio.ensure_future(_read_bounded(process.stderr, stderr, max_output)),
        ]

        async def communicate() -> int:
            await asyncio.gather(*readers)
            return await process.wait()

        try:
            returncode = await asyncio.wait_for(communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await _terminate(process)
            raise ProcessTimeout(timeout, bytes(stdout), bytes(stderr))
        except BaseException:
            await _terminate(process)
            raise
        finally:
            for reader in readers:
                reader.cancel()

        return CompletedProcess(
            returncode=returncode,
            stdout=bytes(stdout),
            stderr=bytes(stderr)
        )


def resolve_binary(name: str, configured: Optional[str] = None) -> str:
    """Configured path first, then PATH lookup, then the bare name"""
    if configured:
        return configured
    return shutil.which(name) or name


def ytdlp_binary() -> str:
    return resolve_binary("yt-dlp", config.tools.ytdlp_path)


def ffmpeg_binary() -> str:
    return resolve_binary("ffmpeg", config.tools.ffmpeg_path)


class YTDLPCommandBuilder:
    """Build yt-dlp commands as argument lists (never through a shell)"""

    @staticmethod
    def build_version_command() -> List[str]:
        return [ytdlp_binary(), '--version']

    @staticmethod
    def build_info_command(url: str) -> List[str]:
        """Build command for fetching media descriptors"""
        return [
            ytdlp_binary(),
            '--dump-json',
            '--no-playlist',
            '--', url,
        ]

    @staticmethod
    def build_download_command(url: str, format_spec: FormatSpec, output_template: str) -> List[str]:
        """Build command for downloading a single item into the scratch area"""
        cmd = [
            ytdlp_binary(),
            '--format', format_spec.selector,
        ]

        if format_spec.merge:
            cmd.extend(['--merge-output-format', config.tools.merge_output_format])
            if config.tools.ffmpeg_path:
                cmd.extend(['--ffmpeg-location', config.tools.ffmpeg_path])

        cmd.extend([
            '--no-playlist',
            '--no-warnings',
            '--newline',
            '--output', output_template,
            '--', url,
        ])
        return cmd

    @staticmethod
    def build_thumbnail_command(url: str, output_template: str) -> List[str]:
        """Build command capturing every image of a post as thumbnails"""
        return [
            ytdlp_binary(),
            '--format', 'best',
            '--write-thumbnail',
            '--skip-download',
            '--output', output_template,
            '--', url,
        ]

    @staticmethod
    def build_image_fallback_command(url: str, output_template: str) -> List[str]:
        """Alternate image invocation used when the thumbnail pass fails"""
        return [
            ytdlp_binary(),
            '--no-video',
            '--write-thumbnail',
            '--convert-thumbnails', 'jpg',
            '--output', output_template,
            '--', url,
        ]


class FFmpegCommandBuilder:
    """Build ffmpeg commands"""

    @staticmethod
    def build_version_command() -> List[str]:
        return [ffmpeg_binary(), '-version']
