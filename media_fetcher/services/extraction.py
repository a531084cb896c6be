import asyncio
import json
import os
from typing import List, Optional, Tuple, Type

from media_fetcher.config.settings import config
from media_fetcher.core.errors import (
    ArtifactNotFound,
    EmptyArtifact,
    ExtractionFailure,
    ExtractionTimeout,
    MediaError,
    NoVideoInPost,
    RateLimited,
    UpstreamAuthError,
)
from media_fetcher.core.logging import LogContext, log_debug, log_info, log_warning
from media_fetcher.models.internal import CapabilitySnapshot, MediaDescriptor, Multiplicity, StagedArtifact
from media_fetcher.services.format import FormatDecision
from media_fetcher.services.storage import ScratchArea
from media_fetcher.services.ytdlp import (
    CompletedProcess,
    OutputLimitExceeded,
    ProcessTimeout,
    SubprocessExecutor,
    YTDLPCommandBuilder,
)

MESSAGE_MAX_CHARS = 500
MESSAGE_TAIL_LINES = 5

# yt-dlp has no structured error codes, so failures are told apart by their
# text. Evaluated top to bottom; rewording upstream silently breaks a row.
FAILURE_PATTERNS: Tuple[Tuple[str, Type[MediaError]], ...] = (
    ("no video could be found", NoVideoInPost),
    ("sign in to confirm", UpstreamAuthError),
    ("login required", UpstreamAuthError),
    ("requires authentication", UpstreamAuthError),
    ("account authentication is required", UpstreamAuthError),
    ("rate-limit", RateLimited),
    ("rate limit", RateLimited),
    ("too many requests", RateLimited),
    ("http error 429", RateLimited),
)


def summarize_tool_output(text: str) -> str:
    """Last ERROR lines of the tool output (or its last lines), bounded"""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    errors = [line for line in lines if "ERROR" in line]
    summary = "\n".join((errors or lines)[-MESSAGE_TAIL_LINES:])
    return summary[-MESSAGE_MAX_CHARS:]


def match_failure(text: str) -> Optional[Type[MediaError]]:
    lowered = text.lower()
    for pattern, kind in FAILURE_PATTERNS:
        if pattern in lowered:
            return kind
    return None


def classify_failure(text: str, default: Type[MediaError] = ExtractionFailure) -> MediaError:
    """Map tool diagnostics to a failure kind"""
    kind = match_failure(text) or default
    message = summarize_tool_output(text) or "yt-dlp failed without output"
    return kind(message)


class ExtractionExecutor:
    """Single-item download through yt-dlp"""

    def __init__(self, executor=SubprocessExecutor, context: LogContext = None):
        self.executor = executor
        self.context = context

    async def _run(self, cmd: List[str], timeout: float, max_output: int, scratch: Optional[ScratchArea] = None) -> CompletedProcess:
        """Run yt-dlp, turning every way it can fail into a classified error"""
        scrub = scratch.scrub if scratch else (lambda text: text)
        try:
            result = await self.executor.run(
                cmd,
                timeout=timeout,
                max_output=max_output,
                cwd=scratch.path if scratch else None
            )
        except ProcessTimeout as e:
            partial = scrub(e.stderr.decode(errors="replace"))
            if match_failure(partial):
                raise classify_failure(partial)
            raise ExtractionTimeout(f"yt-dlp timed out after {e.timeout:g}s")
        except asyncio.TimeoutError:
            raise ExtractionTimeout(f"yt-dlp timed out after {timeout:g}s")
        except OutputLimitExceeded as e:
            raise ExtractionFailure(f"yt-dlp produced too much output ({e.limit} bytes)")
        except OSError as e:
            raise ExtractionFailure(f"yt-dlp could not be started: {e.strerror or e}")

        if result.returncode != 0:
            stderr = scrub(result.stderr.decode(errors="replace"))
            raise classify_failure(stderr)
        return result

    async def fetch_descriptors(self, url: str) -> List[MediaDescriptor]:
        """Probe metadata without downloading; one descriptor per JSON line"""
        cmd = YTDLPCommandBuilder.build_info_command(url)
        result = await self._run(cmd, config.tools.info_timeout, config.tools.info_max_output)

        lines = [line for line in result.stdout.decode(errors="replace").splitlines() if line.strip()]
        if not lines:
            raise classify_failure(result.stderr.decode(errors="replace"))

        multiplicity = Multiplicity.SEQUENCE if len(lines) > 1 else Multiplicity.SINGLE
        try:
            descriptors = [MediaDescriptor.from_info(json.loads(line), multiplicity) for line in lines]
        except (ValueError, AttributeError):
            raise ExtractionFailure("Failed to parse yt-dlp media info")

        first = descriptors[0]
        log_info(
            self.context,
            f"Media info: {len(descriptors)} item(s), ext={first.ext}, duration={first.duration}, size={first.filesize}"
        )
        return descriptors

    async def extract(self, url: str, capabilities: CapabilitySnapshot, scratch: ScratchArea) -> StagedArtifact:
        """Download the representative item into scratch"""
        descriptors = await self.fetch_descriptors(url)
        descriptor = descriptors[0]

        prefix = scratch.new_prefix()
        format_spec = FormatDecision.select(descriptor, capabilities)
        log_info(self.context, f"Format decided: {format_spec.selector}")

        cmd = YTDLPCommandBuilder.build_download_command(url, format_spec, scratch.template(prefix))
        try:
            result = await self._run(
                cmd,
                config.tools.download_timeout,
                config.tools.download_max_output,
                scratch
            )
        except MediaError:
            scratch.discard_prefix(prefix)
            raise

        if result.stdout:
            log_debug(self.context, f"yt-dlp output: {summarize_tool_output(result.stdout.decode(errors='replace'))}")

        found = scratch.find(prefix)
        if not found:
            scratch.discard_prefix(prefix)
            raise ArtifactNotFound("Downloaded file not found in output directory")

        path = found[0]
        scratch.discard_prefix(prefix, keep=path)

        size = os.path.getsize(path)
        if size == 0:
            scratch.discard(path)
            raise EmptyArtifact("Downloaded file is empty (0 bytes)")

        log_info(self.context, f"Downloaded {os.path.basename(path)} ({size} bytes)")
        return StagedArtifact(path=path, descriptor=descriptor)
