from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Type

from media_fetcher.core.errors import EmptyArtifact, InternalError, MediaError, NoVideoInPost, ValidationError
from media_fetcher.core.logging import LogContext, log_error, log_info, log_warning
from media_fetcher.models.internal import (
    AcquisitionMethod,
    AcquisitionRequest,
    CapabilitySnapshot,
    FinalArtifact,
    MediaKind,
    StagedArtifact,
)
from media_fetcher.services.capabilities import CapabilityProber
from media_fetcher.services.direct import DirectFetcher, infer_extension, is_video_content
from media_fetcher.services.extraction import ExtractionExecutor
from media_fetcher.services.images import ImagePostExtractor
from media_fetcher.services.storage import PublicStore, ScratchArea
from media_fetcher.utils.filename import extension_of
from media_fetcher.utils.urls import safe_url_for_log

VIDEO_EXTENSIONS = frozenset({"mp4", "mov", "webm", "avi", "mkv"})


class Stage(str, Enum):
    PROBE = "probe"
    EXTRACTION = "extraction"
    IMAGE_EXTRACTION = "image-extraction"
    DIRECT_FETCH = "direct-fetch"


# Where a failed stage goes next, first matching error kind wins.
# A stage missing from the table (or with no match) is terminal.
FALLBACKS: Dict[Stage, Tuple[Tuple[Type[MediaError], Stage], ...]] = {
    Stage.EXTRACTION: (
        (NoVideoInPost, Stage.IMAGE_EXTRACTION),
        (MediaError, Stage.DIRECT_FETCH),
    ),
    Stage.IMAGE_EXTRACTION: (
        (MediaError, Stage.DIRECT_FETCH),
    ),
}


class OutcomeKind(str, Enum):
    OK = "ok"
    ADVANCE = "advance"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass
class StageOutcome:
    """Tagged result of one stage"""
    kind: OutcomeKind
    artifact: Optional[FinalArtifact] = None
    error: Optional[MediaError] = None
    next_stage: Optional[Stage] = None

    @classmethod
    def ok(cls, artifact: FinalArtifact) -> "StageOutcome":
        return cls(OutcomeKind.OK, artifact=artifact)

    @classmethod
    def advance(cls, next_stage: Stage) -> "StageOutcome":
        return cls(OutcomeKind.ADVANCE, next_stage=next_stage)

    @classmethod
    def retryable(cls, error: MediaError, next_stage: Stage) -> "StageOutcome":
        return cls(OutcomeKind.RETRYABLE, error=error, next_stage=next_stage)

    @classmethod
    def fatal(cls, error: MediaError) -> "StageOutcome":
        return cls(OutcomeKind.FATAL, error=error)


@dataclass
class AcquisitionRun:
    """Mutable bookkeeping for one request"""
    request: AcquisitionRequest
    scratch: ScratchArea
    capabilities: CapabilitySnapshot = field(default_factory=CapabilitySnapshot)
    failures: List[Tuple[Stage, MediaError]] = field(default_factory=list)


def next_stage_after(stage: Stage, error: MediaError, request: AcquisitionRequest) -> Optional[Stage]:
    if stage is Stage.EXTRACTION and request.download_images_only:
        return Stage.IMAGE_EXTRACTION
    for kind, target in FALLBACKS.get(stage, ()):
        if isinstance(error, kind):
            return target
    return None


def media_kind_for(ext: str) -> MediaKind:
    return MediaKind.VIDEO if ext.lower() in VIDEO_EXTENSIONS else MediaKind.IMAGE


class AcquisitionOrchestrator:
    """
    Layered media acquisition for one request.

    probe -> extraction -> image-extraction -> direct-fetch, driven by
    FALLBACKS. Every staged file except the promoted one is removed
    before acquire() returns.
    """

    def __init__(
        self,
        prober: Optional[CapabilityProber] = None,
        extractor: Optional[ExtractionExecutor] = None,
        image_extractor: Optional[ImagePostExtractor] = None,
        fetcher: Optional[DirectFetcher] = None,
        store: Optional[PublicStore] = None,
        scratch_root: Optional[str] = None,
        context: LogContext = None
    ):
        self.context = context
        self.prober = prober or CapabilityProber(context=context)
        self.extractor = extractor or ExtractionExecutor(context=context)
        self.image_extractor = image_extractor or ImagePostExtractor(context=context)
        self.fetcher = fetcher or DirectFetcher(context=context)
        self.store = store or PublicStore(context=context)
        self.scratch_root = scratch_root
        self.stages_visited: List[Stage] = []

        self._handlers: Dict[Stage, Callable[[AcquisitionRun], Awaitable[StageOutcome]]] = {
            Stage.PROBE: self._probe,
            Stage.EXTRACTION: self._extract,
            Stage.IMAGE_EXTRACTION: self._extract_images,
            Stage.DIRECT_FETCH: self._fetch_direct,
        }

    async def acquire(self, request: AcquisitionRequest) -> FinalArtifact:
        if not request.url or not request.url.strip():
            raise ValidationError("URL is required")

        log_info(self.context, f"Acquiring media from {safe_url_for_log(request.url)}")
        self.store.ensure()

        async with ScratchArea(self.scratch_root, context=self.context) as scratch:
            run = AcquisitionRun(request=request, scratch=scratch)
            return await self._drive(run)

    async def _drive(self, run: AcquisitionRun) -> FinalArtifact:
        stage = Stage.PROBE
        while True:
            self.stages_visited.append(stage)
            outcome = await self._run_stage(stage, run)

            if outcome.kind is OutcomeKind.OK:
                log_info(
                    self.context,
                    f"Acquired {outcome.artifact.filename} via {outcome.artifact.method.value} "
                    f"({outcome.artifact.media_kind.value}, {outcome.artifact.size} bytes)"
                )
                return outcome.artifact

            if outcome.error is not None:
                run.failures.append((stage, outcome.error))

            if outcome.kind is OutcomeKind.FATAL:
                raise self._final_failure(run)

            log_info(self.context, f"{stage.value} -> {outcome.next_stage.value}")
            stage = outcome.next_stage

    async def _run_stage(self, stage: Stage, run: AcquisitionRun) -> StageOutcome:
        try:
            return await self._handlers[stage](run)
        except MediaError as e:
            error = e
        except Exception as e:
            log_error(self.context, f"Unexpected {stage.value} error: {e.__class__.__name__}: {e}")
            error = InternalError(f"Unexpected {stage.value} error")

        log_warning(self.context, f"{stage.value} failed: {error.message}")
        target = next_stage_after(stage, error, run.request)
        if target is None:
            return StageOutcome.fatal(error)
        return StageOutcome.retryable(error, target)

    def _final_failure(self, run: AcquisitionRun) -> MediaError:
        terminal_stage, terminal = run.failures[-1]
        message = f"Failed to download media. {terminal.message}"
        earlier = [f"{stage.value}: {error.message}" for stage, error in run.failures[:-1]]
        if earlier:
            message = f"{message} ({'; '.join(earlier)})"
        log_error(self.context, f"All download methods failed at {terminal_stage.value}")
        return terminal.with_context(message)

    async def _probe(self, run: AcquisitionRun) -> StageOutcome:
        if not run.request.use_extraction_tool:
            log_info(self.context, "yt-dlp disabled for this request, using direct download")
            return StageOutcome.advance(Stage.DIRECT_FETCH)

        run.capabilities = await self.prober.probe()
        if not run.capabilities.extraction_tool:
            log_warning(self.context, "yt-dlp not installed, falling back to direct download")
            return StageOutcome.advance(Stage.DIRECT_FETCH)
        return StageOutcome.advance(Stage.EXTRACTION)

    async def _extract(self, run: AcquisitionRun) -> StageOutcome:
        staged = await self.extractor.extract(run.request.url, run.capabilities, run.scratch)
        filename, size = self._promote(run, staged)
        ext = extension_of(filename)
        descriptor = staged.descriptor

        info = None
        if descriptor is not None:
            info = {
                "title": descriptor.title,
                "duration": descriptor.duration,
                "thumbnail": descriptor.thumbnail,
                "width": descriptor.width,
                "height": descriptor.height,
            }

        return StageOutcome.ok(FinalArtifact(
            filename=filename,
            media_url=self.store.url_for(filename),
            media_kind=media_kind_for(ext),
            size=size,
            method=AcquisitionMethod.TOOL_VIDEO,
            info=info,
        ))

    async def _extract_images(self, run: AcquisitionRun) -> StageOutcome:
        log_info(self.context, "Attempting to download images instead")
        staged = await self.image_extractor.extract_images(run.request.url, run.scratch)

        first, rest = staged[0], staged[1:]
        filename, size = self._promote(run, first)
        for extra in rest:
            run.scratch.discard(extra.path)

        return StageOutcome.ok(FinalArtifact(
            filename=filename,
            media_url=self.store.url_for(filename),
            media_kind=MediaKind.IMAGE,
            size=size,
            method=AcquisitionMethod.TOOL_IMAGE,
            message="Image downloaded successfully",
            info={"title": "Post Image", "count": len(staged)},
        ))

    async def _fetch_direct(self, run: AcquisitionRun) -> StageOutcome:
        body, content_type = await self.fetcher.fetch(run.request.url)
        if not body:
            raise EmptyArtifact("Downloaded file is empty")

        staged_path = await run.scratch.write(body, infer_extension(content_type))
        filename, size = self._promote(run, StagedArtifact(path=staged_path))

        return StageOutcome.ok(FinalArtifact(
            filename=filename,
            media_url=self.store.url_for(filename),
            media_kind=MediaKind.VIDEO if is_video_content(content_type) else MediaKind.IMAGE,
            size=size,
            method=AcquisitionMethod.DIRECT,
        ))

    def _promote(self, run: AcquisitionRun, staged: StagedArtifact) -> Tuple[str, int]:
        try:
            return self.store.promote(staged.path)
        except OSError as e:
            run.scratch.discard(staged.path)
            raise InternalError(f"Could not publish downloaded file: {e.strerror or e.__class__.__name__}")
