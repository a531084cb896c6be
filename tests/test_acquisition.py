import os

import pytest

from conftest import FakeExecutor, RecordingTransport, StaticProber, Step, http_client, info_line
from media_fetcher.core.errors import DirectFetchFailure, EmptyArtifact, InternalError, ValidationError
from media_fetcher.models.internal import AcquisitionMethod, AcquisitionRequest, MediaKind
from media_fetcher.services.acquisition import AcquisitionOrchestrator, Stage
from media_fetcher.services.direct import DirectFetcher
from media_fetcher.services.extraction import ExtractionExecutor
from media_fetcher.services.images import ImagePostExtractor
from media_fetcher.services.storage import PublicStore

URL = "https://example.com/status/1"
NO_VIDEO = b"ERROR: [twitter] 1: No video could be found in this tweet"


def build(media_dirs, executor=None, prober=None, transport=None):
    public, scratch = media_dirs
    executor = executor or FakeExecutor()
    transport = transport or RecordingTransport(status_code=500)
    return AcquisitionOrchestrator(
        prober=prober or StaticProber(),
        extractor=ExtractionExecutor(executor=executor),
        image_extractor=ImagePostExtractor(executor=executor),
        fetcher=DirectFetcher(http_client=http_client(transport)),
        store=PublicStore(str(public), url_prefix="/media"),
        scratch_root=str(scratch),
    )


def leftovers(media_dirs):
    public, scratch = media_dirs
    published = sorted(os.listdir(public)) if public.exists() else []
    staged = sorted(os.listdir(scratch)) if scratch.exists() else []
    return published, staged


@pytest.mark.asyncio
async def test_single_video_post(media_dirs):
    executor = FakeExecutor(
        Step(stdout=info_line(ext="mp4", title="clip", duration=9.0, width=1280, height=720)),
        Step(files=[("mp4", b"video-bytes")]),
    )
    orchestrator = build(media_dirs, executor=executor)

    artifact = await orchestrator.acquire(AcquisitionRequest(url=URL))

    assert artifact.method is AcquisitionMethod.TOOL_VIDEO
    assert artifact.media_kind is MediaKind.VIDEO
    assert artifact.media_url == f"/media/{artifact.filename}"
    assert artifact.size == len(b"video-bytes")
    assert artifact.info["title"] == "clip"
    assert orchestrator.stages_visited == [Stage.PROBE, Stage.EXTRACTION]
    assert leftovers(media_dirs) == ([artifact.filename], [])


@pytest.mark.asyncio
async def test_image_only_post_goes_to_image_extraction(media_dirs):
    executor = FakeExecutor(
        Step(returncode=1, stderr=NO_VIDEO),
        Step(files=[("jpg", b"first"), ("jpg", b"second")]),
    )
    orchestrator = build(media_dirs, executor=executor)

    artifact = await orchestrator.acquire(AcquisitionRequest(url=URL))

    assert artifact.method is AcquisitionMethod.TOOL_IMAGE
    assert artifact.media_kind is MediaKind.IMAGE
    assert artifact.message == "Image downloaded successfully"
    assert artifact.info == {"title": "Post Image", "count": 2}
    assert orchestrator.stages_visited == [Stage.PROBE, Stage.EXTRACTION, Stage.IMAGE_EXTRACTION]
    assert leftovers(media_dirs) == ([artifact.filename], [])


@pytest.mark.asyncio
async def test_missing_tool_goes_straight_to_direct_fetch(media_dirs):
    executor = FakeExecutor()
    transport = RecordingTransport(content=b"webp-bytes", headers={"content-type": "image/webp"})
    orchestrator = build(media_dirs, executor=executor, prober=StaticProber(extraction_tool=False), transport=transport)

    artifact = await orchestrator.acquire(AcquisitionRequest(url=URL))

    assert executor.calls == []
    assert artifact.method is AcquisitionMethod.DIRECT
    assert artifact.media_kind is MediaKind.IMAGE
    assert artifact.filename.endswith(".webp")
    assert orchestrator.stages_visited == [Stage.PROBE, Stage.DIRECT_FETCH]
    assert leftovers(media_dirs) == ([artifact.filename], [])


@pytest.mark.asyncio
async def test_tool_disabled_by_request(media_dirs):
    prober = StaticProber()
    transport = RecordingTransport(content=b"mp4", headers={"content-type": "video/mp4"})
    orchestrator = build(media_dirs, prober=prober, transport=transport)

    artifact = await orchestrator.acquire(AcquisitionRequest(url=URL, use_extraction_tool=False))

    assert prober.calls == 0
    assert artifact.media_kind is MediaKind.VIDEO
    assert artifact.filename.endswith(".mp4")


@pytest.mark.asyncio
async def test_direct_fetch_non_success_is_final(media_dirs):
    transport = RecordingTransport(status_code=403)
    orchestrator = build(media_dirs, transport=transport)

    with pytest.raises(DirectFetchFailure) as excinfo:
        await orchestrator.acquire(AcquisitionRequest(url=URL, use_extraction_tool=False))

    assert excinfo.value.status_code == 502
    assert excinfo.value.message.startswith("Failed to download media.")
    assert leftovers(media_dirs) == ([], [])


@pytest.mark.asyncio
async def test_zero_byte_download_fails_as_empty(media_dirs):
    executor = FakeExecutor(Step(stdout=info_line(ext="mp4")), Step(files=[("mp4", b"")]))
    transport = RecordingTransport(content=b"", headers={"content-type": "video/mp4"})
    orchestrator = build(media_dirs, executor=executor, transport=transport)

    with pytest.raises(EmptyArtifact) as excinfo:
        await orchestrator.acquire(AcquisitionRequest(url=URL))

    assert excinfo.value.status_code == 502
    assert "extraction: Downloaded file is empty" in excinfo.value.message
    assert leftovers(media_dirs) == ([], [])


@pytest.mark.asyncio
async def test_image_extraction_precedes_direct_fetch(media_dirs):
    executor = FakeExecutor(
        Step(returncode=1, stderr=NO_VIDEO),
        Step(returncode=1, stderr=b"ERROR: nothing"),
        Step(returncode=1, stderr=b"ERROR: still nothing"),
    )
    transport = RecordingTransport(status_code=404)
    orchestrator = build(media_dirs, executor=executor, transport=transport)

    with pytest.raises(DirectFetchFailure) as excinfo:
        await orchestrator.acquire(AcquisitionRequest(url=URL))

    assert orchestrator.stages_visited == [
        Stage.PROBE, Stage.EXTRACTION, Stage.IMAGE_EXTRACTION, Stage.DIRECT_FETCH
    ]
    assert "image-extraction: No images found in post" in excinfo.value.message
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_images_requested_after_generic_extraction_failure(media_dirs):
    executor = FakeExecutor(
        Step(returncode=1, stderr=b"ERROR: Unsupported URL"),
        Step(files=[("jpg", b"image")]),
    )
    orchestrator = build(media_dirs, executor=executor)

    artifact = await orchestrator.acquire(AcquisitionRequest(url=URL, download_images_only=True))

    assert artifact.method is AcquisitionMethod.TOOL_IMAGE
    assert Stage.IMAGE_EXTRACTION in orchestrator.stages_visited


@pytest.mark.asyncio
async def test_generic_extraction_failure_falls_back_to_direct(media_dirs):
    executor = FakeExecutor(Step(returncode=1, stderr=b"ERROR: Unsupported URL"))
    transport = RecordingTransport(content=b"jpeg", headers={"content-type": "image/jpeg"})
    orchestrator = build(media_dirs, executor=executor, transport=transport)

    artifact = await orchestrator.acquire(AcquisitionRequest(url=URL))

    assert artifact.method is AcquisitionMethod.DIRECT
    assert Stage.IMAGE_EXTRACTION not in orchestrator.stages_visited


@pytest.mark.asyncio
async def test_unexpected_errors_become_internal(media_dirs):
    executor = FakeExecutor(Step(raises=RuntimeError("boom")))
    transport = RecordingTransport(status_code=502)
    orchestrator = build(media_dirs, executor=executor, transport=transport)

    with pytest.raises(DirectFetchFailure) as excinfo:
        await orchestrator.acquire(AcquisitionRequest(url=URL))

    assert isinstance(excinfo.value.__cause__, DirectFetchFailure)
    assert "extraction: Unexpected extraction error" in excinfo.value.message
    assert leftovers(media_dirs)[1] == []


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["", "   "])
async def test_empty_url_runs_nothing(media_dirs, url):
    executor = FakeExecutor()
    prober = StaticProber()
    transport = RecordingTransport()
    orchestrator = build(media_dirs, executor=executor, prober=prober, transport=transport)

    with pytest.raises(ValidationError):
        await orchestrator.acquire(AcquisitionRequest(url=url))

    assert executor.calls == []
    assert prober.calls == 0
    assert transport.requests == []
    assert orchestrator.stages_visited == []


@pytest.mark.asyncio
async def test_publish_failure_is_internal(media_dirs, monkeypatch):
    transport = RecordingTransport(content=b"gif", headers={"content-type": "image/gif"})
    orchestrator = build(media_dirs, transport=transport)

    def refuse(staged_path):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(orchestrator.store, "promote", refuse)

    with pytest.raises(InternalError) as excinfo:
        await orchestrator.acquire(AcquisitionRequest(url=URL, use_extraction_tool=False))

    assert excinfo.value.status_code == 500
    assert leftovers(media_dirs)[1] == []


@pytest.mark.asyncio
async def test_upstream_rate_limit_on_direct_fetch_is_a_fetch_failure(media_dirs):
    transport = RecordingTransport(status_code=429)
    orchestrator = build(media_dirs, prober=StaticProber(extraction_tool=False), transport=transport)

    with pytest.raises(DirectFetchFailure) as excinfo:
        await orchestrator.acquire(AcquisitionRequest(url=URL))

    assert excinfo.value.status_code == 502
    assert excinfo.value.upstream_status == 429
    assert leftovers(media_dirs) == ([], [])
