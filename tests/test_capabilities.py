import asyncio

import pytest

from conftest import FakeExecutor, Step
from media_fetcher.services.capabilities import CapabilityProber


@pytest.mark.asyncio
async def test_both_tools_present():
    executor = FakeExecutor(
        Step(stdout=b"2024.08.06\n"),
        Step(stdout=b"ffmpeg version 6.1.1 Copyright (c)\nbuilt with gcc\n"),
    )
    snapshot = await CapabilityProber(executor=executor).probe()

    assert snapshot.extraction_tool and snapshot.merge_tool
    assert snapshot.extraction_tool_version == "2024.08.06"
    assert snapshot.merge_tool_version.startswith("ffmpeg version 6.1.1")
    assert executor.calls[0][-1] == "--version"
    assert executor.calls[1][-1] == "-version"


@pytest.mark.asyncio
async def test_missing_tools_never_raise():
    executor = FakeExecutor(
        Step(raises=FileNotFoundError(2, "No such file or directory")),
        Step(raises=asyncio.TimeoutError()),
    )
    snapshot = await CapabilityProber(executor=executor).probe()

    assert not snapshot.extraction_tool
    assert not snapshot.merge_tool
    assert snapshot.extraction_tool_version is None


@pytest.mark.asyncio
async def test_non_zero_exit_means_absent():
    executor = FakeExecutor(Step(stdout=b"2024.08.06\n"), Step(returncode=127))
    snapshot = await CapabilityProber(executor=executor).probe()

    assert snapshot.extraction_tool
    assert not snapshot.merge_tool
