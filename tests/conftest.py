import json
from typing import Dict, List, Optional, Sequence, Tuple

import httpx
import pytest

from media_fetcher.config.settings import config
from media_fetcher.models.internal import CapabilitySnapshot
from media_fetcher.services.ytdlp import CompletedProcess


@pytest.fixture
def anyio_backend():
    return 'asyncio'


@pytest.fixture
def media_dirs(tmp_path, monkeypatch):
    """Point public and scratch storage at a temporary tree"""
    public = tmp_path / "public"
    scratch = tmp_path / "scratch"
    monkeypatch.setattr(config.media, "public_dir", str(public))
    monkeypatch.setattr(config.media, "scratch_dir", str(scratch))
    monkeypatch.setattr(config.security, "enable_ssrf_protection", False)
    return public, scratch


def info_line(**info) -> bytes:
    return json.dumps(info).encode() + b"\n"


class Step:
    """One scripted subprocess outcome"""

    def __init__(
        self,
        returncode: int = 0,
        stdout: bytes = b"",
        stderr: bytes = b"",
        files: Sequence[Tuple[str, bytes]] = (),
        raises: Optional[BaseException] = None
    ):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.files = list(files)
        self.raises = raises


class FakeExecutor:
    """
    Replays scripted steps in order instead of spawning processes.
    Files of a step are written where the command's --output template
    points, the way yt-dlp would expand it.
    """

    def __init__(self, *steps: Step):
        self.steps = list(steps)
        self.calls: List[List[str]] = []
        self.cwds: List[Optional[str]] = []

    async def run(self, cmd, timeout, max_output=None, cwd=None):
        self.calls.append(list(cmd))
        self.cwds.append(cwd)
        if not self.steps:
            raise AssertionError(f"Unexpected subprocess call: {cmd}")
        step = self.steps.pop(0)

        if step.files:
            template = cmd[cmd.index("--output") + 1]
            for number, (ext, content) in enumerate(step.files, start=1):
                path = template.replace("%(autonumber)s", f"{number:05d}").replace("%(ext)s", ext)
                with open(path, "wb") as f:
                    f.write(content)

        if step.raises is not None:
            raise step.raises
        return CompletedProcess(step.returncode, step.stdout, step.stderr)


class StaticProber:
    """Capability prober with a fixed answer"""

    def __init__(self, extraction_tool: bool = True, merge_tool: bool = True):
        self.snapshot = CapabilitySnapshot(
            extraction_tool=extraction_tool,
            merge_tool=merge_tool,
            extraction_tool_version="2024.01.01" if extraction_tool else None,
            merge_tool_version="ffmpeg version 6.1" if merge_tool else None,
        )
        self.calls = 0

    async def probe(self) -> CapabilitySnapshot:
        self.calls += 1
        return self.snapshot


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps the requests it served"""

    def __init__(self, status_code: int = 200, content: bytes = b"", headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(self.status_code, content=self.content, headers=self.headers)

        super().__init__(handler)


def http_client(transport: httpx.MockTransport) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=transport, follow_redirects=True)
