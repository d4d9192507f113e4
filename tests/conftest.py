"""
Pytest fixtures for canvas-render tests.

Most tests replace the network with ``httpx.MockTransport`` and FFmpeg with
a scripted fake process, so they run without external tools.

CI/CD Note:
Tests that need real ffmpeg/ffprobe binaries are marked with
@pytest.mark.requires_ffmpeg and skipped when the binaries are missing.
"""

import asyncio
import shutil
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import httpx
import pytest

from canvas_render.config import ProcessorConfig
from canvas_render.schemas.canvas import CanvasSpec
from canvas_render.utils.media_info import MediaInfo


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def pytest_collection_modifyitems(config, items):
    """Skip @pytest.mark.requires_ffmpeg tests when the binaries are missing."""
    if _ffmpeg_available():
        return
    skip = pytest.mark.skip(reason="ffmpeg/ffprobe not available on PATH")
    for item in items:
        if "requires_ffmpeg" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Isolated processing temp directory."""
    path = tmp_path / "video-processing"
    path.mkdir()
    return path


@pytest.fixture
def processor_config(temp_dir: Path) -> ProcessorConfig:
    """Processor config pointing at the isolated temp directory."""
    return ProcessorConfig(
        temp_dir=str(temp_dir),
        timeout_ms=0,
        resource_sample_interval_s=0.01,
        download_timeout_s=5.0,
    )


def make_canvas(
    elements: Optional[list[dict[str, Any]]] = None,
    *,
    output_format: str = "mp4",
    width: int = 1920,
    height: int = 1080,
) -> CanvasSpec:
    """Build a CanvasSpec from plain request data."""
    if elements is None:
        elements = [
            {
                "id": "el-1",
                "type": "image",
                "source": "https://cdn.example.com/assets/logo.png",
                "track": 0,
            }
        ]
    return CanvasSpec.model_validate({
        "output_format": output_format,
        "width": width,
        "height": height,
        "elements": elements,
    })


@pytest.fixture
def canvas_factory() -> Callable[..., CanvasSpec]:
    return make_canvas


@pytest.fixture
def http_client_factory():
    """Build AsyncClients backed by a MockTransport.

    Pass a handler, or ``payload``/``status_code`` for a fixed response.
    Requests are recorded on ``client.requests_seen``.
    """

    def build(
        handler: Optional[Callable] = None,
        *,
        payload: bytes = b"fake-media-bytes",
        status_code: int = 200,
    ) -> httpx.AsyncClient:
        seen: list[httpx.Request] = []

        async def default_handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code, content=payload)

        inner = handler or default_handler

        async def recording_handler(request: httpx.Request):
            seen.append(request)
            response = inner(request)
            if asyncio.iscoroutine(response):
                response = await response
            return response

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
        client.requests_seen = seen
        return client

    return build


@pytest.fixture
def fake_probe(monkeypatch) -> dict[str, MediaInfo]:
    """Replace ffprobe in the media fetcher.

    Returns a dict mapping file suffix to the MediaInfo to report; unknown
    suffixes report a 640x360 still image.
    """
    infos: dict[str, MediaInfo] = {}

    async def probe(path: str, ffprobe_path: str = "ffprobe") -> MediaInfo:
        return infos.get(Path(path).suffix, MediaInfo(width=640, height=360, has_video=True))

    monkeypatch.setattr("canvas_render.services.media_fetcher.probe_media", probe)
    return infos


class FakeProcess:
    """Scripted stand-in for ``asyncio.subprocess.Process``.

    ``hang=True`` keeps the process alive until :meth:`kill`;
    ``exit_after`` makes it exit on its own after a delay.
    """

    def __init__(
        self,
        stdout_lines: Sequence[str] = (),
        stderr_lines: Sequence[str] = (),
        returncode: int = 0,
        hang: bool = False,
        exit_after: Optional[float] = None,
        pid: int = 4242,
    ):
        self.pid = pid
        self.returncode: Optional[int] = None
        self.killed = False
        self._done = asyncio.Event()
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        for line in stdout_lines:
            self.stdout.feed_data(f"{line}\n".encode())
        for line in stderr_lines:
            self.stderr.feed_data(f"{line}\n".encode())

        if exit_after is not None:
            asyncio.get_running_loop().call_later(exit_after, self._finish, returncode)
        elif not hang:
            self._finish(returncode)

    def _finish(self, code: int) -> None:
        if self._done.is_set():
            return
        self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._done.set()

    async def wait(self) -> int:
        await self._done.wait()
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        self._finish(-9)


class FakeFFmpeg:
    """Factory patched over ``asyncio.create_subprocess_exec``.

    Writes ``output_bytes`` to the output path (last argument) on spawn,
    mimicking FFmpeg creating its output file before finishing.
    """

    def __init__(self, output_bytes: Optional[bytes] = b"\x00" * 2048, **process_kwargs):
        self.output_bytes = output_bytes
        self.process_kwargs = process_kwargs
        self.commands: list[list[str]] = []
        self.process: Optional[FakeProcess] = None

    async def __call__(self, *cmd, **kwargs) -> FakeProcess:
        self.commands.append(list(cmd))
        if self.output_bytes is not None:
            Path(cmd[-1]).write_bytes(self.output_bytes)
        self.process = FakeProcess(**self.process_kwargs)
        return self.process


@pytest.fixture
def patch_ffmpeg(monkeypatch) -> Callable[..., FakeFFmpeg]:
    """Install a FakeFFmpeg for the processor and return it."""

    def install(**kwargs) -> FakeFFmpeg:
        fake = FakeFFmpeg(**kwargs)
        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake)
        return fake

    return install
