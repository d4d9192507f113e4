"""Progress events, FFmpeg ``-progress`` parsing and the progress channel."""

import asyncio
import inspect
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class ProcessingProgress:
    """One progress event emitted during a run."""

    step: str
    percent: Optional[int] = None
    frames: Optional[int] = None
    current_fps: Optional[float] = None
    current_kbps: Optional[float] = None
    target_size_kb: Optional[int] = None
    timemark: Optional[str] = None
    cpu_percent: Optional[int] = None
    memory_mb: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


ProgressCallback = Callable[[ProcessingProgress], Union[None, Awaitable[None]]]

_TIMEMARK_RE = re.compile(r"(?:(\d+):)?(\d+):(\d+(?:\.\d*)?)")
_BITRATE_RE = re.compile(r"([\d.]+)\s*kbits/s")


def parse_timemark(timemark: Optional[str]) -> Optional[float]:
    """Convert ``HH:MM:SS.xx`` into seconds."""
    match = _TIMEMARK_RE.search(timemark or "")
    if not match:
        return None
    hours = int(match.group(1)) if match.group(1) else 0
    return hours * 3600 + int(match.group(2)) * 60 + float(match.group(3))


def percent_of(elapsed_s: Optional[float], total_s: float) -> Optional[int]:
    """Percent of ``total_s`` covered by ``elapsed_s``, clamped to [0, 100]."""
    if not elapsed_s or total_s <= 0:
        return None
    return round(max(0.0, min(100.0, elapsed_s / total_s * 100)))


class FFmpegProgressParser:
    """Accumulates ``-progress pipe:1`` key=value lines into events.

    FFmpeg writes one block per update, terminated by ``progress=continue``
    or ``progress=end``; :meth:`feed` returns an event at each terminator.
    """

    def __init__(self, total_duration_s: float):
        self.total_duration_s = total_duration_s
        self._block: dict[str, str] = {}
        self.finished = False

    def feed(self, line: str) -> Optional[ProcessingProgress]:
        line = line.strip()
        if "=" not in line:
            return None
        key, value = line.split("=", 1)
        key, value = key.strip(), value.strip()
        if key != "progress":
            self._block[key] = value
            return None

        if value == "end":
            self.finished = True
        block, self._block = self._block, {}
        return self._to_progress(block)

    def _to_progress(self, block: dict[str, str]) -> ProcessingProgress:
        elapsed_s: Optional[float] = None
        out_time_us = block.get("out_time_us") or block.get("out_time_ms")
        if out_time_us and out_time_us.lstrip("-").isdigit():
            # out_time_ms is microseconds as well
            elapsed_s = max(0, int(out_time_us)) / 1_000_000
        timemark = block.get("out_time")
        if elapsed_s is None:
            elapsed_s = parse_timemark(timemark)

        return ProcessingProgress(
            step="ffmpeg-processing",
            percent=percent_of(elapsed_s, self.total_duration_s),
            frames=_to_int(block.get("frame")),
            current_fps=_to_float(block.get("fps")),
            current_kbps=_parse_kbps(block.get("bitrate")),
            target_size_kb=_size_kb(block.get("total_size")),
            timemark=timemark,
        )


def _to_int(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def _to_float(value: Optional[str]) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def _parse_kbps(value: Optional[str]) -> Optional[float]:
    match = _BITRATE_RE.search(value or "")
    return float(match.group(1)) if match else None


def _size_kb(value: Optional[str]) -> Optional[int]:
    size = _to_int(value)
    return size // 1024 if size is not None else None


_CLOSE = object()


class ProgressChannel:
    """Single-consumer channel between the run and the progress callback.

    :meth:`publish` never blocks the producer: when the queue is full the
    oldest pending event is dropped. :meth:`publish_terminal` events are
    never dropped. The callback runs on its own task; its exceptions are
    logged and do not affect the run. :meth:`aclose` waits at most
    ``close_timeout_s`` for the callback to catch up, then cancels it.
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback],
        maxsize: int = 64,
        close_timeout_s: float = 5.0,
    ):
        self._callback = callback
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(2, maxsize))
        self._consumer: Optional[asyncio.Task] = None
        self._closed = False
        self._close_timeout_s = close_timeout_s
        self.dropped = 0

    async def __aenter__(self) -> "ProgressChannel":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def start(self) -> None:
        if self._callback is not None and self._consumer is None:
            self._consumer = asyncio.create_task(self._consume())

    def publish(self, progress: ProcessingProgress) -> None:
        if self._closed or self._consumer is None:
            return
        self._put_coalescing(progress)

    def publish_terminal(self, progress: ProcessingProgress) -> None:
        if self._consumer is None:
            return
        self._put_coalescing(progress)
        self._closed = True

    async def aclose(self) -> None:
        """Deliver everything queued, then stop the consumer.

        A callback that is still busy after ``close_timeout_s`` is cancelled
        and whatever it had not consumed is counted in :attr:`dropped`.
        """
        self._closed = True
        if self._consumer is None:
            return
        consumer, self._consumer = self._consumer, None
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._close_timeout_s
        close_queued = False
        try:
            await asyncio.wait_for(self._queue.put(_CLOSE), self._close_timeout_s)
            close_queued = True
            await asyncio.wait({consumer}, timeout=max(0.0, deadline - loop.time()))
        except asyncio.TimeoutError:
            pass
        finally:
            if not consumer.done():
                undelivered = self._queue.qsize() - (1 if close_queued else 0)
                consumer.cancel()
                await asyncio.gather(consumer, return_exceptions=True)
                self.dropped += undelivered
                logger.warning(
                    f"[PROGRESS] Progress callback still busy after {self._close_timeout_s}s, "
                    f"cancelled with {undelivered} events undelivered"
                )

    def _put_coalescing(self, item: Any) -> None:
        if self._queue.full():
            try:
                self._queue.get_nowait()
                self.dropped += 1
            except asyncio.QueueEmpty:
                pass
        self._queue.put_nowait(item)

    async def _consume(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            try:
                result = self._callback(item)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"[PROGRESS] Progress callback failed: {e}")
