"""
Canvas render pipeline.

This module orchestrates one render run:
1. Validate the output format
2. Download and probe every element (concurrently)
3. Compute layouts and build the overlay filter graph
4. Run FFmpeg with -progress pipe for incremental progress
5. Stat the output and return the result

Supervision:
- Deadline and cancellation both SIGKILL the FFmpeg process
- CPU/memory of the FFmpeg process is sampled once per second
- Downloaded media is always removed; partial output is removed on failure
"""

import asyncio
import logging
import os
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

import httpx

from canvas_render.config import ProcessorConfig
from canvas_render.constants.error_codes import DIAGNOSIS_ETIME
from canvas_render.exceptions import (
    CanvasRenderError,
    ProcessingCancelledError,
    ProcessingError,
    ProcessingTimeoutError,
    UnsupportedFormatError,
)
from canvas_render.render.error_classifier import classify_stderr, diagnosis_for, tail
from canvas_render.render.filter_graph import FilterGraph, FilterGraphBuilder, base_source
from canvas_render.render.progress import (
    FFmpegProgressParser,
    ProcessingProgress,
    ProgressCallback,
    ProgressChannel,
)
from canvas_render.render.quality import QualityOverrides, ResolvedQuality, resolve_quality
from canvas_render.render.resource_sampler import ResourceSampler, create_resource_sampler
from canvas_render.schemas.canvas import SUPPORTED_FORMATS, CanvasSpec
from canvas_render.services.media_fetcher import FetchedMedia, MediaFetcher, cleanup_paths

logger = logging.getLogger(__name__)

# Formats whose players expect 4:2:0 chroma
YUV420_FORMATS = ("mp4", "mov")

# How long to wait for FFmpeg's pipes to drain after it exits
PIPE_DRAIN_TIMEOUT_S = 5.0


# ============================================================================
# Enums
# ============================================================================


class RunState(Enum):
    """Lifecycle state of one render run."""

    IDLE = "idle"
    FETCHING = "fetching"
    BUILDING_GRAPH = "building_graph"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = (RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED)


# ============================================================================
# Dataclasses
# ============================================================================


@dataclass
class ProcessOptions:
    """Per-run options.

    ``timeout_ms`` of None uses the configured default; ``<= 0`` disables
    the deadline. Setting ``cancel_event`` at any time kills the run.
    """

    quality: Optional[QualityOverrides] = None
    timeout_ms: Optional[int] = None
    on_progress: Optional[ProgressCallback] = None
    cancel_event: Optional[asyncio.Event] = None
    on_state_change: Optional[Callable[[RunState], None]] = None


@dataclass
class ProcessingResult:
    """Result of a successful render."""

    output_path: str
    duration_ms: int
    output_size_bytes: int
    width: int
    height: int
    format: str
    logs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "output_path": self.output_path,
            "duration_ms": self.duration_ms,
            "output_size_bytes": self.output_size_bytes,
            "width": self.width,
            "height": self.height,
            "format": self.format,
            "logs": self.logs,
        }


@dataclass
class RunContext:
    """Mutable state owned by exactly one run."""

    run_id: str
    log_window: int
    on_state_change: Optional[Callable[[RunState], None]] = None
    state: RunState = RunState.IDLE
    logs: deque = field(default_factory=deque)

    def __post_init__(self) -> None:
        self.logs = deque(maxlen=self.log_window)

    def transition(self, state: RunState) -> None:
        if self.state in TERMINAL_STATES:
            return
        logger.info(f"[RENDER] run={self.run_id} {self.state.value} -> {state.value}")
        self.state = state
        if self.on_state_change:
            try:
                self.on_state_change(state)
            except Exception as e:
                logger.warning(f"[RENDER] State listener failed: {e}")


class _Cancelled(Exception):
    """Internal signal: the cancel event fired."""


# ============================================================================
# Processor
# ============================================================================


class VideoProcessor:
    """Composites canvas elements into one video file with FFmpeg."""

    def __init__(
        self,
        config: Optional[ProcessorConfig] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        sampler_factory: Callable[[Optional[int]], ResourceSampler] = create_resource_sampler,
    ):
        self.config = config or ProcessorConfig.from_settings()
        self._http_client = http_client
        self._sampler_factory = sampler_factory

    async def process(
        self,
        canvas: CanvasSpec,
        options: Optional[ProcessOptions] = None,
    ) -> ProcessingResult:
        """
        Render ``canvas`` to a video file in the temp directory.

        Args:
            canvas: Canvas and ordered elements
            options: Quality overrides, timeout, progress callback, cancel event

        Returns:
            ProcessingResult describing the output file

        Raises:
            UnsupportedFormatError: Output format not supported (before any I/O)
            ProcessingTimeoutError: Deadline exceeded
            ProcessingCancelledError: Cancel event fired
            ProcessingError: Download, probe or FFmpeg failure
        """
        start = time.monotonic()
        options = options or ProcessOptions()

        if canvas.output_format not in SUPPORTED_FORMATS:
            raise UnsupportedFormatError(canvas.output_format)

        timeout_ms = options.timeout_ms if options.timeout_ms is not None else self.config.timeout_ms
        run = RunContext(
            run_id=uuid.uuid4().hex[:12],
            log_window=self.config.log_window_lines,
            on_state_change=options.on_state_change,
        )
        fetcher = MediaFetcher(self.config, client=self._http_client)

        async with ProgressChannel(
            options.on_progress,
            self.config.progress_queue_size,
            close_timeout_s=self.config.progress_close_timeout_s,
        ) as channel:
            try:
                run.transition(RunState.FETCHING)
                media_list = await self._await_unless_cancelled(
                    fetcher.fetch_all(list(canvas.elements)), options.cancel_event
                )

                run.transition(RunState.BUILDING_GRAPH)
                graph = FilterGraphBuilder(canvas.width, canvas.height).build(media_list)
                quality = resolve_quality(canvas.output_format, options.quality)

                run.transition(RunState.EXECUTING)
                output_path = str(
                    Path(self.config.temp_dir) / f"{uuid.uuid4().hex}.{canvas.output_format}"
                )
                cmd = self.build_command(canvas, media_list, graph, quality, output_path)
                await self._execute(cmd, output_path, graph, run, channel, timeout_ms, options.cancel_event)

                try:
                    output_size = os.stat(output_path).st_size
                except OSError as e:
                    cleanup_paths([output_path])
                    raise ProcessingError(
                        f"Output file missing after encode: {output_path}",
                        diagnosis=classify_stderr(run.logs, self.config.log_window_lines),
                    ) from e

                duration_ms = int((time.monotonic() - start) * 1000)
                run.transition(RunState.COMPLETED)
                channel.publish_terminal(ProcessingProgress(step="completed", percent=100))
                logger.info(
                    f"[RENDER] run={run.run_id} completed in {duration_ms}ms, "
                    f"{output_size} bytes -> {output_path}"
                )
                return ProcessingResult(
                    output_path=output_path,
                    duration_ms=duration_ms,
                    output_size_bytes=output_size,
                    width=canvas.width,
                    height=canvas.height,
                    format=canvas.output_format,
                    logs=list(run.logs),
                )

            except _Cancelled:
                run.transition(RunState.CANCELLED)
                channel.publish_terminal(ProcessingProgress(step="cancelled"))
                raise ProcessingCancelledError(
                    "Processing cancelled",
                    diagnosis=diagnosis_for(DIAGNOSIS_ETIME, tail(run.logs, self.config.log_window_lines)),
                ) from None
            except asyncio.CancelledError:
                run.transition(RunState.CANCELLED)
                raise
            except ProcessingTimeoutError:
                run.transition(RunState.FAILED)
                channel.publish_terminal(ProcessingProgress(step="timeout"))
                raise
            except CanvasRenderError:
                run.transition(RunState.FAILED)
                channel.publish_terminal(ProcessingProgress(step="failed"))
                raise
            except Exception as e:
                run.transition(RunState.FAILED)
                channel.publish_terminal(ProcessingProgress(step="failed"))
                raise self._wrap_error(e, run) from e
            finally:
                cleanup_paths(fetcher.tracked_paths)

    def build_command(
        self,
        canvas: CanvasSpec,
        media_list: list[FetchedMedia],
        graph: FilterGraph,
        quality: ResolvedQuality,
        output_path: str,
    ) -> list[str]:
        """Build the FFmpeg command without executing it.

        Returns:
            FFmpeg command as list[str]
        """
        fps = quality.fps or self.config.fps
        duration = str(graph.duration_s)

        cmd = [
            self.config.ffmpeg_path,
            "-hide_banner",
            "-y",
            "-f", "lavfi",
            "-t", duration,
            "-i", base_source(canvas.width, canvas.height, fps),
        ]
        for media in media_list:
            if media.kind == "image":
                # Stills become a stream of the output length
                cmd.extend(["-loop", "1", "-t", duration])
            cmd.extend(["-i", media.local_path])

        cmd.extend([
            "-filter_complex", graph.to_filter_complex(),
            "-map", f"[{graph.output_label}]",
            *quality.to_ffmpeg_args(),
        ])
        if canvas.output_format in YUV420_FORMATS:
            cmd.extend(["-pix_fmt", "yuv420p"])

        cmd.extend([
            "-t", duration,
            "-progress", "pipe:1",
            "-nostats",
            output_path,
        ])
        return cmd

    async def _await_unless_cancelled(self, coro, cancel_event: Optional[asyncio.Event]):
        """Await ``coro``, aborting it if ``cancel_event`` fires first."""
        if cancel_event is None:
            return await coro
        if cancel_event.is_set():
            coro.close()
            raise _Cancelled()

        work = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)
            raise
        finally:
            waiter.cancel()
        if work.done():
            return work.result()

        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise _Cancelled()

    async def _execute(
        self,
        cmd: list[str],
        output_path: str,
        graph: FilterGraph,
        run: RunContext,
        channel: ProgressChannel,
        timeout_ms: int,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        """Run FFmpeg under supervision.

        Raises:
            _Cancelled: ``cancel_event`` fired
            ProcessingTimeoutError: Deadline exceeded
            ProcessingError: Spawn failure or non-zero exit
        """
        logger.debug(f"[RENDER] run={run.run_id} filter_complex: {graph.to_filter_complex()}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessingError(
                f"Failed to start FFmpeg: {e}", diagnosis=classify_stderr(str(e))
            ) from e

        helpers = [
            asyncio.create_task(self._read_progress(proc, graph.duration_s, channel)),
            asyncio.create_task(self._read_stderr(proc, run)),
            asyncio.create_task(self._sample_resources(proc, channel)),
        ]
        exit_waiter = asyncio.create_task(proc.wait())
        waiters = {exit_waiter}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.create_task(cancel_event.wait())
            waiters.add(cancel_waiter)

        timeout_s = timeout_ms / 1000 if timeout_ms and timeout_ms > 0 else None
        outcome = "exited"
        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout_s, return_when=asyncio.FIRST_COMPLETED)
            if exit_waiter not in done:
                outcome = "cancelled" if cancel_waiter in done else "timeout"
                logger.warning(f"[RENDER] run={run.run_id} {outcome}, killing FFmpeg pid={proc.pid}")
                self._kill(proc)
                await exit_waiter

            # Let the readers collect the final progress block and stderr
            await asyncio.wait(helpers[:2], timeout=PIPE_DRAIN_TIMEOUT_S)
        finally:
            if proc.returncode is None:
                self._kill(proc)
            for task in (*helpers, exit_waiter, cancel_waiter):
                if task is not None and not task.done():
                    task.cancel()
            await asyncio.gather(
                *(t for t in (*helpers, exit_waiter, cancel_waiter) if t is not None),
                return_exceptions=True,
            )
            if outcome != "exited" or proc.returncode != 0:
                cleanup_paths([output_path])

        if outcome == "cancelled":
            raise _Cancelled()
        if outcome == "timeout":
            raise ProcessingTimeoutError(timeout_ms)

        logger.info(f"[RENDER] run={run.run_id} FFmpeg returncode: {proc.returncode}")
        if proc.returncode != 0:
            diagnosis = classify_stderr(run.logs, self.config.log_window_lines)
            logger.error(f"[RENDER] run={run.run_id} FFmpeg failed: {diagnosis.reason or 'unclassified'}")
            raise ProcessingError(
                "FFmpeg processing failed",
                diagnosis=diagnosis,
                details={"returncode": proc.returncode},
            )

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass

    async def _read_progress(
        self,
        proc: asyncio.subprocess.Process,
        duration_s: int,
        channel: ProgressChannel,
    ) -> None:
        parser = FFmpegProgressParser(duration_s)
        try:
            async for raw_line in proc.stdout:
                progress = parser.feed(raw_line.decode("utf-8", errors="replace"))
                if progress is not None:
                    channel.publish(progress)
        except Exception as e:
            logger.warning(f"[RENDER] Error reading FFmpeg progress: {e}")

    async def _read_stderr(self, proc: asyncio.subprocess.Process, run: RunContext) -> None:
        try:
            async for raw_line in proc.stderr:
                line = raw_line.decode("utf-8", errors="replace").rstrip()
                if line:
                    run.logs.append(line)
        except Exception as e:
            logger.warning(f"[RENDER] Error reading FFmpeg stderr: {e}")

    async def _sample_resources(self, proc: asyncio.subprocess.Process, channel: ProgressChannel) -> None:
        sampler = self._sampler_factory(proc.pid)
        interval = self.config.resource_sample_interval_s
        while proc.returncode is None:
            await asyncio.sleep(interval)
            try:
                sample = sampler.sample()
            except Exception as e:
                logger.debug(f"[RESOURCE] Sample failed: {e}")
                continue
            if sample is not None:
                channel.publish(
                    ProcessingProgress(
                        step="resource",
                        cpu_percent=sample.cpu_percent,
                        memory_mb=sample.memory_mb,
                    )
                )

    def _wrap_error(self, err: Exception, run: RunContext) -> ProcessingError:
        """Normalize an unexpected failure into a classified ProcessingError."""
        return ProcessingError(
            str(err) or err.__class__.__name__,
            diagnosis=classify_stderr(run.logs, self.config.log_window_lines),
        )
