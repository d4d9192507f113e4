"""Command line entry point.

Usage:
    canvas-render render request.json [--timeout-ms 60000] [--crf 20] [--output out.mp4]
    canvas-render estimate request.json
    canvas-render check
"""

import argparse
import asyncio
import json
import logging
import shutil
import signal
import sys
from pathlib import Path

from pydantic import ValidationError

from canvas_render.config import ProcessorConfig, get_settings
from canvas_render.exceptions import CanvasRenderError
from canvas_render.render.processor import ProcessOptions, VideoProcessor
from canvas_render.render.progress import ProcessingProgress
from canvas_render.render.quality import QualityOverrides
from canvas_render.schemas.canvas import CanvasSpec
from canvas_render.services.estimator import ProcessingEstimator
from canvas_render.services.media_fetcher import cleanup_paths
from canvas_render.utils.ffmpeg_check import check_ffmpeg

logger = logging.getLogger("canvas_render")


def _load_canvas(path: str) -> CanvasSpec:
    with open(path, encoding="utf-8") as f:
        return CanvasSpec.model_validate(json.load(f))


def _print_progress(progress: ProcessingProgress) -> None:
    if progress.step == "resource":
        logger.debug(f"cpu={progress.cpu_percent}% mem={progress.memory_mb}MB")
    elif progress.percent is not None:
        logger.info(f"{progress.step}: {progress.percent}%")


async def _render(args: argparse.Namespace) -> int:
    canvas = _load_canvas(args.request)
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except NotImplementedError:
        pass

    options = ProcessOptions(
        quality=QualityOverrides(
            codec=args.codec,
            crf=args.crf,
            preset=args.preset,
            video_bitrate=args.video_bitrate,
            fps=args.fps,
        ),
        timeout_ms=args.timeout_ms,
        on_progress=_print_progress,
        cancel_event=cancel_event,
    )
    result = await VideoProcessor(ProcessorConfig.from_settings()).process(canvas, options)

    if args.output:
        try:
            shutil.move(result.output_path, args.output)
        except OSError as e:
            cleanup_paths([result.output_path])
            raise CanvasRenderError(
                f"Failed to write output: {e}",
                code="OUTPUT_WRITE_FAILED",
                details={"output": args.output},
            ) from e
        result.output_path = str(Path(args.output).resolve())

    data = result.to_dict()
    if not args.with_logs:
        data.pop("logs")
    print(json.dumps(data, indent=2))
    return 0


async def _estimate(args: argparse.Namespace) -> int:
    canvas = _load_canvas(args.request)
    result = await ProcessingEstimator().estimate(canvas)
    threshold = get_settings().quick_processing_threshold_ms
    print(json.dumps({
        "estimated_ms": result.estimated_ms,
        "reasons": result.reasons,
        "quick": result.is_quick(threshold),
    }, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="canvas-render", description="Canvas video renderer")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    render = sub.add_parser("render", help="Render a canvas request JSON file")
    render.add_argument("request", help="Path to request JSON")
    render.add_argument("--output", help="Move the rendered file here")
    render.add_argument("--timeout-ms", type=int, default=None)
    render.add_argument("--codec", choices=["libx264", "libx265", "libvpx-vp9", "libaom-av1"])
    render.add_argument("--crf", type=int)
    render.add_argument("--preset")
    render.add_argument("--video-bitrate")
    render.add_argument("--fps", type=int)
    render.add_argument("--with-logs", action="store_true", help="Include FFmpeg log tail")

    estimate = sub.add_parser("estimate", help="Estimate processing time for a request")
    estimate.add_argument("request", help="Path to request JSON")

    sub.add_parser("check", help="Check FFmpeg availability")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command == "check":
        status = check_ffmpeg()
        print(json.dumps(status, indent=2))
        return 0 if status["status"] == "healthy" else 1

    try:
        if args.command == "estimate":
            return asyncio.run(_estimate(args))
        return asyncio.run(_render(args))
    except ValidationError as e:
        print(json.dumps({"code": "INVALID_CANVAS", "errors": e.errors(include_url=False)}, indent=2, default=str))
        return 2
    except CanvasRenderError as e:
        print(json.dumps(e.to_dict(), indent=2, default=str))
        return 1


if __name__ == "__main__":
    sys.exit(main())
