"""
VapourBox worker entry point.

Full-job mode writes NDJSON records to stdout. Preview mode writes PNG bytes
to stdout. Log output always goes to stderr or the configured log file.

Usage:
    python -m vapourbox --config job.json
    python -m vapourbox --config job.json --preview --frame 120
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Callable, List, Optional

import yaml
from pydantic import ValidationError

from . import __version__
from .config import VapourBoxConfig, load_config, set_config
from .errors import ConfigParseError, EngineCrash, JobCancelled, PipeBrokenError, VapourBoxError
from .logs import configure_logging
from .models import LogLevel, VideoJob
from .restoration import PipelineOrchestrator, PreviewRenderer, ProgressReporter

logger = logging.getLogger("vapourbox")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vapourbox-worker",
        description="Run a VapourBox restoration job through vspipe and ffmpeg.",
    )
    parser.add_argument("--config", required=True, help="Path to the JSON job descriptor")
    parser.add_argument("--preview", action="store_true", help="Render a single frame as PNG to stdout")
    parser.add_argument("--frame", type=int, help="Output frame index for --preview")
    parser.add_argument("--settings", help="Path to a vapourbox.yaml worker settings file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Override the configured log level",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def install_cancel_handlers(callback: Callable[[], None]) -> Callable[[], None]:
    """Route SIGINT and SIGTERM to ``callback``; returns a function that undoes it."""
    loop = asyncio.get_running_loop()
    signals = [signal.SIGINT, signal.SIGTERM]
    installed = []
    previous = {}

    for sig in signals:
        try:
            loop.add_signal_handler(sig, callback)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no add_signal_handler
            previous[sig] = signal.signal(sig, lambda signum, frame: callback())

    def remove():
        for sig in installed:
            loop.remove_signal_handler(sig)
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    return remove


async def run_job(job: VideoJob, config: VapourBoxConfig, reporter: ProgressReporter) -> int:
    orchestrator = PipelineOrchestrator(config, reporter)
    remove_handlers = install_cancel_handlers(orchestrator.cancel_threadsafe)
    try:
        info = await orchestrator.run(job)
    except JobCancelled:
        reporter.log(LogLevel.INFO, "Job cancelled by user")
        reporter.complete(False)
        return EXIT_CANCELLED
    except (EngineCrash, PipeBrokenError) as e:
        logger.error(f"[Worker] {e}")
        reporter.error(e.details())
        return EXIT_FAILURE
    except VapourBoxError as e:
        logger.error(f"[Worker] {e}")
        reporter.error(str(e))
        return EXIT_FAILURE
    finally:
        remove_handlers()

    reporter.complete(True, info.output_path)
    return EXIT_SUCCESS


async def run_preview(job: VideoJob, frame: int, config: VapourBoxConfig) -> int:
    renderer = PreviewRenderer(config)
    remove_handlers = install_cancel_handlers(lambda: asyncio.ensure_future(renderer.cancel()))
    try:
        png = await renderer.render(job, frame)
    except JobCancelled:
        print("Preview cancelled", file=sys.stderr)
        return EXIT_CANCELLED
    except (EngineCrash, PipeBrokenError) as e:
        print(f"Preview failed: {e.details()}", file=sys.stderr)
        return EXIT_FAILURE
    except VapourBoxError as e:
        print(f"Preview failed: {e}", file=sys.stderr)
        return EXIT_FAILURE
    finally:
        remove_handlers()

    sys.stdout.buffer.write(png)
    sys.stdout.buffer.flush()
    return EXIT_SUCCESS


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.settings)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        parser.error(f"cannot load settings: {e}")
    set_config(config)
    configure_logging(config.logging, args.log_level)

    reporter = ProgressReporter()
    try:
        job = VideoJob.load(args.config)
    except ConfigParseError as e:
        logger.error(f"[Worker] {e}")
        if args.preview:
            print(str(e), file=sys.stderr)
        else:
            reporter.error(str(e))
        return EXIT_FAILURE

    if args.preview:
        frame = args.frame if args.frame is not None else job.preview_frame
        if frame is None:
            parser.error("--preview requires --frame (or previewFrame in the job descriptor)")
        return asyncio.run(run_preview(job, frame, config))

    return asyncio.run(run_job(job, config, reporter))


if __name__ == "__main__":
    sys.exit(main())
