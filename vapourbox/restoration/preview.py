"""
Single-frame preview: the filter chain without the encoder.

vspipe writes the one requested frame as raw planar RGB24 on stdout; it is
encoded as PNG with Pillow. Encoding settings play no part in a preview.
"""

import asyncio
import io
import logging
import subprocess
from collections import deque
from pathlib import Path
from typing import Deque, List, Optional, Tuple

from PIL import Image

from ..config import VapourBoxConfig, get_config
from ..errors import (
    ConfigParseError,
    EngineCrash,
    JobCancelled,
    OrchestrationError,
    PipeBrokenError,
    ProcessSpawnError,
)
from ..models import VideoJob
from .commands import CommandBuilder
from .constants import FRAME_ENGINE
from .dependencies import DependencyLocator, StaticDependencyProbe
from .engine import async_remove, graceful_terminate, make_run_dir, spawn_kwargs
from .error_classifier import get_error_classifier
from .ordering import resolve_pass_order
from .probe import MediaProbe
from .progress import INFO_RE, parse_info_fields
from .script import DependencyProbe, ScriptGenerator

logger = logging.getLogger(__name__)


def rgb_planes_to_png(data: bytes, width: int, height: int) -> bytes:
    """Encode planar R, G, B bytes as a PNG image."""
    plane = width * height
    if len(data) != plane * 3:
        raise ValueError(f"Expected {plane * 3} bytes for {width}x{height} RGB24, got {len(data)}")
    bands = [
        Image.frombytes("L", (width, height), data[i * plane:(i + 1) * plane])
        for i in range(3)
    ]
    image = Image.merge("RGB", bands)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class FrameTooLarge(Exception):
    pass


class PreviewRenderer:
    """
    Renders one output frame of a job's pipeline to PNG bytes.

    ``cancel()`` returns once vspipe has exited and the preview's run
    directory is gone.
    """

    def __init__(
        self,
        config: Optional[VapourBoxConfig] = None,
        dependency_probe: Optional[DependencyProbe] = None,
    ):
        self.config = config or get_config()
        self.locator = DependencyLocator(self.config.engines)
        self._dependency_probe = dependency_probe
        self.process: Optional[asyncio.subprocess.Process] = None
        self._cancel_event = asyncio.Event()
        self._finished = asyncio.Event()
        self._active = False

    async def cancel(self) -> None:
        """Request cancellation and wait until the render has wound down."""
        self._cancel_event.set()
        if self._active:
            await self._finished.wait()

    async def render(self, job: VideoJob, frame: int) -> bytes:
        self._active = True
        try:
            return await self._render(job, frame)
        finally:
            self._active = False
            self._finished.set()

    async def _render(self, job: VideoJob, frame: int) -> bytes:
        if frame < 0:
            raise ConfigParseError(f"Preview frame must be non-negative, got {frame}")
        if not Path(job.input_path).is_file():
            raise ConfigParseError(f"Input file not found: {job.input_path}")

        vspipe = self.locator.vspipe_path()
        env = self.locator.build_environment()

        detected = job.detected_field_order
        if detected is None:
            detected = await self._detect_field_order(job, env)
        steps = resolve_pass_order(job.effective_pipeline(), detected)

        probe = self._dependency_probe
        if probe is None and self.config.processing.unavailable_plugins:
            probe = StaticDependencyProbe(self.config.processing.unavailable_plugins)
        generator = ScriptGenerator(self.config.engines.source_filter, probe)
        script = generator.generate_preview(steps, job.input_path, frame)

        run_dir = make_run_dir(self.config.processing.temp_directory, "vapourbox_preview_")
        try:
            try:
                script_path = generator.write(script, run_dir, name="preview.vpy")
            except OSError as e:
                raise OrchestrationError(f"Cannot write preview script to {run_dir}: {e}") from e
            cmd = CommandBuilder(vspipe).build_frame_engine_command(
                str(script_path), y4m=False, progress=False
            )
            data, tail, size = await self._run_frame_engine(cmd, env)
        finally:
            if not self.config.processing.keep_temp_files:
                await async_remove(run_dir)

        if size is None:
            raise PipeBrokenError(f"{FRAME_ENGINE} did not report the preview frame size", tail)
        width, height = size
        try:
            png = rgb_planes_to_png(data, width, height)
        except ValueError as e:
            raise PipeBrokenError(f"Incomplete preview frame: {e}", tail) from e
        logger.info(f"[Preview] Rendered frame {frame} at {width}x{height}")
        return png

    async def _detect_field_order(self, job: VideoJob, env):
        try:
            ffprobe = self.locator.ffprobe_path()
        except ProcessSpawnError as e:
            logger.debug(f"[Preview] Skipping field order detection: {e}")
            return None
        return await MediaProbe(ffprobe, env=env).detect_field_order(job.input_path)

    async def _run_frame_engine(
        self, cmd: List[str], env
    ) -> Tuple[bytes, List[str], Optional[Tuple[int, int]]]:
        preview = self.config.preview
        grace = self.config.processing.terminate_grace_seconds
        logger.info(f"[Preview] Starting {FRAME_ENGINE}: {' '.join(cmd)}")
        try:
            process = self.process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                **spawn_kwargs(),
            )
        except OSError as e:
            raise ProcessSpawnError(FRAME_ENGINE, str(e)) from e

        tail: Deque[str] = deque(maxlen=self.config.processing.stderr_tail_lines)
        chunks: List[bytes] = []
        size: List[Tuple[int, int]] = []

        async def read_stdout():
            total = 0
            while True:
                chunk = await process.stdout.read(65536)
                if not chunk:
                    break
                total += len(chunk)
                if total > preview.max_frame_bytes:
                    raise FrameTooLarge(f"Preview output exceeds {preview.max_frame_bytes} bytes")
                chunks.append(chunk)

        async def read_stderr():
            while True:
                line = await process.stderr.readline()
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                match = INFO_RE.match(text)
                if match and match.group(1) == "OUTPUT_INFO":
                    fields = parse_info_fields(match.group(2))
                    if fields.get("width") and fields.get("height"):
                        size.append((fields["width"], fields["height"]))
                tail.append(text)
                logger.debug(f"[Preview] {FRAME_ENGINE}: {text}")

        async def finish():
            await asyncio.gather(read_stdout(), read_stderr())
            return await process.wait()

        run_task = asyncio.create_task(finish())
        cancel_wait = asyncio.create_task(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {run_task, cancel_wait},
                timeout=preview.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancel_wait.cancel()
            if not run_task.done():
                await graceful_terminate(process, FRAME_ENGINE, grace)
                run_task.cancel()
                await asyncio.gather(run_task, return_exceptions=True)

        if run_task not in done:
            if self._cancel_event.is_set():
                raise JobCancelled("Preview cancelled")
            raise EngineCrash(FRAME_ENGINE, process.returncode, list(tail), f"timed out after {preview.timeout:.0f}s")

        try:
            returncode = run_task.result()
        except FrameTooLarge as e:
            await graceful_terminate(process, FRAME_ENGINE, grace)
            raise PipeBrokenError(str(e), list(tail)) from e

        if returncode != 0:
            raise EngineCrash(
                FRAME_ENGINE, returncode, list(tail),
                get_error_classifier().get_error_description(tail),
            )
        return b"".join(chunks), list(tail), size[-1] if size else None
