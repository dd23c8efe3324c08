"""
Process-pair orchestrator: vspipe piped into ffmpeg.

The frame stream runs through an OS pipe handed directly to both children,
so the worker never holds frame data in memory and a slow encoder blocks
the frame engine through the pipe buffer.
"""

import asyncio
import functools
import json
import os
import shutil
import signal
import subprocess
import sys
import tempfile
import time
import logging
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Tuple

from ..config import VapourBoxConfig, get_config
from ..errors import (
    ConfigParseError,
    EngineCrash,
    JobCancelled,
    OrchestrationError,
    PipeBrokenError,
    ProcessSpawnError,
)
from ..models import AudioPolicy, CompletionInfo, LogLevel, VideoJob
from .audio import resolve_audio_policy
from .commands import CommandBuilder, output_rate_multiplier
from .constants import ENCODER_ENGINE, FRAME_ENGINE
from .dependencies import DependencyLocator, EnvironmentProbe, StaticDependencyProbe
from .error_classifier import get_error_classifier
from .ordering import resolve_pass_order
from .probe import MediaProbe, SourceInfo
from .progress import ProgressReporter, ProgressTranslator
from .script import DependencyProbe, GeneratedScript, ScriptGenerator

# Thread pool for blocking I/O operations (cleanup, dependency probing)
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="vapourbox_io")

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def spawn_kwargs() -> Dict[str, Any]:
    """Extra process options so engines can receive a graceful interrupt."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {}


async def graceful_terminate(
    process: asyncio.subprocess.Process,
    engine: str,
    grace: float = 5.0,
) -> None:
    """
    Terminate an engine process, escalating until it is gone.

    Sends SIGINT on Unix and CTRL_BREAK_EVENT on Windows, then SIGTERM
    after ``grace`` seconds, then SIGKILL.
    """
    if process.returncode is not None:
        return

    try:
        try:
            if sys.platform == "win32":
                process.send_signal(signal.CTRL_BREAK_EVENT)
            else:
                process.send_signal(signal.SIGINT)
        except (ProcessLookupError, OSError):
            pass

        try:
            await asyncio.wait_for(process.wait(), timeout=grace)
            logger.debug(f"[Engine] {engine} terminated gracefully")
            return
        except asyncio.TimeoutError:
            pass

        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=3.0)
            logger.debug(f"[Engine] {engine} terminated with SIGTERM")
            return
        except (asyncio.TimeoutError, ProcessLookupError, OSError):
            pass

        try:
            process.kill()
            await process.wait()
            logger.warning(f"[Engine] {engine} killed forcefully")
        except (ProcessLookupError, OSError):
            pass

    except Exception as e:
        logger.warning(f"[Engine] Error during {engine} termination: {e}")


async def async_remove(path: Path) -> None:
    """Delete a file or directory tree on the I/O thread pool."""
    loop = asyncio.get_running_loop()

    def remove():
        try:
            if path.is_dir():
                shutil.rmtree(path, ignore_errors=True)
            elif path.exists():
                path.unlink()
            else:
                return
            logger.debug(f"[Engine] Removed {path}")
        except OSError as e:
            logger.warning(f"[Engine] Failed to remove {path}: {e}")

    await loop.run_in_executor(_executor, remove)


def make_run_dir(base: Optional[str], prefix: str) -> Path:
    """Create a fresh per-run directory under ``base``, or the system temp dir."""
    try:
        if base:
            Path(base).mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=prefix, dir=base))
    except OSError as e:
        raise ConfigParseError(
            f"Cannot create a run directory under {base or tempfile.gettempdir()}: {e}"
        ) from e


def estimate_total_frames(job: VideoJob, source: Optional[SourceInfo]) -> Optional[int]:
    """
    Output frame count to report before the frame engine announces its own.

    The job's ``totalFrames`` wins; otherwise the probed source length is
    scaled by the deinterlacer's rate change. OUTPUT_INFO replaces either.
    """
    if job.total_frames:
        return job.total_frames
    if job.frame_range is not None:
        start, end = job.frame_range
        return end - start + 1
    if source is None or not source.frame_count:
        return None
    return source.frame_count * output_rate_multiplier(job)


class PipelineOrchestrator:
    """
    Runs one job through vspipe and ffmpeg.

    An instance serves a single ``run()``. ``cancel()`` may be awaited from
    another task and returns once both engines have exited and the run has
    cleaned up; ``cancel_threadsafe()`` requests the same from another thread.
    """

    def __init__(
        self,
        config: Optional[VapourBoxConfig] = None,
        reporter: Optional[ProgressReporter] = None,
        dependency_probe: Optional[DependencyProbe] = None,
    ):
        self.config = config or get_config()
        self.reporter = reporter or ProgressReporter()
        self.locator = DependencyLocator(self.config.engines)
        self._dependency_probe = dependency_probe

        self.state = RunState.NOT_STARTED
        self.translator: Optional[ProgressTranslator] = None
        self.run_dir: Optional[Path] = None
        self.frame_process: Optional[asyncio.subprocess.Process] = None
        self.encoder_process: Optional[asyncio.subprocess.Process] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._cancel_event = asyncio.Event()
        self._finished = asyncio.Event()
        self._active = False
        self._spawned = False
        self._last_activity = time.monotonic()
        self._first_exit: Optional[str] = None

    @property
    def processing(self):
        return self.config.processing

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel(self) -> None:
        """Request cancellation and wait until the run has wound down."""
        if self.state in (RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED):
            return
        logger.info("[Engine] Cancellation requested")
        self._cancel_event.set()
        if self._active:
            await self._finished.wait()

    def cancel_threadsafe(self) -> Optional[Future]:
        """
        Request cancellation from a thread other than the event loop's.

        Once the job is running, returns a future that resolves when the
        engines have exited and the run has cleaned up. Before ``run()``
        starts there is nothing to wait for and None is returned.
        """
        if self._loop is None:
            self._cancel_event.set()
            return None
        return asyncio.run_coroutine_threadsafe(self.cancel(), self._loop)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, job: VideoJob) -> CompletionInfo:
        """
        Execute ``job`` and return its completion info.

        Raises ConfigParseError or ScriptGenerationError before any engine
        starts, and an OrchestrationError subclass once they have.
        """
        if self.state != RunState.NOT_STARTED:
            raise OrchestrationError("Orchestrator instances run a single job")

        self._loop = asyncio.get_running_loop()
        self._active = True
        started = time.monotonic()
        try:
            self._preflight(job)
            vspipe = self.locator.vspipe_path()
            ffmpeg = self.locator.ffmpeg_path()
            env = self.locator.build_environment()

            source = await self._probe_source(job, env)
            policy = resolve_audio_policy(job.encoding_settings, source, self.processing)
            self.reporter.log(LogLevel.INFO, f"Audio: {policy.mode.value} ({policy.reason})")

            detected = job.detected_field_order or (source.field_order if source else None)
            steps = resolve_pass_order(job.effective_pipeline(), detected)
            generator = ScriptGenerator(self.config.engines.source_filter, self._resolve_dependency_probe())
            script = await self._generate_script(generator, steps, job)
            self.reporter.log(LogLevel.INFO, f"Passes: {', '.join(script.steps) or 'none'}")

            builder = CommandBuilder(vspipe, ffmpeg)
            self.run_dir = make_run_dir(self.processing.temp_directory, f"vapourbox_{job.id[:8]}_")
            try:
                script_path = generator.write(script, self.run_dir)
                frame_cmd = builder.build_frame_engine_command(str(script_path))
                encoder_cmd = builder.build_encoder_command(job, policy)
                self._write_resolved_job(job, policy, script, frame_cmd, encoder_cmd)
            except OSError as e:
                raise OrchestrationError(f"Cannot write run files to {self.run_dir}: {e}") from e

            if self._cancel_event.is_set():
                raise JobCancelled()

            self.state = RunState.RUNNING
            self.translator = ProgressTranslator(
                self.reporter,
                interval=self.processing.progress_interval,
                total_frames=estimate_total_frames(job, source),
                tail_lines=self.processing.stderr_tail_lines,
            )
            frames, total = await self._run_pair(frame_cmd, encoder_cmd, env)

            self.state = RunState.COMPLETED
            elapsed = time.monotonic() - started
            logger.info(f"[Engine] Job {job.id} completed: {frames} frames in {elapsed:.1f}s")
            return CompletionInfo(
                output_path=job.output_path,
                frames=frames,
                total_frames=total,
                elapsed=elapsed,
                audio=policy,
            )

        except JobCancelled:
            self.state = RunState.CANCELLED
            logger.info(f"[Engine] Job {job.id} cancelled")
            await self._discard_output(job)
            raise
        except BaseException:
            self.state = RunState.FAILED
            await self._discard_output(job)
            raise
        finally:
            await self._cleanup_run_dir()
            self._active = False
            self._finished.set()

    def _preflight(self, job: VideoJob) -> None:
        input_path = Path(job.input_path)
        if not input_path.is_file():
            raise ConfigParseError(f"Input file not found: {job.input_path}")
        output_path = Path(job.output_path)
        if output_path.resolve() == input_path.resolve():
            raise ConfigParseError("Output path must differ from the input path")
        if not output_path.parent.is_dir():
            raise ConfigParseError(f"Output directory does not exist: {output_path.parent}")
        job.encoding_settings.extra_args()

    async def _probe_source(self, job: VideoJob, env: Dict[str, str]) -> Optional[SourceInfo]:
        try:
            ffprobe = self.locator.ffprobe_path()
        except ProcessSpawnError as e:
            logger.warning(f"[Engine] Skipping source probe: {e}")
            return None
        return await MediaProbe(ffprobe, env=env).get_source_info(job.input_path)

    def _resolve_dependency_probe(self) -> Optional[DependencyProbe]:
        if self._dependency_probe is not None:
            return self._dependency_probe
        if self.processing.preflight_check:
            return EnvironmentProbe(self.locator)
        if self.processing.unavailable_plugins:
            return StaticDependencyProbe(self.processing.unavailable_plugins)
        return None

    async def _generate_script(self, generator: ScriptGenerator, steps, job: VideoJob) -> GeneratedScript:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            _executor,
            functools.partial(generator.generate, steps, job.input_path, job.frame_range),
        )

    def _write_resolved_job(
        self,
        job: VideoJob,
        policy: AudioPolicy,
        script: GeneratedScript,
        frame_cmd: List[str],
        encoder_cmd: List[str],
    ) -> Path:
        resolved = {
            "job": job.model_dump(mode="json", by_alias=True, exclude_none=True),
            "audioPolicy": policy.model_dump(mode="json", by_alias=True, exclude_none=True),
            "passes": script.steps,
            "dependencies": script.dependencies,
            "frameEngineCommand": frame_cmd,
            "encoderCommand": encoder_cmd,
        }
        path = self.run_dir / "job.json"
        path.write_text(json.dumps(resolved, indent=2), encoding="utf-8")
        return path

    async def _cleanup_run_dir(self) -> None:
        if self.run_dir is None:
            return
        if self.processing.keep_temp_files:
            logger.info(f"[Engine] Keeping run directory {self.run_dir}")
            return
        await async_remove(self.run_dir)

    async def _discard_output(self, job: VideoJob) -> None:
        if not self._spawned:
            return
        output = Path(job.output_path)
        if output.exists():
            logger.info(f"[Engine] Removing partial output {output}")
            await async_remove(output)

    # ------------------------------------------------------------------
    # Engine pair
    # ------------------------------------------------------------------

    async def _spawn(self, engine: str, cmd: List[str], env: Dict[str, str], **kwargs) -> asyncio.subprocess.Process:
        logger.info(f"[Engine] Starting {engine}: {' '.join(cmd[:12])}")
        try:
            return await asyncio.create_subprocess_exec(
                *cmd,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                **spawn_kwargs(),
                **kwargs,
            )
        except OSError as e:
            raise ProcessSpawnError(engine, str(e)) from e

    async def _run_pair(
        self,
        frame_cmd: List[str],
        encoder_cmd: List[str],
        env: Dict[str, str],
    ) -> Tuple[int, Optional[int]]:
        grace = self.processing.terminate_grace_seconds

        read_fd, write_fd = os.pipe()
        try:
            frame_proc = self.frame_process = await self._spawn(
                FRAME_ENGINE, frame_cmd, env, stdin=subprocess.DEVNULL, stdout=write_fd
            )
            self._spawned = True
            try:
                encoder_proc = self.encoder_process = await self._spawn(
                    ENCODER_ENGINE, encoder_cmd, env, stdin=read_fd, stdout=subprocess.DEVNULL
                )
            except ProcessSpawnError:
                await graceful_terminate(frame_proc, FRAME_ENGINE, grace)
                raise
        finally:
            os.close(read_fd)
            os.close(write_fd)

        encoder_tail: Deque[str] = deque(maxlen=self.processing.stderr_tail_lines)
        self._last_activity = time.monotonic()

        frame_drain = asyncio.create_task(self._drain_frame_engine(frame_proc))
        encoder_drain = asyncio.create_task(self._drain_encoder(encoder_proc, encoder_tail))
        exit_watch = asyncio.create_task(self._watch_exits(frame_proc, encoder_proc))
        cancel_wait = asyncio.create_task(self._cancel_event.wait())
        watched = {frame_drain, encoder_drain, exit_watch, cancel_wait}
        stall_watch = None
        if self.processing.stall_timeout > 0:
            stall_watch = asyncio.create_task(self._watch_stall(self.processing.stall_timeout))
            watched.add(stall_watch)

        cancelled = stalled = False
        try:
            while not exit_watch.done():
                done, watched = await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)
                if cancel_wait in done:
                    cancelled = True
                    break
                if stall_watch is not None and stall_watch in done:
                    stalled = True
                    break
        finally:
            if not exit_watch.done():
                await asyncio.gather(
                    graceful_terminate(frame_proc, FRAME_ENGINE, grace),
                    graceful_terminate(encoder_proc, ENCODER_ENGINE, grace),
                )
            for task in (cancel_wait, stall_watch):
                if task is not None and not task.done():
                    task.cancel()
            await asyncio.gather(exit_watch, return_exceptions=True)
            _, still_draining = await asyncio.wait({frame_drain, encoder_drain}, timeout=5.0)
            for task in still_draining:
                task.cancel()

        self.translator.close()
        frame_tail = self.translator.tail_lines()

        if cancelled or self._cancel_event.is_set():
            raise JobCancelled()
        if stalled:
            raise EngineCrash(
                FRAME_ENGINE, frame_proc.returncode, frame_tail,
                f"no engine output for {self.processing.stall_timeout:.0f}s",
            )

        self._check_exit_codes(frame_proc.returncode, encoder_proc.returncode, frame_tail, list(encoder_tail))

        if not self.translator.is_consistent():
            raise PipeBrokenError(
                f"{FRAME_ENGINE} stopped at frame {self.translator.last_reported_frame} "
                f"of {self.translator.total_frames}",
                frame_tail,
            )
        return self.translator.last_reported_frame, self.translator.total_frames

    def _check_exit_codes(
        self,
        frame_rc: Optional[int],
        encoder_rc: Optional[int],
        frame_tail: List[str],
        encoder_tail: List[str],
    ) -> None:
        classifier = get_error_classifier()
        frame_failed = frame_rc != 0
        encoder_failed = encoder_rc != 0

        if frame_failed and encoder_failed:
            blame_encoder = self._first_exit == ENCODER_ENGINE
        else:
            blame_encoder = encoder_failed

        if blame_encoder:
            raise EngineCrash(
                ENCODER_ENGINE, encoder_rc, encoder_tail,
                classifier.get_error_description(encoder_tail),
            )
        if frame_failed:
            sigpipe = getattr(signal, "SIGPIPE", None)
            broken = classifier.is_pipe_error(frame_tail) or (sigpipe is not None and frame_rc == -sigpipe)
            if broken:
                raise PipeBrokenError(
                    f"{ENCODER_ENGINE} closed the frame stream early ({FRAME_ENGINE} exited with code {frame_rc})",
                    frame_tail,
                )
            if classifier.is_dependency_error(frame_tail):
                self.reporter.log(
                    LogLevel.WARNING,
                    "A VapourSynth plugin or script module failed to load; "
                    "check engines.plugin_path and engines.python_path, or enable processing.preflight_check",
                )
            raise EngineCrash(
                FRAME_ENGINE, frame_rc, frame_tail,
                classifier.get_error_description(frame_tail),
            )

    async def _drain_frame_engine(self, process: asyncio.subprocess.Process) -> None:
        """Feed frame engine diagnostics to the progress translator."""
        try:
            while True:
                chunk = await process.stderr.read(4096)
                if not chunk:
                    break
                self._last_activity = time.monotonic()
                self.translator.feed(chunk.decode("utf-8", errors="replace"))
        except Exception as e:
            logger.debug(f"[Engine] {FRAME_ENGINE} stderr reader error: {e}")

    async def _drain_encoder(self, process: asyncio.subprocess.Process, tail: Deque[str]) -> None:
        """Keep a bounded tail of encoder diagnostics and forward them as warnings."""
        try:
            while True:
                line = await process.stderr.readline()
                if not line:
                    break
                self._last_activity = time.monotonic()
                text = line.decode("utf-8", errors="replace").strip()
                if text:
                    tail.append(text)
                    self.reporter.log(LogLevel.WARNING, f"{ENCODER_ENGINE}: {text}")
        except Exception as e:
            logger.debug(f"[Engine] {ENCODER_ENGINE} stderr reader error: {e}")

    async def _watch_exits(
        self,
        frame_proc: asyncio.subprocess.Process,
        encoder_proc: asyncio.subprocess.Process,
    ) -> None:
        """
        Wait for both engines. When one fails while the other keeps running,
        the survivor gets the grace period before it is terminated.
        """
        waits = {
            asyncio.ensure_future(frame_proc.wait()): (FRAME_ENGINE, frame_proc),
            asyncio.ensure_future(encoder_proc.wait()): (ENCODER_ENGINE, encoder_proc),
        }
        done, pending = await asyncio.wait(waits, return_when=asyncio.FIRST_COMPLETED)
        first = next(iter(done))
        self._first_exit = waits[first][0]
        logger.debug(f"[Engine] {self._first_exit} exited with code {first.result()}")

        if pending and first.result() != 0:
            _, still_running = await asyncio.wait(pending, timeout=self.processing.terminate_grace_seconds)
            for task in still_running:
                engine, process = waits[task]
                logger.warning(f"[Engine] {self._first_exit} failed, stopping {engine}")
                await graceful_terminate(process, engine, self.processing.terminate_grace_seconds)

        await asyncio.gather(*waits)

    async def _watch_stall(self, timeout: float) -> None:
        while True:
            idle = time.monotonic() - self._last_activity
            if idle >= timeout:
                logger.error(f"[Engine] No engine output for {timeout:.0f}s, terminating")
                return
            await asyncio.sleep(min(1.0, timeout - idle))
