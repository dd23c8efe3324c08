"""
Progress parsing for the frame engine and the NDJSON worker protocol.

vspipe rewrites its progress line in place with carriage returns, so the
diagnostic stream is split on both ``\\r`` and ``\\n``. Lines that are not
recognised are forwarded as debug ``log`` records rather than dropped.
"""

import logging
import re
import sys
import threading
import time
from collections import deque
from typing import Callable, Deque, IO, List, Optional

from ..models import (
    CompleteMessage,
    ErrorMessage,
    LogLevel,
    LogMessage,
    ProgressInfo,
    ProgressMessage,
)

logger = logging.getLogger(__name__)


PROGRESS_RE = re.compile(r"^frame:?\s*(\d+)\s*/\s*(\d+)(?:\s*\(\s*([\d.]+)\s*fps\s*\))?", re.IGNORECASE)
FINAL_RE = re.compile(r"^Output\s+(\d+)\s+frames\s+in\s+([\d.]+)\s+seconds\s*\(\s*([\d.]+)\s*fps\s*\)")
INFO_RE = re.compile(r"^(INPUT_INFO|OUTPUT_INFO):(.*)$")
LINE_SPLIT_RE = re.compile(r"[\r\n]")


def parse_info_fields(payload: str) -> dict:
    """Parse ``key=value,key=value`` into a dict of ints (non-numeric values skipped)."""
    fields = {}
    for part in payload.split(","):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        try:
            fields[key.strip()] = int(value.strip())
        except ValueError:
            continue
    return fields


class ProgressReporter:
    """
    Writes worker messages as one JSON object per line.

    Safe to call from several threads. Once a terminal record (``complete``
    or ``error``) has been written, further messages are dropped.
    """

    def __init__(self, stream: Optional[IO[str]] = None):
        self._stream = stream
        self._lock = threading.Lock()
        self._terminated = False

    @property
    def stream(self) -> IO[str]:
        return self._stream if self._stream is not None else sys.stdout

    @property
    def terminated(self) -> bool:
        return self._terminated

    def _send(self, message, terminal: bool = False) -> bool:
        line = message.model_dump_json(by_alias=True, exclude_none=True)
        with self._lock:
            if self._terminated:
                logger.debug(f"[Reporter] Dropped message after terminal record: {line}")
                return False
            if terminal:
                self._terminated = True
            try:
                self.stream.write(line + "\n")
                self.stream.flush()
            except (BrokenPipeError, ValueError, OSError) as e:
                logger.warning(f"[Reporter] Failed to write message: {e}")
                return False
        return True

    def progress(self, info: ProgressInfo) -> bool:
        return self._send(ProgressMessage.from_info(info))

    def log(self, level: LogLevel, message: str) -> bool:
        return self._send(LogMessage(level=level, message=message))

    def error(self, message: str) -> bool:
        return self._send(ErrorMessage(message=message), terminal=True)

    def complete(self, success: bool, output_path: Optional[str] = None) -> bool:
        return self._send(CompleteMessage(success=success, output_path=output_path), terminal=True)


class ProgressTranslator:
    """Turns frame engine diagnostics into progress and log records."""

    def __init__(
        self,
        reporter: ProgressReporter,
        interval: float = 0.5,
        total_frames: Optional[int] = None,
        tail_lines: int = 40,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.reporter = reporter
        self.interval = interval
        self.clock = clock

        self.total_frames: Optional[int] = total_frames
        self.input_frames: Optional[int] = None
        self.width: Optional[int] = None
        self.height: Optional[int] = None
        self.frame = 0
        self.fps = 0.0
        self.final_frames: Optional[int] = None

        self.tail: Deque[str] = deque(maxlen=tail_lines)
        self._buffer = ""
        self._last_emit: Optional[float] = None
        self._pending: Optional[ProgressInfo] = None
        self._output_info_seen = False

    def feed(self, text: str) -> None:
        """Accept a chunk of diagnostic text; complete lines are handled now."""
        self._buffer += text
        parts = LINE_SPLIT_RE.split(self._buffer)
        self._buffer = parts.pop()
        for part in parts:
            self.handle_line(part)

    def close(self) -> None:
        """Handle any unterminated final line and flush pending progress."""
        if self._buffer:
            remaining, self._buffer = self._buffer, ""
            self.handle_line(remaining)
        self.flush()

    def handle_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return

        match = INFO_RE.match(line)
        if match:
            self._handle_info(match.group(1), parse_info_fields(match.group(2)))
            self.reporter.log(LogLevel.DEBUG, line)
            return

        match = PROGRESS_RE.match(line)
        if match:
            total = int(match.group(2))
            if not self._output_info_seen and total > 0:
                self.total_frames = total
            fps = float(match.group(3)) if match.group(3) else self.fps
            self._update(int(match.group(1)), fps)
            return

        match = FINAL_RE.match(line)
        if match:
            self.final_frames = int(match.group(1))
            self._update(self.final_frames, float(match.group(3)), force=True)
            self.reporter.log(LogLevel.DEBUG, line)
            return

        self.tail.append(line)
        self.reporter.log(LogLevel.DEBUG, line)

    def _handle_info(self, kind: str, fields: dict) -> None:
        if kind == "INPUT_INFO":
            self.input_frames = fields.get("frames")
            if self.total_frames is None and self.input_frames:
                self.total_frames = self.input_frames
        else:
            self._output_info_seen = True
            if fields.get("frames"):
                self.total_frames = fields["frames"]
            self.width = fields.get("width")
            self.height = fields.get("height")

    def current(self) -> ProgressInfo:
        eta = None
        if self.total_frames and self.fps > 0:
            eta = max(0.0, (self.total_frames - self.frame) / self.fps)
        return ProgressInfo(frame=self.frame, total_frames=self.total_frames, fps=self.fps, eta=eta)

    def _update(self, frame: int, fps: float, force: bool = False) -> None:
        self.frame = frame
        self.fps = fps
        info = self.current()
        now = self.clock()
        if force or self._last_emit is None or now - self._last_emit >= self.interval:
            self._last_emit = now
            self._pending = None
            self.reporter.progress(info)
        else:
            self._pending = info

    def flush(self) -> None:
        if self._pending is not None:
            info, self._pending = self._pending, None
            self._last_emit = self.clock()
            self.reporter.progress(info)

    @property
    def last_reported_frame(self) -> int:
        return self.final_frames if self.final_frames is not None else self.frame

    def is_consistent(self) -> bool:
        """Whether the frames reported match the expected total (unknown total passes)."""
        if not self.total_frames:
            return True
        return self.last_reported_frame == self.total_frames

    def tail_lines(self) -> List[str]:
        return list(self.tail)
