"""
Engine error classification for readable failure reports.

Maps known substrings of vspipe and ffmpeg diagnostics to a category:
- dependency: a VapourSynth plugin or script module failed to load
- script: the generated script raised while building the clip
- input: the source or output path is unusable
- codec: the encoder rejected a codec, format or argument
- resource: memory or disk exhausted
- pipe: the frame stream between the engines closed early
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class EngineError:
    """Represents a classified engine error."""
    pattern: str
    category: str
    description: str


ENGINE_ERROR_MAP: List[EngineError] = [
    # === Missing VapourSynth plugins and modules ===
    EngineError("no attribute with the name", "dependency", "VapourSynth plugin not loaded"),
    EngineError("there is no function named", "dependency", "VapourSynth plugin function not found"),
    EngineError("no module named", "dependency", "Python script module not installed"),
    EngineError("failed to load plugin", "dependency", "VapourSynth plugin failed to load"),
    EngineError("opencl", "dependency", "OpenCL device unavailable"),

    # === Script evaluation ===
    EngineError("script evaluation failed", "script", "Filter script raised an exception"),
    EngineError("traceback (most recent call last)", "script", "Filter script raised an exception"),
    EngineError("preview frame", "script", "Preview frame out of range"),
    EngineError("vapoursynth.error", "script", "VapourSynth filter error"),

    # === Pipe between engines ===
    EngineError("broken pipe", "pipe", "Frame stream closed by the encoder"),
    EngineError("errno: 32", "pipe", "Frame stream closed by the encoder"),
    EngineError("fwrite() call failed", "pipe", "Frame stream closed by the encoder"),
    EngineError("end of file", "pipe", "Frame stream ended unexpectedly"),

    # === Resources ===
    EngineError("out of memory", "resource", "Out of memory"),
    EngineError("cannot allocate", "resource", "Memory allocation failed"),
    EngineError("no space left", "resource", "No disk space"),
    EngineError("disk quota", "resource", "Disk quota exceeded"),

    # === Input and output paths ===
    EngineError("no such file", "input", "File not found"),
    EngineError("permission denied", "input", "Permission denied"),
    EngineError("invalid data", "input", "Invalid input data"),
    EngineError("moov atom not found", "input", "Invalid MP4 file"),

    # === Encoder ===
    EngineError("unknown encoder", "codec", "Encoder not available in this ffmpeg build"),
    EngineError("encoder not found", "codec", "Encoder not found"),
    EngineError("codec not currently supported in container", "codec", "Codec not supported by container"),
    EngineError("could not find tag for codec", "codec", "Codec not supported by container"),
    EngineError("incompatible pixel format", "codec", "Incompatible pixel format for encoder"),
    EngineError("unrecognized option", "codec", "Unrecognized encoder option"),
    EngineError("invalid argument", "codec", "Invalid encoder argument"),
]


class ErrorClassifier:
    """Classifies engine diagnostics into a category and description."""

    def __init__(self, error_map: Optional[List[EngineError]] = None):
        self.error_map = error_map or ENGINE_ERROR_MAP

    def classify(self, error_msg: str) -> Tuple[Optional[EngineError], str]:
        """
        Classify diagnostic text using the error map.

        Returns:
            Tuple of (matched_error, category). Category is 'unknown' if no match.
        """
        error_lower = error_msg.lower()

        for error in self.error_map:
            if error.pattern in error_lower:
                return error, error.category

        return None, "unknown"

    def classify_lines(self, lines: Iterable[str]) -> Tuple[Optional[EngineError], str]:
        """Classify a diagnostic tail, preferring the most recent matching line."""
        for line in reversed(list(lines)):
            error, category = self.classify(line)
            if error:
                return error, category
        return None, "unknown"

    def is_pipe_error(self, lines: Iterable[str]) -> bool:
        _, category = self.classify_lines(lines)
        return category == "pipe"

    def is_dependency_error(self, lines: Iterable[str]) -> bool:
        _, category = self.classify_lines(lines)
        return category == "dependency"

    def get_error_description(self, lines: Iterable[str]) -> Optional[str]:
        """Human-readable description of a diagnostic tail, or None if unknown."""
        error, _ = self.classify_lines(lines)
        if error:
            return error.description
        return None


# Global classifier instance
_classifier: Optional[ErrorClassifier] = None


def get_error_classifier() -> ErrorClassifier:
    """Get or create the global error classifier."""
    global _classifier
    if _classifier is None:
        _classifier = ErrorClassifier()
    return _classifier
