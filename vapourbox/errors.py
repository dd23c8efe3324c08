"""
Error types raised by the VapourBox worker.

Configuration and script errors are raised before any engine process is
spawned. Everything that can go wrong once the engines are running derives
from OrchestrationError.
"""

from typing import List, Optional


class VapourBoxError(Exception):
    """Base class for all worker errors."""


class ConfigParseError(VapourBoxError):
    """The job descriptor could not be read or failed validation."""


class ScriptGenerationError(VapourBoxError):
    """A pass could not be compiled into the filter script."""

    def __init__(self, message: str, missing_dependencies: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_dependencies = missing_dependencies or []


class OrchestrationError(VapourBoxError):
    """Failure while running the engine processes."""


class ProcessSpawnError(OrchestrationError):
    """An engine binary was not found or could not be started."""

    def __init__(self, engine: str, message: str):
        super().__init__(f"Failed to start {engine}: {message}")
        self.engine = engine


class EngineCrash(OrchestrationError):
    """An engine exited with a non-zero status."""

    def __init__(
        self,
        engine: str,
        returncode: Optional[int],
        tail: List[str],
        description: Optional[str] = None,
    ):
        self.engine = engine
        self.returncode = returncode
        self.tail = list(tail)
        self.description = description
        summary = f"{engine} exited with code {returncode}"
        if description:
            summary += f" ({description})"
        super().__init__(summary)

    def details(self) -> str:
        """Message plus the captured diagnostic tail."""
        if not self.tail:
            return str(self)
        return f"{self}\n" + "\n".join(self.tail)


class PipeBrokenError(OrchestrationError):
    """The frame stream between the engines closed before the job finished."""

    def __init__(self, message: str, tail: Optional[List[str]] = None):
        super().__init__(message)
        self.tail = list(tail or [])

    def details(self) -> str:
        if not self.tail:
            return str(self)
        return f"{self}\n" + "\n".join(self.tail)


class JobCancelled(OrchestrationError):
    """The caller cancelled the job."""

    def __init__(self, message: str = "Job cancelled"):
        super().__init__(message)
