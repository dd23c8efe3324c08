"""
Locating engine binaries and checking which VapourSynth dependencies load.
"""

import json
import logging
import os
import platform
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..config import EngineConfig
from ..errors import ProcessSpawnError
from .constants import SCRIPT_MODULES

logger = logging.getLogger(__name__)


def platform_suffix() -> str:
    """Name of the per-platform subdirectory inside a bundled deps tree."""
    machine = platform.machine().lower()
    arch = "arm64" if machine in ("arm64", "aarch64") else "x64"
    if sys.platform == "darwin":
        return f"macos-{arch}"
    if sys.platform == "win32":
        return f"windows-{arch}"
    return f"linux-{arch}"


class DependencyLocator:
    """Finds vspipe, ffmpeg and ffprobe and builds the environment they run in."""

    def __init__(self, config: EngineConfig):
        self.config = config
        self.platform_dir: Optional[Path] = None
        if config.deps_directory:
            candidate = Path(config.deps_directory) / platform_suffix()
            self.platform_dir = candidate if candidate.is_dir() else Path(config.deps_directory)

    def _exe(self, name: str) -> str:
        return f"{name}.exe" if sys.platform == "win32" else name

    def _bundled(self, *parts: str) -> Optional[str]:
        if self.platform_dir is None:
            return None
        path = self.platform_dir.joinpath(*parts)
        return str(path) if path.exists() else None

    def _find(self, configured: str, name: str, bundled: List[Optional[str]]) -> str:
        if configured != "auto":
            return configured
        for candidate in bundled:
            if candidate:
                return candidate
        found = shutil.which(name)
        if found:
            return found
        raise ProcessSpawnError(name, f"{name} not found in deps directory or PATH")

    def vspipe_path(self) -> str:
        return self._find(self.config.vspipe_path, "vspipe", [
            self._bundled("vapoursynth", "VSPipe.exe") if sys.platform == "win32" else None,
            self._bundled("vapoursynth", self._exe("vspipe")),
        ])

    def ffmpeg_path(self) -> str:
        return self._find(self.config.ffmpeg_path, "ffmpeg", [
            self._bundled("ffmpeg", self._exe("ffmpeg")),
        ])

    def ffprobe_path(self) -> str:
        return self._find(self.config.ffprobe_path, "ffprobe", [
            self._bundled("ffmpeg", self._exe("ffprobe")),
        ])

    def plugin_path(self) -> Optional[str]:
        if self.config.plugin_path:
            return self.config.plugin_path
        plugins_dir = "vs-plugins" if sys.platform == "win32" else "plugins"
        return self._bundled("vapoursynth", plugins_dir)

    def build_environment(self) -> Dict[str, str]:
        """Process environment for the engines, with bundled paths prepended."""
        env = dict(os.environ)

        python_paths = []
        if self.config.python_path:
            python_paths.append(self.config.python_path)
        bundled_packages = self._bundled("python-packages")
        if bundled_packages:
            python_paths.append(bundled_packages)
        if python_paths:
            existing = env.get("PYTHONPATH")
            if existing:
                python_paths.append(existing)
            env["PYTHONPATH"] = os.pathsep.join(python_paths)

        plugin_path = self.plugin_path()
        if plugin_path:
            env["VAPOURSYNTH_PLUGIN_PATH"] = plugin_path

        return env


class StaticDependencyProbe:
    """Treats a configured list of names as unavailable."""

    def __init__(self, unavailable_names: Sequence[str]):
        self.unavailable_names = set(unavailable_names)

    def unavailable(self, names: Sequence[str]) -> List[str]:
        return [name for name in names if name in self.unavailable_names]


_PROBE_SCRIPT = """\
import importlib
import json
import sys
import vapoursynth as vs

core = vs.core
modules = {modules!r}
plugins = {plugins!r}
missing = []
for name in modules:
    try:
        importlib.import_module(name)
    except Exception:
        missing.append(name)
for name in plugins:
    if not hasattr(core, name):
        missing.append(name)
print("DEPS:" + json.dumps(missing), file=sys.stderr)
core.std.BlankClip(length=1).set_output()
"""


class EnvironmentProbe:
    """
    Asks vspipe which modules and plugins actually load.

    Runs a throwaway script through ``vspipe --info`` and reads back the
    names that failed. Names not known to the probe are reported missing
    when vspipe itself cannot run.
    """

    def __init__(self, locator: DependencyLocator, timeout: float = 30.0):
        self.locator = locator
        self.timeout = timeout
        self._cache: Dict[str, bool] = {}

    def unavailable(self, names: Sequence[str]) -> List[str]:
        pending = [name for name in names if name not in self._cache]
        if pending:
            missing = set(self._run_probe(pending))
            for name in pending:
                self._cache[name] = name not in missing
        return [name for name in names if not self._cache[name]]

    def _run_probe(self, names: List[str]) -> List[str]:
        module_names = set(SCRIPT_MODULES.values())
        modules = [name for name in names if name in module_names]
        plugins = [name for name in names if name not in module_names]

        with tempfile.TemporaryDirectory(prefix="vapourbox_probe_") as tmp:
            script = Path(tmp) / "probe.vpy"
            script.write_text(_PROBE_SCRIPT.format(modules=modules, plugins=plugins), encoding="utf-8")
            try:
                result = subprocess.run(
                    [self.locator.vspipe_path(), "--info", str(script), "-"],
                    env=self.locator.build_environment(),
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.warning(f"[Deps] Environment probe failed: {e}")
                return list(names)

        for line in result.stderr.splitlines():
            if line.startswith("DEPS:"):
                missing = json.loads(line[len("DEPS:"):])
                logger.debug(f"[Deps] Probe reports missing: {missing}")
                return missing

        logger.warning(f"[Deps] Environment probe produced no report (exit {result.returncode})")
        return list(names)
