"""
Configuration management for VapourBox
"""

import os
import yaml
from pathlib import Path
from typing import Optional, List
from pydantic import BaseModel, Field


class EngineConfig(BaseModel):
    vspipe_path: str = "auto"
    ffmpeg_path: str = "auto"
    ffprobe_path: str = "auto"
    deps_directory: Optional[str] = None  # Bundled deps root (per-platform subdirs)
    plugin_path: Optional[str] = None  # Exported as VAPOURSYNTH_PLUGIN_PATH
    python_path: Optional[str] = None  # Extra PYTHONPATH entries for vspipe
    source_filter: str = "bs"  # "bs" (BestSource) or "ffms2"


class ProcessingConfig(BaseModel):
    temp_directory: Optional[str] = None  # None = system temp dir
    terminate_grace_seconds: float = 5.0
    progress_interval: float = 0.5  # Seconds between progress records
    stderr_tail_lines: int = 40  # Diagnostic lines carried by an error record
    stall_timeout: float = 0  # Seconds without engine output; 0 disables
    fallback_audio_codec: str = "aac"
    fallback_audio_bitrate: int = 192
    unavailable_plugins: List[str] = Field(default_factory=list)
    preflight_check: bool = False  # Ask vspipe which plugins are loadable
    keep_temp_files: bool = False  # Debugging aid, leaves the run directory


class PreviewConfig(BaseModel):
    timeout: float = 120.0
    max_frame_bytes: int = 3 * 7680 * 4320  # Largest RGB24 frame accepted


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "text"
    file: Optional[str] = None


class VapourBoxConfig(BaseModel):
    engines: EngineConfig = Field(default_factory=EngineConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    preview: PreviewConfig = Field(default_factory=PreviewConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def find_config_file() -> Optional[Path]:
    """Find the configuration file in standard locations."""
    env_path = os.environ.get("VAPOURBOX_CONFIG")
    if env_path:
        return Path(env_path)

    search_paths = [
        Path.cwd() / "vapourbox.yaml",
        Path.cwd() / "vapourbox.yml",
        Path.cwd() / "config" / "vapourbox.yaml",
        Path.home() / ".config" / "vapourbox" / "vapourbox.yaml",
        Path("/etc/vapourbox/vapourbox.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def load_config(config_path: Optional[str] = None) -> VapourBoxConfig:
    """Load configuration from YAML file or use defaults."""
    config_file = Path(config_path) if config_path else find_config_file()

    if config_file and config_file.exists():
        with open(config_file, "r") as f:
            yaml_data = yaml.safe_load(f) or {}
        return VapourBoxConfig(**yaml_data)

    return VapourBoxConfig()


# Global config instance
_config: Optional[VapourBoxConfig] = None


def get_config() -> VapourBoxConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: VapourBoxConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
