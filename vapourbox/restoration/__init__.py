"""
Restoration package for VapourBox.
Compiles restoration passes into a VapourSynth script and runs it through vspipe and ffmpeg.
"""

from .constants import (
    CONTAINER_AUDIO_CODECS,
    CONTAINER_FALLBACK_AUDIO,
    SOURCE_FILTERS,
    FRAME_ENGINE,
    ENCODER_ENGINE,
)
from .ordering import PassKind, PassStage, PassStep, resolve_pass_order
from .script import GeneratedScript, ScriptGenerator
from .audio import decide_audio_policy, resolve_audio_policy, is_copy_compatible
from .probe import MediaProbe, SourceInfo
from .dependencies import DependencyLocator, EnvironmentProbe, StaticDependencyProbe
from .commands import CommandBuilder, output_rate_multiplier
from .progress import ProgressReporter, ProgressTranslator
from .error_classifier import EngineError, ErrorClassifier, get_error_classifier
from .engine import PipelineOrchestrator, RunState
from .preview import PreviewRenderer, rgb_planes_to_png

__all__ = [
    # Constants
    "CONTAINER_AUDIO_CODECS",
    "CONTAINER_FALLBACK_AUDIO",
    "SOURCE_FILTERS",
    "FRAME_ENGINE",
    "ENCODER_ENGINE",
    # Ordering and script
    "PassKind",
    "PassStage",
    "PassStep",
    "resolve_pass_order",
    "GeneratedScript",
    "ScriptGenerator",
    # Audio
    "decide_audio_policy",
    "resolve_audio_policy",
    "is_copy_compatible",
    # Environment
    "MediaProbe",
    "SourceInfo",
    "DependencyLocator",
    "EnvironmentProbe",
    "StaticDependencyProbe",
    # Execution
    "CommandBuilder",
    "output_rate_multiplier",
    "ProgressReporter",
    "ProgressTranslator",
    "EngineError",
    "ErrorClassifier",
    "get_error_classifier",
    "PipelineOrchestrator",
    "RunState",
    "PreviewRenderer",
    "rgb_planes_to_png",
]
