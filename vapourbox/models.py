"""
Data models for VapourBox jobs, passes and worker messages.

Every model accepts the camelCase keys written by the front end as well as
the snake_case field names.
"""

import json
import shlex
import uuid
from enum import Enum
from pathlib import Path
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .errors import ConfigParseError


class _Model(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )


# =============================================================================
# Deinterlace (QTGMC)
# =============================================================================

class QTGMCPreset(str, Enum):
    PLACEBO = "Placebo"
    VERY_SLOW = "Very Slow"
    SLOWER = "Slower"
    SLOW = "Slow"
    MEDIUM = "Medium"
    FAST = "Fast"
    FASTER = "Faster"
    VERY_FAST = "Very Fast"
    SUPER_FAST = "Super Fast"
    ULTRA_FAST = "Ultra Fast"
    DRAFT = "Draft"

    @classmethod
    def lookup(cls, value: str) -> "QTGMCPreset":
        """Resolve a preset name ignoring case, spaces and underscores."""
        wanted = value.replace(" ", "").replace("_", "").lower()
        for preset in cls:
            if preset.value.replace(" ", "").lower() == wanted:
                return preset
        raise ValueError(f"Unknown QTGMC preset: {value!r}")


class DeinterlaceParameters(_Model):
    """QTGMC settings. Optional knobs left as None use the preset's value."""

    enabled: bool = True
    preset: QTGMCPreset = QTGMCPreset.SLOWER
    input_type: int = Field(0, ge=0, le=2)
    tff: Optional[bool] = None
    fps_divisor: int = Field(1, ge=1, le=2)

    # Temporal radius and repair
    tr0: Optional[int] = Field(None, ge=0, le=2)
    tr1: Optional[int] = Field(None, ge=0, le=3)
    tr2: Optional[int] = Field(None, ge=0, le=3)
    rep0: Optional[int] = Field(None, ge=0)
    rep1: int = Field(0, ge=0)
    rep2: Optional[int] = Field(None, ge=0)
    rep_chroma: bool = True

    # Interpolation
    edi_mode: Optional[str] = None
    nn_size: Optional[int] = Field(None, ge=0, le=6)
    nn_neurons: Optional[int] = Field(None, ge=0, le=4)
    edi_qual: int = Field(1, ge=1, le=2)
    edi_max_d: Optional[int] = None
    chroma_edi: str = ""

    # Motion analysis
    block_size: Optional[int] = None
    overlap: Optional[int] = None
    search: Optional[int] = Field(None, ge=0, le=5)
    search_param: Optional[int] = None
    pel_search: Optional[int] = Field(None, ge=1, le=4)
    chroma_motion: Optional[bool] = None
    true_motion: bool = False
    lambda_: Optional[int] = Field(None, alias="lambda")
    lsad: Optional[int] = None
    p_new: Optional[int] = None
    p_level: Optional[int] = None
    global_motion: bool = True
    dct: int = Field(0, ge=0, le=10)
    sub_pel: Optional[int] = None
    sub_pel_interp: int = Field(2, ge=0, le=2)
    th_sad1: int = 640
    th_sad2: int = 256
    th_scd1: int = 180
    th_scd2: int = 98

    # Sharpening
    sharpness: Optional[float] = Field(None, ge=0.0)
    s_mode: Optional[int] = Field(None, ge=0, le=2)
    sl_mode: Optional[int] = Field(None, ge=0, le=4)
    sl_rad: Optional[int] = None
    s_ovs: int = 0
    sv_thin: float = 0.0
    sbb: Optional[int] = Field(None, ge=0, le=3)
    srch_clip_pp: Optional[int] = Field(None, ge=0, le=3)

    # Noise processing
    noise_process: Optional[int] = Field(None, ge=0, le=2)
    ez_denoise: Optional[float] = Field(None, ge=0.0)
    ez_keep_grain: Optional[float] = Field(None, ge=0.0)
    noise_preset: str = "Fast"
    denoiser: Optional[str] = None
    fft_threads: int = Field(1, ge=1)
    denoise_mc: Optional[bool] = None
    noise_tr: Optional[int] = None
    sigma: Optional[float] = None
    chroma_noise: bool = False
    show_noise: float = 0.0
    grain_restore: Optional[float] = None
    noise_restore: Optional[float] = None
    noise_deint: Optional[str] = None
    stabilize_noise: Optional[bool] = None

    # Source matching
    source_match: int = Field(0, ge=0, le=3)
    match_preset: Optional[str] = None
    match_edi: Optional[str] = None
    match_preset2: Optional[str] = None
    match_edi2: Optional[str] = None
    match_tr2: int = Field(1, ge=0, le=2)
    match_enhance: float = 0.5
    lossless: int = Field(0, ge=0, le=2)

    # Advanced
    border: bool = False
    precise: Optional[bool] = None
    force_tr: int = 0
    str_: float = Field(2.0, alias="str")
    amp: float = 0.0625
    fast_ma: bool = False
    e_search_p: bool = False
    refine_motion: bool = False

    # GPU
    opencl: bool = False
    device: Optional[int] = None

    @field_validator("preset", mode="before")
    @classmethod
    def _normalize_preset(cls, value):
        if isinstance(value, str) and not isinstance(value, QTGMCPreset):
            return QTGMCPreset.lookup(value)
        return value


# =============================================================================
# Noise reduction
# =============================================================================

class NoiseReductionMethod(str, Enum):
    SM_DEGRAIN = "smDegrain"
    MC_TEMPORAL_DENOISE = "mcTemporalDenoise"
    QTGMC_BUILTIN = "qtgmcBuiltin"


class NoiseReductionPreset(str, Enum):
    OFF = "off"
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"
    CUSTOM = "custom"


class NoiseReductionParameters(_Model):
    enabled: bool = False
    preset: NoiseReductionPreset = NoiseReductionPreset.OFF
    method: NoiseReductionMethod = NoiseReductionMethod.SM_DEGRAIN

    sm_degrain_tr: int = Field(2, ge=1, le=6)
    sm_degrain_th_sad: int = Field(
        300, ge=0,
        validation_alias=AliasChoices("smDegrainThSad", "smDegrainThSAD", "sm_degrain_th_sad"),
    )
    sm_degrain_th_sadc: int = Field(
        150, ge=0,
        validation_alias=AliasChoices("smDegrainThSadc", "smDegrainThSADC", "sm_degrain_th_sadc"),
    )
    sm_degrain_refine: bool = True
    sm_degrain_prefilter: int = Field(2, ge=0, le=4)

    mc_temporal_sigma: float = Field(4.0, ge=0.0)
    mc_temporal_radius: int = Field(2, ge=1, le=6)
    mc_temporal_profile: str = "fast"

    qtgmc_ez_denoise: float = Field(0.0, ge=0.0)
    qtgmc_ez_keep_grain: float = Field(0.0, ge=0.0)

    @classmethod
    def from_preset(cls, preset: NoiseReductionPreset) -> "NoiseReductionParameters":
        if preset == NoiseReductionPreset.OFF:
            return cls(enabled=False, preset=preset)
        if preset == NoiseReductionPreset.LIGHT:
            return cls(enabled=True, preset=preset, sm_degrain_tr=1,
                       sm_degrain_th_sad=200, sm_degrain_th_sadc=100)
        if preset == NoiseReductionPreset.MODERATE:
            return cls(enabled=True, preset=preset, sm_degrain_tr=2,
                       sm_degrain_th_sad=300, sm_degrain_th_sadc=150)
        if preset == NoiseReductionPreset.HEAVY:
            return cls(enabled=True, preset=preset, sm_degrain_tr=3,
                       sm_degrain_th_sad=500, sm_degrain_th_sadc=250)
        return cls(enabled=True, preset=preset)


# =============================================================================
# Dehalo / deblock / deband / sharpen
# =============================================================================

class DehaloMethod(str, Enum):
    DEHALO_ALPHA = "DeHalo_alpha"
    FINE_DEHALO = "FineDehalo"
    YAHR = "YAHR"


class DehaloParameters(_Model):
    enabled: bool = False
    method: DehaloMethod = DehaloMethod.DEHALO_ALPHA
    rx: float = Field(2.0, ge=1.0, le=3.0)
    ry: float = Field(2.0, ge=1.0, le=3.0)
    dark_str: float = Field(1.0, ge=0.0, le=1.0)
    bright_str: float = Field(1.0, ge=0.0, le=1.0)
    low_threshold: int = Field(50, ge=0, le=255)
    high_threshold: int = Field(100, ge=0, le=255)
    yahr_blur: int = Field(2, ge=1, le=3)
    yahr_depth: int = Field(32, ge=0, le=128)


class DeblockMethod(str, Enum):
    DEBLOCK_QED = "Deblock_QED"
    DEBLOCK = "Deblock"


class DeblockParameters(_Model):
    enabled: bool = False
    method: DeblockMethod = DeblockMethod.DEBLOCK_QED
    quant1: int = Field(24, ge=0, le=60)
    quant2: int = Field(26, ge=0, le=60)
    a_offset1: int = 1
    a_offset2: int = 1
    block_size: Literal[4, 8] = 8
    overlap: int = Field(4, ge=0, le=7)


class DebandMethod(str, Enum):
    F3KDB = "f3kdb"


class DebandParameters(_Model):
    enabled: bool = False
    method: DebandMethod = DebandMethod.F3KDB
    range: int = Field(15, ge=8, le=128)
    y: int = Field(32, ge=0, le=64)
    cb: int = Field(32, ge=0, le=64)
    cr: int = Field(32, ge=0, le=64)
    grain_y: int = Field(24, ge=0, le=64)
    grain_c: int = Field(24, ge=0, le=64)
    dynamic_grain: bool = True
    output_depth: Literal[8, 10, 16] = 16


class SharpenMethod(str, Enum):
    LSFMOD = "LSFmod"
    CAS = "CAS"


class SharpenParameters(_Model):
    enabled: bool = False
    method: SharpenMethod = SharpenMethod.LSFMOD
    strength: int = Field(100, ge=0, le=200)
    overshoot: int = Field(1, ge=0, le=100)
    undershoot: int = Field(1, ge=0, le=100)
    soft_edge: int = Field(0, ge=0, le=100)
    cas_sharpness: float = Field(0.5, ge=0.0, le=1.0)


# =============================================================================
# Color correction / chroma fixes
# =============================================================================

class ColorCorrectionPreset(str, Enum):
    OFF = "off"
    BROADCAST_SAFE = "broadcastSafe"
    ENHANCE_COLORS = "enhanceColors"
    DESATURATE = "desaturate"
    CUSTOM = "custom"


class ColorCorrectionParameters(_Model):
    enabled: bool = False
    preset: ColorCorrectionPreset = ColorCorrectionPreset.OFF
    brightness: float = Field(0.0, ge=-255.0, le=255.0)
    contrast: float = Field(1.0, ge=0.0, le=10.0)
    hue: float = Field(0.0, ge=-180.0, le=180.0)
    saturation: float = Field(1.0, ge=0.0, le=10.0)
    coring: bool = False
    apply_levels: bool = False
    input_low: int = Field(0, ge=0, le=255)
    input_high: int = Field(255, ge=0, le=255)
    output_low: int = Field(0, ge=0, le=255)
    output_high: int = Field(255, ge=0, le=255)
    gamma: float = Field(1.0, ge=0.1, le=10.0)

    @classmethod
    def from_preset(cls, preset: ColorCorrectionPreset) -> "ColorCorrectionParameters":
        if preset == ColorCorrectionPreset.OFF:
            return cls(enabled=False, preset=preset)
        if preset == ColorCorrectionPreset.BROADCAST_SAFE:
            return cls(enabled=True, preset=preset, coring=True, apply_levels=True,
                       input_low=16, input_high=235, output_low=16, output_high=235)
        if preset == ColorCorrectionPreset.ENHANCE_COLORS:
            return cls(enabled=True, preset=preset, contrast=1.1, saturation=1.15,
                       apply_levels=True, input_low=8, input_high=247, gamma=0.95)
        if preset == ColorCorrectionPreset.DESATURATE:
            return cls(enabled=True, preset=preset, saturation=0.0)
        return cls(enabled=True, preset=preset)

    @property
    def adjusts_tweak(self) -> bool:
        return (self.brightness != 0.0 or self.contrast != 1.0 or self.hue != 0.0
                or self.saturation != 1.0 or self.coring)


class ChromaFixPreset(str, Enum):
    OFF = "off"
    VHS_CLEANUP = "vhsCleanup"
    BROADCAST_FIX = "broadcastFix"
    ANALOG_REPAIR = "analogRepair"
    CUSTOM = "custom"


class ChromaFixParameters(_Model):
    enabled: bool = False
    preset: ChromaFixPreset = ChromaFixPreset.OFF

    apply_chroma_bleeding_fix: bool = False
    chroma_bleed_cx: int = Field(4, ge=0, le=16)
    chroma_bleed_cy: int = Field(4, ge=0, le=16)
    chroma_bleed_c_blur: float = Field(0.7, ge=0.0, le=3.0)
    chroma_bleed_strength: float = Field(1.0, ge=0.0, le=1.0)

    apply_de_crawl: bool = False
    de_crawl_y_thresh: int = Field(10, ge=0, le=255)
    de_crawl_c_thresh: int = Field(10, ge=0, le=255)
    de_crawl_max_diff: int = Field(50, ge=0, le=255)

    apply_vinverse: bool = False
    vinverse_sstr: float = Field(2.7, ge=0.0)
    vinverse_amnt: int = Field(255, ge=0, le=255)
    vinverse_scl: int = Field(12, ge=0)

    @classmethod
    def from_preset(cls, preset: ChromaFixPreset) -> "ChromaFixParameters":
        if preset == ChromaFixPreset.OFF:
            return cls(enabled=False, preset=preset)
        if preset == ChromaFixPreset.VHS_CLEANUP:
            return cls(enabled=True, preset=preset, apply_chroma_bleeding_fix=True,
                       chroma_bleed_c_blur=0.8, chroma_bleed_strength=0.8,
                       apply_vinverse=True, vinverse_sstr=2.7)
        if preset == ChromaFixPreset.BROADCAST_FIX:
            return cls(enabled=True, preset=preset, apply_de_crawl=True,
                       de_crawl_y_thresh=12, de_crawl_c_thresh=12)
        if preset == ChromaFixPreset.ANALOG_REPAIR:
            return cls(enabled=True, preset=preset, apply_chroma_bleeding_fix=True,
                       chroma_bleed_c_blur=1.0, chroma_bleed_strength=1.0,
                       apply_de_crawl=True, apply_vinverse=True)
        return cls(enabled=True, preset=preset)

    @property
    def has_active_fix(self) -> bool:
        return self.apply_chroma_bleeding_fix or self.apply_de_crawl or self.apply_vinverse


# =============================================================================
# Crop / resize
# =============================================================================

class ResizeKernel(str, Enum):
    SPLINE36 = "spline36"
    LANCZOS = "lanczos"
    BICUBIC = "bicubic"
    BILINEAR = "bilinear"
    NNEDI3 = "nnedi3"
    EEDI3 = "eedi3"


class UpscaleMethod(str, Enum):
    NNEDI3_RPOW2 = "nnedi3Rpow2"
    EEDI3_RPOW2 = "eedi3Rpow2"
    SPLINE36 = "spline36"


class CropResizePreset(str, Enum):
    OFF = "off"
    REMOVE_OVERSCAN = "removeOverscan"
    RESIZE_720P = "resize720p"
    RESIZE_1080P = "resize1080p"
    RESIZE_4K = "resize4k"
    CUSTOM = "custom"


class CropResizeParameters(_Model):
    enabled: bool = False
    preset: CropResizePreset = CropResizePreset.OFF

    crop_enabled: bool = False
    crop_left: int = Field(0, ge=0)
    crop_right: int = Field(0, ge=0)
    crop_top: int = Field(0, ge=0)
    crop_bottom: int = Field(0, ge=0)

    resize_enabled: bool = False
    target_width: Optional[int] = Field(None, gt=0)
    target_height: Optional[int] = Field(None, gt=0)
    kernel: ResizeKernel = ResizeKernel.SPLINE36
    maintain_aspect: bool = True

    use_integer_upscale: bool = False
    upscale_method: UpscaleMethod = UpscaleMethod.NNEDI3_RPOW2
    upscale_factor: Literal[2, 4] = 2

    @classmethod
    def from_preset(cls, preset: CropResizePreset) -> "CropResizeParameters":
        if preset == CropResizePreset.OFF:
            return cls(enabled=False, preset=preset)
        if preset == CropResizePreset.REMOVE_OVERSCAN:
            return cls(enabled=True, preset=preset, crop_enabled=True,
                       crop_left=8, crop_right=8, crop_top=8, crop_bottom=8)
        if preset == CropResizePreset.RESIZE_720P:
            return cls(enabled=True, preset=preset, resize_enabled=True,
                       target_width=1280, target_height=720)
        if preset == CropResizePreset.RESIZE_1080P:
            return cls(enabled=True, preset=preset, resize_enabled=True,
                       target_width=1920, target_height=1080)
        if preset == CropResizePreset.RESIZE_4K:
            return cls(enabled=True, preset=preset, resize_enabled=True,
                       use_integer_upscale=True,
                       upscale_method=UpscaleMethod.NNEDI3_RPOW2, upscale_factor=2)
        return cls(enabled=True, preset=preset)

    @property
    def crops(self) -> bool:
        return (self.crop_left + self.crop_right + self.crop_top + self.crop_bottom) > 0

    @property
    def resizes(self) -> bool:
        return (self.use_integer_upscale
                or self.target_width is not None
                or self.target_height is not None)


# =============================================================================
# Pipeline, encoding, job
# =============================================================================

class RestorationPipeline(_Model):
    """One parameter set per pass kind."""

    deinterlace: DeinterlaceParameters = Field(default_factory=DeinterlaceParameters)
    noise_reduction: NoiseReductionParameters = Field(default_factory=NoiseReductionParameters)
    dehalo: DehaloParameters = Field(default_factory=DehaloParameters)
    deblock: DeblockParameters = Field(default_factory=DeblockParameters)
    deband: DebandParameters = Field(default_factory=DebandParameters)
    sharpen: SharpenParameters = Field(default_factory=SharpenParameters)
    color_correction: ColorCorrectionParameters = Field(default_factory=ColorCorrectionParameters)
    chroma_fixes: ChromaFixParameters = Field(default_factory=ChromaFixParameters)
    crop_resize: CropResizeParameters = Field(default_factory=CropResizeParameters)

    @classmethod
    def from_legacy(cls, qtgmc: DeinterlaceParameters) -> "RestorationPipeline":
        """Pipeline for descriptors that only carry QTGMC parameters."""
        return cls(deinterlace=qtgmc)


class VideoCodec(str, Enum):
    H264 = "libx264"
    H265 = "libx265"
    FFV1 = "ffv1"
    PRORES_PROXY = "prores_ks -profile:v 0"
    PRORES_LT = "prores_ks -profile:v 1"
    PRORES_422 = "prores_ks -profile:v 2"
    PRORES_HQ = "prores_ks -profile:v 3"

    @property
    def ffmpeg_codec(self) -> str:
        return self.value.split(" ", 1)[0]

    @property
    def prores_profile(self) -> Optional[int]:
        if not self.value.startswith("prores_ks"):
            return None
        return int(self.value.rsplit(" ", 1)[1])


class ContainerFormat(str, Enum):
    MP4 = "mp4"
    MOV = "mov"
    MKV = "mkv"
    AVI = "avi"

    @property
    def extension(self) -> str:
        return self.value


class EncodingSettings(_Model):
    codec: VideoCodec = VideoCodec.H264
    container: ContainerFormat = ContainerFormat.MP4
    encoder_preset: str = "medium"
    quality: int = Field(18, ge=0, le=51)
    audio_copy: bool = True
    audio_codec: str = "aac"
    audio_bitrate: int = Field(192, gt=0)
    custom_ffmpeg_args: str = ""

    def extra_args(self) -> List[str]:
        """Free-form encoder arguments split the way a shell would."""
        if not self.custom_ffmpeg_args.strip():
            return []
        try:
            return shlex.split(self.custom_ffmpeg_args)
        except ValueError as e:
            raise ConfigParseError(f"Invalid customFfmpegArgs: {e}") from e

    def disables_audio(self) -> bool:
        return "-an" in self.extra_args()

    def output_filename(self, input_path: str) -> str:
        return f"{Path(input_path).stem}_restored.{self.container.extension}"


class FieldOrder(str, Enum):
    TFF = "tff"
    BFF = "bff"
    PROGRESSIVE = "progressive"
    UNKNOWN = "unknown"


class VideoJob(_Model):
    """Job descriptor written by the caller for a single run."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    input_path: str
    output_path: str
    qtgmc_parameters: Optional[DeinterlaceParameters] = None
    restoration_pipeline: Optional[RestorationPipeline] = None
    encoding_settings: EncodingSettings = Field(default_factory=EncodingSettings)
    detected_field_order: Optional[FieldOrder] = None
    total_frames: Optional[int] = Field(None, ge=0)
    input_frame_rate: Optional[float] = Field(None, gt=0)
    frame_range: Optional[Tuple[int, int]] = None
    preview_frame: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def _check_frame_range(self):
        if self.frame_range is not None:
            start, end = self.frame_range
            if start < 0 or end < start:
                raise ValueError(f"frameRange must satisfy 0 <= start <= end, got {list(self.frame_range)}")
        return self

    def effective_pipeline(self) -> RestorationPipeline:
        if self.restoration_pipeline is not None:
            return self.restoration_pipeline
        if self.qtgmc_parameters is not None:
            return RestorationPipeline.from_legacy(self.qtgmc_parameters)
        return RestorationPipeline()

    @classmethod
    def parse(cls, text: str) -> "VideoJob":
        try:
            return cls.model_validate_json(text)
        except ValidationError as e:
            raise ConfigParseError(f"Invalid job descriptor: {e}") from e

    @classmethod
    def load(cls, path: Union[str, Path]) -> "VideoJob":
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigParseError(f"Cannot read job descriptor {path}: {e}") from e
        return cls.parse(text)


# =============================================================================
# Progress and worker protocol
# =============================================================================

class ProgressInfo(_Model):
    frame: int
    total_frames: Optional[int] = None
    fps: float = 0.0
    eta: Optional[float] = None

    @property
    def percent(self) -> float:
        if not self.total_frames:
            return 0.0
        return min(100.0, self.frame * 100.0 / self.total_frames)

    @property
    def eta_formatted(self) -> str:
        if self.eta is None or self.eta <= 0:
            return "--"
        total = int(self.eta)
        hours, rest = divmod(total, 3600)
        minutes, seconds = divmod(rest, 60)
        if hours:
            return f"{hours}h {minutes:02d}m {seconds:02d}s"
        if minutes:
            return f"{minutes}m {seconds:02d}s"
        return f"{seconds}s"


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ProgressMessage(_Model):
    type: Literal["progress"] = "progress"
    frame: int
    total_frames: Optional[int] = None
    fps: float
    eta: Optional[float] = None

    @classmethod
    def from_info(cls, info: ProgressInfo) -> "ProgressMessage":
        return cls(frame=info.frame, total_frames=info.total_frames, fps=info.fps, eta=info.eta)


class LogMessage(_Model):
    type: Literal["log"] = "log"
    level: LogLevel
    message: str


class ErrorMessage(_Model):
    type: Literal["error"] = "error"
    message: str


class CompleteMessage(_Model):
    type: Literal["complete"] = "complete"
    success: bool
    output_path: Optional[str] = None


WorkerMessage = Annotated[
    Union[ProgressMessage, LogMessage, ErrorMessage, CompleteMessage],
    Field(discriminator="type"),
]

_worker_message_adapter = TypeAdapter(WorkerMessage)


def parse_worker_message(line: str):
    """Decode one protocol line back into its message model."""
    return _worker_message_adapter.validate_python(json.loads(line))


# =============================================================================
# Run results
# =============================================================================

class AudioMode(str, Enum):
    COPY = "copy"
    REENCODE = "reencode"
    NONE = "none"


class AudioPolicy(_Model):
    mode: AudioMode
    codec: Optional[str] = None
    bitrate_kbps: Optional[int] = None
    reason: str = ""


class CompletionInfo(_Model):
    output_path: str
    frames: Optional[int] = None
    total_frames: Optional[int] = None
    elapsed: float = 0.0
    audio: Optional[AudioPolicy] = None
