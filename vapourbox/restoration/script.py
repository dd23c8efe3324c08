"""
VapourSynth script generation.

Each ordered pass step is compiled into one block of Python that rebinds
``clip``. Emitters return the block together with the Python modules and
core plugin namespaces it needs, so the caller can check the environment
before anything is spawned.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from ..errors import ScriptGenerationError
from ..models import (
    ChromaFixParameters,
    ColorCorrectionParameters,
    CropResizeParameters,
    DebandMethod,
    DebandParameters,
    DeblockMethod,
    DeblockParameters,
    DehaloMethod,
    DehaloParameters,
    DeinterlaceParameters,
    NoiseReductionMethod,
    NoiseReductionParameters,
    ResizeKernel,
    SharpenMethod,
    SharpenParameters,
    UpscaleMethod,
)
from .constants import QTGMC_ARGUMENTS, RESIZE_FUNCTIONS, SCRIPT_MODULES, SOURCE_FILTERS
from .ordering import PassKind, PassStage, PassStep

logger = logging.getLogger(__name__)


class DependencyProbe(Protocol):
    def unavailable(self, names: Sequence[str]) -> List[str]:
        ...


@dataclass
class Emission:
    """Script lines for one step plus what they need at runtime."""

    lines: List[str]
    modules: List[str] = field(default_factory=list)  # import aliases, see SCRIPT_MODULES
    plugins: List[str] = field(default_factory=list)  # core namespaces


@dataclass
class GeneratedScript:
    text: str
    dependencies: List[str]
    steps: List[str]
    path: Optional[Path] = None


# =============================================================================
# Literal rendering
# =============================================================================

def py_literal(value) -> str:
    """Render a value as a Python literal for the generated script."""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return f"{value:.1f}"
        return f"{value:.4f}".rstrip("0").rstrip(".")
    if isinstance(value, str):
        return repr(value)
    if value is None:
        return "None"
    raise ScriptGenerationError(f"Cannot render {type(value).__name__} value {value!r}")


def py_path(path: str) -> str:
    """Render a filesystem path, as a raw string where that is safe."""
    if '"' not in path and not path.endswith("\\") and "\n" not in path:
        return f'r"{path}"'
    return repr(path)


def call(function: str, args: Iterable[Tuple[str, object]], target: str = "clip") -> str:
    rendered = ", ".join(f"{name}={py_literal(value)}" for name, value in args)
    if rendered:
        return f"{target} = {function}(clip, {rendered})"
    return f"{target} = {function}(clip)"


# =============================================================================
# Emitters
# =============================================================================

def emit_deinterlace(params: DeinterlaceParameters) -> Emission:
    args: List[Tuple[str, object]] = [("Preset", params.preset.value)]
    if params.tff is not None:
        args.append(("TFF", params.tff))
    for attr, keyword, default in QTGMC_ARGUMENTS:
        value = getattr(params, attr)
        if value is None or value == default:
            continue
        args.append((keyword, value))
    # Always passed so havsfunc takes the matching code path
    args.append(("opencl", params.opencl))
    if params.device is not None:
        args.append(("device", params.device))

    plugins = ["mv"]
    plugins.append("nnedi3cl" if params.opencl else "znedi3")
    return Emission([call("haf.QTGMC", args)], modules=["haf"], plugins=plugins)


def emit_noise_reduction(params: NoiseReductionParameters) -> Emission:
    match params.method:
        case NoiseReductionMethod.SM_DEGRAIN:
            line = call("haf.SMDegrain", [
                ("tr", params.sm_degrain_tr),
                ("thSAD", params.sm_degrain_th_sad),
                ("thSADC", params.sm_degrain_th_sadc),
                ("RefineMotion", params.sm_degrain_refine),
                ("prefilter", params.sm_degrain_prefilter),
            ])
            return Emission([line], modules=["haf"], plugins=["mv"])
        case NoiseReductionMethod.MC_TEMPORAL_DENOISE:
            line = call("haf.MCTemporalDenoise", [
                ("settings", params.mc_temporal_profile),
                ("sigma", params.mc_temporal_sigma),
                ("radius", params.mc_temporal_radius),
            ])
            return Emission([line], modules=["haf"], plugins=["mv", "fft3dfilter"])
        case NoiseReductionMethod.QTGMC_BUILTIN:
            line = call("haf.QTGMC", [
                ("InputType", 1),
                ("EZDenoise", params.qtgmc_ez_denoise),
                ("EZKeepGrain", params.qtgmc_ez_keep_grain),
            ])
            return Emission([line], modules=["haf"], plugins=["mv", "znedi3"])
        case _:
            raise ScriptGenerationError(f"Unknown noise reduction method: {params.method!r}")


def emit_dehalo(params: DehaloParameters) -> Emission:
    match params.method:
        case DehaloMethod.DEHALO_ALPHA:
            line = call("haf.DeHalo_alpha", [
                ("rx", params.rx),
                ("ry", params.ry),
                ("darkstr", params.dark_str),
                ("brightstr", params.bright_str),
            ])
        case DehaloMethod.FINE_DEHALO:
            line = call("haf.FineDehalo", [
                ("rx", params.rx),
                ("ry", params.ry),
                ("darkstr", params.dark_str),
                ("brightstr", params.bright_str),
                ("thmi", params.low_threshold),
                ("thma", params.high_threshold),
            ])
        case DehaloMethod.YAHR:
            line = call("haf.YAHR", [("blur", params.yahr_blur), ("depth", params.yahr_depth)])
        case _:
            raise ScriptGenerationError(f"Unknown dehalo method: {params.method!r}")
    return Emission([line], modules=["haf"])


def emit_deblock(params: DeblockParameters) -> Emission:
    match params.method:
        case DeblockMethod.DEBLOCK_QED:
            line = call("haf.Deblock_QED", [
                ("quant1", params.quant1),
                ("quant2", params.quant2),
                ("aOff1", params.a_offset1),
                ("aOff2", params.a_offset2),
            ])
            return Emission([line], modules=["haf"], plugins=["deblock", "dctf"])
        case DeblockMethod.DEBLOCK:
            line = call("core.deblock.Deblock", [
                ("quant", params.quant1),
                ("aoffset", params.a_offset1),
                ("boffset", params.a_offset2),
            ])
            return Emission([line], plugins=["deblock"])
        case _:
            raise ScriptGenerationError(f"Unknown deblock method: {params.method!r}")


def emit_deband(params: DebandParameters) -> Emission:
    match params.method:
        case DebandMethod.F3KDB:
            line = call("core.neo_f3kdb.Deband", [
                ("range", params.range),
                ("y", params.y),
                ("cb", params.cb),
                ("cr", params.cr),
                ("grainy", params.grain_y),
                ("grainc", params.grain_c),
                ("dynamic_grain", params.dynamic_grain),
                ("output_depth", params.output_depth),
            ])
            return Emission([line], plugins=["neo_f3kdb"])
        case _:
            raise ScriptGenerationError(f"Unknown deband method: {params.method!r}")


def emit_sharpen(params: SharpenParameters) -> Emission:
    match params.method:
        case SharpenMethod.LSFMOD:
            line = call("haf.LSFmod", [
                ("strength", params.strength),
                ("overshoot", params.overshoot),
                ("undershoot", params.undershoot),
                ("soft", params.soft_edge),
            ])
            return Emission([line], modules=["haf"])
        case SharpenMethod.CAS:
            line = call("core.cas.CAS", [("sharpness", params.cas_sharpness)])
            return Emission([line], plugins=["cas"])
        case _:
            raise ScriptGenerationError(f"Unknown sharpen method: {params.method!r}")


def emit_chroma_fixes(params: ChromaFixParameters) -> Emission:
    lines = []
    if params.apply_chroma_bleeding_fix:
        lines.append(call("haf.FixChromaBleedingMod", [
            ("cx", params.chroma_bleed_cx),
            ("cy", params.chroma_bleed_cy),
            ("strength", params.chroma_bleed_strength),
            ("blur", params.chroma_bleed_c_blur > 0),
        ]))
    if params.apply_de_crawl:
        lines.append(call("haf.LUTDeCrawl", [
            ("ythresh", params.de_crawl_y_thresh),
            ("cthresh", params.de_crawl_c_thresh),
            ("maxdiff", params.de_crawl_max_diff),
        ]))
    if params.apply_vinverse:
        lines.append(call("haf.Vinverse", [
            ("sstr", params.vinverse_sstr),
            ("amnt", params.vinverse_amnt),
            ("scl", params.vinverse_scl),
        ]))
    return Emission(lines, modules=["haf"])


def emit_color_correction(params: ColorCorrectionParameters) -> Emission:
    lines = []
    modules = []
    if params.adjusts_tweak:
        lines.append(call("adjust.Tweak", [
            ("hue", params.hue),
            ("sat", params.saturation),
            ("bright", params.brightness),
            ("cont", params.contrast),
            ("coring", params.coring),
        ]))
        modules.append("adjust")
    if params.apply_levels:
        lines.append(call("haf.SmoothLevels", [
            ("input_low", params.input_low),
            ("gamma", params.gamma),
            ("input_high", params.input_high),
            ("output_low", params.output_low),
            ("output_high", params.output_high),
        ]))
        modules.append("haf")
    if not lines:
        lines.append("# no adjustments requested")
    return Emission(lines, modules=modules)


def emit_crop(params: CropResizeParameters) -> Emission:
    line = call("core.std.Crop", [
        ("left", params.crop_left),
        ("right", params.crop_right),
        ("top", params.crop_top),
        ("bottom", params.crop_bottom),
    ])
    return Emission([line])


def _upscale(method: UpscaleMethod, factor: int) -> Emission:
    match method:
        case UpscaleMethod.NNEDI3_RPOW2:
            line = call("edi_rpow2.nnedi3_rpow2", [("rfactor", factor)])
            return Emission([line], modules=["edi_rpow2"], plugins=["znedi3"])
        case UpscaleMethod.EEDI3_RPOW2:
            line = call("edi_rpow2.eedi3_rpow2", [("rfactor", factor)])
            return Emission([line], modules=["edi_rpow2"], plugins=["eedi3m"])
        case UpscaleMethod.SPLINE36:
            line = (f"clip = core.resize.Spline36(clip, width=clip.width * {factor}, "
                    f"height=clip.height * {factor})")
            return Emission([line])
        case _:
            raise ScriptGenerationError(f"Unknown upscale method: {method!r}")


def _target_size_lines(params: CropResizeParameters) -> List[str]:
    width, height = params.target_width, params.target_height
    if width is not None and height is not None:
        if not params.maintain_aspect:
            return [f"_width, _height = {width}, {height}"]
        return [
            f"_scale = min({width} / clip.width, {height} / clip.height)",
            "_width = max(2, int(clip.width * _scale) // 2 * 2)",
            "_height = max(2, int(clip.height * _scale) // 2 * 2)",
        ]
    if width is not None:
        return [
            f"_width = {width}",
            f"_height = max(2, round(clip.height * {width} / clip.width / 2) * 2)",
        ]
    return [
        f"_height = {height}",
        f"_width = max(2, round(clip.width * {height} / clip.height / 2) * 2)",
    ]


def emit_resize(params: CropResizeParameters) -> Emission:
    if params.use_integer_upscale:
        return _upscale(params.upscale_method, params.upscale_factor)

    lines = _target_size_lines(params)
    modules: List[str] = []
    plugins: List[str] = []
    match params.kernel:
        case ResizeKernel.SPLINE36 | ResizeKernel.LANCZOS | ResizeKernel.BICUBIC | ResizeKernel.BILINEAR:
            function = RESIZE_FUNCTIONS[params.kernel.value]
        case ResizeKernel.NNEDI3 | ResizeKernel.EEDI3:
            # Edge-directed doubling first, then a plain resize to the exact size
            method = (UpscaleMethod.NNEDI3_RPOW2 if params.kernel == ResizeKernel.NNEDI3
                      else UpscaleMethod.EEDI3_RPOW2)
            doubled = _upscale(method, 2)
            lines.insert(0, "if clip.width < {w} or clip.height < {h}:".format(
                w=params.target_width or 0, h=params.target_height or 0))
            lines.insert(1, "    " + doubled.lines[0])
            modules.extend(doubled.modules)
            plugins.extend(doubled.plugins)
            function = RESIZE_FUNCTIONS["spline36"]
        case _:
            raise ScriptGenerationError(f"Unknown resize kernel: {params.kernel!r}")
    lines.append(f"clip = {function}(clip, width=_width, height=_height)")
    return Emission(lines, modules=modules, plugins=plugins)


def emit_step(step: PassStep) -> Emission:
    """Compile one ordered step."""
    match step.kind:
        case PassKind.CROP_RESIZE:
            if step.stage == PassStage.PRE:
                return emit_crop(step.params)
            return emit_resize(step.params)
        case PassKind.DEINTERLACE:
            return emit_deinterlace(step.params)
        case PassKind.NOISE_REDUCTION:
            return emit_noise_reduction(step.params)
        case PassKind.DEHALO:
            return emit_dehalo(step.params)
        case PassKind.DEBLOCK:
            return emit_deblock(step.params)
        case PassKind.DEBAND:
            return emit_deband(step.params)
        case PassKind.SHARPEN:
            return emit_sharpen(step.params)
        case PassKind.CHROMA_FIXES:
            return emit_chroma_fixes(step.params)
        case PassKind.COLOR_CORRECTION:
            return emit_color_correction(step.params)
        case _:
            raise ScriptGenerationError(f"Unknown pass kind: {step.kind!r}")


# =============================================================================
# Generator
# =============================================================================

class ScriptGenerator:
    """Builds complete VapourSynth scripts from ordered pass steps."""

    def __init__(self, source_filter: str = "bs", dependency_probe: Optional[DependencyProbe] = None):
        if source_filter not in SOURCE_FILTERS:
            raise ScriptGenerationError(
                f"Unknown source filter {source_filter!r}, expected one of {sorted(SOURCE_FILTERS)}"
            )
        self.source_filter = source_filter
        self.dependency_probe = dependency_probe

    def generate(
        self,
        steps: Sequence[PassStep],
        source_path: str,
        frame_range: Optional[Tuple[int, int]] = None,
    ) -> GeneratedScript:
        """Script for a full run, optionally trimmed to an output frame range."""
        tail = []
        if frame_range is not None:
            start, end = frame_range
            tail.append(f"clip = clip[{start}:min({end + 1}, clip.num_frames)]")
        return self._build(steps, source_path, tail)

    def generate_preview(self, steps: Sequence[PassStep], source_path: str, frame: int) -> GeneratedScript:
        """
        Script that outputs exactly one full-range RGB24 frame.

        The trim happens after the filter chain so temporal filters still
        see the neighbouring frames.
        """
        tail = [
            f"if not 0 <= {frame} < clip.num_frames:",
            f"    raise ValueError(f\"Preview frame {frame} is out of range "
            "(clip has {clip.num_frames} frames)\")",
            f"clip = clip[{frame}:{frame + 1}]",
            "if clip.format.color_family != vs.RGB:",
            "    clip = core.resize.Bicubic(clip, format=vs.RGB24, "
            "matrix_in_s=\"709\" if clip.height > 576 else \"170m\", "
            "range_in_s=\"limited\", range_s=\"full\")",
            "else:",
            "    clip = core.resize.Bicubic(clip, format=vs.RGB24)",
        ]
        return self._build(steps, source_path, tail)

    def write(self, script: GeneratedScript, directory: Path, name: str = "pipeline.vpy") -> Path:
        path = Path(directory) / name
        path.write_text(script.text, encoding="utf-8")
        script.path = path
        logger.debug(f"[Script] Wrote {path}")
        return path

    def _build(self, steps: Sequence[PassStep], source_path: str, tail: List[str]) -> GeneratedScript:
        namespace, source_template = SOURCE_FILTERS[self.source_filter]

        modules: List[str] = []
        dependencies: List[str] = [namespace]
        body: List[str] = []
        labels: List[str] = []

        for index, step in enumerate(steps, start=1):
            emission = emit_step(step)
            labels.append(step.label)
            body.append(f"# [{index}] {step.label}")
            body.extend(emission.lines)
            body.append("")
            for alias in emission.modules:
                if alias not in modules:
                    modules.append(alias)
                if SCRIPT_MODULES[alias] not in dependencies:
                    dependencies.append(SCRIPT_MODULES[alias])
            for plugin in emission.plugins:
                if plugin not in dependencies:
                    dependencies.append(plugin)

        self._check_dependencies(dependencies)

        lines = [
            "import sys",
            "import vapoursynth as vs",
        ]
        for alias in modules:
            module = SCRIPT_MODULES[alias]
            lines.append(f"import {module} as {alias}" if module != alias else f"import {module}")
        lines.extend([
            "",
            "core = vs.core",
            "",
            f"clip = {source_template.format(path=py_path(source_path))}",
            'print(f"INPUT_INFO:frames={clip.num_frames},'
            'fps_num={clip.fps.numerator},fps_den={clip.fps.denominator}", file=sys.stderr)',
            "",
        ])
        lines.extend(body)
        lines.extend(tail)
        lines.extend([
            'print(f"OUTPUT_INFO:frames={clip.num_frames},'
            'width={clip.width},height={clip.height}", file=sys.stderr)',
            "clip.set_output()",
            "",
        ])

        logger.debug(f"[Script] {len(labels)} step(s): {', '.join(labels) or 'pass-through'}")
        return GeneratedScript(text="\n".join(lines), dependencies=dependencies, steps=labels)

    def _check_dependencies(self, dependencies: List[str]) -> None:
        if self.dependency_probe is None:
            return
        missing = self.dependency_probe.unavailable(dependencies)
        if missing:
            raise ScriptGenerationError(
                f"Missing VapourSynth dependencies: {', '.join(missing)}",
                missing_dependencies=missing,
            )
