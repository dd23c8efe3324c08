"""
Pass ordering for restoration pipelines.

Execution order is fixed by pass kind, whatever order the descriptor
declares its passes in. Crop runs before every other pass and resize after
every other pass, so the crop/resize kind can appear twice.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from ..models import (
    ChromaFixParameters,
    ColorCorrectionParameters,
    CropResizeParameters,
    DebandParameters,
    DeblockParameters,
    DehaloParameters,
    DeinterlaceParameters,
    FieldOrder,
    NoiseReductionParameters,
    RestorationPipeline,
    SharpenParameters,
)


class PassKind(str, Enum):
    CROP_RESIZE = "cropResize"
    DEINTERLACE = "deinterlace"
    NOISE_REDUCTION = "noiseReduction"
    DEHALO = "dehalo"
    DEBLOCK = "deblock"
    DEBAND = "deband"
    SHARPEN = "sharpen"
    CHROMA_FIXES = "chromaFixes"
    COLOR_CORRECTION = "colorCorrection"


class PassStage(str, Enum):
    PRE = "pre"
    MAIN = "main"
    POST = "post"


PassParameters = Union[
    DeinterlaceParameters,
    NoiseReductionParameters,
    DehaloParameters,
    DeblockParameters,
    DebandParameters,
    SharpenParameters,
    ChromaFixParameters,
    ColorCorrectionParameters,
    CropResizeParameters,
]


# Kinds between the crop and resize halves, in execution order
MAIN_PASS_ORDER = [
    (PassKind.DEINTERLACE, "deinterlace"),
    (PassKind.NOISE_REDUCTION, "noise_reduction"),
    (PassKind.DEHALO, "dehalo"),
    (PassKind.DEBLOCK, "deblock"),
    (PassKind.DEBAND, "deband"),
    (PassKind.SHARPEN, "sharpen"),
    (PassKind.CHROMA_FIXES, "chroma_fixes"),
    (PassKind.COLOR_CORRECTION, "color_correction"),
]


@dataclass(frozen=True)
class PassStep:
    kind: PassKind
    stage: PassStage
    params: PassParameters

    @property
    def label(self) -> str:
        if self.kind == PassKind.CROP_RESIZE:
            return "crop" if self.stage == PassStage.PRE else "resize"
        return self.kind.value


def _field_order_to_tff(field_order: Optional[FieldOrder]) -> Optional[bool]:
    if field_order == FieldOrder.TFF:
        return True
    if field_order == FieldOrder.BFF:
        return False
    return None


def resolve_pass_order(
    pipeline: RestorationPipeline,
    detected_field_order: Optional[FieldOrder] = None,
) -> List[PassStep]:
    """
    Turn a pipeline into its ordered list of enabled steps.

    Disabled passes are dropped. An empty list is a valid pass-through
    pipeline. When the deinterlace pass leaves ``tff`` unset, a detected
    top/bottom field order fills it in.
    """
    steps: List[PassStep] = []
    crop_resize = pipeline.crop_resize

    if crop_resize.enabled and crop_resize.crop_enabled and crop_resize.crops:
        steps.append(PassStep(PassKind.CROP_RESIZE, PassStage.PRE, crop_resize))

    for kind, attr in MAIN_PASS_ORDER:
        params = getattr(pipeline, attr)
        if not params.enabled:
            continue
        if kind == PassKind.CHROMA_FIXES and not params.has_active_fix:
            continue
        if kind == PassKind.DEINTERLACE and params.tff is None:
            tff = _field_order_to_tff(detected_field_order)
            if tff is not None:
                params = params.model_copy(update={"tff": tff})
        steps.append(PassStep(kind, PassStage.MAIN, params))

    if crop_resize.enabled and crop_resize.resize_enabled and crop_resize.resizes:
        steps.append(PassStep(PassKind.CROP_RESIZE, PassStage.POST, crop_resize))

    return steps
