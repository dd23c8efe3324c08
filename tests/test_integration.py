"""
End-to-end runs against real vspipe, ffmpeg and ffprobe.

Skipped unless all three are on PATH. The VapourSynth install must have
BestSource, havsfunc, mvtools and znedi3 available.
"""

import io
import shutil
import subprocess

import pytest
from PIL import Image

from vapourbox.config import ProcessingConfig, VapourBoxConfig
from vapourbox.models import (
    AudioMode,
    ContainerFormat,
    DeinterlaceParameters,
    EncodingSettings,
    FieldOrder,
    RestorationPipeline,
    VideoCodec,
    VideoJob,
)
from vapourbox.restoration import MediaProbe, PipelineOrchestrator, PreviewRenderer

SAMPLE_FRAME = 10


def frame_hash(path, index: int = SAMPLE_FRAME) -> str:
    """MD5 of one decoded video frame, as reported by ffmpeg's framemd5 muxer."""
    result = subprocess.run(
        [shutil.which("ffmpeg"), "-v", "error", "-i", str(path), "-map", "0:v:0", "-f", "framemd5", "-"],
        capture_output=True, text=True, timeout=120, check=True,
    )
    frames = [line for line in result.stdout.splitlines() if line and not line.startswith("#")]
    assert len(frames) > index, f"{path} has only {len(frames)} frames"
    return frames[index].rsplit(",", 1)[-1].strip()


def audio_hash(path) -> str:
    """MD5 of the first audio stream's packets, copied without decoding."""
    result = subprocess.run(
        [shutil.which("ffmpeg"), "-v", "error", "-i", str(path), "-map", "0:a:0", "-c", "copy", "-f", "md5", "-"],
        capture_output=True, text=True, timeout=120, check=True,
    )
    return result.stdout.strip()


@pytest.fixture
def real_config(tmp_path) -> VapourBoxConfig:
    return VapourBoxConfig(processing=ProcessingConfig(temp_directory=str(tmp_path / "runs")))


@pytest.fixture
def fast_same_rate() -> RestorationPipeline:
    return RestorationPipeline(
        deinterlace=DeinterlaceParameters(preset="fast", tff=True, fps_divisor=2),
    )


@pytest.mark.slow
@pytest.mark.integration
@pytest.mark.requires_engines
class TestRealEngines:

    @pytest.mark.asyncio
    async def test_field_order_detection(self, requires_engines, interlaced_video):
        order = await MediaProbe(shutil.which("ffprobe")).detect_field_order(str(interlaced_video))
        assert order in (FieldOrder.TFF, FieldOrder.UNKNOWN)

    @pytest.mark.asyncio
    async def test_deinterlace_job(self, requires_engines, interlaced_video, real_config, reporter, tmp_path):
        job = VideoJob(
            input_path=str(interlaced_video),
            output_path=str(tmp_path / "restored.mp4"),
            restoration_pipeline=RestorationPipeline(
                deinterlace=DeinterlaceParameters(preset="Draft", tff=True),
            ),
        )

        info = await PipelineOrchestrator(real_config, reporter).run(job)

        assert (tmp_path / "restored.mp4").stat().st_size > 0
        assert info.frames == info.total_frames
        assert reporter.of_type("progress")

    @pytest.mark.asyncio
    async def test_control_run_matches(
        self, requires_engines, interlaced_video, real_config, fast_same_rate, reporter, tmp_path
    ):
        outputs = []
        for name in ("first.mp4", "control.mp4"):
            job = VideoJob(
                input_path=str(interlaced_video),
                output_path=str(tmp_path / name),
                restoration_pipeline=fast_same_rate,
            )
            await PipelineOrchestrator(real_config, reporter).run(job)
            outputs.append(tmp_path / name)

        assert all(path.stat().st_size > 0 for path in outputs)
        assert frame_hash(outputs[0]) == frame_hash(outputs[1])

    @pytest.mark.asyncio
    async def test_audio_copied_bit_exact(
        self, requires_engines, interlaced_video, real_config, fast_same_rate, reporter, tmp_path
    ):
        job = VideoJob(
            input_path=str(interlaced_video),
            output_path=str(tmp_path / "restored.mkv"),
            restoration_pipeline=fast_same_rate,
            encoding_settings=EncodingSettings(container=ContainerFormat.MKV, audio_copy=True),
        )

        info = await PipelineOrchestrator(real_config, reporter).run(job)

        assert info.audio.mode == AudioMode.COPY
        assert audio_hash(tmp_path / "restored.mkv") == audio_hash(interlaced_video)

    @pytest.mark.asyncio
    async def test_preview(self, requires_engines, interlaced_video, real_config):
        job = VideoJob(
            input_path=str(interlaced_video),
            output_path=str(interlaced_video.with_name("unused.mp4")),
            restoration_pipeline=RestorationPipeline(deinterlace=DeinterlaceParameters(enabled=False)),
        )

        png = await PreviewRenderer(real_config).render(job, 5)

        assert Image.open(io.BytesIO(png)).size == (720, 480)

    @pytest.mark.asyncio
    async def test_preview_ignores_encoding_settings(
        self, requires_engines, interlaced_video, real_config, fast_same_rate
    ):
        def job(settings: EncodingSettings) -> VideoJob:
            return VideoJob(
                input_path=str(interlaced_video),
                output_path=str(interlaced_video.with_name("unused.mov")),
                restoration_pipeline=fast_same_rate,
                encoding_settings=settings,
            )

        plain = await PreviewRenderer(real_config).render(job(EncodingSettings()), SAMPLE_FRAME)
        mastered = await PreviewRenderer(real_config).render(
            job(EncodingSettings(codec=VideoCodec.PRORES_HQ, container=ContainerFormat.MOV, audio_copy=False)),
            SAMPLE_FRAME,
        )

        assert plain == mastered
