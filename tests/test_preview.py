"""
Tests for single-frame preview rendering.
"""

import asyncio
import io
import os

import pytest
from PIL import Image

from vapourbox.errors import ConfigParseError, EngineCrash, JobCancelled, OrchestrationError, PipeBrokenError
from vapourbox.models import ContainerFormat, EncodingSettings, VideoCodec
from vapourbox.restoration.preview import PreviewRenderer, rgb_planes_to_png

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class TestRgbPlanes:

    def test_planar_to_png(self):
        # 2x1 image: first pixel pure red, second pure blue
        data = bytes([255, 0]) + bytes([0, 0]) + bytes([0, 255])
        png = rgb_planes_to_png(data, 2, 1)

        assert png.startswith(PNG_SIGNATURE)
        image = Image.open(io.BytesIO(png))
        assert image.mode == "RGB"
        assert image.size == (2, 1)
        assert image.getpixel((0, 0)) == (255, 0, 0)
        assert image.getpixel((1, 0)) == (0, 0, 255)

    def test_wrong_size(self):
        with pytest.raises(ValueError):
            rgb_planes_to_png(bytes(10), 2, 2)


class TestPreviewRenderer:

    @pytest.mark.asyncio
    async def test_renders_png(self, fake_engines, make_job):
        renderer = PreviewRenderer(fake_engines.config())

        png = await renderer.render(make_job(), 12)

        assert png.startswith(PNG_SIGNATURE)
        assert Image.open(io.BytesIO(png)).size == (4, 2)

        args = fake_engines.recorded("vspipe_args.json")
        assert "-c" not in args and "-p" not in args
        assert args[-2].endswith("preview.vpy")
        script = fake_engines.recorded("last_script.vpy")
        assert "clip = clip[12:13]" in script
        assert "format=vs.RGB24" in script
        assert fake_engines.run_dirs() == []

    @pytest.mark.asyncio
    async def test_encoder_not_involved(self, fake_engines, make_job):
        await PreviewRenderer(fake_engines.config()).render(make_job(), 0)
        assert fake_engines.recorded("ffmpeg_args.json") is None

    @pytest.mark.asyncio
    async def test_incomplete_frame(self, fake_engines, make_job):
        renderer = PreviewRenderer(fake_engines.config(vspipe_mode="short"))
        with pytest.raises(PipeBrokenError, match="Incomplete preview frame"):
            await renderer.render(make_job(), 0)

    @pytest.mark.asyncio
    async def test_script_error(self, fake_engines, make_job):
        renderer = PreviewRenderer(fake_engines.config(vspipe_mode="crash"))
        with pytest.raises(EngineCrash) as exc_info:
            await renderer.render(make_job(), 0)
        assert exc_info.value.description == "VapourSynth plugin not loaded"

    @pytest.mark.asyncio
    async def test_timeout(self, fake_engines, make_job):
        config = fake_engines.config(vspipe_mode="hang")
        config.preview.timeout = 1.0
        with pytest.raises(EngineCrash, match="timed out"):
            await PreviewRenderer(config).render(make_job(), 0)

    @pytest.mark.asyncio
    async def test_cancel(self, fake_engines, make_job):
        renderer = PreviewRenderer(fake_engines.config(vspipe_mode="hang"))
        task = asyncio.create_task(renderer.render(make_job(), 0))

        for _ in range(200):
            if fake_engines.recorded("vspipe_args.json") is not None:
                break
            await asyncio.sleep(0.05)
        await renderer.cancel()

        assert renderer.process.returncode is not None
        with pytest.raises(ProcessLookupError):
            os.kill(renderer.process.pid, 0)
        assert fake_engines.run_dirs() == []
        with pytest.raises(JobCancelled):
            await task

    @pytest.mark.asyncio
    async def test_cancel_before_render_starts(self, fake_engines, make_job):
        renderer = PreviewRenderer(fake_engines.config())
        await renderer.cancel()
        with pytest.raises(JobCancelled):
            await renderer.render(make_job(), 0)

    @pytest.mark.asyncio
    async def test_negative_frame(self, fake_engines, make_job):
        with pytest.raises(ConfigParseError):
            await PreviewRenderer(fake_engines.config()).render(make_job(), -1)

    @pytest.mark.asyncio
    async def test_missing_input(self, fake_engines, make_job, tmp_path):
        job = make_job(input_path=str(tmp_path / "gone.mkv"))
        with pytest.raises(ConfigParseError):
            await PreviewRenderer(fake_engines.config()).render(job, 0)

    @pytest.mark.asyncio
    async def test_frame_size_survives_chatter(self, fake_engines, make_job):
        renderer = PreviewRenderer(fake_engines.config(vspipe_mode="chatty", stderr_tail_lines=2))

        png = await renderer.render(make_job(), 0)

        assert Image.open(io.BytesIO(png)).size == (4, 2)

    @pytest.mark.asyncio
    async def test_unusable_temp_directory(self, fake_engines, make_job, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        renderer = PreviewRenderer(fake_engines.config(temp_directory=str(blocker / "runs")))

        with pytest.raises(ConfigParseError, match="Cannot create a run directory"):
            await renderer.render(make_job(), 0)
        assert fake_engines.recorded("vspipe_args.json") is None

    @pytest.mark.asyncio
    async def test_script_write_failure(self, fake_engines, make_job, monkeypatch):
        def refuse(self, script, directory, name="pipeline.vpy"):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr("vapourbox.restoration.preview.ScriptGenerator.write", refuse)

        with pytest.raises(OrchestrationError, match="Cannot write preview script"):
            await PreviewRenderer(fake_engines.config()).render(make_job(), 0)
        assert fake_engines.run_dirs() == []

    @pytest.mark.asyncio
    async def test_encoding_settings_do_not_matter(self, fake_engines, make_job):
        config = fake_engines.config()
        plain = make_job()
        mastered = make_job(encoding_settings=EncodingSettings(
            codec=VideoCodec.PRORES_HQ,
            container=ContainerFormat.MOV,
            quality=2,
            audio_copy=False,
            custom_ffmpeg_args="-metadata title=archive",
        ))

        first = await PreviewRenderer(config).render(plain, 3)
        first_script = fake_engines.recorded("last_script.vpy")
        second = await PreviewRenderer(config).render(mastered, 3)

        assert first == second
        assert fake_engines.recorded("last_script.vpy") == first_script
