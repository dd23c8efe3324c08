"""
VapourBox Test Configuration and Fixtures

Provides:
- Fake vspipe/ffmpeg/ffprobe executables (small Python scripts) so the
  orchestrator's process, pipe and cancellation handling runs without
  VapourSynth installed
- Auto-generated test media for tests that drive the real engines
- Shared job and config fixtures
"""

import io
import json
import os
import shutil
import stat
import subprocess
import sys
import textwrap
from pathlib import Path
from typing import List, Optional

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from vapourbox.config import EngineConfig, ProcessingConfig, PreviewConfig, VapourBoxConfig, set_config
from vapourbox.models import (
    DeinterlaceParameters,
    EncodingSettings,
    RestorationPipeline,
    VideoJob,
    parse_worker_message,
)
from vapourbox.restoration.progress import ProgressReporter


# =============================================================================
# FAKE ENGINES
# =============================================================================

FAKE_VSPIPE = '''
import json, os, sys, time

MODE = {mode!r}
FRAMES = {frames}
RECORD = {record!r}

args = sys.argv[1:]
with open(os.path.join(RECORD, "vspipe_args.json"), "w") as f:
    json.dump(args, f)
with open(args[-2]) as src, open(os.path.join(RECORD, "last_script.vpy"), "w") as dst:
    dst.write(src.read())

err = sys.stderr
out = sys.stdout.buffer
preview = "-c" not in args

if MODE == "crash":
    err.write("Script evaluation failed:\\n")
    err.write("Python exception: No attribute with the name mv exists. Did you mistype a plugin namespace?\\n")
    err.flush()
    sys.exit(1)

err.write("INPUT_INFO:frames=%d,fps_num=30000,fps_den=1001\\n" % FRAMES)
err.flush()

if MODE == "hang":
    err.write("OUTPUT_INFO:frames=%d,width=4,height=2\\n" % FRAMES)
    err.flush()
    time.sleep(60)
    sys.exit(0)

if preview:
    err.write("OUTPUT_INFO:frames=1,width=4,height=2\\n")
    if MODE == "chatty":
        for n in range(6):
            err.write("plugin chatter %d\\n" % n)
    err.flush()
    size = 4 * 2 * 3 if MODE != "short" else 5
    out.write(bytes(range(size)))
    out.flush()
    sys.exit(0)

err.write("OUTPUT_INFO:frames=%d,width=4,height=2\\n" % FRAMES)
err.write("some plugin chatter\\n")
err.flush()

reported = FRAMES if MODE != "short" else FRAMES // 2
i = 0
try:
    for i in range(1, reported + 1):
        out.write(b"FRAME" + bytes(64))
        out.flush()
        err.write("Frame: %d/%d (25.00 fps)\\r" % (i, FRAMES))
        err.flush()
except BrokenPipeError:
    err.write("Error: fwrite() call failed when writing frame: %d, plane: 0, errno: 32\\n" % i)
    err.flush()
    os._exit(1)

if MODE != "short":
    err.write("\\nOutput %d frames in 0.20 seconds (25.00 fps)\\n" % FRAMES)
    err.flush()
sys.exit(0)
'''

FAKE_FFMPEG = '''
import json, os, sys

MODE = {mode!r}
RECORD = {record!r}

args = sys.argv[1:]
with open(os.path.join(RECORD, "ffmpeg_args.json"), "w") as f:
    json.dump(args, f)

with open(args[-1], "wb") as output:
    if MODE == "crash":
        sys.stdin.buffer.read(16)
        sys.stderr.write("Unknown encoder 'libfoo'\\n")
        sys.stderr.flush()
        sys.exit(1)
    while True:
        chunk = sys.stdin.buffer.read(65536)
        if not chunk:
            break
        output.write(chunk)
        output.flush()
sys.exit(0)
'''

FAKE_FFPROBE = '''
import json, sys

print(json.dumps({{"streams": {streams!r}}}))
'''

DEFAULT_STREAMS = [
    {"codec_type": "video", "codec_name": "h264", "width": 4, "height": 2,
     "field_order": "tt", "nb_frames": "5"},
    {"codec_type": "audio", "codec_name": "aac"},
]


class FakeEngines:
    """Writes executable stand-ins for vspipe, ffmpeg and ffprobe."""

    def __init__(self, directory: Path):
        self.directory = directory
        self.bin_dir = directory / "bin"
        self.record_dir = directory / "record"
        self.bin_dir.mkdir(parents=True, exist_ok=True)
        self.record_dir.mkdir(parents=True, exist_ok=True)

    def _write(self, name: str, body: str) -> str:
        path = self.bin_dir / name
        path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body), encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    def config(
        self,
        vspipe_mode: str = "ok",
        ffmpeg_mode: str = "ok",
        frames: int = 5,
        streams: Optional[List[dict]] = None,
        **processing,
    ) -> VapourBoxConfig:
        record = str(self.record_dir)
        engines = EngineConfig(
            vspipe_path=self._write("vspipe", FAKE_VSPIPE.format(mode=vspipe_mode, frames=frames, record=record)),
            ffmpeg_path=self._write("ffmpeg", FAKE_FFMPEG.format(mode=ffmpeg_mode, record=record)),
            ffprobe_path=self._write("ffprobe", FAKE_FFPROBE.format(
                streams=DEFAULT_STREAMS if streams is None else streams
            )),
        )
        processing.setdefault("temp_directory", str(self.directory / "runs"))
        processing.setdefault("terminate_grace_seconds", 1.0)
        processing.setdefault("progress_interval", 0.0)
        return VapourBoxConfig(
            engines=engines,
            processing=ProcessingConfig(**processing),
            preview=PreviewConfig(timeout=10.0),
        )

    def recorded(self, name: str):
        path = self.record_dir / name
        if not path.exists():
            return None
        if path.suffix == ".json":
            return json.loads(path.read_text(encoding="utf-8"))
        return path.read_text(encoding="utf-8")

    def run_dirs(self) -> List[Path]:
        runs = self.directory / "runs"
        if not runs.exists():
            return []
        return list(runs.iterdir())


class CapturingReporter(ProgressReporter):
    """Reporter writing into memory, with the records decoded for assertions."""

    def __init__(self):
        self.buffer = io.StringIO()
        super().__init__(self.buffer)

    @property
    def lines(self) -> List[str]:
        return [line for line in self.buffer.getvalue().splitlines() if line]

    @property
    def messages(self):
        return [parse_worker_message(line) for line in self.lines]

    def of_type(self, kind: str):
        return [message for message in self.messages if message.type == kind]


@pytest.fixture
def fake_engines(tmp_path) -> FakeEngines:
    if sys.platform == "win32":
        pytest.skip("Fake engines rely on shebang scripts")
    return FakeEngines(tmp_path / "engines")


@pytest.fixture
def reporter() -> CapturingReporter:
    return CapturingReporter()


# =============================================================================
# JOB FIXTURES
# =============================================================================

@pytest.fixture
def input_file(tmp_path) -> Path:
    path = tmp_path / "capture.mkv"
    path.write_bytes(b"not really a video")
    return path


@pytest.fixture
def make_job(tmp_path, input_file):
    """Factory for job descriptors reading ``input_file`` and writing into tmp_path."""

    def factory(**overrides) -> VideoJob:
        fields = {
            "input_path": str(input_file),
            "output_path": str(tmp_path / "capture_restored.mp4"),
            "restoration_pipeline": RestorationPipeline(
                deinterlace=DeinterlaceParameters(preset="Fast", tff=True)
            ),
            "encoding_settings": EncodingSettings(),
        }
        fields.update(overrides)
        return VideoJob(**fields)

    return factory


@pytest.fixture
def job_file(tmp_path, make_job):
    """Factory writing a job descriptor to disk in the camelCase wire format."""

    def factory(**overrides) -> Path:
        job = make_job(**overrides)
        path = tmp_path / "job.json"
        path.write_text(job.model_dump_json(by_alias=True, exclude_none=True), encoding="utf-8")
        return path

    return factory


@pytest.fixture
def test_config(tmp_path):
    """Default configuration with a per-test temp directory, installed globally."""
    config = VapourBoxConfig(processing=ProcessingConfig(temp_directory=str(tmp_path / "runs")))
    set_config(config)
    yield config
    set_config(VapourBoxConfig())


# =============================================================================
# TEST MEDIA GENERATION (real engines)
# =============================================================================

class TestMediaGenerator:
    """
    Generates test media files using FFmpeg.
    No external downloads - creates synthetic interlaced test videos.
    """

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._ffmpeg = shutil.which("ffmpeg")

    @property
    def has_ffmpeg(self) -> bool:
        return self._ffmpeg is not None

    def generate_test_video(
        self,
        name: str = "test_video",
        duration: int = 1,
        width: int = 720,
        height: int = 480,
        audio: bool = True,
    ) -> Optional[Path]:
        """Generate a short interlaced test pattern with an optional AAC tone."""
        if not self.has_ffmpeg:
            return None

        output_path = self.output_dir / f"{name}.mkv"
        cmd = [
            self._ffmpeg, "-y",
            "-f", "lavfi",
            "-i", f"testsrc=duration={duration}:size={width}x{height}:rate=30000/1001",
        ]
        if audio:
            cmd.extend(["-f", "lavfi", "-i", f"sine=frequency=440:duration={duration}"])
        cmd.extend([
            "-vf", "tinterlace=interleave_top,fieldorder=tff",
            "-c:v", "libx264", "-preset", "ultrafast", "-flags", "+ilme+ildct",
            "-pix_fmt", "yuv420p",
        ])
        if audio:
            cmd.extend(["-c:a", "aac", "-b:a", "128k"])
        cmd.append(str(output_path))

        try:
            result = subprocess.run(cmd, capture_output=True, timeout=60)
            if result.returncode == 0 and output_path.exists():
                return output_path
        except (subprocess.TimeoutExpired, OSError) as e:
            print(f"Failed to generate test video: {e}")

        return None


@pytest.fixture(scope="session")
def test_media_dir(tmp_path_factory) -> Path:
    return tmp_path_factory.mktemp("vapourbox_test_media")


@pytest.fixture(scope="session")
def interlaced_video(test_media_dir) -> Path:
    generator = TestMediaGenerator(test_media_dir)
    if not generator.has_ffmpeg:
        pytest.skip("FFmpeg not available for test media generation")
    path = generator.generate_test_video("interlaced_sample")
    if path is None:
        pytest.skip("Failed to generate test video")
    return path


# =============================================================================
# SKIP CONDITIONS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "requires_engines: marks tests that need real vspipe and ffmpeg"
    )


@pytest.fixture
def requires_engines():
    """Skip test if vspipe or ffmpeg is not available."""
    for name in ("vspipe", "ffmpeg", "ffprobe"):
        if not shutil.which(name):
            pytest.skip(f"{name} not available")
