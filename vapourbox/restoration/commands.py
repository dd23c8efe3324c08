"""
Command lines for the frame engine (vspipe) and the encoder (ffmpeg).
"""

import logging
from typing import List, Optional

from ..models import AudioMode, AudioPolicy, VideoCodec, VideoJob
from .constants import AUDIO_ENCODER_NAMES

logger = logging.getLogger(__name__)


def output_rate_multiplier(job: VideoJob) -> int:
    """2 when QTGMC doubles the frame rate of interlaced input, else 1."""
    deint = job.effective_pipeline().deinterlace
    if deint.enabled and deint.fps_divisor == 1 and deint.input_type == 0:
        return 2
    return 1


class CommandBuilder:
    """Builds vspipe and ffmpeg argument lists for one job."""

    def __init__(self, vspipe_path: str, ffmpeg_path: Optional[str] = None):
        self.vspipe_path = vspipe_path
        self.ffmpeg_path = ffmpeg_path

    def build_frame_engine_command(self, script_path: str, y4m: bool = True, progress: bool = True) -> List[str]:
        """vspipe writing frames to stdout. Raw planar output when ``y4m`` is False."""
        cmd = [self.vspipe_path]
        if y4m:
            cmd.extend(["-c", "y4m"])
        if progress:
            cmd.append("-p")
        cmd.extend([script_path, "-"])
        return cmd

    def _video_args(self, codec: VideoCodec, quality: int, encoder_preset: str) -> List[str]:
        args = ["-c:v", codec.ffmpeg_codec]
        if codec.prores_profile is not None:
            args.extend(["-profile:v", str(codec.prores_profile)])
        elif codec == VideoCodec.FFV1:
            args.extend(["-level", "3"])
        else:
            args.extend(["-crf", str(quality), "-preset", encoder_preset])
        return args

    def _audio_args(self, policy: AudioPolicy) -> List[str]:
        if policy.mode == AudioMode.COPY:
            return ["-c:a", "copy"]
        if policy.mode == AudioMode.REENCODE:
            encoder = AUDIO_ENCODER_NAMES.get(policy.codec, policy.codec)
            args = ["-c:a", encoder]
            if policy.bitrate_kbps:
                args.extend(["-b:a", f"{policy.bitrate_kbps}k"])
            return args
        return ["-an"]

    def build_encoder_command(self, job: VideoJob, policy: AudioPolicy) -> List[str]:
        """
        ffmpeg reading y4m frames from stdin and audio from the original input.
        """
        settings = job.encoding_settings
        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostats",
            "-loglevel", "warning",
            "-f", "yuv4mpegpipe",
            "-i", "-",
        ]

        with_audio = policy.mode != AudioMode.NONE
        if with_audio:
            audio_offset = self._audio_offset(job)
            if audio_offset:
                cmd.extend(["-ss", f"{audio_offset:.6f}"])
            cmd.extend(["-i", job.input_path, "-map", "0:v:0", "-map", "1:a:0?"])
        else:
            cmd.extend(["-map", "0:v:0"])

        cmd.extend(self._video_args(settings.codec, settings.quality, settings.encoder_preset))
        cmd.extend(self._audio_args(policy))
        if with_audio and job.frame_range is not None:
            cmd.append("-shortest")

        cmd.extend(settings.extra_args())
        cmd.extend(["-y", job.output_path])
        return cmd

    def _audio_offset(self, job: VideoJob) -> Optional[float]:
        if job.frame_range is None or not job.input_frame_rate:
            return None
        start = job.frame_range[0]
        if start == 0:
            return None
        return start / (job.input_frame_rate * output_rate_multiplier(job))
