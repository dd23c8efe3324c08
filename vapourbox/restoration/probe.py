"""
Source media inspection with ffprobe.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..models import FieldOrder

logger = logging.getLogger(__name__)


@dataclass
class SourceInfo:
    audio_codec: Optional[str] = None
    has_audio: bool = False
    field_order: FieldOrder = FieldOrder.UNKNOWN
    frame_count: Optional[int] = None
    width: int = 0
    height: int = 0


FIELD_ORDER_MAP = {
    "tt": FieldOrder.TFF,
    "tb": FieldOrder.TFF,
    "bb": FieldOrder.BFF,
    "bt": FieldOrder.BFF,
    "progressive": FieldOrder.PROGRESSIVE,
}


class MediaProbe:
    """Reads stream information needed before a run starts."""

    def __init__(self, ffprobe_path: str, timeout: float = 30.0, env: Optional[Dict[str, str]] = None):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout
        self.env = env

    async def _run(self, args: List[str]) -> Optional[Dict[str, Any]]:
        cmd = [self.ffprobe_path, "-v", "error", "-print_format", "json", *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
            )
        except OSError as e:
            logger.warning(f"[Probe] Failed to start ffprobe: {e}")
            return None

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"[Probe] ffprobe timed out after {self.timeout}s")
            return None

        if process.returncode != 0:
            logger.warning(f"[Probe] ffprobe failed: {stderr.decode('utf-8', errors='ignore').strip()}")
            return None

        try:
            return json.loads(stdout.decode("utf-8", errors="ignore") or "{}")
        except json.JSONDecodeError as e:
            logger.warning(f"[Probe] Unreadable ffprobe output: {e}")
            return None

    async def get_source_info(self, source: str) -> Optional[SourceInfo]:
        """Probe streams of ``source``. Returns None when ffprobe fails."""
        data = await self._run(["-show_streams", source])
        if data is None:
            return None

        info = SourceInfo()
        for stream in data.get("streams", []):
            codec_type = stream.get("codec_type")
            if codec_type == "audio" and not info.has_audio:
                info.has_audio = True
                info.audio_codec = stream.get("codec_name")
            elif codec_type == "video" and info.width == 0:
                info.width = int(stream.get("width") or 0)
                info.height = int(stream.get("height") or 0)
                info.field_order = FIELD_ORDER_MAP.get(
                    stream.get("field_order", ""), FieldOrder.UNKNOWN
                )
                nb_frames = stream.get("nb_frames")
                if nb_frames and str(nb_frames).isdigit():
                    info.frame_count = int(nb_frames)

        logger.debug(f"[Probe] {source}: audio={info.audio_codec} field_order={info.field_order.value}")
        return info

    async def detect_field_order(self, source: str) -> FieldOrder:
        info = await self.get_source_info(source)
        if info is None:
            return FieldOrder.UNKNOWN
        return info.field_order
