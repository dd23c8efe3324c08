"""
Copy-or-reencode decision for the source audio track.
"""

import logging
from typing import Optional

from ..config import ProcessingConfig
from ..models import AudioMode, AudioPolicy, ContainerFormat, EncodingSettings
from .constants import AUDIO_CODEC_ALIASES, CONTAINER_AUDIO_CODECS, CONTAINER_FALLBACK_AUDIO
from .probe import SourceInfo

logger = logging.getLogger(__name__)


def normalize_audio_codec(codec: Optional[str]) -> Optional[str]:
    if not codec:
        return None
    codec = codec.strip().lower()
    return AUDIO_CODEC_ALIASES.get(codec, codec)


def is_copy_compatible(container: ContainerFormat, codec: Optional[str]) -> bool:
    codec = normalize_audio_codec(codec)
    if codec is None:
        return False
    return codec in CONTAINER_AUDIO_CODECS.get(container.value, frozenset())


def decide_audio_policy(
    copy_requested: bool,
    container: ContainerFormat,
    source_codec: Optional[str],
    has_audio: bool = True,
    audio_disabled: bool = False,
    reencode_codec: str = "aac",
    reencode_bitrate: int = 192,
) -> AudioPolicy:
    """
    Decide how the source audio reaches the output.

    Copy is chosen only when it was requested and the container can hold
    the source codec. Otherwise the track is re-encoded, swapping in the
    container's fallback codec if ``reencode_codec`` does not fit.
    """
    if audio_disabled:
        return AudioPolicy(mode=AudioMode.NONE, reason="audio disabled by custom arguments")
    if not has_audio:
        return AudioPolicy(mode=AudioMode.NONE, reason="source has no audio track")

    source = normalize_audio_codec(source_codec)
    if copy_requested and is_copy_compatible(container, source):
        return AudioPolicy(
            mode=AudioMode.COPY,
            codec=source,
            reason=f"{source} fits in {container.value}",
        )

    codec = normalize_audio_codec(reencode_codec) or CONTAINER_FALLBACK_AUDIO[container.value]
    if not is_copy_compatible(container, codec):
        codec = CONTAINER_FALLBACK_AUDIO[container.value]

    if not copy_requested:
        reason = "copy not requested"
    elif source is None:
        reason = "source audio codec unknown"
    else:
        reason = f"{source} cannot be stored in {container.value}"

    return AudioPolicy(mode=AudioMode.REENCODE, codec=codec, bitrate_kbps=reencode_bitrate, reason=reason)


def resolve_audio_policy(
    settings: EncodingSettings,
    source: Optional[SourceInfo],
    processing: ProcessingConfig,
) -> AudioPolicy:
    """Policy for a job, given what the probe found (None if it failed)."""
    if source is None:
        if settings.audio_copy:
            logger.warning("[Audio] Source audio could not be probed, re-encoding")
        has_audio, source_codec = True, None
    else:
        has_audio, source_codec = source.has_audio, source.audio_codec

    if settings.audio_copy:
        codec, bitrate = processing.fallback_audio_codec, processing.fallback_audio_bitrate
    else:
        codec, bitrate = settings.audio_codec, settings.audio_bitrate

    policy = decide_audio_policy(
        copy_requested=settings.audio_copy,
        container=settings.container,
        source_codec=source_codec,
        has_audio=has_audio,
        audio_disabled=settings.disables_audio(),
        reencode_codec=codec,
        reencode_bitrate=bitrate,
    )
    logger.info(f"[Audio] {policy.mode.value}: {policy.reason}")
    return policy
