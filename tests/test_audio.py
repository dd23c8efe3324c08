"""
Tests for the copy-or-reencode audio decision.
"""

import logging

import pytest

from vapourbox.config import ProcessingConfig
from vapourbox.models import AudioMode, ContainerFormat, EncodingSettings
from vapourbox.restoration.audio import decide_audio_policy, is_copy_compatible, resolve_audio_policy
from vapourbox.restoration.probe import SourceInfo


class TestDecideAudioPolicy:

    @pytest.mark.parametrize("container,codec", [
        (ContainerFormat.MP4, "aac"),
        (ContainerFormat.MKV, "pcm_s16le"),
        (ContainerFormat.MOV, "alac"),
        (ContainerFormat.AVI, "mp3"),
        (ContainerFormat.MKV, "dca"),
    ])
    def test_copy_when_compatible(self, container, codec):
        policy = decide_audio_policy(True, container, codec)
        assert policy.mode == AudioMode.COPY

    @pytest.mark.parametrize("container,codec", [
        (ContainerFormat.MP4, "pcm_s16le"),
        (ContainerFormat.AVI, "aac"),
        (ContainerFormat.MOV, "opus"),
    ])
    def test_reencode_when_incompatible(self, container, codec):
        policy = decide_audio_policy(True, container, codec)
        assert policy.mode == AudioMode.REENCODE
        assert "cannot be stored" in policy.reason

    def test_reencode_when_copy_not_requested(self):
        policy = decide_audio_policy(False, ContainerFormat.MP4, "aac", reencode_bitrate=256)
        assert policy.mode == AudioMode.REENCODE
        assert policy.codec == "aac"
        assert policy.bitrate_kbps == 256

    def test_unknown_source_codec_reencodes(self):
        policy = decide_audio_policy(True, ContainerFormat.MKV, None)
        assert policy.mode == AudioMode.REENCODE
        assert policy.reason == "source audio codec unknown"

    def test_fallback_that_does_not_fit_container(self):
        policy = decide_audio_policy(False, ContainerFormat.AVI, "aac", reencode_codec="aac")
        assert policy.codec == "mp3"

    def test_no_audio_track(self):
        policy = decide_audio_policy(True, ContainerFormat.MP4, None, has_audio=False)
        assert policy.mode == AudioMode.NONE

    def test_audio_disabled(self):
        policy = decide_audio_policy(True, ContainerFormat.MP4, "aac", audio_disabled=True)
        assert policy.mode == AudioMode.NONE

    def test_is_copy_compatible_normalizes_names(self):
        assert is_copy_compatible(ContainerFormat.MP4, " AAC ")
        assert not is_copy_compatible(ContainerFormat.MP4, None)


class TestResolveAudioPolicy:

    def test_copy_uses_config_fallback(self):
        processing = ProcessingConfig(fallback_audio_codec="opus", fallback_audio_bitrate=160)
        settings = EncodingSettings(container=ContainerFormat.MKV, audio_copy=True)
        source = SourceInfo(audio_codec="pcm_s24be", has_audio=True)

        policy = resolve_audio_policy(settings, source, processing)

        assert policy.mode == AudioMode.REENCODE
        assert policy.codec == "opus"
        assert policy.bitrate_kbps == 160

    def test_explicit_reencode_uses_settings(self):
        settings = EncodingSettings(audio_copy=False, audio_codec="ac3", audio_bitrate=384)
        source = SourceInfo(audio_codec="aac", has_audio=True)

        policy = resolve_audio_policy(settings, source, ProcessingConfig())

        assert policy.codec == "ac3"
        assert policy.bitrate_kbps == 384

    def test_probe_failure_reencodes_with_warning(self, caplog):
        settings = EncodingSettings(audio_copy=True)
        with caplog.at_level(logging.WARNING, logger="vapourbox"):
            policy = resolve_audio_policy(settings, None, ProcessingConfig())
        assert policy.mode == AudioMode.REENCODE
        assert "could not be probed" in caplog.text

    def test_custom_an_flag(self):
        settings = EncodingSettings(custom_ffmpeg_args="-an -movflags +faststart")
        source = SourceInfo(audio_codec="aac", has_audio=True)
        assert resolve_audio_policy(settings, source, ProcessingConfig()).mode == AudioMode.NONE
