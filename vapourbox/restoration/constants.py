"""
Constants and lookup tables for restoration runs.
"""

from typing import Dict, FrozenSet, List, Optional, Tuple


# Audio codecs each container can carry without re-encoding
CONTAINER_AUDIO_CODECS: Dict[str, FrozenSet[str]] = {
    "mp4": frozenset({"aac", "mp3", "ac3", "eac3", "alac", "opus", "flac"}),
    "mkv": frozenset({
        "aac", "mp3", "ac3", "eac3", "dts", "truehd", "flac", "opus", "vorbis",
        "pcm_s16le", "pcm_s24le", "pcm_s32le", "pcm_f32le", "alac", "wavpack",
    }),
    "mov": frozenset({
        "aac", "mp3", "ac3", "eac3", "alac",
        "pcm_s16le", "pcm_s24le", "pcm_s16be", "pcm_s24be",
    }),
    "avi": frozenset({"mp3", "ac3", "pcm_s16le", "pcm_u8"}),
}

# Re-encode target when the configured fallback does not fit the container
CONTAINER_FALLBACK_AUDIO: Dict[str, str] = {
    "mp4": "aac",
    "mkv": "aac",
    "mov": "aac",
    "avi": "mp3",
}

# ffprobe codec_name aliases that map to the same stream format
AUDIO_CODEC_ALIASES: Dict[str, str] = {
    "aac_latm": "aac",
    "mp3float": "mp3",
    "dca": "dts",
    "libopus": "opus",
    "libvorbis": "vorbis",
    "libmp3lame": "mp3",
}

# Encoder names accepted for each audio format
AUDIO_ENCODER_NAMES: Dict[str, str] = {
    "mp3": "libmp3lame",
    "opus": "libopus",
    "vorbis": "libvorbis",
}


# QTGMC keyword arguments: (field, keyword, default).
# A field equal to its default is left out of the call; a default of None
# means the field is optional and only emitted when set.
QTGMC_ARGUMENTS: List[Tuple[str, str, Optional[object]]] = [
    ("input_type", "InputType", 0),
    ("fps_divisor", "FPSDivisor", 1),
    ("tr0", "TR0", None),
    ("tr1", "TR1", None),
    ("tr2", "TR2", None),
    ("rep0", "Rep0", None),
    ("rep1", "Rep1", 0),
    ("rep2", "Rep2", None),
    ("rep_chroma", "RepChroma", True),
    ("edi_mode", "EdiMode", None),
    ("nn_size", "NNSize", None),
    ("nn_neurons", "NNeurons", None),
    ("edi_qual", "EdiQual", 1),
    ("edi_max_d", "EdiMaxD", None),
    ("chroma_edi", "ChromaEdi", ""),
    ("block_size", "BlockSize", None),
    ("overlap", "Overlap", None),
    ("search", "Search", None),
    ("search_param", "SearchParam", None),
    ("pel_search", "PelSearch", None),
    ("chroma_motion", "ChromaMotion", None),
    ("true_motion", "TrueMotion", False),
    ("lambda_", "Lambda", None),
    ("lsad", "LSAD", None),
    ("p_new", "PNew", None),
    ("p_level", "PLevel", None),
    ("global_motion", "GlobalMotion", True),
    ("dct", "DCT", 0),
    ("sub_pel", "SubPel", None),
    ("sub_pel_interp", "SubPelInterp", 2),
    ("th_sad1", "ThSAD1", 640),
    ("th_sad2", "ThSAD2", 256),
    ("th_scd1", "ThSCD1", 180),
    ("th_scd2", "ThSCD2", 98),
    ("sharpness", "Sharpness", None),
    ("s_mode", "SMode", None),
    ("sl_mode", "SLMode", None),
    ("sl_rad", "SLRad", None),
    ("s_ovs", "SOvs", 0),
    ("sv_thin", "SVThin", 0.0),
    ("sbb", "Sbb", None),
    ("srch_clip_pp", "SrchClipPP", None),
    ("noise_process", "NoiseProcess", None),
    ("ez_denoise", "EZDenoise", None),
    ("ez_keep_grain", "EZKeepGrain", None),
    ("noise_preset", "NoisePreset", "Fast"),
    ("denoiser", "Denoiser", None),
    ("fft_threads", "FftThreads", 1),
    ("denoise_mc", "DenoiseMC", None),
    ("noise_tr", "NoiseTR", None),
    ("sigma", "Sigma", None),
    ("chroma_noise", "ChromaNoise", False),
    ("show_noise", "ShowNoise", 0.0),
    ("grain_restore", "GrainRestore", None),
    ("noise_restore", "NoiseRestore", None),
    ("noise_deint", "NoiseDeint", None),
    ("stabilize_noise", "StabilizeNoise", None),
    ("source_match", "SourceMatch", 0),
    ("match_preset", "MatchPreset", None),
    ("match_edi", "MatchEdi", None),
    ("match_preset2", "MatchPreset2", None),
    ("match_edi2", "MatchEdi2", None),
    ("match_tr2", "MatchTR2", 1),
    ("match_enhance", "MatchEnhance", 0.5),
    ("lossless", "Lossless", 0),
    ("border", "Border", False),
    ("precise", "Precise", None),
    ("force_tr", "ForceTR", 0),
    ("str_", "Str", 2.0),
    ("amp", "Amp", 0.0625),
    ("fast_ma", "FastMA", False),
    ("e_search_p", "ESearchP", False),
    ("refine_motion", "RefineMotion", False),
]


# VapourSynth source filters by config name
SOURCE_FILTERS: Dict[str, Tuple[str, str]] = {
    "bs": ("bs", "core.bs.VideoSource(source={path})"),
    "ffms2": ("ffms2", "core.ffms2.Source(source={path})"),
}

# Core resizers by kernel name
RESIZE_FUNCTIONS: Dict[str, str] = {
    "spline36": "core.resize.Spline36",
    "lanczos": "core.resize.Lanczos",
    "bicubic": "core.resize.Bicubic",
    "bilinear": "core.resize.Bilinear",
}

# Python modules loaded by generated scripts, keyed by import alias
SCRIPT_MODULES: Dict[str, str] = {
    "haf": "havsfunc",
    "adjust": "adjust",
    "edi_rpow2": "edi_rpow2",
}


# Engine names used in logs and errors
FRAME_ENGINE = "vspipe"
ENCODER_ENGINE = "ffmpeg"
