"""
VapourBox - multi-pass video restoration worker.

Compiles a restoration pipeline into a VapourSynth script and drives
vspipe | ffmpeg as a supervised process pair.
"""

__version__ = "0.4.0"
