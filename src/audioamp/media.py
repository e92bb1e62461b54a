"""
Media decoding for <audio>/<video> sources.
- Files are decoded with soundfile into float32 stereo (2, N).
- Sample-rate conversion goes through librosa's band-limited resampler.
"""

from __future__ import annotations

import logging
import os

import librosa
import numpy as np
import soundfile as sf

logger = logging.getLogger("audioamp.media")


def _strip_scheme(src: str) -> str:
    if src.startswith("file://"):
        return src[len("file://"):]
    return src


def to_stereo(x: np.ndarray, channels_first: bool = True) -> np.ndarray:
    """Coerce mono (N,) or multichannel audio into float32 (2, N)."""
    a = np.asarray(x, dtype=np.float32)
    if a.ndim == 1:
        return np.stack([a, a], axis=0)
    if not channels_first:
        a = a.T
    if a.shape[0] == 1:
        return np.concatenate([a, a], axis=0)
    if a.shape[0] > 2:
        # fold surround channels down to L/R
        left = a[0::2].mean(axis=0)
        right = a[1::2].mean(axis=0)
        return np.stack([left, right], axis=0).astype(np.float32)
    return a


def resample(x: np.ndarray, sr_in: int, sr_out: int) -> np.ndarray:
    if sr_in == sr_out or x.shape[-1] == 0:
        return x
    logger.debug("resampling %d frames: %d Hz -> %d Hz", x.shape[-1], sr_in, sr_out)
    y = librosa.resample(np.ascontiguousarray(x, dtype=np.float32), orig_sr=sr_in, target_sr=sr_out, axis=-1)
    return y.astype(np.float32, copy=False)


def decode(src: str, sample_rate: int) -> np.ndarray:
    """Decode a media source path into a (2, N) float32 buffer at `sample_rate`."""
    path = _strip_scheme(src)
    if not os.path.exists(path):
        raise FileNotFoundError(path)
    data, sr = sf.read(path, dtype="float32", always_2d=True)  # (N, C)
    logger.debug("decoded %s: %d frames @ %d Hz, %d ch", path, data.shape[0], sr, data.shape[1])
    return resample(to_stereo(data.T), int(sr), int(sample_rate))
