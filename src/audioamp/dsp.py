"""
Low-level DSP utilities: level conversions, envelope following, gain computation
and the spectrum reduction used by the analysis taps.
All functions are pure and stateless where possible.
"""

from __future__ import annotations
import math
import numpy as np


# ---------- Conversions ----------

def gain_to_db(gain: float, floor_db: float = -240.0) -> float:
    if gain <= 0.0:
        return floor_db
    return max(floor_db, 20.0 * math.log10(gain))


def time_to_coeff(seconds: float, sample_rate: int) -> float:
    """
    One-pole smoothing coefficient for a time constant. Zero time means "follow instantly".
    """
    if seconds <= 0.0:
        return 0.0
    return math.exp(-1.0 / (seconds * sample_rate))


# ---------- Dynamics ----------

def envelope_follow(level: np.ndarray, state: float, attack_coeff: float, release_coeff: float) -> tuple[np.ndarray, float]:
    """
    Peak envelope follower with separate attack/release.
    Returns the envelope and the follower state to carry into the next block.
    """
    env = np.empty(len(level), dtype=np.float32)
    prev = float(state)
    for i in range(len(level)):
        x = float(level[i])
        c = attack_coeff if x > prev else release_coeff
        prev = c * prev + (1.0 - c) * x
        env[i] = prev
    return env, prev


def compression_gain(env: np.ndarray, threshold_db: float, ratio: float) -> np.ndarray:
    """
    Hard-knee gain computer: linear gain per sample for an envelope.
    ratio == 1 yields exactly 1.0 everywhere.
    """
    if ratio <= 1.0:
        return np.ones(len(env), dtype=np.float32)
    level_db = 20.0 * np.log10(np.maximum(env, 1e-12))
    over_db = np.maximum(level_db - threshold_db, 0.0)
    reduction_db = over_db * (1.0 - 1.0 / ratio)
    return (10.0 ** (-reduction_db / 20.0)).astype(np.float32)


# ---------- Analysis ----------

def byte_spectrum(magnitude: np.ndarray, min_db: float, max_db: float, out: np.ndarray) -> np.ndarray:
    """
    Map linear magnitudes onto 0..255 across [min_db, max_db], written into `out` in place.
    """
    n = min(len(out), len(magnitude))
    db = 20.0 * np.log10(np.maximum(magnitude[:n], 1e-12))
    scaled = np.floor(255.0 / (max_db - min_db) * (db - min_db))
    out[:n] = np.clip(scaled, 0, 255).astype(out.dtype)
    return out


def normalized_rms(buf: np.ndarray, max_value: float) -> float:
    """
    sqrt(mean(x^2)) / max_value, clamped to [0, 1]. Empty buffers read as silence.
    """
    if len(buf) == 0 or max_value <= 0:
        return 0.0
    x = buf.astype(np.float64)
    rms = float(np.sqrt(np.mean(x * x)))
    return max(0.0, min(1.0, rms / max_value))
