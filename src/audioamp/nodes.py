"""
Signal-processing stages of the rendering context.

Rendering is pull-based: the destination asks its inputs for one block, each
stage asks its own inputs, and every stage caches its output per render pass so
a stage feeding several others is processed once. All graph edits and all
parameter scheduling happen under the context's render lock.
"""

from __future__ import annotations

import bisect
import math

import numpy as np

from .constants import ANALYSER_MAX_DB, ANALYSER_MIN_DB, ANALYSER_SMOOTHING, CHANNELS, FFT_SIZE
from .dsp import byte_spectrum, compression_gain, envelope_follow, gain_to_db, time_to_coeff
from .errors import InvalidStateError


class AudioParam:
    """
    A control value with a timeline of scheduled changes.
    An event scheduled at the same time as an existing one replaces it; events that
    have been superseded by a later event already in force are dropped.
    """
    def __init__(self, context, name: str, default: float,
                 min_value: float = -math.inf, max_value: float = math.inf):
        self.context = context
        self.name = name
        self.default_value = float(default)
        self.min_value = float(min_value)
        self.max_value = float(max_value)
        self._events: list[tuple[float, float]] = []  # (time, value), sorted by time

    def __repr__(self) -> str:
        return f"<AudioParam {self.name}={self.value:g}>"

    @property
    def value(self) -> float:
        return self.value_at(self.context.current_time)

    @value.setter
    def value(self, v: float) -> None:
        self.set_value_at_time(v, self.context.current_time)

    def set_value_at_time(self, value: float, when: float) -> AudioParam:
        v = min(self.max_value, max(self.min_value, float(value)))
        when = float(when)
        with self.context.lock:
            events = [e for e in self._events if e[0] != when]
            bisect.insort(events, (when, v))
            self._events = events
            self._prune(self.context.current_time)
        return self

    def value_at(self, t: float) -> float:
        i = bisect.bisect_right(self._events, (t, math.inf))
        return self._events[i - 1][1] if i else self.default_value

    def scheduled(self) -> list[tuple[float, float]]:
        return list(self._events)

    def _prune(self, now: float) -> None:
        i = bisect.bisect_right(self._events, (now, math.inf))
        if i > 1:
            del self._events[: i - 1]


class AudioNode:
    def __init__(self, context):
        self.context = context
        self._inputs: list[AudioNode] = []
        self._outputs: list[AudioNode] = []
        self._pass = -1
        self._cache: np.ndarray | None = None

    @property
    def inputs(self) -> tuple[AudioNode, ...]:
        return tuple(self._inputs)

    @property
    def outputs(self) -> tuple[AudioNode, ...]:
        return tuple(self._outputs)

    def connect(self, destination: AudioNode) -> AudioNode:
        if destination.context is not self.context:
            raise InvalidStateError("cannot connect nodes from different contexts")
        with self.context.lock:
            if destination not in self._outputs:
                self._outputs.append(destination)
                destination._inputs.append(self)
        return destination

    def disconnect(self, destination: AudioNode | None = None) -> None:
        """Drop one or all outgoing connections. Naming a node that is not connected is an error."""
        with self.context.lock:
            if destination is None:
                for out in self._outputs:
                    out._inputs.remove(self)
                self._outputs.clear()
                return
            if destination not in self._outputs:
                raise InvalidStateError("node is not connected to that destination")
            self._outputs.remove(destination)
            destination._inputs.remove(self)

    def pull(self, frames: int, render_pass: int) -> np.ndarray:
        if self._pass == render_pass and self._cache is not None and self._cache.shape[1] == frames:
            return self._cache
        block = np.zeros((CHANNELS, frames), dtype=np.float32)
        for node in self._inputs:
            block += node.pull(frames, render_pass)
        self._cache = self.process(block)
        self._pass = render_pass
        return self._cache

    def process(self, block: np.ndarray) -> np.ndarray:
        return block


class AudioDestinationNode(AudioNode):
    pass


class GainNode(AudioNode):
    def __init__(self, context):
        super().__init__(context)
        self.gain = AudioParam(context, "gain", 1.0)

    def process(self, block: np.ndarray) -> np.ndarray:
        g = self.gain.value
        if g == 1.0:
            return block
        return (block * g).astype(np.float32)


class DynamicsCompressorNode(AudioNode):
    """
    Single-band compressor: stereo-linked peak detector, hard knee, no make-up gain.
    ratio 1:1 (or a 0 dB threshold on a signal that never exceeds full scale) is an exact identity.
    """
    def __init__(self, context):
        super().__init__(context)
        self.threshold = AudioParam(context, "threshold", -24.0, -100.0, 0.0)
        self.ratio = AudioParam(context, "ratio", 12.0, 1.0, 20.0)
        self.attack = AudioParam(context, "attack", 0.003, 0.0, 1.0)
        self.release = AudioParam(context, "release", 0.25, 0.0, 1.0)
        self.reduction = 0.0  # dB of gain reduction at the end of the last block
        self._env = 0.0

    def process(self, block: np.ndarray) -> np.ndarray:
        sr = self.context.sample_rate
        level = np.max(np.abs(block), axis=0)
        env, self._env = envelope_follow(
            level, self._env,
            time_to_coeff(self.attack.value, sr),
            time_to_coeff(self.release.value, sr),
        )
        gain = compression_gain(env, self.threshold.value, self.ratio.value)
        self.reduction = gain_to_db(float(gain[-1])) if len(gain) else 0.0
        if np.all(gain == 1.0):
            return block
        return (block * gain[None, :]).astype(np.float32)


class AnalyserNode(AudioNode):
    """
    Non-destructive tap: passes audio through untouched and keeps the last
    `fft_size` mono samples for spectrum reads.
    """
    def __init__(self, context, fft_size: int = FFT_SIZE):
        super().__init__(context)
        self.smoothing_time_constant = ANALYSER_SMOOTHING
        self.min_decibels = ANALYSER_MIN_DB
        self.max_decibels = ANALYSER_MAX_DB
        self.fft_size = fft_size

    @property
    def fft_size(self) -> int:
        return self._fft_size

    @fft_size.setter
    def fft_size(self, n: int) -> None:
        n = int(n)
        if n < 32 or n > 32768 or n & (n - 1):
            raise ValueError(f"fft_size must be a power of two in [32, 32768], got {n}")
        with self.context.lock:
            self._fft_size = n
            self._window = np.blackman(n).astype(np.float32)
            self._time = np.zeros(n, dtype=np.float32)
            self._smoothed = np.zeros(n // 2, dtype=np.float64)

    @property
    def frequency_bin_count(self) -> int:
        return self._fft_size // 2

    def process(self, block: np.ndarray) -> np.ndarray:
        mono = block.mean(axis=0)
        n = len(mono)
        if n >= self._fft_size:
            self._time[:] = mono[-self._fft_size:]
        elif n:
            self._time[:-n] = self._time[n:]
            self._time[-n:] = mono
        return block

    def get_byte_frequency_data(self, out: np.ndarray) -> np.ndarray:
        """Fill `out` (uint8) with the smoothed magnitude spectrum scaled to 0..255."""
        with self.context.lock:
            spectrum = np.fft.rfft(self._time * self._window)[: self.frequency_bin_count]
            magnitude = np.abs(spectrum) / self._fft_size
            tau = self.smoothing_time_constant
            self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitude
            return byte_spectrum(self._smoothed, self.min_decibels, self.max_decibels, out)

    def get_float_time_domain_data(self, out: np.ndarray) -> np.ndarray:
        with self.context.lock:
            n = min(len(out), self._fft_size)
            out[:n] = self._time[-n:]
            return out


class MediaElementSourceNode(AudioNode):
    """
    Routes one media element's output into the graph. An element can be bound to
    at most one live source node; `release()` frees the binding.
    """
    def __init__(self, context, element):
        if getattr(element, "captured_by", None) is not None:
            raise InvalidStateError(f"{element!r} is already connected to a source node")
        super().__init__(context)
        self.media_element = element
        element.captured_by = self
        element.prepare(context.sample_rate)

    @property
    def released(self) -> bool:
        return self.media_element.captured_by is not self

    def release(self) -> None:
        if self.media_element.captured_by is self:
            self.media_element.captured_by = None

    def pull(self, frames: int, render_pass: int) -> np.ndarray:
        if self._pass == render_pass and self._cache is not None and self._cache.shape[1] == frames:
            return self._cache
        self._cache = self.media_element.read(frames)
        self._pass = render_pass
        return self._cache
