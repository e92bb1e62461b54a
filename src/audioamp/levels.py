"""
Level sampler: turns the two analysis taps into a pair of 0..1 loudness readings.

Runs on the display cadence for as long as the page lives. Each tick reads the
byte spectrum of both taps into fixed buffers and publishes the normalized RMS;
readers always get the last published sample without waiting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .constants import BYTE_MAX, FRAME_RATE
from .dsp import normalized_rms
from .graph import ProcessingGraph
from .loop import TaskQueue, TimerHandle

logger = logging.getLogger("audioamp.levels")


@dataclass(frozen=True)
class LevelSample:
    input_level: float = 0.0
    output_level: float = 0.0

    def to_wire(self) -> dict[str, float]:
        return {"inputLevel": self.input_level, "outputLevel": self.output_level}


SILENCE = LevelSample()


class LevelSampler:
    def __init__(self, graph: ProcessingGraph, loop: TaskQueue, interval: float = 1.0 / FRAME_RATE):
        self.graph = graph
        self.loop = loop
        self.interval = interval
        self.latest = SILENCE
        self.ticks = 0
        self._handle: TimerHandle | None = None
        self._buffers: dict[str, np.ndarray] = {}

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self._handle is None:
            self._handle = self.loop.call_soon(self._tick)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _tick(self) -> None:
        try:
            self.sample()
        finally:
            if self._handle is not None:
                self._handle = self.loop.call_later(self.interval, self._tick)

    def _buffer(self, name: str, bins: int) -> np.ndarray:
        buf = self._buffers.get(name)
        if buf is None or len(buf) != bins:
            buf = self._buffers[name] = np.zeros(bins, dtype=np.uint8)
        return buf

    def sample(self) -> LevelSample:
        """Read both taps once and publish the result."""
        self.ticks += 1
        g = self.graph
        if not g.exists or g.input_tap is None or g.output_tap is None:
            self.latest = SILENCE
            return self.latest
        inp = g.input_tap.get_byte_frequency_data(self._buffer("input", g.input_tap.frequency_bin_count))
        out = g.output_tap.get_byte_frequency_data(self._buffer("output", g.output_tap.frequency_bin_count))
        self.latest = LevelSample(normalized_rms(inp, BYTE_MAX), normalized_rms(out, BYTE_MAX))
        return self.latest
