"""
The per-page processing graph.

Topology is fixed when the graph is created and never rewired:

    sources -> input tap -> dynamics -> gain -> output tap -> destination

Turning compression off parameterizes the dynamics stage to be transparent
(0 dB threshold, 1:1 ratio) instead of taking it out of the path.
"""

from __future__ import annotations

import logging
from typing import Callable

from .constants import FFT_SIZE
from .context import CLOSED, RUNNING, SUSPENDED, AudioContext
from .errors import AudioAmpError
from .nodes import AnalyserNode, DynamicsCompressorNode, GainNode
from .presets import ParameterSet

logger = logging.getLogger("audioamp.graph")


class ProcessingGraph:
    def __init__(self, context_factory: Callable[[], AudioContext], fft_size: int = FFT_SIZE):
        self._context_factory = context_factory
        self._fft_size = fft_size
        self.context: AudioContext | None = None
        self.input_tap: AnalyserNode | None = None
        self.compressor: DynamicsCompressorNode | None = None
        self.gain: GainNode | None = None
        self.output_tap: AnalyserNode | None = None
        self._parameters = ParameterSet()
        self.creations = 0
        # called with the graph after each successful creation
        self.on_created: list[Callable[[ProcessingGraph], None]] = []

    @property
    def exists(self) -> bool:
        return self.context is not None and self.context.state != CLOSED

    @property
    def state(self) -> str:
        return self.context.state if self.context is not None else "none"

    @property
    def parameters(self) -> ParameterSet:
        """The last parameter set handed to the graph (defaults until the first apply)."""
        return self._parameters

    def ensure_created(self) -> bool:
        """Create context and stages unless a live (non-closed) graph exists.

        A rejected creation is logged and leaves the graph empty so the next call retries.
        """
        if self.exists:
            return True
        try:
            ctx = self._context_factory()
        except Exception as e:
            logger.error("cannot create audio context: %s", e)
            return False

        self.context = ctx
        self.input_tap = ctx.create_analyser(self._fft_size)
        self.compressor = ctx.create_dynamics_compressor()
        self.gain = ctx.create_gain()
        self.output_tap = ctx.create_analyser(self._fft_size)

        self.input_tap.connect(self.compressor)
        self.compressor.connect(self.gain)
        self.gain.connect(self.output_tap)
        self.output_tap.connect(ctx.destination)

        self._schedule(self._parameters)
        self.creations += 1
        logger.info("audio context and processing chain created (%s)", ctx.state)
        for hook in list(self.on_created):
            try:
                hook(self)
            except Exception:
                logger.exception("graph creation hook failed")
        return True

    def apply_parameters(self, params: ParameterSet) -> None:
        """Make `params` the live parameter set. Last call wins; nothing is queued behind it."""
        self._parameters = params
        if self.exists:
            self._schedule(params)

    def _schedule(self, p: ParameterSet) -> None:
        ctx = self.context
        try:
            now = ctx.current_time
            self.gain.gain.set_value_at_time(p.gain, now)
            threshold, ratio, attack, release = p.dynamics()
            self.compressor.threshold.set_value_at_time(threshold, now)
            self.compressor.ratio.set_value_at_time(ratio, now)
            self.compressor.attack.set_value_at_time(attack, now)
            self.compressor.release.set_value_at_time(release, now)
        except AudioAmpError as e:
            logger.error("cannot apply parameters: %s", e)

    def resume(self) -> bool:
        """Try to get a suspended context running. Failures are logged, never retried here."""
        if not self.exists:
            return False
        if self.context.state == SUSPENDED:
            try:
                self.context.resume()
                logger.info("audio context resumed")
            except AudioAmpError as e:
                logger.warning("error resuming audio context: %s", e)
                return False
        return self.context.state == RUNNING

    def teardown(self) -> None:
        if self.context is not None:
            try:
                self.context.close()
            except Exception:
                logger.exception("error closing audio context")
        self.context = None
        self.input_tap = self.compressor = self.gain = self.output_tap = None
