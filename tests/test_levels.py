from __future__ import annotations

import pytest

from audioamp.context import AudioContext
from audioamp.graph import ProcessingGraph
from audioamp.levels import SILENCE, LevelSample, LevelSampler
from audioamp.loop import TaskQueue
from audioamp.presets import ParameterSet

from conftest import BackendFactory, tone


def _graph(backends: BackendFactory) -> ProcessingGraph:
    return ProcessingGraph(lambda: AudioContext(backend=backends(), autoplay_allowed=lambda: True))


def _feed(graph: ProcessingGraph, blocks: int = 4, amp: float = 0.5) -> None:
    # push blocks through the chain by hand, no media element needed
    signal = tone(amp=amp)
    for i in range(blocks):
        block = signal[:, i * 512:(i + 1) * 512]
        graph.input_tap.process(block)
        graph.output_tap.process(graph.gain.process(graph.compressor.process(block)))


def test_no_graph_reads_zero(backends: BackendFactory, loop: TaskQueue) -> None:
    sampler = LevelSampler(_graph(backends), loop)
    assert sampler.sample() == SILENCE
    assert sampler.latest.to_wire() == {"inputLevel": 0.0, "outputLevel": 0.0}


def test_levels_are_normalized_and_positive_with_signal(backends: BackendFactory, loop: TaskQueue) -> None:
    graph = _graph(backends)
    graph.ensure_created()
    _feed(graph)
    sample = LevelSampler(graph, loop).sample()
    assert 0.0 < sample.input_level <= 1.0
    assert 0.0 < sample.output_level <= 1.0


def test_silent_graph_reads_zero(backends: BackendFactory, loop: TaskQueue) -> None:
    graph = _graph(backends)
    graph.ensure_created()
    graph.context.render(1024)
    assert LevelSampler(graph, loop).sample() == LevelSample(0.0, 0.0)


def test_zero_volume_silences_output_meter_only(backends: BackendFactory, loop: TaskQueue) -> None:
    graph = _graph(backends)
    graph.ensure_created()
    graph.apply_parameters(ParameterSet().merged({"volume": 0}))
    _feed(graph)
    sample = LevelSampler(graph, loop).sample()
    assert sample.input_level > 0.0
    assert sample.output_level == 0.0


def test_ticks_follow_display_cadence(backends: BackendFactory, loop: TaskQueue) -> None:
    sampler = LevelSampler(_graph(backends), loop, interval=1 / 60)
    sampler.start()
    loop.advance(1.0)
    assert 59 <= sampler.ticks <= 61
    sampler.stop()
    before = sampler.ticks
    loop.advance(1.0)
    assert sampler.ticks == before
    assert not sampler.running


def test_buffers_are_reused_between_ticks(backends: BackendFactory, loop: TaskQueue) -> None:
    graph = _graph(backends)
    graph.ensure_created()
    sampler = LevelSampler(graph, loop)
    sampler.sample()
    first = dict(sampler._buffers)
    sampler.sample()
    assert all(sampler._buffers[k] is v for k, v in first.items())


@pytest.mark.parametrize("amp", [0.05, 0.9])
def test_level_grows_with_loudness(backends: BackendFactory, loop: TaskQueue, amp: float) -> None:
    quiet, loud = _graph(backends), _graph(backends)
    for g, a in ((quiet, amp / 10), (loud, amp)):
        g.ensure_created()
        _feed(g, amp=a)
    assert LevelSampler(loud, loop).sample().input_level > LevelSampler(quiet, loop).sample().input_level
