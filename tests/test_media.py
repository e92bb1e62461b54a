from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from audioamp.agent import PageAgent
from audioamp.dom import Document
from audioamp.media import decode, resample, to_stereo

from conftest import BackendFactory


@pytest.fixture
def wav(tmp_path: Path) -> Path:
    path = tmp_path / "clip.wav"
    t = np.arange(22050, dtype=np.float32) / 22050
    sf.write(str(path), (0.5 * np.sin(2 * np.pi * 220 * t)).astype(np.float32), 22050)
    return path


def test_to_stereo_shapes() -> None:
    assert to_stereo(np.zeros(10)).shape == (2, 10)
    assert to_stereo(np.zeros((1, 10))).shape == (2, 10)
    assert to_stereo(np.zeros((10, 2)), channels_first=False).shape == (2, 10)
    assert to_stereo(np.zeros((6, 10))).shape == (2, 10)
    assert to_stereo(np.zeros(4)).dtype == np.float32


def test_resample_changes_length_only_when_needed() -> None:
    x = np.ones((2, 100), dtype=np.float32)
    assert resample(x, 44100, 44100) is x
    assert resample(x, 22050, 44100).shape == (2, 200)


def test_downsampling_removes_content_above_new_nyquist() -> None:
    t = np.arange(44100, dtype=np.float32) / 44100
    high = np.stack([0.5 * np.sin(2 * np.pi * 15000 * t)] * 2).astype(np.float32)
    y = resample(high, 44100, 22050)
    assert y.shape == (2, 22050)
    assert y.dtype == np.float32
    # a 15 kHz tone cannot exist at 22.05 kHz; it must not fold back as an alias
    assert np.max(np.abs(y[:, 1000:-1000])) < 0.05


def test_decode_reads_and_resamples(wav: Path) -> None:
    buf = decode(str(wav), 44100)
    assert buf.shape == (2, 44100)
    assert buf.dtype == np.float32
    assert 0.45 < np.max(np.abs(buf)) <= 0.52
    assert decode("file://" + str(wav), 22050).shape == (2, 22050)


def test_decode_missing_file() -> None:
    with pytest.raises(FileNotFoundError):
        decode("/nonexistent/clip.wav", 44100)


def test_element_with_file_source_plays_through_graph(activated_document: Document, backends: BackendFactory,
                                                      wav: Path) -> None:
    el = activated_document.create_element("audio", src=str(wav))
    activated_document.body.append_child(el)
    agent = PageAgent.attach(activated_document, backend_factory=backends)
    try:
        assert el in agent.registry
        assert el.current_src == str(wav)
        el.play()
        out = agent.graph.context.render(2048)
        assert np.max(np.abs(out)) > 0.1
    finally:
        agent.stop()


def test_undecodable_source_fires_error_event(activated_document: Document, tmp_path: Path) -> None:
    bad = tmp_path / "noise.wav"
    bad.write_bytes(b"definitely not audio")
    el = activated_document.create_element("audio", src=str(bad))
    errors = []
    el.add_event_listener("error", errors.append)
    assert not el.prepare(44100)
    assert not el.prepare(44100)
    activated_document.loop.run_until_idle()
    assert len(errors) == 1
    assert el.duration_frames == 0
