from __future__ import annotations

import sys
import types

import numpy as np
import pytest

from audioamp.cli import _meter, build_parser
from audioamp.context import AudioContext
from audioamp.errors import EngineUnavailable
from audioamp.rt_audio import OutputStreamBackend


class _Stream:
    def __init__(self, callback=None, **kwargs):
        self.callback = callback
        self.kwargs = kwargs
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True


@pytest.fixture
def fake_sd(monkeypatch: pytest.MonkeyPatch):
    mod = types.SimpleNamespace(streams=[])

    def output_stream(**kwargs):
        s = _Stream(**kwargs)
        mod.streams.append(s)
        return s

    mod.OutputStream = output_stream
    monkeypatch.setitem(sys.modules, "sounddevice", mod)
    return mod


def test_callback_renders_clipped_interleaved_frames(fake_sd) -> None:
    backend = OutputStreamBackend(44100, chunk_size=4)
    backend.open(lambda n: np.full((2, n), 2.0, dtype=np.float32))
    stream = fake_sd.streams[0]
    assert stream.kwargs["blocksize"] == 4 and stream.kwargs["channels"] == 2
    out = np.zeros((4, 2), dtype=np.float32)
    stream.callback(out, 4, None, None)
    assert np.all(out == 1.0)


def test_lifecycle(fake_sd) -> None:
    backend = OutputStreamBackend()
    with pytest.raises(EngineUnavailable):
        backend.start()
    backend.open(lambda n: np.zeros((2, n), dtype=np.float32))
    backend.start()
    assert backend.is_running() and fake_sd.streams[0].started
    backend.close()
    assert not backend.is_running() and fake_sd.streams[0].closed


def test_stream_creation_failure_rejects_context(fake_sd) -> None:
    def refuse(**_kwargs):
        raise RuntimeError("no default output device")

    fake_sd.OutputStream = refuse
    with pytest.raises(EngineUnavailable):
        AudioContext(backend=OutputStreamBackend())


def test_context_drives_backend(fake_sd) -> None:
    ctx = AudioContext(backend=OutputStreamBackend(chunk_size=8), autoplay_allowed=lambda: True)
    assert ctx.state == "running"
    out = np.ones((8, 2), dtype=np.float32)
    fake_sd.streams[0].callback(out, 8, None, None)
    assert not out.any()
    assert ctx.current_time == pytest.approx(8 / 44100)


def test_cli_parser_and_meter() -> None:
    args = build_parser().parse_args(["a.wav", "--volume", "150", "--compress", "--ratio", "8"])
    assert (args.files, args.volume, args.compress, args.ratio) == (["a.wav"], 150.0, True, 8.0)
    assert _meter(0.0) == " " * 24
    assert _meter(100.0) == "█" * 24
    assert len(_meter(37.5)) == 24
