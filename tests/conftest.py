from __future__ import annotations

import numpy as np
import pytest

from audioamp.config import AgentConfig
from audioamp.constants import SR
from audioamp.dom import Document
from audioamp.errors import EngineUnavailable
from audioamp.loop import TaskQueue


class FakeBackend:
    """Output backend that never touches a sound device; tests drive `render` by hand."""

    def __init__(self, fail_open: bool = False, fail_start: bool = False):
        self.fail_open = fail_open
        self.fail_start = fail_start
        self.render_fn = None
        self.running = False
        self.closed = False
        self.starts = 0

    def open(self, render_fn) -> None:
        if self.fail_open:
            raise EngineUnavailable("no output device")
        self.render_fn = render_fn

    def start(self) -> None:
        if self.fail_start:
            raise EngineUnavailable("device busy")
        self.starts += 1
        self.running = True

    def stop(self) -> None:
        self.running = False

    def close(self) -> None:
        self.running = False
        self.closed = True


class BackendFactory:
    """Hands out FakeBackends; flip `fail_open` / `fail_start` to make the engine refuse."""

    def __init__(self):
        self.fail_open = False
        self.fail_start = False
        self.created: list[FakeBackend] = []

    def __call__(self) -> FakeBackend:
        backend = FakeBackend(fail_open=self.fail_open, fail_start=self.fail_start)
        self.created.append(backend)
        return backend


def tone(freq: float = 440.0, seconds: float = 1.0, amp: float = 0.5) -> np.ndarray:
    t = np.arange(int(SR * seconds), dtype=np.float32) / SR
    mono = (amp * np.sin(2.0 * np.pi * freq * t)).astype(np.float32)
    return np.stack([mono, mono], axis=0)


@pytest.fixture
def loop() -> TaskQueue:
    return TaskQueue()


@pytest.fixture
def document(loop: TaskQueue) -> Document:
    return Document(url="https://example.com/watch", loop=loop)


@pytest.fixture
def activated_document(document: Document) -> Document:
    document.user_gesture("pointerdown")
    return document


@pytest.fixture
def backends() -> BackendFactory:
    return BackendFactory()


@pytest.fixture
def config() -> AgentConfig:
    return AgentConfig()


def add_media(document: Document, tag: str = "audio", parent=None, signal: np.ndarray | None = None, **attrs):
    el = document.create_element(tag, **attrs)
    el.src_object = tone() if signal is None else signal
    (parent if parent is not None else document.body).append_child(el)
    return el
