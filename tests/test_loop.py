from __future__ import annotations

import logging
import threading

import pytest

from audioamp.loop import TaskQueue


def test_call_soon_runs_in_order(loop: TaskQueue) -> None:
    seen = []
    for i in range(5):
        loop.call_soon(seen.append, i)
    loop.run_until_idle()
    assert seen == [0, 1, 2, 3, 4]


def test_callbacks_queued_while_running_wait_for_next_pass(loop: TaskQueue) -> None:
    seen = []

    def first():
        seen.append("first")
        loop.call_soon(seen.append, "second")

    loop.call_soon(first)
    assert loop.run_once() == 1
    assert seen == ["first"]
    loop.run_until_idle()
    assert seen == ["first", "second"]


def test_timers_fire_in_time_order_on_advance(loop: TaskQueue) -> None:
    seen = []
    loop.call_later(0.3, seen.append, "c")
    loop.call_later(0.1, seen.append, "a")
    loop.call_later(0.2, seen.append, "b")
    loop.advance(0.15)
    assert seen == ["a"]
    assert loop.time() == pytest.approx(0.15)
    loop.advance(1.0)
    assert seen == ["a", "b", "c"]


def test_cancelled_timer_never_fires(loop: TaskQueue) -> None:
    seen = []
    handle = loop.call_later(0.1, seen.append, "x")
    handle.cancel()
    handle.cancel()
    loop.advance(1.0)
    assert seen == []
    assert loop.pending() == 0


def test_failing_callback_is_logged_and_loop_continues(loop: TaskQueue, caplog: pytest.LogCaptureFixture) -> None:
    seen = []

    def boom():
        raise RuntimeError("bad task")

    loop.call_soon(boom)
    loop.call_soon(seen.append, "after")
    with caplog.at_level(logging.ERROR, logger="audioamp.loop"):
        loop.run_until_idle()
    assert seen == ["after"]
    assert "bad task" in caplog.text


def test_advance_requires_virtual_clock() -> None:
    with pytest.raises(RuntimeError):
        TaskQueue.realtime().advance(1.0)


def test_call_soon_from_another_thread(loop: TaskQueue) -> None:
    seen = []
    t = threading.Thread(target=loop.call_soon, args=(seen.append, "render"))
    t.start()
    t.join()
    loop.run_until_idle()
    assert seen == ["render"]


def test_run_forever_returns_when_stopped() -> None:
    loop = TaskQueue.realtime()
    stop = threading.Event()
    seen = []
    loop.call_later(0.01, seen.append, "tick")
    loop.call_later(0.02, stop.set)
    loop.run_forever(stop)
    assert seen == ["tick"]
