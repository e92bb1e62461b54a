"""
Gesture-gated activation.

The host engine keeps audio silent until the user interacts with the page. This
module waits for the first qualifying gesture to (a) resume a suspended context
and (b) retry element attachments that failed earlier. Listeners are one-shot
and passive; nothing here polls or retries in a loop.
"""

from __future__ import annotations

import logging
from typing import Callable

from .constants import GESTURE_EVENTS
from .dom import Document, Event

logger = logging.getLogger("audioamp.activator")


class GestureRegistration:
    """One callback listening on every gesture type; the first to fire retires the rest."""

    def __init__(self, document: Document, callback: Callable[[Event], None], events: tuple[str, ...]):
        self._document = document
        self._callback = callback
        self._events = events
        self.fired = False
        self.cancelled = False
        for type_ in events:
            document.add_event_listener(type_, self._on_event, once=True, passive=True)

    @property
    def active(self) -> bool:
        return not (self.fired or self.cancelled)

    def cancel(self) -> None:
        self.cancelled = True
        self._retire()

    def _retire(self) -> None:
        for type_ in self._events:
            self._document.remove_event_listener(type_, self._on_event)

    def _on_event(self, event: Event) -> None:
        if not self.active:
            return
        self.fired = True
        self._retire()
        self._callback(event)


class GestureActivator:
    def __init__(self, document: Document, events: tuple[str, ...] = GESTURE_EVENTS):
        self.document = document
        self.events = events
        self._resume: GestureRegistration | None = None
        self._retry: GestureRegistration | None = None
        self._pending: dict[object, Callable[[object], object]] = {}  # element -> retry

    def on_first_gesture(self, callback: Callable[[Event], None]) -> GestureRegistration:
        return GestureRegistration(self.document, callback, self.events)

    # ---------- context resumption ----------
    def arm_resume(self, graph) -> None:
        """Resume `graph` on the next gesture if it is (still) suspended then."""
        if self._resume is not None and self._resume.active:
            return

        def _resume(event: Event) -> None:
            self._resume = None
            if graph.state != "suspended":
                return
            if not graph.resume():
                # wait for the next gesture rather than spinning on a denied permission
                self.arm_resume(graph)

        self._resume = self.on_first_gesture(_resume)

    # ---------- attachment retries ----------
    def schedule_retry(self, element, retry: Callable[[object], object]) -> None:
        """Re-run `retry(element)` once the next gesture happens. One pending retry per element."""
        self._pending[element] = retry
        if self._retry is None or not self._retry.active:
            self._retry = self.on_first_gesture(self._drain)
        logger.debug("retry after user interaction queued for %r", element)

    def pending_retries(self) -> list:
        return list(self._pending)

    def cancel_retry(self, element) -> None:
        self._pending.pop(element, None)

    def _drain(self, event: Event) -> None:
        self._retry = None
        pending, self._pending = self._pending, {}
        for element, retry in pending.items():
            try:
                retry(element)
            except Exception:
                logger.exception("retry for %r failed", element)

    def close(self) -> None:
        for reg in (self._resume, self._retry):
            if reg is not None:
                reg.cancel()
        self._resume = self._retry = None
        self._pending.clear()
