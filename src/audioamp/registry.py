"""
Registry of media elements routed into the processing graph.

At most one entry (and so one source node) per element. Attaching an element
that already has a live entry is a no-op; detaching is idempotent. A failed
attachment leaves no partial entry behind and is handed to `on_failure`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from .dom import Event, MediaElement
from .errors import AttachmentFailure
from .graph import ProcessingGraph
from .nodes import MediaElementSourceNode

logger = logging.getLogger("audioamp.registry")


@dataclass
class AttachedElement:
    element: MediaElement
    source: MediaElementSourceNode
    listeners: list[tuple[str, Callable[[Event], None]]] = field(default_factory=list)


class ElementRegistry:
    def __init__(self, graph: ProcessingGraph,
                 on_failure: Callable[[MediaElement], None] | None = None):
        self.graph = graph
        self.on_failure = on_failure
        self._entries: dict[MediaElement, AttachedElement] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, element) -> bool:
        return element in self._entries

    def get(self, element) -> AttachedElement | None:
        return self._entries.get(element)

    @property
    def elements(self) -> list[MediaElement]:
        return list(self._entries)

    def attach(self, element: MediaElement) -> bool:
        entry = self._entries.get(element)
        if entry is not None:
            if entry.source.context is self.graph.context and self.graph.exists:
                return True
            # the graph was rebuilt under this entry; its source belongs to a dead context
            self.detach(element)

        try:
            if not self.graph.ensure_created():
                raise AttachmentFailure(element, RuntimeError("no audio context"))
            source = self.graph.context.create_media_element_source(element)
        except Exception as e:
            err = e if isinstance(e, AttachmentFailure) else AttachmentFailure(element, e)
            logger.error("error processing audio element: %s", err)
            if self.on_failure is not None:
                self.on_failure(element)
            return False

        try:
            source.connect(self.graph.input_tap)
        except Exception as e:
            source.release()
            logger.error("error processing audio element: %s", AttachmentFailure(element, e))
            if self.on_failure is not None:
                self.on_failure(element)
            return False

        entry = AttachedElement(element, source)
        for type_, handler in (
            ("ended", lambda _e: self.detach(element)),
            ("pause", lambda _e: self._on_pause(element)),
            ("play", lambda _e: self._on_play(element)),
        ):
            element.add_event_listener(type_, handler)
            entry.listeners.append((type_, handler))
        self._entries[element] = entry
        logger.info("audio element processed: %s %s", element.tag.upper(), element.src or element.current_src)
        return True

    def detach(self, element: MediaElement) -> bool:
        entry = self._entries.pop(element, None)
        if entry is None:
            return False
        for type_, handler in entry.listeners:
            element.remove_event_listener(type_, handler)
        try:
            entry.source.disconnect()
        except Exception as e:
            logger.error("error disconnecting audio source: %s", e)
        finally:
            entry.source.release()
        logger.debug("audio element released: %r", element)
        return True

    def detach_all(self) -> None:
        for element in list(self._entries):
            self.detach(element)

    def _on_pause(self, element: MediaElement) -> None:
        logger.debug("paused: %r", element)

    def _on_play(self, element: MediaElement) -> None:
        if self.graph.state == "suspended":
            self.graph.resume()
