"""
Discovery of media elements in the live document.

Two observation streams keep the registry in step with the page:
- structural: every inserted subtree is searched for audio/video elements;
- attribute: a source change detaches the element and re-attaches it after a
  short delay, so a burst of changes ends in a single attachment.
A full scan runs at start-up and again after client-side navigation. Removal
from the tree does not detach; only `ended` or an explicit removal does.
"""

from __future__ import annotations

import logging
from typing import Callable

from .constants import MEDIA_TAGS, NAVIGATION_SETTLE_S, REATTACH_DELAY_S, SOURCE_ATTRIBUTES
from .dom import ELEMENT_NODE, Document, Element, MediaElement, MutationObserver, MutationRecord, Node
from .loop import TimerHandle
from .registry import ElementRegistry

logger = logging.getLogger("audioamp.watcher")


def is_media(node: Node) -> bool:
    return isinstance(node, MediaElement) and node.tag in MEDIA_TAGS


class DiscoveryWatcher:
    def __init__(self, document: Document, registry: ElementRegistry,
                 reattach_delay: float = REATTACH_DELAY_S,
                 navigation_settle: float = NAVIGATION_SETTLE_S,
                 on_removed: Callable[[MediaElement], None] | None = None):
        self.document = document
        self.registry = registry
        self.reattach_delay = reattach_delay
        self.navigation_settle = navigation_settle
        self.on_removed = on_removed
        self._structure = MutationObserver(self._on_structure)
        self._sources = MutationObserver(self._on_sources)
        self._navigation = MutationObserver(self._on_navigation)
        self._observed_body: Element | None = None
        self._reattach: dict[MediaElement, TimerHandle] = {}
        self._rescan: TimerHandle | None = None
        self._last_url = document.location.href
        self.running = False

    def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._observe_body()
        self._navigation.observe(self.document, child_list=True, subtree=True)
        self.scan()

    def stop(self) -> None:
        self.running = False
        for obs in (self._structure, self._sources, self._navigation):
            obs.disconnect()
        for handle in self._reattach.values():
            handle.cancel()
        self._reattach.clear()
        if self._rescan is not None:
            self._rescan.cancel()
            self._rescan = None
        self._observed_body = None

    def _observe_body(self) -> None:
        body = self.document.body
        self._structure.disconnect()
        self._sources.disconnect()
        self._structure.observe(body, child_list=True, subtree=True)
        self._sources.observe(body, attributes=True, subtree=True, attribute_filter=SOURCE_ATTRIBUTES)
        self._observed_body = body

    # ---------- operations ----------
    def scan(self) -> int:
        """Attach every qualifying element currently in the document."""
        found = [el for el in self.document.query_selector_all(*MEDIA_TAGS) if is_media(el)]
        for el in found:
            self.registry.attach(el)
        logger.debug("scan found %d media element(s)", len(found))
        return len(found)

    def nodes_added(self, nodes: list[Node]) -> None:
        for node in nodes:
            if node.node_type != ELEMENT_NODE:
                continue
            if is_media(node):
                self.registry.attach(node)
            for el in node.query_selector_all(*MEDIA_TAGS):
                if is_media(el):
                    self.registry.attach(el)

    def element_removed(self, element: MediaElement) -> None:
        """Explicit removal signal: drop the entry and any pending re-attachment."""
        handle = self._reattach.pop(element, None)
        if handle is not None:
            handle.cancel()
        self.registry.detach(element)
        if self.on_removed is not None:
            self.on_removed(element)

    def source_changed(self, element: MediaElement) -> None:
        self.registry.detach(element)
        pending = self._reattach.pop(element, None)
        if pending is not None:
            pending.cancel()
        self._reattach[element] = self.document.loop.call_later(
            self.reattach_delay, self._reattach_now, element)

    def _reattach_now(self, element: MediaElement) -> None:
        self._reattach.pop(element, None)
        self.registry.attach(element)

    # ---------- observer callbacks ----------
    def _on_structure(self, records: list[MutationRecord], _observer) -> None:
        for record in records:
            if record.type == "childList" and record.added_nodes:
                self.nodes_added(record.added_nodes)

    def _on_sources(self, records: list[MutationRecord], _observer) -> None:
        changed: list[MediaElement] = []
        for record in records:
            if record.attribute_name in SOURCE_ATTRIBUTES and is_media(record.target):
                if record.target not in changed:
                    changed.append(record.target)
        for element in changed:
            self.source_changed(element)

    def _on_navigation(self, _records, _observer) -> None:
        url = self.document.location.href
        if url == self._last_url:
            return
        logger.info("navigation detected: %s -> %s", self._last_url, url)
        self._last_url = url
        if self._rescan is not None:
            self._rescan.cancel()
        self._rescan = self.document.loop.call_later(self.navigation_settle, self._after_navigation)

    def _after_navigation(self) -> None:
        self._rescan = None
        if not self.running:
            return
        if self.document.body is not self._observed_body:
            self._observe_body()
        self.scan()
