"""
Minimal live document model the page agent runs against.

- Element tree with attribute and child-list mutation records.
- Events with optional bubbling; `once` listeners retire themselves before running.
- Media elements that decode their source and hand frames to the render thread.
- Mutation observers whose record batches are delivered through the task queue,
  never synchronously from inside the mutating call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator

import numpy as np

from .constants import GESTURE_EVENTS, MEDIA_TAGS
from .loop import TaskQueue
from .media import decode, to_stereo

logger = logging.getLogger("audioamp.dom")

ELEMENT_NODE = 1
TEXT_NODE = 3


# ---------- Events ----------

@dataclass
class Event:
    type: str
    bubbles: bool = False
    is_trusted: bool = False
    target: EventTarget | None = None
    current_target: EventTarget | None = None


@dataclass
class _Listener:
    callback: Callable[[Event], None]
    once: bool = False
    passive: bool = False


class EventTarget:
    def __init__(self):
        self._listeners: dict[str, list[_Listener]] = {}

    def add_event_listener(self, type_: str, callback: Callable[[Event], None],
                           once: bool = False, passive: bool = False) -> None:
        bucket = self._listeners.setdefault(type_, [])
        if any(l.callback == callback for l in bucket):
            return
        bucket.append(_Listener(callback, once=once, passive=passive))

    def remove_event_listener(self, type_: str, callback: Callable[[Event], None]) -> None:
        bucket = self._listeners.get(type_)
        if not bucket:
            return
        self._listeners[type_] = [l for l in bucket if l.callback != callback]

    def listener_count(self, type_: str) -> int:
        return len(self._listeners.get(type_, ()))

    def _event_path(self) -> list[EventTarget]:
        return [self]

    def dispatch_event(self, event: Event) -> None:
        event.target = self
        if event.is_trusted and event.type in GESTURE_EVENTS:
            doc = self if isinstance(self, Document) else getattr(self, "owner_document", None)
            if doc is not None:
                doc.has_been_activated = True
        path = self._event_path() if event.bubbles else [self]
        for node in path:
            event.current_target = node
            for listener in list(node._listeners.get(event.type, ())):
                if listener.once:
                    node.remove_event_listener(event.type, listener.callback)
                try:
                    listener.callback(event)
                except Exception:
                    logger.exception("listener for %r failed", event.type)


# ---------- Tree ----------

class Node(EventTarget):
    node_type = 0

    def __init__(self, document: Document | None):
        super().__init__()
        self.owner_document = document
        self.parent: Element | None = None

    @property
    def is_connected(self) -> bool:
        node = self
        while node.parent is not None:
            node = node.parent
        doc = self.owner_document
        return doc is not None and node is doc.document_element

    def ancestors(self) -> Iterator[Element]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def _event_path(self) -> list[EventTarget]:
        path: list[EventTarget] = [self, *self.ancestors()]
        if self.is_connected and self.owner_document is not None:
            path.append(self.owner_document)
        return path

    def remove(self) -> None:
        if self.parent is not None:
            self.parent.remove_child(self)


class Text(Node):
    node_type = TEXT_NODE

    def __init__(self, document: Document | None, data: str = ""):
        super().__init__(document)
        self.data = data


class Element(Node):
    node_type = ELEMENT_NODE

    def __init__(self, tag: str, document: Document | None, attributes: dict[str, str] | None = None):
        super().__init__(document)
        self.tag = tag.lower()
        self.attributes: dict[str, str] = dict(attributes or {})
        self.children: list[Node] = []

    def __repr__(self) -> str:
        src = self.attributes.get("src")
        return f"<{self.tag}{' src=' + repr(src) if src else ''} @{id(self):x}>"

    # ---- attributes ----
    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name)

    def set_attribute(self, name: str, value: str) -> None:
        old = self.attributes.get(name)
        self.attributes[name] = str(value)
        if self.owner_document is not None:
            self.owner_document._record_attribute(self, name, old)

    # ---- children ----
    def append_child(self, child: Node) -> Node:
        if child is self or child in self.ancestors():
            raise ValueError("cannot insert a node into its own subtree")
        if child.parent is not None:
            child.parent.remove_child(child)
        child.parent = self
        self.children.append(child)
        if self.owner_document is not None:
            self.owner_document._record_child_list(self, added=[child])
        return child

    def remove_child(self, child: Node) -> Node:
        self.children.remove(child)
        child.parent = None
        if self.owner_document is not None:
            self.owner_document._record_child_list(self, removed=[child])
        return child

    def iter_descendants(self) -> Iterator[Element]:
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            if isinstance(node, Element):
                yield node
                stack.extend(reversed(node.children))

    def query_selector_all(self, *tags: str) -> list[Element]:
        wanted = {t.lower() for t in tags}
        return [el for el in self.iter_descendants() if el.tag in wanted]


class MediaElement(Element):
    """<audio>/<video>: decoded on demand, read block by block from the render thread."""

    def __init__(self, tag: str, document: Document | None, attributes: dict[str, str] | None = None):
        super().__init__(tag, document, attributes)
        self.paused = True
        self.ended = False
        self.position = 0  # frames into the decoded buffer
        self.src_object: np.ndarray | None = None
        self.captured_by = None  # the source node currently bound to this element
        self._buffer: np.ndarray | None = None
        self._buffer_rate = 0
        self._load_failed = False

    @property
    def src(self) -> str:
        return self.attributes.get("src", "")

    @src.setter
    def src(self, value: str) -> None:
        self.set_attribute("src", value)

    @property
    def current_src(self) -> str:
        return self.src if self._buffer is not None else ""

    def set_attribute(self, name: str, value: str) -> None:
        if name == "src":
            self.load()
        super().set_attribute(name, value)

    # ---- playback ----
    def load(self) -> None:
        """Forget the decoded buffer and rewind (media element load algorithm)."""
        self._buffer = None
        self._buffer_rate = 0
        self._load_failed = False
        self.position = 0
        self.ended = False

    def prepare(self, sample_rate: int) -> bool:
        """Decode the current source at `sample_rate` unless already done."""
        if self._buffer is not None and self._buffer_rate == sample_rate:
            return True
        if self._load_failed:
            return False
        try:
            if self.src_object is not None:
                self._buffer = to_stereo(self.src_object)
            elif self.src:
                self._buffer = decode(self.src, sample_rate)
            else:
                return False
        except Exception as e:
            logger.error("cannot decode %r: %s", self.src, e)
            self._load_failed = True
            self._queue_event("error")
            return False
        self._buffer_rate = sample_rate
        return True

    def play(self) -> None:
        if self.ended:
            self.position = 0
            self.ended = False
        if self.paused:
            self.paused = False
            self._queue_event("play")

    def pause(self) -> None:
        if not self.paused:
            self.paused = True
            self._queue_event("pause")

    @property
    def duration_frames(self) -> int:
        return 0 if self._buffer is None else int(self._buffer.shape[1])

    def read(self, frames: int) -> np.ndarray:
        """Next `frames` of stereo output. Render thread only; called under the render lock."""
        out = np.zeros((2, frames), dtype=np.float32)
        buf = self._buffer  # load() may swap it out from the task queue thread
        if self.paused or buf is None:
            return out
        n = min(frames, buf.shape[1] - self.position)
        if n > 0:
            out[:, :n] = buf[:, self.position:self.position + n]
            self.position += n
        if self.position >= buf.shape[1]:
            self.paused = True
            self.ended = True
            self._queue_event("ended")
        return out

    def _queue_event(self, type_: str) -> None:
        doc = self.owner_document
        if doc is None:
            self.dispatch_event(Event(type_))
        else:
            doc.loop.call_soon(self.dispatch_event, Event(type_))


# ---------- Mutation observation ----------

@dataclass
class MutationRecord:
    type: str  # "childList" | "attributes"
    target: Node
    added_nodes: list[Node] = field(default_factory=list)
    removed_nodes: list[Node] = field(default_factory=list)
    attribute_name: str | None = None
    old_value: str | None = None


@dataclass
class _Registration:
    target: Node
    child_list: bool
    attributes: bool
    subtree: bool
    attribute_filter: frozenset[str] | None


class MutationObserver:
    def __init__(self, callback: Callable[[list[MutationRecord], MutationObserver], None]):
        self._callback = callback
        self._registrations: list[_Registration] = []
        self._records: list[MutationRecord] = []
        self._scheduled = False
        self._document: Document | None = None

    def observe(self, target: Node, child_list: bool = False, attributes: bool = False,
                subtree: bool = False, attribute_filter: list[str] | tuple[str, ...] | None = None) -> None:
        if not (child_list or attributes):
            raise ValueError("observe() needs child_list or attributes")
        doc = target if isinstance(target, Document) else target.owner_document
        if doc is None:
            raise ValueError("target is not part of a document")
        self._registrations = [r for r in self._registrations if r.target is not target]
        self._registrations.append(_Registration(
            target=target.document_element if isinstance(target, Document) else target,
            child_list=child_list,
            attributes=attributes,
            subtree=subtree,
            attribute_filter=frozenset(attribute_filter) if attribute_filter else None,
        ))
        self._document = doc
        doc._observers.add(self)

    def disconnect(self) -> None:
        self._registrations.clear()
        self._records.clear()
        if self._document is not None:
            self._document._observers.discard(self)

    def take_records(self) -> list[MutationRecord]:
        records, self._records = self._records, []
        return records

    def _matches(self, record: MutationRecord) -> bool:
        for reg in self._registrations:
            if record.target is reg.target:
                pass
            elif not (reg.subtree and any(a is reg.target for a in record.target.ancestors())):
                continue
            if record.type == "childList" and reg.child_list:
                return True
            if record.type == "attributes" and reg.attributes:
                if reg.attribute_filter is None or record.attribute_name in reg.attribute_filter:
                    return True
        return False

    def _enqueue(self, record: MutationRecord, loop: TaskQueue) -> None:
        if not self._matches(record):
            return
        self._records.append(record)
        if not self._scheduled:
            self._scheduled = True
            loop.call_soon(self._deliver)

    def _deliver(self) -> None:
        self._scheduled = False
        records = self.take_records()
        if records:
            self._callback(records, self)


# ---------- Document ----------

class Location:
    def __init__(self, href: str):
        self.href = href

    @property
    def scheme(self) -> str:
        return self.href.split(":", 1)[0].lower() if ":" in self.href else ""


class Document(EventTarget):
    def __init__(self, url: str = "about:blank", loop: TaskQueue | None = None):
        super().__init__()
        self.loop = loop if loop is not None else TaskQueue()
        self.location = Location(url)
        self.has_been_activated = False
        self.agent = None  # the page agent bound to this document, if any
        self._observers: set[MutationObserver] = set()
        self.document_element = Element("html", self)
        self.document_element.append_child(Element("head", self))
        self.document_element.append_child(Element("body", self))

    @property
    def body(self) -> Element:
        for child in self.document_element.children:
            if isinstance(child, Element) and child.tag == "body":
                return child
        raise LookupError("document has no body")

    def create_element(self, tag: str, **attributes: str) -> Element:
        if tag.lower() in MEDIA_TAGS:
            return MediaElement(tag, self, attributes)
        return Element(tag, self, attributes)

    def create_text_node(self, data: str) -> Text:
        return Text(self, data)

    def query_selector_all(self, *tags: str) -> list[Element]:
        return self.document_element.query_selector_all(*tags)

    def replace_body(self, new_body: Element | None = None) -> Element:
        """Swap the whole <body>, as client-side routers sometimes do."""
        new_body = new_body if new_body is not None else Element("body", self)
        self.document_element.remove_child(self.body)
        self.document_element.append_child(new_body)
        return new_body

    def navigate(self, url: str) -> None:
        """Client-side navigation: the URL changes, the document stays."""
        logger.debug("navigate %s -> %s", self.location.href, url)
        self.location.href = url

    def user_gesture(self, type_: str = "pointerdown", target: EventTarget | None = None) -> None:
        """Dispatch a trusted gesture event (sets sticky user activation)."""
        (target or self).dispatch_event(Event(type_, bubbles=True, is_trusted=True))

    # ---- mutation plumbing ----
    def _record_child_list(self, parent: Element, added: list[Node] | None = None,
                           removed: list[Node] | None = None) -> None:
        if not self._observers:
            return
        record = MutationRecord("childList", parent, added_nodes=list(added or ()),
                                removed_nodes=list(removed or ()))
        for observer in list(self._observers):
            observer._enqueue(record, self.loop)

    def _record_attribute(self, target: Element, name: str, old: str | None) -> None:
        if not self._observers:
            return
        record = MutationRecord("attributes", target, attribute_name=name, old_value=old)
        for observer in list(self._observers):
            observer._enqueue(record, self.loop)
