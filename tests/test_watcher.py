from __future__ import annotations

import pytest

from audioamp.context import AudioContext
from audioamp.dom import Document
from audioamp.graph import ProcessingGraph
from audioamp.registry import ElementRegistry
from audioamp.watcher import DiscoveryWatcher

from conftest import BackendFactory, add_media


class RecordingRegistry(ElementRegistry):
    def __init__(self, graph):
        super().__init__(graph)
        self.calls: list[tuple[str, object]] = []

    def attach(self, element) -> bool:
        self.calls.append(("attach", element))
        return super().attach(element)

    def detach(self, element) -> bool:
        self.calls.append(("detach", element))
        return super().detach(element)


@pytest.fixture
def registry(backends: BackendFactory) -> RecordingRegistry:
    return RecordingRegistry(ProcessingGraph(lambda: AudioContext(backend=backends())))


@pytest.fixture
def watcher(document: Document, registry: RecordingRegistry) -> DiscoveryWatcher:
    return DiscoveryWatcher(document, registry, reattach_delay=0.1, navigation_settle=1.0)


def test_initial_scan_attaches_existing_elements(document: Document, watcher: DiscoveryWatcher) -> None:
    a = add_media(document)
    v = add_media(document, "video")
    watcher.start()
    assert a in watcher.registry and v in watcher.registry


def test_inserted_subtree_attaches_every_nested_element(document: Document, watcher: DiscoveryWatcher) -> None:
    watcher.start()
    outer = document.create_element("div")
    inner = document.create_element("section")
    outer.append_child(inner)
    media = [add_media(document, "audio", parent=outer), add_media(document, "video", parent=inner),
             add_media(document, "audio", parent=inner)]
    outer.append_child(document.create_text_node("caption"))
    document.body.append_child(outer)
    document.loop.run_until_idle()
    assert len(watcher.registry) == 3
    assert all(m in watcher.registry for m in media)


def test_direct_media_insert_and_text_nodes(document: Document, watcher: DiscoveryWatcher) -> None:
    watcher.start()
    document.body.append_child(document.create_text_node("hello"))
    el = add_media(document)
    document.loop.run_until_idle()
    assert list(watcher.registry.elements) == [el]


def test_structural_removal_does_not_detach(document: Document, watcher: DiscoveryWatcher) -> None:
    watcher.start()
    el = add_media(document)
    document.loop.run_until_idle()
    el.remove()
    document.loop.run_until_idle()
    assert el in watcher.registry


def test_remove_then_reinsert_gives_one_fresh_entry(document: Document, watcher: DiscoveryWatcher) -> None:
    watcher.start()
    el = add_media(document)
    document.loop.run_until_idle()
    old = watcher.registry.get(el).source
    el.remove()
    watcher.element_removed(el)
    document.body.append_child(el)
    document.loop.run_until_idle()
    assert len(watcher.registry) == 1
    assert watcher.registry.get(el).source is not old
    assert el.captured_by is watcher.registry.get(el).source


def test_source_change_detaches_then_reattaches_after_delay(document: Document, watcher: DiscoveryWatcher) -> None:
    watcher.start()
    el = add_media(document)
    document.loop.run_until_idle()
    registry = watcher.registry
    registry.calls.clear()

    el.set_attribute("src", "next.wav")
    document.loop.run_until_idle()
    assert registry.calls == [("detach", el)]
    assert el not in registry and el.captured_by is None

    document.loop.advance(0.1)
    assert registry.calls == [("detach", el), ("attach", el)]
    assert el in registry
    assert len(registry.graph.input_tap.inputs) == 1


def test_rapid_source_changes_coalesce_into_one_reattach(document: Document, watcher: DiscoveryWatcher) -> None:
    watcher.start()
    el = add_media(document)
    document.loop.run_until_idle()
    registry = watcher.registry
    registry.calls.clear()

    for i in range(4):
        el.set_attribute("src", f"part{i}.wav")
        document.loop.run_until_idle()
        document.loop.advance(0.03)
    document.loop.advance(0.2)
    attaches = [c for c in registry.calls if c[0] == "attach"]
    assert attaches == [("attach", el)]
    assert el in registry


def test_unrelated_attribute_changes_are_ignored(document: Document, watcher: DiscoveryWatcher) -> None:
    watcher.start()
    el = add_media(document)
    document.loop.run_until_idle()
    watcher.registry.calls.clear()
    el.set_attribute("controls", "")
    document.loop.advance(1.0)
    assert watcher.registry.calls == []


def test_explicit_removal_cancels_pending_reattach(document: Document, watcher: DiscoveryWatcher) -> None:
    watcher.start()
    el = add_media(document)
    document.loop.run_until_idle()
    el.set_attribute("src", "other.wav")
    document.loop.run_until_idle()
    watcher.element_removed(el)
    document.loop.advance(0.5)
    assert el not in watcher.registry


def test_client_side_navigation_rescans_swapped_body(document: Document, watcher: DiscoveryWatcher) -> None:
    watcher.start()
    new_body = document.create_element("body")
    fresh = add_media(document, parent=new_body)
    document.navigate("https://example.com/watch?v=2")
    document.replace_body(new_body)
    document.loop.run_until_idle()
    assert fresh not in watcher.registry

    document.loop.advance(1.0)
    assert fresh in watcher.registry

    # the swapped-in body is observed from now on
    later = add_media(document)
    document.loop.run_until_idle()
    assert later in watcher.registry


def test_stop_cancels_observation(document: Document, watcher: DiscoveryWatcher) -> None:
    watcher.start()
    watcher.stop()
    el = add_media(document)
    document.loop.advance(2.0)
    assert el not in watcher.registry
