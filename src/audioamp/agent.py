"""
The page-resident agent: one per document.

Wires the processing graph, element registry, discovery watcher, gesture
activator and level sampler together, consumes typed events on the document's
task queue and answers control messages:

    updateAudioSettings(settings) -> {"success": True}
    getAudioStatus()              -> {"hasAudio": bool, "audioContext": bool}
    getAudioLevels()              -> {"inputLevel": float, "outputLevel": float}
    anything else                 -> {"error": "Unknown action"}
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from .activator import GestureActivator
from .config import AgentConfig
from .context import AudioContext, Backend
from .dom import Document
from .events import (
    AgentEvent,
    ElementAdded,
    ElementRemoved,
    Gesture,
    ParameterUpdate,
    SourceChanged,
    TickSample,
)
from .graph import ProcessingGraph
from .levels import LevelSampler
from .presets import ParameterSet
from .registry import ElementRegistry
from .rt_audio import OutputStreamBackend
from .watcher import DiscoveryWatcher

logger = logging.getLogger("audioamp.agent")


class PageAgent:
    def __init__(self, document: Document, config: AgentConfig | None = None,
                 backend_factory: Callable[[], Backend] | None = None):
        self.document = document
        self.config = config or AgentConfig()
        self._backend_factory = backend_factory or self._default_backend
        self.settings = ParameterSet()

        self.graph = ProcessingGraph(self._create_context, fft_size=self.config.fft_size)
        self.activator = GestureActivator(document)
        self.registry = ElementRegistry(self.graph, on_failure=self._retry_after_gesture)
        self.watcher = DiscoveryWatcher(
            document, self.registry,
            reattach_delay=self.config.reattach_delay,
            navigation_settle=self.config.navigation_settle,
            on_removed=self.activator.cancel_retry,
        )
        self.sampler = LevelSampler(self.graph, document.loop, interval=self.config.frame_interval)
        self.graph.on_created.append(self.activator.arm_resume)
        self.started = False

    @classmethod
    def attach(cls, document: Document, **kwargs) -> PageAgent:
        """The agent for `document`, creating and starting it on first use."""
        agent = document.agent
        if agent is None:
            agent = document.agent = cls(document, **kwargs)
            agent.start()
        return agent

    # ---------- lifecycle ----------
    def _default_backend(self) -> Backend:
        return OutputStreamBackend(self.config.sample_rate, chunk_size=self.config.block_size)

    def _create_context(self) -> AudioContext:
        return AudioContext(
            backend=self._backend_factory(),
            sample_rate=self.config.sample_rate,
            autoplay_allowed=lambda: self.document.has_been_activated,
            block_size=self.config.block_size,
        )

    def start(self) -> None:
        if self.started:
            return
        self.started = True
        self.watcher.start()
        self.sampler.start()
        logger.info("agent started on %s", self.document.location.href)

    def stop(self) -> None:
        """Page unload: stop observing, release every element and close the context."""
        self.started = False
        self.watcher.stop()
        self.sampler.stop()
        self.activator.close()
        self.registry.detach_all()
        self.graph.teardown()
        if self.document.agent is self:
            self.document.agent = None

    def _retry_after_gesture(self, element) -> None:
        self.activator.schedule_retry(element, self.registry.attach)

    # ---------- typed events ----------
    def dispatch(self, event: AgentEvent) -> None:
        """Queue `event` for the agent's cooperative thread."""
        self.document.loop.call_soon(self.handle_event, event)

    def handle_event(self, event: AgentEvent) -> None:
        if isinstance(event, ElementAdded):
            self.watcher.nodes_added(list(event.nodes))
        elif isinstance(event, ElementRemoved):
            self.watcher.element_removed(event.element)
        elif isinstance(event, SourceChanged):
            self.watcher.source_changed(event.element)
        elif isinstance(event, Gesture):
            self.document.user_gesture(event.kind)
        elif isinstance(event, ParameterUpdate):
            self.update_settings(event.settings)
        elif isinstance(event, TickSample):
            self.sampler.sample()
        else:
            logger.warning("unhandled event %r", event)

    # ---------- control interface ----------
    def update_settings(self, partial: Mapping[str, Any] | None) -> ParameterSet:
        self.settings = self.settings.merged(partial)
        self.graph.apply_parameters(self.settings)
        return self.settings

    def status(self) -> dict[str, bool]:
        return {"hasAudio": len(self.registry) > 0, "audioContext": self.graph.exists}

    def levels(self) -> dict[str, float]:
        return self.sampler.latest.to_wire()

    def handle_message(self, message: Mapping[str, Any]) -> dict[str, Any]:
        action = message.get("action") if isinstance(message, Mapping) else None
        if action == "updateAudioSettings":
            try:
                self.update_settings(message.get("settings"))
            except Exception:
                logger.exception("error applying audio settings")
            return {"success": True}
        if action == "getAudioStatus":
            return self.status()
        if action == "getAudioLevels":
            return self.levels()
        return {"error": "Unknown action"}
