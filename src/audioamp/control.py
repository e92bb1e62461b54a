"""
Control surface side of the messaging boundary.

`MessageChannel` delivers request/response messages to the agent registered for
a tab. `ControlSurface` is the headless popup: it keeps the user's settings,
persists them per tab, pushes them to the page and polls status and meters.
Transport problems are logged and never change the settings it holds.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from .errors import TransportFailure
from .loop import TaskQueue, TimerHandle
from .presets import ParameterSet
from .storage import SettingsStore, cleanup_tab_settings

logger = logging.getLogger("audioamp.control")

Handler = Callable[[Mapping[str, Any]], dict]

METER_INTERVAL_S = 0.1


class MessageChannel:
    def __init__(self):
        self._receivers: dict[int | str, Handler] = {}

    def register(self, tab_id: int | str, handler: Handler) -> None:
        self._receivers[tab_id] = handler

    def unregister(self, tab_id: int | str) -> None:
        self._receivers.pop(tab_id, None)

    def send(self, tab_id: int | str, message: Mapping[str, Any]) -> dict:
        handler = self._receivers.get(tab_id)
        if handler is None:
            raise TransportFailure("Could not establish connection. Receiving end does not exist.")
        try:
            return handler(dict(message))
        except Exception as e:
            raise TransportFailure(f"message {message.get('action')!r} failed: {e}") from e


class ControlSurface:
    def __init__(self, channel: MessageChannel, store: SettingsStore, tab_id: int | str):
        self.channel = channel
        self.store = store
        self.tab_id = tab_id
        self.settings = ParameterSet()
        self.status_text = "Inactive"
        self.meters = (0.0, 0.0)  # input/output, percent
        self._monitor: TimerHandle | None = None

    # ---------- settings ----------
    def load_settings(self) -> ParameterSet:
        try:
            saved = self.store.load(self.tab_id)
        except TransportFailure as e:
            logger.error("error loading settings: %s", e)
            return self.settings
        if saved:
            self.settings = self.settings.merged(saved)
        return self.settings

    def save_settings(self) -> bool:
        try:
            self.store.save(self.tab_id, self.settings.to_wire())
        except TransportFailure as e:
            logger.error("error saving settings: %s", e)
            return False
        return True

    def send_settings(self) -> bool:
        try:
            self.channel.send(self.tab_id, {"action": "updateAudioSettings", "settings": self.settings.to_wire()})
        except TransportFailure as e:
            logger.error("error sending settings to page: %s", e)
            return False
        return True

    def set(self, name: str, value: Any) -> ParameterSet:
        """One control moved: update, persist and push the whole set."""
        self.settings = self.settings.merged({name: value})
        self.save_settings()
        self.send_settings()
        return self.settings

    def reset(self) -> ParameterSet:
        self.settings = ParameterSet()
        self.save_settings()
        self.send_settings()
        return self.settings

    # ---------- status & meters ----------
    def check_status(self) -> str:
        try:
            response = self.channel.send(self.tab_id, {"action": "getAudioStatus"})
        except TransportFailure:
            self.status_text = "Inactive"
            return self.status_text
        self.status_text = "Active" if response and response.get("hasAudio") else "No Audio"
        return self.status_text

    def poll_levels(self) -> tuple[float, float]:
        """Meter heights in percent. Failures read as silence."""
        try:
            response = self.channel.send(self.tab_id, {"action": "getAudioLevels"}) or {}
        except TransportFailure:
            self.meters = (0.0, 0.0)
            return self.meters
        inp = float(response.get("inputLevel") or 0.0)
        out = float(response.get("outputLevel") or 0.0)
        self.meters = (max(0.0, min(100.0, inp * 100.0)), max(0.0, min(100.0, out * 100.0)))
        return self.meters

    def start_monitoring(self, loop: TaskQueue, interval: float = METER_INTERVAL_S) -> None:
        def _poll() -> None:
            self.poll_levels()
            if self._monitor is not None:
                self._monitor = loop.call_later(interval, _poll)

        if self._monitor is None:
            self._monitor = loop.call_soon(_poll)

    def stop_monitoring(self) -> None:
        if self._monitor is not None:
            self._monitor.cancel()
            self._monitor = None

    def on_tab_removed(self, tab_id: int | str) -> None:
        if tab_id != self.tab_id:
            return
        self.stop_monitoring()
        self.channel.unregister(tab_id)
        cleanup_tab_settings(self.store, tab_id)

    # ---------- display ----------
    def display(self) -> dict[str, str]:
        s = self.settings
        return {
            "volume": f"{s.volume_percent:g}%",
            "threshold": f"{s.threshold_db:g} dB",
            "ratio": f"{s.ratio:g}:1",
            "attack": f"{s.attack_seconds:g}s",
            "release": f"{s.release_seconds:g}s",
            "compression": "enabled" if s.compression_enabled else "disabled",
        }
