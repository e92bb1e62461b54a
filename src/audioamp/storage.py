"""
Per-tab settings persistence: a JSON file of `audioSettings_<tabId>` entries.

Every I/O or decoding problem surfaces as TransportFailure so callers can log it
and keep their in-memory state.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

from .constants import SETTINGS_KEY_PREFIX
from .errors import TransportFailure

logger = logging.getLogger("audioamp.storage")


def settings_key(tab_id: int | str) -> str:
    return f"{SETTINGS_KEY_PREFIX}{tab_id}"


class SettingsStore:
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            raise TransportFailure(f"cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise TransportFailure(f"{self.path} does not hold an object")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise TransportFailure(f"cannot write {self.path}: {e}") from e

    def load(self, tab_id: int | str) -> dict[str, Any]:
        """Saved settings for the tab, or {} when none were saved."""
        with self._lock:
            saved = self._read().get(settings_key(tab_id))
        return dict(saved) if isinstance(saved, dict) else {}

    def save(self, tab_id: int | str, settings: dict[str, Any]) -> None:
        with self._lock:
            data = self._read()
            data[settings_key(tab_id)] = dict(settings)
            self._write(data)

    def remove(self, tab_id: int | str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(settings_key(tab_id), None) is not None:
                self._write(data)


def cleanup_tab_settings(store: SettingsStore, tab_id: int | str) -> bool:
    """Tab closed: forget its settings. Returns False (and logs) if the store failed."""
    try:
        store.remove(tab_id)
    except TransportFailure as e:
        logger.error("error cleaning up tab settings: %s", e)
        return False
    logger.info("cleaned up settings for tab %s", tab_id)
    return True
