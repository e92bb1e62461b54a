"""
The tunable parameter set, its defaults and its wire names.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

logger = logging.getLogger("audioamp.presets")

# wire name -> field name (the control surface speaks the wire names)
WIRE_KEYS: dict[str, str] = {
    "volume": "volume_percent",
    "compressionEnabled": "compression_enabled",
    "threshold": "threshold_db",
    "ratio": "ratio",
    "attack": "attack_seconds",
    "release": "release_seconds",
}

# Dynamics values that make the compressor numerically transparent
BYPASS_THRESHOLD_DB: float = 0.0
BYPASS_RATIO: float = 1.0


def _as_bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return bool(v)


def _as_float(v: Any) -> float:
    if isinstance(v, bool):
        raise TypeError("boolean is not a number")
    f = float(v)
    if math.isnan(f):
        raise ValueError("NaN")
    return f


@dataclass(frozen=True)
class ParameterSet:
    volume_percent: float = 100.0  # 100 = unity gain
    compression_enabled: bool = False
    threshold_db: float = -24.0
    ratio: float = 4.0
    attack_seconds: float = 0.05
    release_seconds: float = 0.25

    @property
    def gain(self) -> float:
        return self.volume_percent / 100.0

    def dynamics(self) -> tuple[float, float, float, float]:
        """(threshold, ratio, attack, release) to put on the dynamics stage."""
        if self.compression_enabled:
            return self.threshold_db, self.ratio, self.attack_seconds, self.release_seconds
        return BYPASS_THRESHOLD_DB, BYPASS_RATIO, self.attack_seconds, self.release_seconds

    def merged(self, partial: Mapping[str, Any] | None) -> ParameterSet:
        """A new set with `partial` (wire or field names) laid over this one.

        Unknown keys are ignored; values that cannot be coerced keep the current value.
        """
        if not partial:
            return self
        if not isinstance(partial, Mapping):
            logger.warning("ignoring settings update of type %s", type(partial).__name__)
            return self
        names = {f.name for f in fields(self)}
        changes: dict[str, Any] = {}
        for key, raw in partial.items():
            name = WIRE_KEYS.get(key, key)
            if name not in names:
                continue
            try:
                changes[name] = _as_bool(raw) if name == "compression_enabled" else _as_float(raw)
            except (TypeError, ValueError):
                logger.warning("ignoring %s=%r: not a valid value", key, raw)
        return replace(self, **changes).clamped()

    def clamped(self) -> ParameterSet:
        return replace(
            self,
            volume_percent=max(0.0, self.volume_percent),
            threshold_db=min(0.0, self.threshold_db),
            ratio=max(1.0, self.ratio),
            attack_seconds=max(0.0, self.attack_seconds),
            release_seconds=max(0.0, self.release_seconds),
        )

    def to_wire(self) -> dict[str, Any]:
        return {wire: getattr(self, name) for wire, name in WIRE_KEYS.items()}

    @classmethod
    def from_wire(cls, data: Mapping[str, Any] | None) -> ParameterSet:
        """Defaults merged with whatever subset `data` carries."""
        return cls().merged(data)


DEFAULT_PARAMETERS = ParameterSet()
