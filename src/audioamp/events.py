"""
Typed events consumed by the page agent's task queue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .dom import MediaElement, Node


@dataclass(frozen=True)
class ElementAdded:
    nodes: tuple[Node, ...]


@dataclass(frozen=True)
class ElementRemoved:
    element: MediaElement


@dataclass(frozen=True)
class SourceChanged:
    element: MediaElement


@dataclass(frozen=True)
class Gesture:
    kind: str = "pointerdown"


@dataclass(frozen=True)
class ParameterUpdate:
    settings: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TickSample:
    pass


AgentEvent = ElementAdded | ElementRemoved | SourceChanged | Gesture | ParameterUpdate | TickSample
