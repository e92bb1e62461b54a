"""
Error taxonomy for the page agent.

Every error here is contained at the component that raises it; none of them is
allowed to escape a task-queue callback or a message handler.
"""

from __future__ import annotations


class AudioAmpError(Exception):
    """Base class for all audioamp errors."""


class EngineUnavailable(AudioAmpError):
    """The rendering context could not be created, or it is closed."""


class GestureRequired(AudioAmpError):
    """The host refuses to start sound until the user has interacted with the page."""


# Name used by the host audio engine for the same condition.
NotAllowedError = GestureRequired


class InvalidStateError(AudioAmpError):
    """An operation was attempted on an object in the wrong state."""


class AttachmentFailure(AudioAmpError):
    """A media element could not be routed into the processing graph."""

    def __init__(self, element, cause: BaseException | None = None):
        self.element = element
        self.cause = cause
        super().__init__(f"cannot attach <{getattr(element, 'tag', '?')}>: {cause}")


class TransportFailure(AudioAmpError):
    """A message or persistence call did not reach its other end."""
