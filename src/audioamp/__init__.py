"""
audioamp: per-page audio graph manager.

Routes every <audio>/<video> element of a page through one shared
gain + compressor graph and meters its input and output.
"""

from .agent import PageAgent
from .config import AgentConfig
from .dom import Document
from .levels import LevelSample
from .presets import DEFAULT_PARAMETERS, ParameterSet

__all__ = [
    "AgentConfig",
    "DEFAULT_PARAMETERS",
    "Document",
    "LevelSample",
    "PageAgent",
    "ParameterSet",
]

__version__ = "0.1.0"
