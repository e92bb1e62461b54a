from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .constants import (
    BLOCK_SIZE,
    FFT_SIZE,
    FRAME_RATE,
    NAVIGATION_SETTLE_S,
    REATTACH_DELAY_S,
    SR,
)


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


@dataclass
class AgentConfig:
    sample_rate: int = SR
    block_size: int = BLOCK_SIZE
    fft_size: int = FFT_SIZE
    frame_rate: float = FRAME_RATE
    reattach_delay: float = REATTACH_DELAY_S
    navigation_settle: float = NAVIGATION_SETTLE_S
    settings_path: str = expand_path("~/.audioamp/settings.json")

    @property
    def frame_interval(self) -> float:
        return 1.0 / self.frame_rate if self.frame_rate > 0 else 1.0 / FRAME_RATE

    @staticmethod
    def normalize_fft_size(raw: int) -> int:
        # Analysers only accept powers of two in [32, 32768]
        size = max(32, min(32768, int(raw)))
        return 1 << (size.bit_length() - 1)

    @classmethod
    def from_env(cls) -> AgentConfig:
        sample_rate = int(os.environ.get("AUDIOAMP_SAMPLE_RATE", str(SR)))
        block_size = int(os.environ.get("AUDIOAMP_BLOCK_SIZE", str(BLOCK_SIZE)))
        fft_size = cls.normalize_fft_size(int(os.environ.get("AUDIOAMP_FFT_SIZE", str(FFT_SIZE))))
        frame_rate = float(os.environ.get("AUDIOAMP_FRAME_RATE", str(FRAME_RATE)))
        reattach = float(os.environ.get("AUDIOAMP_REATTACH_DELAY", str(REATTACH_DELAY_S)))
        settle = float(os.environ.get("AUDIOAMP_NAV_SETTLE", str(NAVIGATION_SETTLE_S)))
        settings_path = expand_path(os.environ.get("AUDIOAMP_SETTINGS_PATH", "~/.audioamp/settings.json"))
        return cls(
            sample_rate=sample_rate,
            block_size=block_size,
            fft_size=fft_size,
            frame_rate=frame_rate,
            reattach_delay=reattach,
            navigation_settle=settle,
            settings_path=settings_path,
        )
