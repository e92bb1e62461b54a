"""
Global constants shared by the rendering, discovery and metering layers.
"""

SR: int = 44_100  # Rendering sample rate (Hz)
CHANNELS: int = 2
BLOCK_SIZE: int = 512  # Output stream block size (frames)

FFT_SIZE: int = 256  # Analysis taps -> 128 frequency bins
ANALYSER_SMOOTHING: float = 0.8
ANALYSER_MIN_DB: float = -100.0
ANALYSER_MAX_DB: float = -30.0
BYTE_MAX: int = 255

FRAME_RATE: float = 60.0  # Level sampling cadence (display refresh)
REATTACH_DELAY_S: float = 0.1  # Coalescing window for source changes
NAVIGATION_SETTLE_S: float = 1.0  # Wait after client-side navigation before rescanning

MEDIA_TAGS: tuple[str, ...] = ("audio", "video")
SOURCE_ATTRIBUTES: tuple[str, ...] = ("src", "currentSrc")
GESTURE_EVENTS: tuple[str, ...] = ("pointerdown", "keydown", "touchstart")

SETTINGS_KEY_PREFIX: str = "audioSettings_"
