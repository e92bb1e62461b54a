"""
Play media files through the page audio graph without a browser.

Builds a page with one <audio> per file, attaches the agent, applies the
requested settings through the control surface and prints live meters.

Usage:
    audioamp song.wav [other.flac ...] [--volume 150] [--compress --threshold -30 --ratio 8]
"""

from __future__ import annotations
import argparse
import logging
import os
import signal
import threading

from .agent import PageAgent
from .config import AgentConfig
from .control import ControlSurface, MessageChannel
from .dom import Document
from .loop import TaskQueue
from .storage import SettingsStore

logger = logging.getLogger("audioamp.cli")

METER_CHARS = " ▁▂▃▄▅▆▇█"


def _meter(percent: float, width: int = 24) -> str:
    filled = percent / 100.0 * width
    full = int(filled)
    partial = int((filled - full) * (len(METER_CHARS) - 1))
    bar = "█" * full + (METER_CHARS[partial] if full < width else "")
    return bar.ljust(width)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Play audio through a gain + compressor page graph.")
    ap.add_argument("files", nargs="+", help="Audio files to play (one <audio> element each)")
    ap.add_argument("--volume", type=float, help="Volume in percent (100 = unity)")
    ap.add_argument("--compress", action="store_true", help="Enable the compressor")
    ap.add_argument("--threshold", type=float, help="Compressor threshold (dB)")
    ap.add_argument("--ratio", type=float, help="Compression ratio")
    ap.add_argument("--attack", type=float, help="Attack time (s)")
    ap.add_argument("--release", type=float, help="Release time (s)")
    ap.add_argument("--seconds", type=float, default=0.0, help="Stop after this long (0 = until all files end)")
    ap.add_argument("--tab", default="1", help="Tab id to store settings under")
    ap.add_argument("--store", help="Settings file (default: $AUDIOAMP_SETTINGS_PATH or ~/.audioamp/settings.json)")
    ap.add_argument("--reset", action="store_true", help="Reset stored settings to defaults first")
    ap.add_argument("--quiet", action="store_true", help="No meter output")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    config = AgentConfig.from_env()

    loop = TaskQueue.realtime()
    document = Document(url="https://localhost/audioamp", loop=loop)
    for path in args.files:
        document.body.append_child(document.create_element("audio", src=os.path.abspath(path)))

    # launching the command counts as the user's gesture
    document.user_gesture("keydown")
    agent = PageAgent.attach(document, config=config)

    channel = MessageChannel()
    channel.register(args.tab, agent.handle_message)
    surface = ControlSurface(channel, SettingsStore(args.store or config.settings_path), args.tab)
    if args.reset:
        surface.reset()
    surface.load_settings()
    overrides = {
        "volume": args.volume, "threshold": args.threshold, "ratio": args.ratio,
        "attack": args.attack, "release": args.release,
        "compressionEnabled": True if args.compress else None,
    }
    for name, value in overrides.items():
        if value is not None:
            surface.set(name, value)
    surface.send_settings()

    loop.run_until_idle()
    if not agent.graph.exists:
        print("[ERR] No audio output available")
        agent.stop()
        return 1
    for el in agent.registry.elements:
        el.play()

    stop = threading.Event()

    def shutdown(sig, frame):
        stop.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    def watch() -> None:
        inp, out = surface.poll_levels()
        if not args.quiet:
            print(f"\r{surface.check_status():<8} in |{_meter(inp)}| out |{_meter(out)}|", end="", flush=True)
        if not agent.registry.elements:
            stop.set()
        else:
            loop.call_later(0.1, watch)

    loop.call_later(0.1, watch)
    if args.seconds > 0:
        loop.call_later(args.seconds, stop.set)
    try:
        loop.run_forever(stop)
    finally:
        if not args.quiet:
            print()
        agent.stop()
    print(f"[OK] Settings: {surface.display()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
