"""Manual smoke runner for the VLC track source and the calming tone."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from meditation_player.catalog import DEFAULT_TRACKS
from meditation_player.services.audio_context import SoundDeviceAudioContext
from meditation_player.services.tone_source import SynthesizedToneSource
from meditation_player.services.vlc_source import VLCRemoteSource


async def _run_source(uri: str, seconds: float) -> None:
    source = VLCRemoteSource()

    async def _handler(event) -> None:
        print(event)

    source.set_event_handler(_handler)
    await source.load(uri)
    await source.play()
    await asyncio.sleep(seconds)
    source.dispose()


def _run_tone(seconds: float) -> None:
    context = SoundDeviceAudioContext()
    tone = SynthesizedToneSource(context)
    tone.start()
    try:
        asyncio.run(asyncio.sleep(seconds))
    finally:
        tone.dispose()
        context.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Track source smoke test.")
    parser.add_argument(
        "uri",
        nargs="?",
        default=DEFAULT_TRACKS[0].source_uri,
        help="Track URL or file path (defaults to the first built-in track).",
    )
    parser.add_argument("--seconds", type=float, default=5.0)
    parser.add_argument(
        "--tone", action="store_true", help="Play the calming tone instead."
    )
    args = parser.parse_args()
    if args.tone:
        _run_tone(args.seconds)
        return
    asyncio.run(_run_source(args.uri, args.seconds))


if __name__ == "__main__":
    main()
